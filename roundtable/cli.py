"""Click CLI: loads config, picks providers, runs debates and writes output."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from config.config_loader import AppConfig, load_config
from roundtable.debate import DebateController, DebateStream
from roundtable.errors import DebateError
from roundtable.events import ModelCompleted
from roundtable.healthcheck import run_health_checks
from roundtable.inbox import InboxQuestion, archive_file, ensure_dirs, parse_file, scan_inbox
from roundtable.models import DebateStatus, InterjectionType, Participant, Session, TemplateParticipant
from roundtable.output import EventPrinter, save_to_file
from roundtable.protocol import SseEncoder
from roundtable.providers.base import AIProvider
from roundtable.providers.factory import build_providers
from roundtable.templates import InMemoryTemplateStore, name_participants

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
    )


def parse_models(models_arg: str, config: AppConfig) -> list[Participant]:
    """Parse "claude:strategic-architect,openai" into participants.

    Roles default to defaults.default_role; a repeated model gets a numeric
    name suffix.
    """
    entries: list[TemplateParticipant] = []
    for raw in models_arg.split(","):
        raw = raw.strip()
        if not raw:
            continue
        model, _, role = raw.partition(":")
        entries.append(TemplateParticipant(model=model.strip(), role=role.strip() or config.defaults.default_role))
    display_names = {key: cfg.display_name for key, cfg in config.models.items() if cfg.display_name}
    return name_participants(entries, display_names)


def parse_interjection(raw: str) -> tuple[InterjectionType, str]:
    """Accept "steer: focus on cost" or plain text (a comment)."""
    prefix, sep, rest = raw.partition(":")
    if sep and prefix.strip().lower() in {t.value for t in InterjectionType}:
        return InterjectionType(prefix.strip().lower()), rest.strip()
    return InterjectionType.COMMENT, raw.strip()


def _check_and_filter_providers(all_providers: dict[str, AIProvider]) -> dict[str, AIProvider]:
    """Run health checks, print results, and ask user what to do on failures.

    Returns the filtered dict of working providers. Exits if the user
    declines to continue or no providers pass.
    """
    console.print("\n[bold]Checking providers...[/bold]")
    results: dict[str, tuple[bool, str]] = asyncio.run(run_health_checks(all_providers))

    failed_names: list[str] = []
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed_names.append(name)

    if not failed_names:
        console.print()
        return all_providers

    working = {n: p for n, p in all_providers.items() if n not in failed_names}

    if len(working) < 2:
        console.print("\n[bold red]Error:[/bold red] Fewer than 2 providers passed the health check.")
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed_names)} provider(s) failed:[/yellow] {', '.join(failed_names)}")
    console.print(f"Working providers: {', '.join(sorted(working))}")

    if not click.confirm("Continue with working providers only?", default=True):
        sys.exit(0)

    console.print()
    return working


def _print_templates(store: InMemoryTemplateStore) -> None:
    table = Table(title="Debate templates")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Style")
    table.add_column("Rounds", justify="right")
    table.add_column("Participants")
    for template in store.list_templates():
        participants = ", ".join(f"{p.model}:{p.role}" for p in template.participants)
        table.add_row(template.id, template.name, template.style.value, str(template.max_rounds), participants)
    console.print(table)


def _open_stream(
    controller: DebateController,
    config: AppConfig,
    question: str,
    template_id: str | None,
    models_arg: str | None,
    rounds: int | None,
    style: str | None,
    min_rounds: int | None,
    early_stop: bool | None,
    synthesizer: str | None,
) -> DebateStream:
    """--models wins over --template; with neither, the configured default template is used."""
    policy = {"early_stop": early_stop, "min_rounds": min_rounds, "synthesizer": synthesizer}
    if models_arg:
        return controller.start(
            question,
            parse_models(models_arg, config),
            style or "cooperative",
            rounds,
            **policy,
        )
    return controller.start_from_template(
        question,
        template_id or config.defaults.default_template,
        style=style,
        max_rounds=rounds,
        **policy,
    )


async def _run_single(
    controller: DebateController,
    stream: DebateStream,
    output_dir: Path,
    interjections: tuple[str, ...] = (),
    sse: bool = False,
    verbose: bool = False,
    slug_override: str | None = None,
) -> Session:
    """Consume one debate stream, queue CLI interjections after the first turn, save the transcript."""
    printer = EventPrinter(console, show_costs=verbose)
    encoder = SseEncoder()
    queued = [parse_interjection(raw) for raw in interjections]

    async for event in stream:
        if sse:
            click.echo(encoder.encode(event), nl=False)
        else:
            printer(event)
        if queued and isinstance(event, ModelCompleted):
            for interjection_type, text in queued:
                controller.interject(stream.session_id, text, interjection_type)
            queued.clear()

    session = controller.get_session(stream.session_id)
    saved_path = save_to_file(session, output_dir, slug_override=slug_override)
    if not sse:
        console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    return session


async def _run_inbox(
    controller: DebateController,
    config: AppConfig,
    inbox_dir: Path,
    archive_dir: Path,
    cli_options: dict,
    output_dir: Path,
    verbose: bool,
) -> None:
    """Process all .md files in the inbox folder.

    Precedence for per-file settings: CLI flag > frontmatter > config default.
    """
    ensure_dirs(inbox_dir, archive_dir)
    files = scan_inbox(inbox_dir)

    if not files:
        click.echo("No files in inbox.")
        return

    for file_path in files:
        try:
            item: InboxQuestion = parse_file(file_path)
            stream = _open_stream(
                controller,
                config,
                item.question,
                template_id=cli_options["template"] or item.template,
                models_arg=cli_options["models"] or item.models,
                rounds=cli_options["rounds"] if cli_options["rounds"] is not None else item.rounds,
                style=cli_options["style"] or item.style,
                min_rounds=cli_options["min_rounds"],
                early_stop=cli_options["early_stop"],
                synthesizer=cli_options["synthesizer"],
            )
            session = await _run_single(
                controller, stream, output_dir, verbose=verbose, slug_override=file_path.stem
            )
        except (DebateError, ValueError) as e:
            logger.error("Failed: %s -- %s", file_path.name, e)
            archive_file(file_path, archive_dir, failed=True)
            continue

        failed = session.status is DebateStatus.ERROR
        archived = archive_file(file_path, archive_dir, failed=failed)
        click.echo(f"Processed: {file_path.name} -> {session.status.value} (archived: {archived.name})")


@click.command()
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True), help="Read question from .md file")
@click.option("--template", "template_id", default=None, help="Template id (see --list-templates)")
@click.option("--rounds", default=None, type=int, help="Maximum debate rounds (default: template or config)")
@click.option("--style", type=click.Choice(["cooperative", "adversarial", "red_team", "panel"]), default=None,
              help="Debate style (default: template or cooperative)")
@click.option("--models", default=None, help="Comma-separated model[:role] list, overrides --template")
@click.option("--synthesizer", default=None, help="Which model synthesizes (default: from config)")
@click.option("--min-rounds", default=None, type=int, help="Completed rounds before agreement may stop the debate")
@click.option("--no-early-stop", is_flag=True, default=False, help="Always run to --rounds, even on agreement")
@click.option("--interject", "interjections", multiple=True,
              help="Queue user input after the first turn; prefix with steer:/challenge:/clarify: to set its type")
@click.option("--sse", is_flag=True, default=False, help="Print raw server-sent-event frames instead of rich output")
@click.option("--list-templates", is_flag=True, default=False, help="List debate templates and exit")
@click.option("--inbox", "use_inbox", is_flag=True, default=False, help="Process all .md files in inbox folder")
@click.option("--inbox-dir", "inbox_dir_override", default=None,
              help="Override inbox folder path (default: from config)")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
def main(
    question: str | None,
    question_file: str | None,
    template_id: str | None,
    rounds: int | None,
    style: str | None,
    models: str | None,
    synthesizer: str | None,
    min_rounds: int | None,
    no_early_stop: bool,
    interjections: tuple[str, ...],
    sse: bool,
    list_templates: bool,
    use_inbox: bool,
    inbox_dir_override: str | None,
    output_path: str | None,
    verbose: bool,
    skip_health_check: bool,
) -> None:
    """Roundtable -- multi-model AI debate with live streaming and consensus.

    \b
    Examples:
      roundtable "Should we use REST or GraphQL?"
      roundtable "Review this caching layer" --template template_code_review --rounds 2
      roundtable "SQL or NoSQL?" --models claude:proposer,openai:devils-advocate --style adversarial
      roundtable --file question.md --interject "steer: focus on operating cost"
      roundtable --inbox
      roundtable --list-templates
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    if list_templates:
        _print_templates(InMemoryTemplateStore())
        return

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    effective_output = Path(output_path) if output_path else config.defaults.output_dir
    early_stop = False if no_early_stop else None

    all_providers = build_providers(config)
    if len(all_providers) < 2:
        console.print("[bold red]Error:[/bold red] At least 2 providers are required. Check API keys in .env.")
        sys.exit(1)

    if not skip_health_check:
        all_providers = _check_and_filter_providers(all_providers)

    controller = DebateController(config, all_providers)

    if use_inbox:
        inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.inbox.dir
        cli_options = {
            "template": template_id,
            "models": models,
            "rounds": rounds,
            "style": style,
            "min_rounds": min_rounds,
            "early_stop": early_stop,
            "synthesizer": synthesizer,
        }
        asyncio.run(
            _run_inbox(controller, config, inbox_dir, config.inbox.archive_dir, cli_options, effective_output, verbose)
        )
        return

    if question_file:
        question_text = Path(question_file).read_text(encoding="utf-8").strip()
    elif question:
        question_text = question
    else:
        console.print("[bold red]Error:[/bold red] Provide a QUESTION argument, --file, or --inbox.")
        sys.exit(1)

    try:
        stream = _open_stream(
            controller, config, question_text, template_id, models, rounds, style, min_rounds, early_stop, synthesizer
        )
    except DebateError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)

    session = asyncio.run(
        _run_single(controller, stream, effective_output, interjections=interjections, sse=sse, verbose=verbose)
    )
    if session.status is DebateStatus.ERROR:
        sys.exit(1)


if __name__ == "__main__":
    main()
