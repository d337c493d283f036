"""Inbox folder scanning, frontmatter parsing, and archive logic."""

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import frontmatter

logger = logging.getLogger(__name__)


@dataclass
class InboxQuestion:
    """A queued question plus the debate settings from its frontmatter."""

    path: Path
    question: str
    template: str | None = None
    rounds: int | None = None
    style: str | None = None
    models: str | None = None      # same "model[:role],..." syntax as --models


def ensure_dirs(inbox_dir: Path, archive_dir: Path) -> None:
    """Create inbox and archive directories if they don't exist."""
    inbox_dir.mkdir(parents=True, exist_ok=True)
    archive_dir.mkdir(parents=True, exist_ok=True)


def scan_inbox(inbox_dir: Path) -> list[Path]:
    """Return all .md files in inbox_dir, sorted by mtime ascending (oldest first)."""
    files = list(inbox_dir.glob("*.md"))
    return sorted(files, key=lambda p: p.stat().st_mtime)


def parse_file(file_path: Path) -> InboxQuestion:
    """Parse a markdown file with optional YAML frontmatter.

    Recognized keys: template, rounds, style, models. A list under `models`
    is joined with commas; unknown keys are ignored.

    Raises:
        ValueError: If the body is empty or rounds is not an integer.
    """
    post = frontmatter.load(str(file_path))
    content = post.content.strip()
    if not content:
        raise ValueError(f"{file_path.name} has no question text")
    meta = dict(post.metadata)

    models = meta.get("models")
    if isinstance(models, list):
        models = ",".join(str(m) for m in models)

    rounds = meta.get("rounds")
    try:
        rounds = int(rounds) if rounds is not None else None
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{file_path.name}: rounds must be an integer, got {rounds!r}") from exc

    return InboxQuestion(
        path=file_path,
        question=content,
        template=str(meta["template"]) if meta.get("template") else None,
        rounds=rounds,
        style=str(meta["style"]) if meta.get("style") else None,
        models=str(models) if models else None,
    )


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move file to archive_dir with a timestamp prefix.

    Args:
        file_path: Source file to archive.
        archive_dir: Destination directory.
        failed: If True, prefix filename with "FAILED_".

    Returns:
        Path to the archived file.
    """
    timestamp = datetime.now().strftime("%Y-%m-%dT%H%M")
    prefix = "FAILED_" if failed else ""
    dest = archive_dir / f"{prefix}{timestamp}_{file_path.name}"
    shutil.move(str(file_path), str(dest))
    logger.debug("Archived %s -> %s", file_path.name, dest)
    return dest
