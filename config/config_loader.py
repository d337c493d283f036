"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    display_name: str = ""
    base_url: str | None = None
    input_per_1k: float | None = None    # USD per 1K input tokens
    output_per_1k: float | None = None   # USD per 1K output tokens


@dataclass
class PromptsConfig:
    initial: str
    reply: str
    respond: str
    synthesis: str
    personas: dict[str, str] = field(default_factory=dict)   # role -> persona
    styles: dict[str, str] = field(default_factory=dict)     # style -> instruction


@dataclass
class DefaultsConfig:
    rounds: int
    output_dir: Path
    synthesizer: str
    max_rounds: int = 20
    min_rounds: int = 2
    early_stop: bool = True
    max_retries: int = 2
    interjection_horizon: int = 2
    agreement_claim_ratio: float = 0.6
    default_template: str = "template_code_review"
    default_role: str = "strategic-architect"


@dataclass
class InboxConfig:
    dir: Path = Path("./inbox")
    archive_dir: Path = Path("./inbox/archive")


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    inbox: InboxConfig = field(default_factory=InboxConfig)
    available_providers: set[str] = field(default_factory=set)


def _validate_defaults(defaults: DefaultsConfig) -> None:
    if not 1 <= defaults.max_rounds <= 20:
        raise ValueError(f"defaults.max_rounds must be between 1 and 20, got {defaults.max_rounds}")
    if not 1 <= defaults.rounds <= defaults.max_rounds:
        raise ValueError(f"defaults.rounds must be between 1 and {defaults.max_rounds}, got {defaults.rounds}")
    if defaults.min_rounds < 1:
        raise ValueError(f"defaults.min_rounds must be >= 1, got {defaults.min_rounds}")
    if defaults.max_retries < 0:
        raise ValueError(f"defaults.max_retries must be >= 0, got {defaults.max_retries}")
    if defaults.interjection_horizon < 1:
        raise ValueError(f"defaults.interjection_horizon must be >= 1, got {defaults.interjection_horizon}")
    if not 0.0 < defaults.agreement_claim_ratio <= 1.0:
        raise ValueError(f"defaults.agreement_claim_ratio must be in (0, 1], got {defaults.agreement_claim_ratio}")


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing and ValueError on
    out-of-range defaults. Logs missing API keys but does not raise; callers
    check available_providers count.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        rounds=int(defaults_raw["rounds"]),
        output_dir=Path(defaults_raw["output_dir"]),
        synthesizer=str(defaults_raw["synthesizer"]),
        max_rounds=int(defaults_raw.get("max_rounds", 20)),
        min_rounds=int(defaults_raw.get("min_rounds", 2)),
        early_stop=bool(defaults_raw.get("early_stop", True)),
        max_retries=int(defaults_raw.get("max_retries", 2)),
        interjection_horizon=int(defaults_raw.get("interjection_horizon", 2)),
        agreement_claim_ratio=float(defaults_raw.get("agreement_claim_ratio", 0.6)),
        default_template=str(defaults_raw.get("default_template", "template_code_review")),
        default_role=str(defaults_raw.get("default_role", "strategic-architect")),
    )
    _validate_defaults(defaults)

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        initial=prompts_raw["initial"],
        reply=prompts_raw["reply"],
        respond=prompts_raw["respond"],
        synthesis=prompts_raw["synthesis"],
        personas={k: str(v) for k, v in (raw.get("personas") or {}).items()},
        styles={k: str(v) for k, v in (raw.get("styles") or {}).items()},
    )

    inbox_raw = raw.get("inbox") or {}
    inbox = InboxConfig(
        dir=Path(inbox_raw.get("dir", "./inbox")),
        archive_dir=Path(inbox_raw.get("archive_dir", "./inbox/archive")),
    )

    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        pricing = model_raw.get("pricing") or {}
        model_cfg = ModelConfig(
            name=provider_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            display_name=str(model_raw.get("display_name", provider_name)),
            base_url=model_raw.get("base_url"),
            input_per_1k=float(pricing["input_per_1k"]) if "input_per_1k" in pricing else None,
            output_per_1k=float(pricing["output_per_1k"]) if "output_per_1k" in pricing else None,
        )
        models[provider_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s, set %s in .env",
                provider_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        inbox=inbox,
        available_providers=available_providers,
    )
