"""Config file loading, validation, and persistence.

Schema on disk (~/.config/repost/config.json):

    {
        "max_history_items": 1000,
        "timeout": 30.0,
        "follow_redirects": true,
        "verify_tls": true,
        "state_path": "~/.config/repost/state.json",
        "log_level": "WARNING"
    }

Every key is optional.  Keys prefixed with "_" are reserved (e.g. "_comment")
and are stripped on load.
"""

import json
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator

from repost.constants import DEFAULT_MAX_HISTORY_ITEMS, DEFAULT_TIMEOUT_SECONDS

CONFIG_PATH = Path("~/.config/repost/config.json").expanduser()

_README_PATH = Path("~/.config/repost/README.md").expanduser()

_README_CONTENT = """\
# repost configuration

Edit `config.json` in this directory to change how repost sends requests and
where it keeps its state.

## Schema

```json
{
    "max_history_items": 1000,
    "timeout": 30.0,
    "follow_redirects": true,
    "verify_tls": true,
    "state_path": "~/.config/repost/state.json",
    "log_level": "WARNING"
}
```

All keys are optional.  Keys prefixed with `_` (e.g. `_comment`) are ignored.
"""

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseModel):
    """User settings for the store, the HTTP transport and logging."""

    max_history_items: int = Field(default=DEFAULT_MAX_HISTORY_ITEMS, ge=0)
    timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    follow_redirects: bool = True
    verify_tls: bool = True
    state_path: Path = Field(default=Path("~/.config/repost/state.json"), validate_default=True)
    log_level: str = "WARNING"

    @field_validator("state_path")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}")
        return level


class ConfigError(Exception):
    """Raised when config.json exists but cannot be parsed or validated."""


def load_config() -> Settings:
    """Load and validate the config file.

    Creates the config directory, an empty config.json, and a README on first
    run.  Returns default settings if the file is empty.  Raises ConfigError
    if the file exists but is malformed.
    """
    if not CONFIG_PATH.exists():
        _bootstrap()
        return Settings()

    text = CONFIG_PATH.read_text()
    if not text.strip():
        return Settings()

    try:
        raw: object = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"config.json is not valid JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("config.json must be a JSON object at the top level")

    # Strip reserved/comment keys.
    values = {k: v for k, v in raw.items() if not k.startswith("_")}

    try:
        return Settings.model_validate(values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config: {exc}") from exc


def save_config(settings: Settings) -> None:
    """Persist settings to disk, creating directories as needed."""
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_PATH.write_text(json.dumps(settings.model_dump(mode="json"), indent=2))


def _bootstrap() -> None:
    """Create the config directory, an empty config.json, and a README."""
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_PATH.write_text("{}\n")
    if not _README_PATH.exists():
        _README_PATH.write_text(_README_CONTENT)
