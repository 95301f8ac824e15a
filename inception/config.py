"""Configuration handling for the bootstrap tool."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError
from .util import deep_merge, expand_path

CONFIG_FILENAME = ".inception.yml"

DEFAULT_CONFIG: dict[str, Any] = {
    "default_branch": "main",
    "visibility": "public",
    "log_level": "INFO",
    "signing": {
        "key": None,
        "allowed_signers": "~/.config/git/allowed_signers",
        "scope": "global",
    },
    "github": {
        "api_url": "https://api.github.com",
        "required_approving_review_count": 1,
        "enforce_admins": False,
        "require_signatures": True,
    },
    "templates": {
        "import_branch": "docs/import-existing-materials",
    },
}

VISIBILITIES = ("public", "private")
SIGNING_SCOPES = ("global", "local")


class ConfigError(ConfigurationError):
    """Raised when configuration could not be loaded or parsed."""


@dataclass(frozen=True)
class SigningConfig:
    key: str | None = None
    allowed_signers: str = "~/.config/git/allowed_signers"
    scope: str = "global"

    @property
    def allowed_signers_path(self) -> Path:
        return expand_path(self.allowed_signers)

    @property
    def key_path(self) -> Path | None:
        return expand_path(self.key) if self.key else None


@dataclass(frozen=True)
class GitHubConfig:
    api_url: str = "https://api.github.com"
    required_approving_review_count: int = 1
    enforce_admins: bool = False
    require_signatures: bool = True


@dataclass(frozen=True)
class TemplatesConfig:
    import_branch: str = "docs/import-existing-materials"


@dataclass(frozen=True)
class InceptionConfig:
    default_branch: str = DEFAULT_CONFIG["default_branch"]
    visibility: str = DEFAULT_CONFIG["visibility"]
    log_level: str = DEFAULT_CONFIG["log_level"]
    signing: SigningConfig = field(default_factory=SigningConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    templates: TemplatesConfig = field(default_factory=TemplatesConfig)
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InceptionConfig":
        """Construct from a dictionary, applying defaults for missing keys."""
        merged = deep_merge(DEFAULT_CONFIG, data)
        signing = merged.get("signing") or {}
        github = merged.get("github") or {}
        templates = merged.get("templates") or {}

        visibility = str(merged.get("visibility"))
        if visibility not in VISIBILITIES:
            raise ConfigError(f"visibility must be one of {', '.join(VISIBILITIES)}, not {visibility!r}.")
        scope = str(signing.get("scope", "global"))
        if scope not in SIGNING_SCOPES:
            raise ConfigError(f"signing.scope must be one of {', '.join(SIGNING_SCOPES)}, not {scope!r}.")

        return cls(
            default_branch=str(merged.get("default_branch")),
            visibility=visibility,
            log_level=str(merged.get("log_level", "INFO")),
            signing=SigningConfig(
                key=str(signing["key"]) if signing.get("key") else None,
                allowed_signers=str(signing.get("allowed_signers")),
                scope=scope,
            ),
            github=GitHubConfig(
                api_url=str(github.get("api_url")).rstrip("/"),
                required_approving_review_count=int(github.get("required_approving_review_count", 1)),
                enforce_admins=bool(github.get("enforce_admins", False)),
                require_signatures=bool(github.get("require_signatures", True)),
            ),
            templates=TemplatesConfig(import_branch=str(templates.get("import_branch"))),
            raw=merged,
        )


def load_config(path: Path | None = None) -> InceptionConfig:
    """Load configuration from a file, applying defaults when missing."""
    config_path = path or Path(CONFIG_FILENAME)
    if not config_path.exists():
        return InceptionConfig.from_dict({})

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}") from exc

    if not isinstance(payload, dict):
        raise ConfigError("Configuration root must be a mapping.")

    return InceptionConfig.from_dict(payload)


def save_config(config: InceptionConfig, path: Path | None = None) -> None:
    """Write configuration back to disk."""
    config_path = path or Path(CONFIG_FILENAME)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config.raw or DEFAULT_CONFIG, handle, sort_keys=False)
