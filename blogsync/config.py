"""Settings for the publishing targets, loaded from YAML and ``BLOGSYNC_*`` variables."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from blogsync.errors import ConfigurationError

LOGGER = logging.getLogger(__name__)

CONFIG_ENV_VAR = "BLOGSYNC_CONFIG"
DEFAULT_CONFIG_FILE = "blogsync.yaml"
DEFAULT_LEDGER_FILE = ".blogsync/published.json"

PUBLISH_TARGETS = ("github", "server", "both")
REF_UPDATE_MODES = ("force", "strict")


@dataclass(slots=True)
class GitHubSettings:
    token: str = ""
    owner: str = ""
    repo: str = ""
    branch: str = "main"
    public_base_path: str = "src/site"
    content_path: str = "notes"
    assets_path: str = "img/user"
    api_url: str = "https://api.github.com"
    ref_update_mode: str = "force"
    timeout: float = 30.0

    @property
    def configured(self) -> bool:
        return bool(self.token and self.owner and self.repo)

    def validate(self) -> None:
        missing = [name for name in ("token", "owner", "repo", "branch") if not getattr(self, name)]
        if missing:
            raise ConfigurationError(f"GitHub settings are missing: {', '.join(missing)}")
        if self.ref_update_mode not in REF_UPDATE_MODES:
            raise ConfigurationError(
                f"ref_update_mode must be one of {', '.join(REF_UPDATE_MODES)}, got '{self.ref_update_mode}'"
            )


@dataclass(slots=True)
class LocalMirrorSettings:
    enabled: bool = False
    root: str = ""
    notes_path: str = "src/site/notes"
    assets_path: str = "src/site/img/user"

    @property
    def configured(self) -> bool:
        return self.enabled and bool(self.root)


@dataclass(slots=True)
class WebhookSettings:
    enabled: bool = False
    url: str = ""
    token: str = ""
    timeout: float = 10.0

    @property
    def configured(self) -> bool:
        return self.enabled and bool(self.url)


@dataclass(slots=True)
class Settings:
    """Complete configuration passed explicitly to the coordinator and publishers."""

    vault_path: Path = field(default_factory=Path.cwd)
    blog_folder_path: str = ""
    publish_target: str = "both"
    ledger_path: Path | None = None
    github: GitHubSettings = field(default_factory=GitHubSettings)
    local_mirror: LocalMirrorSettings = field(default_factory=LocalMirrorSettings)
    webhook: WebhookSettings = field(default_factory=WebhookSettings)

    def __post_init__(self) -> None:
        if self.publish_target not in PUBLISH_TARGETS:
            raise ConfigurationError(
                f"publish_target must be one of {', '.join(PUBLISH_TARGETS)}, got '{self.publish_target}'"
            )

    @property
    def github_enabled(self) -> bool:
        return self.publish_target in {"github", "both"} and self.github.configured

    @property
    def local_mirror_enabled(self) -> bool:
        return self.publish_target in {"server", "both"} and self.local_mirror.configured

    def resolve_ledger_path(self) -> Path:
        if self.ledger_path is None:
            return Path(self.vault_path) / DEFAULT_LEDGER_FILE
        if Path(self.ledger_path).is_absolute():
            return Path(self.ledger_path)
        return Path(self.vault_path) / self.ledger_path


_ENV_OVERRIDES: Mapping[str, tuple[str | None, str]] = {
    "BLOGSYNC_VAULT_PATH": (None, "vault_path"),
    "BLOGSYNC_BLOG_FOLDER": (None, "blog_folder_path"),
    "BLOGSYNC_PUBLISH_TARGET": (None, "publish_target"),
    "BLOGSYNC_LEDGER_PATH": (None, "ledger_path"),
    "BLOGSYNC_GITHUB_TOKEN": ("github", "token"),
    "BLOGSYNC_GITHUB_OWNER": ("github", "owner"),
    "BLOGSYNC_GITHUB_REPO": ("github", "repo"),
    "BLOGSYNC_GITHUB_BRANCH": ("github", "branch"),
    "BLOGSYNC_GITHUB_API_URL": ("github", "api_url"),
    "BLOGSYNC_REF_UPDATE_MODE": ("github", "ref_update_mode"),
    "BLOGSYNC_HTTP_TIMEOUT": ("github", "timeout"),
    "BLOGSYNC_MIRROR_ENABLED": ("local_mirror", "enabled"),
    "BLOGSYNC_MIRROR_ROOT": ("local_mirror", "root"),
    "BLOGSYNC_WEBHOOK_ENABLED": ("webhook", "enabled"),
    "BLOGSYNC_WEBHOOK_URL": ("webhook", "url"),
    "BLOGSYNC_WEBHOOK_TOKEN": ("webhook", "token"),
}


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off", ""}:
            return False
    if isinstance(value, int):
        return bool(value)
    raise ConfigurationError(f"Expected a boolean value, got {value!r}")


def _coerce_float(value: Any, name: str) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc
    if result <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value!r}")
    return result


def _build_section(cls: type, payload: Any, section: str) -> Any:
    if payload is None:
        return cls()
    if not isinstance(payload, Mapping):
        raise ConfigurationError(f"'{section}' must be a mapping")

    known = set(cls.__dataclass_fields__)  # type: ignore[attr-defined]
    unknown = sorted(set(payload) - known)
    if unknown:
        LOGGER.warning("Ignoring unknown %s settings: %s", section, ", ".join(map(str, unknown)))

    values: dict[str, Any] = {}
    for key in known & set(payload):
        value = payload[key]
        default = cls.__dataclass_fields__[key].default  # type: ignore[attr-defined]
        if isinstance(default, bool):
            values[key] = _coerce_bool(value)
        elif isinstance(default, float):
            values[key] = _coerce_float(value, f"{section}.{key}")
        else:
            values[key] = "" if value is None else str(value)
    return cls(**values)


def settings_from_mapping(payload: Mapping[str, Any], *, base_dir: Path | None = None) -> Settings:
    """Build :class:`Settings` from a parsed YAML document."""

    vault_raw = payload.get("vault_path")
    vault_path = Path(vault_raw).expanduser() if vault_raw else (base_dir or Path.cwd())
    if base_dir is not None and not vault_path.is_absolute():
        vault_path = base_dir / vault_path

    ledger_raw = payload.get("ledger_path")
    return Settings(
        vault_path=vault_path,
        blog_folder_path=str(payload.get("blog_folder_path") or ""),
        publish_target=str(payload.get("publish_target") or "both").lower(),
        ledger_path=Path(ledger_raw) if ledger_raw else None,
        github=_build_section(GitHubSettings, payload.get("github"), "github"),
        local_mirror=_build_section(LocalMirrorSettings, payload.get("local_mirror"), "local_mirror"),
        webhook=_build_section(WebhookSettings, payload.get("webhook"), "webhook"),
    )


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"{path} is not valid YAML: {exc}") from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigurationError(f"{path} must contain a YAML mapping")
    return payload


def _apply_env_overrides(payload: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    merged: dict[str, Any] = {
        key: dict(value) if isinstance(value, Mapping) else value for key, value in payload.items()
    }

    token = env.get("BLOGSYNC_GITHUB_TOKEN") or env.get("GITHUB_TOKEN")
    if token:
        merged.setdefault("github", {})["token"] = token

    for variable, (section, key) in _ENV_OVERRIDES.items():
        raw_value = env.get(variable)
        if raw_value is None or raw_value == "" or variable == "BLOGSYNC_GITHUB_TOKEN":
            continue
        if section is None:
            merged[key] = raw_value
        else:
            target = merged.get(section)
            if not isinstance(target, dict):
                target = {}
                merged[section] = target
            target[key] = raw_value

    # BLOGSYNC_SETTINGS_JSON carries a whole document, e.g. from a secret store.
    raw_json = env.get("BLOGSYNC_SETTINGS_JSON")
    if raw_json:
        try:
            extra = json.loads(raw_json)
        except json.JSONDecodeError as exc:
            raise ConfigurationError("BLOGSYNC_SETTINGS_JSON must contain valid JSON") from exc
        if not isinstance(extra, dict):
            raise ConfigurationError("BLOGSYNC_SETTINGS_JSON must contain a JSON object")
        for key, value in extra.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key].update(value)
            else:
                merged[key] = value
    return merged


def load_settings(path: Path | None = None, env: Mapping[str, str] | None = None) -> Settings:
    """Load settings from ``path`` (or ``BLOGSYNC_CONFIG``) and environment overrides.

    A missing default config file is not an error; an explicitly requested one is.
    """

    env = os.environ if env is None else env
    explicit = path is not None or bool(env.get(CONFIG_ENV_VAR))
    config_path = Path(path or env.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE).expanduser()

    payload: dict[str, Any] = {}
    if config_path.is_file():
        payload = _read_config_file(config_path)
    elif explicit:
        raise ConfigurationError(f"Config file '{config_path}' does not exist")

    merged = _apply_env_overrides(payload, env)
    base_dir = config_path.parent.resolve() if config_path.is_file() else None
    return settings_from_mapping(merged, base_dir=base_dir)


__all__ = [
    "ConfigurationError",
    "GitHubSettings",
    "LocalMirrorSettings",
    "Settings",
    "WebhookSettings",
    "load_settings",
    "settings_from_mapping",
]
