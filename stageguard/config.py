"""Settings loading, validation and persistence for stageguard."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Mapping, Optional

from .ipacl import split_allow_list, validate_allow_list

log = logging.getLogger(__name__)

SETTINGS_FILENAME = "stageguard.json"


class ConfigError(RuntimeError):
    """Configuration error exception

    This exception is raised whenever the settings file
    is invalid or cannot be written
    """


@dataclass(slots=True)
class AccessConfig:
    """Access restriction settings

    ``allowed_ips`` keeps the raw allow-list text exactly as the administrator
    entered it, one token per line. It is parsed on every check."""

    ip_restriction: bool = False
    allowed_ips: str = ""
    password_protection: bool = False


@dataclass(slots=True)
class LoggingConfig:
    """Logging configuration

    ``file`` redirects the diagnostic log, ``action_log`` is the audit trail
    of settings changes and denied requests shown by ``stageguard show-log``."""

    level: str = "INFO"
    file: Optional[str] = None
    action_log: Optional[str] = None


@dataclass(slots=True)
class Settings:
    """Top level settings

    ``debug_mode`` is a flag for the host to read: stageguard persists and
    toggles it (``stageguard debug-mode on|off``) but does not act on it.
    The host maps it onto its own debug switch."""

    access: AccessConfig = field(default_factory=AccessConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    debug_mode: bool = True


def _load_mapping(value: Any, ctx: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected mapping for {ctx}")
    return value


def _load_bool(value: Any, default: bool, ctx: str) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(f"Expected boolean for {ctx}")
    return value


def _load_optional_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _load_allowed_ips(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "\n".join(str(item) for item in value)
    raise ConfigError("Expected string or list for access.allowed_ips")


def settings_from_mapping(data: Any) -> Settings:
    if not isinstance(data, Mapping):
        raise ConfigError(f"{SETTINGS_FILENAME} must contain an object")

    access_raw = _load_mapping(data.get("access"), "access")
    logging_raw = _load_mapping(data.get("logging"), "logging")

    access = AccessConfig(
        ip_restriction=_load_bool(access_raw.get("ip_restriction"), False, "access.ip_restriction"),
        allowed_ips=_load_allowed_ips(access_raw.get("allowed_ips")),
        password_protection=_load_bool(
            access_raw.get("password_protection"), False, "access.password_protection"
        ),
    )

    logging_cfg = LoggingConfig(
        level=str(logging_raw.get("level", "INFO")),
        file=_load_optional_str(logging_raw.get("file")),
        action_log=_load_optional_str(logging_raw.get("action_log")),
    )

    return Settings(
        access=access,
        logging=logging_cfg,
        debug_mode=_load_bool(data.get("debug_mode"), True, "debug_mode"),
    )


def load_settings(path: Path) -> Settings:
    """Load settings from ``path``; a missing file yields the defaults."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        log.debug("Settings file %s missing; using defaults", path)
        return Settings()
    except OSError as exc:
        raise ConfigError(f"Unable to read {path}: {exc}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    return settings_from_mapping(data)


def save_settings(path: Path, settings: Settings) -> None:
    """Atomically write ``settings`` to ``path`` as JSON."""
    payload = json.dumps(asdict(settings), indent=2, sort_keys=True) + "\n"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise
    except OSError as exc:
        raise ConfigError(f"Unable to write {path}: {exc}") from exc


_ACCESS_FIELDS = {f.name for f in fields(AccessConfig)}
_LOGGING_FIELDS = {f.name for f in fields(LoggingConfig)}
_BOOL_FIELDS = {"ip_restriction", "password_protection", "debug_mode"}
_OPTIONAL_STR_FIELDS = {"file", "action_log"}


def _check_value(name: str, value: Any) -> Any:
    if name in _BOOL_FIELDS:
        if not isinstance(value, bool):
            raise ConfigError(f"Expected boolean for {name}")
    elif name in _OPTIONAL_STR_FIELDS:
        if value is not None and not isinstance(value, str):
            raise ConfigError(f"Expected string or null for {name}")
    elif not isinstance(value, str):
        raise ConfigError(f"Expected string for {name}")
    return value


class SettingsManager:
    """Thread-safe holder for the active settings.

    Every mutation is written back to disk immediately."""

    def __init__(self, path: Path):
        self._path = path
        self._lock = RLock()
        self._settings: Optional[Settings] = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Settings:
        """Re-read the settings file and swap the active settings."""
        with self._lock:
            log.debug("Loading settings from %s", self._path)
            self._settings = load_settings(self._path)
            return self._settings

    def current(self) -> Settings:
        with self._lock:
            if self._settings is None:
                return self.load()
            return self._settings

    def save(self, settings: Settings) -> Settings:
        with self._lock:
            if settings.access.allowed_ips != self.current().access.allowed_ips:
                warn_allow_list_problems(settings.access.allowed_ips)
            save_settings(self._path, settings)
            self._settings = settings
            return settings

    def update(self, **changes: Any) -> Settings:
        """Apply field changes by name, e.g. ``update(ip_restriction=True)``.

        Access and logging fields are addressed by their own names;
        ``debug_mode`` is top level.
        """
        with self._lock:
            settings = self.current()
            access_changes: Dict[str, Any] = {}
            logging_changes: Dict[str, Any] = {}
            top_changes: Dict[str, Any] = {}
            for name, value in changes.items():
                if name in _ACCESS_FIELDS or name in _LOGGING_FIELDS or name == "debug_mode":
                    value = _check_value(name, value)
                if name in _ACCESS_FIELDS:
                    access_changes[name] = value
                elif name in _LOGGING_FIELDS:
                    logging_changes[name] = value
                elif name == "debug_mode":
                    top_changes[name] = value
                else:
                    raise ConfigError(f"Unknown setting '{name}'")
            updated = replace(
                settings,
                access=replace(settings.access, **access_changes),
                logging=replace(settings.logging, **logging_changes),
                **top_changes,
            )
            return self.save(updated)

    def set_allowed_ips(self, raw: str) -> Settings:
        return self.update(allowed_ips=raw)

    def add_allowed_ip(self, token: str) -> Settings:
        """Append a token to the allow list unless it is already present."""
        with self._lock:
            token = token.strip()
            if not token:
                raise ConfigError("Empty allow-list entry")
            lines = split_allow_list(self.current().access.allowed_ips)
            if token in lines:
                return self.current()
            lines.append(token)
            return self.set_allowed_ips("\n".join(lines))

    def remove_allowed_ip(self, token: str) -> bool:
        """Remove every line equal to ``token``. Returns True if one was found."""
        with self._lock:
            token = token.strip()
            lines = split_allow_list(self.current().access.allowed_ips)
            remaining: List[str] = [line for line in lines if line != token]
            if len(remaining) == len(lines):
                return False
            self.set_allowed_ips("\n".join(remaining))
            return True


def warn_allow_list_problems(raw: str) -> int:
    """Log a warning for every allow-list line that can never match."""
    problems = validate_allow_list(raw)
    for problem in problems:
        log.warning(
            "Allow-list line %d (%r) will be ignored: %s",
            problem.line,
            problem.token,
            problem.reason,
        )
    return len(problems)


def resolve_settings_path(config_dir: Path) -> Path:
    return config_dir / SETTINGS_FILENAME


__all__ = [
    "AccessConfig",
    "ConfigError",
    "LoggingConfig",
    "SETTINGS_FILENAME",
    "Settings",
    "SettingsManager",
    "load_settings",
    "resolve_settings_path",
    "save_settings",
    "settings_from_mapping",
    "warn_allow_list_problems",
]
