import os
import platform
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from deferral.config.env_guard import RUNNING_PYTEST

"""
Environment Configuration Management Module

Centralized configuration for deferral through the Environment class. Values
are looked up, in order of precedence, from:

- Environment variables (including those loaded from .env files)
- The settings file (settings.yaml)
- Default values (DEFAULT_ENV)

Flags consumed by the runtime:
- DEFERRAL_HOOK_SOURCE: redirect handlers registered in a non-global scope
  that a running batch script evaluates in (off by default; the top-level
  scope is always redirected)
- DEFERRAL_HOOK_RENDER: buffer handlers registered from document chunks until
  the whole document finishes rendering (on by default)
- DEFERRAL_INTERACTIVE: force interactive detection on/off for the session
  notice
"""

SETTINGS_FILE = "settings.yaml"
NOT_GIVEN = object()

DEFAULT_ENV: Dict[str, Any] = {
    "DEFERRAL_LOG_LEVEL": "INFO",
    "DEFERRAL_HOOK_SOURCE": "0",
    "DEFERRAL_HOOK_RENDER": "1",
    "DEFERRAL_INTERACTIVE": None,
    "DEFERRAL_SETTINGS_FILE": None,
}

SETTING_DESCRIPTIONS: Dict[str, str] = {
    "DEFERRAL_LOG_LEVEL": "Log level for the deferral loggers",
    "DEFERRAL_HOOK_SOURCE": "Redirect handlers into batch scripts evaluating in non-global scopes",
    "DEFERRAL_HOOK_RENDER": "Buffer chunk handlers until the whole document has rendered",
    "DEFERRAL_INTERACTIVE": "Force interactive detection for the session notice (1/0)",
    "DEFERRAL_SETTINGS_FILE": "Path of the YAML settings file",
}

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def get_system_file_path(filename: str) -> Path:
    """Return the path to the configuration file for the current OS."""
    os_name = platform.system()
    if os_name in {"Linux", "Darwin"}:
        return Path.home() / ".config" / "deferral" / filename
    elif os_name == "Windows":
        appdata = os.getenv("APPDATA")
        if appdata is not None:
            return Path(appdata) / "deferral" / filename
        return Path("data") / filename
    return Path("data") / filename


def get_settings_path() -> Path:
    override = os.environ.get("DEFERRAL_SETTINGS_FILE")
    if override:
        return Path(override)
    return get_system_file_path(SETTINGS_FILE)


def load_dotenv_files(directory: Optional[Path] = None) -> None:
    """Load environment variables from .env files in the working directory."""
    from dotenv import load_dotenv

    base = directory or Path.cwd()
    for env_file in (base / ".env", base / ".env.local"):
        if env_file.exists():
            load_dotenv(env_file, override=False)


def load_settings() -> Dict[str, Any]:
    """Load settings from the YAML settings file, if present."""
    import yaml

    settings_file = get_settings_path()
    if not settings_file.exists():
        return {}
    with open(settings_file, "r", encoding="utf-8") as f:
        settings = yaml.safe_load(f) or {}
    if not isinstance(settings, dict):
        raise ValueError(f"Settings file {settings_file} must contain a mapping")
    return settings


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    return default


class Environment(object):
    """
    Class-level accessors for deferral configuration.

    Settings are loaded lazily on first access and cached; call ``reload()``
    after changing the settings file. Environment variables are read on every
    lookup so tests can monkeypatch ``os.environ``.
    """

    settings: Optional[Dict[str, Any]] = None

    @classmethod
    def load_settings(cls):
        load_dotenv_files()
        cls.settings = load_settings()

    @classmethod
    def get_settings(cls) -> Dict[str, Any]:
        if cls.settings is None:
            cls.load_settings()
        assert cls.settings is not None
        return cls.settings

    @classmethod
    def reload(cls):
        cls.settings = None
        return cls.get_settings()

    @classmethod
    def clear(cls):
        """Drop cached settings without reloading them."""
        cls.settings = None

    @classmethod
    def get(cls, key: str, default: Any = NOT_GIVEN) -> Any:
        value = os.environ.get(key)
        if value is None:
            value = cls.get_settings().get(key)
        if value is None:
            value = DEFAULT_ENV.get(key)
        if value is None and default is not NOT_GIVEN:
            return default
        return value

    @classmethod
    def get_log_level(cls) -> str:
        return str(cls.get("DEFERRAL_LOG_LEVEL", "INFO")).upper()

    @classmethod
    def hook_source(cls) -> bool:
        """
        Redirect handlers into running batch scripts for non-global scopes.
        """
        return _as_bool(cls.get("DEFERRAL_HOOK_SOURCE"), False)

    @classmethod
    def set_hook_source(cls, enabled: bool):
        os.environ["DEFERRAL_HOOK_SOURCE"] = "1" if enabled else "0"

    @classmethod
    def hook_render(cls) -> bool:
        """
        Buffer chunk handlers until the whole document has been rendered.
        """
        return _as_bool(cls.get("DEFERRAL_HOOK_RENDER"), True)

    @classmethod
    def set_hook_render(cls, enabled: bool):
        os.environ["DEFERRAL_HOOK_RENDER"] = "1" if enabled else "0"

    @classmethod
    def is_interactive(cls) -> bool:
        """
        Is the process an interactive session?

        DEFERRAL_INTERACTIVE wins when set. Test runs are never interactive.
        """
        forced = cls.get("DEFERRAL_INTERACTIVE")
        if forced is not None:
            return _as_bool(forced, False)
        if RUNNING_PYTEST:
            return False
        return hasattr(sys, "ps1") or bool(sys.flags.interactive)

    @classmethod
    def get_environment(cls) -> Dict[str, Any]:
        """Return the effective value of every known setting."""
        return {key: cls.get(key, None) for key in DEFAULT_ENV}
