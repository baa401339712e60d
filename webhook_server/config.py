"""
Configuration module for the webhook server.

Merges YAML config files from the platform's search paths, applies
`WEBHOOK_SERVER_*` environment overrides and validates the result into a
single immutable Settings snapshot.
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .authentication import AuthConfig
from .registry import Action, ActionRegistry
from .security import ConfigError, is_valid_webhook_name, sanitize_for_logging

logger = logging.getLogger(__name__)

# ============================================================
# Environment Configuration
# ============================================================

CONFIG_FILE_NAME = "webhook_server.yml"
CONFIG_PATH_ENV = "WEBHOOK_SERVER_CONFIG"
ENV_PREFIX = "WEBHOOK_SERVER_"

RUNNERS = ("pueue", "http", "memory")

DEFAULTS: Dict[str, Any] = {
    "domain": "127.0.0.1",
    "port": 8000,
    "secret": None,
    "ssl_private_key": None,
    "ssl_cert_chain": None,
    "basic_auth_user": None,
    "basic_auth_password": None,
    "basic_auth_and_secret": False,
    "runner": "pueue",
    "pueue_binary": "pueue",
    "pueue_config": None,
    "runner_url": None,
    "runner_timeout": 10,
    "webhooks": [],
}

# Keys that may be overridden by WEBHOOK_SERVER_<KEY>
SCALAR_KEYS = [key for key in DEFAULTS if key != "webhooks"]


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("WEBHOOK_SERVER_DEBUG", "").lower() in ("1", "true", "yes")


# ============================================================
# Settings
# ============================================================

@dataclass(frozen=True)
class Settings:
    """
    Immutable configuration snapshot shared by all request handlers.
    """
    domain: str = "127.0.0.1"
    port: int = 8000
    ssl_private_key: Optional[str] = None
    ssl_cert_chain: Optional[str] = None
    auth: AuthConfig = field(default_factory=AuthConfig)
    registry: ActionRegistry = field(default_factory=ActionRegistry)
    runner: str = "pueue"
    pueue_binary: str = "pueue"
    pueue_config: Optional[str] = None
    runner_url: Optional[str] = None
    runner_timeout: float = 10

    @property
    def tls_enabled(self) -> bool:
        return bool(self.ssl_private_key and self.ssl_cert_chain)


# ============================================================
# Config File Discovery
# ============================================================

def get_config_paths() -> List[Path]:
    """Config file locations for this platform, lowest priority first."""
    home = Path.home()
    if sys.platform.startswith("win"):
        appdata = Path(os.getenv("APPDATA", str(home / "AppData" / "Roaming")))
        paths = [appdata / "webhook_server" / CONFIG_FILE_NAME]
    elif sys.platform == "darwin":
        paths = [
            home / "Library" / "Application Support" / CONFIG_FILE_NAME,
            home / "Library" / "Preferences" / CONFIG_FILE_NAME,
        ]
    else:
        paths = [
            Path("/etc") / CONFIG_FILE_NAME,
            home / ".config" / CONFIG_FILE_NAME,
        ]
    paths.append(Path(".") / CONFIG_FILE_NAME)

    explicit = os.getenv(CONFIG_PATH_ENV)
    if explicit:
        paths.append(Path(explicit))
    return paths


def load_config_file(path: Path) -> Dict[str, Any]:
    """
    Load one YAML (or JSON) config file.

    Raises:
        ConfigError: If the file cannot be read or parsed, or is not a mapping
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(str(path), f"invalid YAML: {e}") from e
    except OSError as e:
        raise ConfigError(str(path), f"cannot be read: {e.strerror}") from e
    except UnicodeDecodeError as e:
        raise ConfigError(str(path), "is not valid UTF-8") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(str(path), "must contain a mapping")
    return data


def merge_config(paths: List[Path], environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Merge defaults, existing config files and environment overrides.

    Later files override keys of earlier ones. Environment variables
    override all files.
    """
    if environ is None:
        environ = dict(os.environ)

    merged = dict(DEFAULTS)
    for path in paths:
        logger.debug("Checking config path: %s", path)
        if path.is_file():
            logger.info("Parsing config file at: %s", path)
            merged.update(load_config_file(path))

    for key in SCALAR_KEYS:
        value = environ.get(ENV_PREFIX + key.upper())
        if value is not None:
            merged[key] = value
    return merged


# ============================================================
# Validation
# ============================================================

def _optional_str(raw: Dict[str, Any], key: str) -> Optional[str]:
    value = raw.get(key)
    if value is None or value == "":
        return None
    return str(value)


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("1", "true", "yes", "on"):
        return True
    if isinstance(value, str) and value.lower() in ("0", "false", "no", "off", ""):
        return False
    raise ConfigError(key, "must be a boolean")


def _as_number(value: Any, key: str, kind=int):
    if isinstance(value, bool):
        raise ConfigError(key, "must be a number")
    try:
        number = kind(value)
    except (TypeError, ValueError):
        raise ConfigError(key, "must be a number")
    if number <= 0:
        raise ConfigError(key, "must be positive")
    return number


def build_auth_config(raw: Dict[str, Any]) -> AuthConfig:
    """
    Validate the authentication keys and build an AuthConfig.

    Raises:
        ConfigError: If basic auth is half configured, or both mechanisms are
            required without both being configured
    """
    secret = _optional_str(raw, "secret")
    user = _optional_str(raw, "basic_auth_user")
    password = _optional_str(raw, "basic_auth_password")
    require_both = _as_bool(raw.get("basic_auth_and_secret", False), "basic_auth_and_secret")

    if (user is None) != (password is None):
        missing = "basic_auth_user" if user is None else "basic_auth_password"
        raise ConfigError(missing, "is required when basic auth is configured")

    if require_both:
        for key, value in (("secret", secret), ("basic_auth_user", user), ("basic_auth_password", password)):
            if value is None:
                raise ConfigError(key, "is required when basic_auth_and_secret is enabled")

    return AuthConfig(
        shared_secret=secret.encode("utf-8") if secret else None,
        basic_auth_credentials=(user, password) if user is not None else None,
        require_both=require_both,
    )


def build_registry(entries: Any) -> ActionRegistry:
    """Validate the `webhooks` list and build the action registry."""
    if entries is None:
        entries = []
    if not isinstance(entries, list):
        raise ConfigError("webhooks", "must be a list")

    actions = [Action.from_dict(entry) for entry in entries]
    for action in actions:
        if not is_valid_webhook_name(action.name):
            raise ConfigError(f"webhooks.{action.name}", "name must be a single URL path segment")
    return ActionRegistry(actions)


def build_settings(raw: Dict[str, Any]) -> Settings:
    """
    Turn a merged raw config mapping into a validated Settings snapshot.

    Raises:
        ConfigError: If any setting is invalid
    """
    ssl_key = _optional_str(raw, "ssl_private_key")
    ssl_chain = _optional_str(raw, "ssl_cert_chain")
    if (ssl_key is None) != (ssl_chain is None):
        missing = "ssl_private_key" if ssl_key is None else "ssl_cert_chain"
        raise ConfigError(missing, "is required when TLS is configured")

    runner = str(raw.get("runner") or "pueue")
    if runner not in RUNNERS:
        raise ConfigError("runner", f"must be one of {', '.join(RUNNERS)}")
    runner_url = _optional_str(raw, "runner_url")
    if runner == "http" and runner_url is None:
        raise ConfigError("runner_url", "is required for the http runner")

    return Settings(
        domain=str(raw.get("domain") or DEFAULTS["domain"]),
        port=_as_number(raw.get("port"), "port"),
        ssl_private_key=ssl_key,
        ssl_cert_chain=ssl_chain,
        auth=build_auth_config(raw),
        registry=build_registry(raw.get("webhooks")),
        runner=runner,
        pueue_binary=str(raw.get("pueue_binary") or DEFAULTS["pueue_binary"]),
        pueue_config=_optional_str(raw, "pueue_config"),
        runner_url=runner_url,
        runner_timeout=_as_number(raw.get("runner_timeout"), "runner_timeout", float),
    )


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Load settings from the config search paths.

    Args:
        config_path: Optional extra file, merged after all others

    Returns:
        The validated Settings snapshot
    """
    logger.info("Init settings")
    paths = get_config_paths()
    if config_path:
        path = Path(config_path)
        if not path.is_file():
            raise ConfigError("config", f"file not found: {config_path}")
        paths.append(path)

    raw = merge_config(paths)
    logger.debug("Effective config: %s", sanitize_for_logging(raw))
    settings = build_settings(raw)
    logger.info("Loaded %d webhook(s): %s", len(settings.registry), ", ".join(settings.registry.list_actions()))
    for name in settings.registry.list_actions():
        logger.debug("Webhook %s: %s", name, settings.registry.resolve(name).to_dict())
    return settings
