"""FlowSync configuration and Keychain helpers.

Settings resolve as defaults <- ~/.flowsync/config.json <- FLOWSYNC_* env vars.
API keys come from the environment or the macOS Keychain (set via
`flowsync set-key`).
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".flowsync"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "config.json"
KEYCHAIN_SERVICE = "flowsync"
ENV_PREFIX = "FLOWSYNC_"


@dataclass
class Settings:
    provider: str = "gemini"
    model: Optional[str] = None
    db_path: str = str(CONFIG_DIR / "flowsync.db")
    output_dir: str = str(CONFIG_DIR / "briefings")
    window_hours: int = 12
    max_items: int = 5
    subscriber_delay_seconds: float = 2.0
    classify_max_chars: int = 4000
    voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    voice_stability: float = 0.5
    voice_similarity_boost: float = 0.75
    voice_speed: float = 1.2


def _coerce(value: Any, current: Any) -> Any:
    """Cast a raw (string from env, or JSON) value to the type of the default."""
    if value is None:
        return None
    if isinstance(current, bool):
        return str(value).lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    return str(value)


def _apply(settings: Settings, values: Mapping[str, Any], origin: str) -> None:
    known = {f.name for f in fields(Settings)}
    for key, value in values.items():
        if key not in known:
            logger.debug("Ignoring unknown setting %r from %s", key, origin)
            continue
        try:
            setattr(settings, key, _coerce(value, getattr(settings, key)))
        except (TypeError, ValueError):
            logger.warning("Invalid value for %s from %s: %r", key, origin, value)


def load_settings(
    path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings. Never raises on a missing or malformed config file."""
    settings = Settings()
    config_path = path or DEFAULT_CONFIG_PATH

    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
            if isinstance(data, dict):
                _apply(settings, data, str(config_path))
            else:
                logger.warning("Config %s is not a JSON object, using defaults", config_path)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to read config %s: %s", config_path, exc)

    env = os.environ if env is None else env
    env_values = {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in env.items()
        if key.startswith(ENV_PREFIX)
    }
    _apply(settings, env_values, "environment")

    return settings


def save_settings(settings: Settings, path: Optional[Path] = None) -> Path:
    """Save settings to disk."""
    config_path = path or DEFAULT_CONFIG_PATH
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(asdict(settings), indent=2))
    return config_path


def get_api_key(env_var: str, keychain_account: str) -> Optional[str]:
    """Load API key from environment variable or macOS Keychain.

    Checks env var first, then Keychain (set via `flowsync set-key`).
    """
    key = os.environ.get(env_var)
    if key:
        return key

    try:
        result = subprocess.run(
            ["security", "find-generic-password", "-a", keychain_account, "-s", KEYCHAIN_SERVICE, "-w"],
            capture_output=True, text=True,
        )
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
    except FileNotFoundError:
        pass

    return None


def store_api_key(account: str, key: str) -> bool:
    """Store an API key in macOS Keychain, replacing any previous one."""
    subprocess.run(
        ["security", "delete-generic-password", "-a", account, "-s", KEYCHAIN_SERVICE],
        capture_output=True,
    )
    result = subprocess.run(
        ["security", "add-generic-password", "-a", account, "-s", KEYCHAIN_SERVICE, "-w", key],
        capture_output=True, text=True,
    )
    if result.returncode != 0:
        logger.error("Failed to store key for %s: %s", account, result.stderr.strip())
    return result.returncode == 0

