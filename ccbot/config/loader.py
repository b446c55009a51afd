"""Load and save ccbot configuration.

Settings live in ``~/.ccbot/config.json`` with camelCase keys. Secrets live
in ``~/.ccbot/.env`` (mode 600) as ``CCBOT_*`` variables and are kept out of
the JSON file. Values already present in the process environment win over
the ``.env`` file.
"""

import json
import os
import stat
from pathlib import Path
from typing import Any

from dotenv import load_dotenv, set_key
from loguru import logger
from pydantic.alias_generators import to_camel, to_snake

from ccbot.config.schema import Config

# Attribute path on Config -> environment variable that carries it.
SECRETS: list[tuple[tuple[str, ...], str]] = [
    (("discord", "token"), "CCBOT_DISCORD__TOKEN"),
    (("providers", "primary", "api_key"), "CCBOT_PROVIDERS__PRIMARY__API_KEY"),
    (("providers", "secondary", "api_key"), "CCBOT_PROVIDERS__SECONDARY__API_KEY"),
    (("redis", "url"), "CCBOT_REDIS__URL"),  # may embed a password
]


def get_config_path() -> Path:
    return Path.home() / ".ccbot" / "config.json"


def get_env_path() -> Path:
    return Path.home() / ".ccbot" / ".env"


def _restrict(path: Path) -> None:
    try:
        path.chmod(stat.S_IRUSR | stat.S_IWUSR)
    except OSError:
        pass  # not supported on this filesystem


def load_config(config_path: Path | None = None, env_path: Path | None = None) -> Config:
    """
    Build the configuration from config.json, the .env file and the environment.

    A missing file gives defaults. An unreadable or invalid file is logged and
    also gives defaults, so the bot can still start with env-only settings.
    """
    path = config_path or get_config_path()
    load_dotenv(env_path or get_env_path(), override=False)

    config = Config()
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            config = Config.model_validate(convert_keys(data))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring config at {path}: {e}")

    for attr_path, env_var in SECRETS:
        value = os.environ.get(env_var)
        if value:
            _set_attr(config, attr_path, value)
    return config


def save_config(config: Config, config_path: Path | None = None, env_path: Path | None = None) -> None:
    """Write settings to config.json and secrets to the .env file."""
    path = config_path or get_config_path()
    env_path = env_path or get_env_path()

    data = config.model_dump()
    env_path.parent.mkdir(parents=True, exist_ok=True)
    env_path.touch(exist_ok=True)
    for attr_path, env_var in SECRETS:
        value = _pop_nested(data, attr_path)
        if value:
            set_key(str(env_path), env_var, value)
    _restrict(env_path)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(convert_to_camel(data), indent=2, ensure_ascii=False), encoding="utf-8")
    _restrict(path)


def config_has_secrets(config_path: Path | None = None) -> bool:
    """True if config.json holds a non-empty secret (it should not)."""
    path = config_path or get_config_path()
    if not path.exists():
        return False
    try:
        data = convert_keys(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError):
        return False
    return any(_get_nested(data, attr_path) for attr_path, _ in SECRETS)


def _get_nested(data: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _pop_nested(data: dict, keys: tuple[str, ...]) -> Any:
    parent = _get_nested(data, keys[:-1])
    if not isinstance(parent, dict):
        return None
    return parent.pop(keys[-1], None)


def _set_attr(obj: Any, keys: tuple[str, ...], value: str) -> None:
    for key in keys[:-1]:
        obj = getattr(obj, key)
    setattr(obj, keys[-1], value)


def convert_keys(data: Any) -> Any:
    """camelCase keys (as stored on disk) to snake_case, recursively."""
    if isinstance(data, dict):
        return {to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    if isinstance(data, dict):
        return {to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data
