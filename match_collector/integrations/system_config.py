"""
Config loading utilities for the collector.

Responsibilities:
 - Hydrate environment variables from one or more `.env` files
 - Load structured defaults from `config.json` (or a supplied JSON path)
 - Respect existing environment variables unless explicit override requested
 - Provide a helper to assert required keys at startup
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Iterable, Mapping, MutableMapping, Optional, Sequence

from dotenv import load_dotenv

from match_collector.core.engines.base.logging_utils import get_logger
from match_collector.core.errors import ConfigError

logger = get_logger("system_config")

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_JSON_CANDIDATES: Sequence[Path] = (
    PROJECT_ROOT / "config" / "config.json",
    PROJECT_ROOT / "config.json",
)
DEFAULT_ENV_PATHS: Sequence[Path] = (
    PROJECT_ROOT / ".env",
    PROJECT_ROOT / "config" / ".env",
)


def _as_path(value: Optional[str | Path]) -> Optional[Path]:
    if value is None:
        return None
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (PROJECT_ROOT / path).resolve()
    return path


def load_dotenv_files(paths: Optional[Iterable[str | Path]] = None) -> Sequence[Path]:
    """
    Load one or more .env files into os.environ.
    Returns the files that were processed; missing files are skipped.
    """
    processed: list[Path] = []
    candidates = paths if paths is not None else DEFAULT_ENV_PATHS
    for raw in candidates:
        path = _as_path(raw)
        if not path or not path.exists():
            continue
        try:
            load_dotenv(dotenv_path=str(path))
        except OSError as exc:
            logger.warning("Could not read env file %s: %s", path, exc)
            continue
        processed.append(path)
    return tuple(processed)


def load_json_config(
    json_path: Optional[str | Path] = None,
    *,
    force: bool = False,
    target: Optional[MutableMapping[str, str]] = None,
) -> Mapping[str, str]:
    """
    Load JSON configuration and merge scalar values into the target mapping.
    By default the target is os.environ. Existing keys are preserved unless `force` is True.
    Returns the values that were injected.
    """
    path = _as_path(json_path)
    if path is None:
        path = next((c for c in DEFAULT_JSON_CANDIDATES if c.exists()), None)
    if path is None or not path.exists():
        return {}

    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Invalid config file {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    env: MutableMapping[str, str] = target if target is not None else os.environ  # type: ignore[assignment]
    injected: dict[str, str] = {}
    for key, value in data.items():
        if isinstance(value, bool):
            string_value = "true" if value else "false"
        elif isinstance(value, (str, int, float)):
            string_value = str(value)
        else:
            continue
        if force or env.get(key) is None:
            env[key] = string_value
            injected[key] = string_value
    return injected


def load_config(
    *,
    dotenv_paths: Optional[Iterable[str | Path]] = None,
    json_path: Optional[str | Path] = None,
    json_force: bool = False,
    target: Optional[MutableMapping[str, str]] = None,
) -> Mapping[str, str]:
    """
    Load .env files, then JSON configuration.

    Parameters:
        dotenv_paths: iterable of paths to .env files (defaults to project root fallbacks)
        json_path: path to config.json (defaults to CONFIG_JSON or repo-level config.json)
        json_force: overwrite existing values when loading JSON
        target: mapping to populate (defaults to os.environ)

    Returns:
        Mapping of JSON keys that were injected into the target.
    """
    combined_paths: Optional[Sequence[str | Path]] = tuple(dotenv_paths) if dotenv_paths is not None else None

    env_override = os.getenv("DOTENV_PATHS")
    if env_override:
        override_paths = tuple(p.strip() for p in env_override.split(os.pathsep) if p.strip())
        combined_paths = override_paths + tuple(combined_paths or ())

    load_dotenv_files(combined_paths)

    effective_json_path = json_path or os.getenv("CONFIG_JSON") or None
    return load_json_config(effective_json_path, force=json_force, target=target)


def require_keys(keys: Iterable[str], *, source: Optional[Mapping[str, str]] = None) -> None:
    """
    Validate that all required keys exist in the environment (or provided mapping).
    Raises ConfigError listing any missing keys.
    """
    env = source if source is not None else os.environ
    missing = [key for key in keys if not env.get(key)]
    if missing:
        raise ConfigError(f"Missing required environment keys: {', '.join(missing)}")
