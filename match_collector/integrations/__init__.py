from __future__ import annotations

from .integration_loader import Collector, build_collector, build_score_engine
from .system_config import load_config, load_dotenv_files, load_json_config, require_keys

__all__ = [
    "Collector",
    "build_collector",
    "build_score_engine",
    "load_config",
    "load_json_config",
    "load_dotenv_files",
    "require_keys",
]
