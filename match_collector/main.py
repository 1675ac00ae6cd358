"""Entry point for the match collector service."""

from __future__ import annotations

import asyncio

from match_collector.config import CollectorConfig
from match_collector.core.engines.base.logging_utils import configure_logging, get_logger
from match_collector.core.errors import CollectorError
from match_collector.integrations import build_collector, load_config, require_keys

logger = get_logger("main")

REQUIRED_KEYS = ("CLIPS_PATH",)


async def run_collector(config: CollectorConfig) -> None:
    collector = await build_collector(config)
    await collector.run()


def main() -> None:
    try:
        load_config()
        require_keys(REQUIRED_KEYS)
        config = CollectorConfig.from_env()
    except CollectorError as exc:
        configure_logging()
        logger.error("%s", exc)
        raise SystemExit(2) from exc

    configure_logging(level=config.log_level, log_file=config.log_file)
    logger.info("starting collector for %s", config.clips_path)
    try:
        asyncio.run(run_collector(config))
    except CollectorError as exc:
        logger.error("collector failed: %s", exc)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        logger.info("interrupted")


if __name__ == "__main__":
    main()
