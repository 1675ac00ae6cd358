from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys

import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from match_collector.core.domain.models import VideoFile  # noqa: E402
from match_collector.core.storage import StorageEngine  # noqa: E402

BASE_TIME = datetime(2026, 1, 24, 21, 0, tzinfo=timezone.utc)


def make_video(name: str, minutes: float, *, base: datetime = BASE_TIME, size: int = 1024) -> VideoFile:
    """VideoFile recorded ``minutes`` after ``base``."""
    return VideoFile(
        file_path=f"/clips/{name}",
        file_name=name,
        file_size_bytes=size,
        recorded_at=base + timedelta(minutes=minutes),
    )


@pytest.fixture()
def video_factory():
    return make_video


@pytest_asyncio.fixture()
async def storage(tmp_path: Path) -> StorageEngine:
    engine = StorageEngine(db_path=tmp_path / "collector.db")
    await engine.initialize()
    return engine


@pytest_asyncio.fixture()
async def league_id(storage: StorageEngine) -> int:
    return await storage.ensure_league("test-league")
