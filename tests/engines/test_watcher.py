import asyncio
import os
from pathlib import Path

import pytest

from match_collector.core.engines.watcher import DirectoryWatcher
from match_collector.core.event_bus import EventBus
from match_collector.core.event_topics import VIDEO_DISCOVERED


def touch(path: Path, size: int = 16, mtime: float = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x00" * size)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture()
def discovered():
    bus = EventBus()
    seen = []

    async def on_video(path, initial_scan):
        seen.append(path)

    bus.subscribe(VIDEO_DISCOVERED, on_video)
    return bus, seen


@pytest.mark.asyncio
async def test_initial_scan_lists_videos_oldest_first(tmp_path: Path, discovered):
    bus, seen = discovered
    newer = touch(tmp_path / "b.mp4", mtime=2_000_000_000)
    older = touch(tmp_path / "nested" / "a.MP4", mtime=1_900_000_000)
    touch(tmp_path / "notes.txt")
    watcher = DirectoryWatcher(tmp_path, event_bus=bus, stability_seconds=0)

    found = await watcher.initial_scan()

    assert found == [str(older), str(newer)]
    assert await watcher.poll_once() == []
    assert seen == []


@pytest.mark.asyncio
async def test_new_file_is_published_once(tmp_path: Path, discovered):
    bus, seen = discovered
    watcher = DirectoryWatcher(tmp_path, event_bus=bus, stability_seconds=0)
    await watcher.initial_scan()

    clip = touch(tmp_path / "MedalTVRematch1.mp4")
    await watcher.poll_once()
    await watcher.poll_once()

    assert seen == [str(clip)]


@pytest.mark.asyncio
async def test_file_still_being_written_waits_for_stable_size(tmp_path: Path, discovered):
    bus, seen = discovered
    watcher = DirectoryWatcher(tmp_path, event_bus=bus, stability_seconds=0.05)
    await watcher.initial_scan()

    clip = touch(tmp_path / "a.mp4", size=10)
    assert await watcher.poll_once() == []

    touch(clip, size=20)
    await asyncio.sleep(0.06)
    assert await watcher.poll_once() == []

    await asyncio.sleep(0.06)
    assert await watcher.poll_once() == [str(clip)]
    assert seen == [str(clip)]


@pytest.mark.asyncio
async def test_extension_filter_is_configurable(tmp_path: Path, discovered):
    bus, seen = discovered
    watcher = DirectoryWatcher(tmp_path, event_bus=bus, extensions=["mkv"], stability_seconds=0)
    await watcher.initial_scan()

    touch(tmp_path / "a.mp4")
    clip = touch(tmp_path / "b.mkv")
    await watcher.poll_once()

    assert seen == [str(clip)]


@pytest.mark.asyncio
async def test_missing_directory_scans_empty(tmp_path: Path, discovered):
    bus, _ = discovered
    watcher = DirectoryWatcher(tmp_path / "absent", event_bus=bus)

    assert await watcher.initial_scan() == []


@pytest.mark.asyncio
async def test_run_until_stopped(tmp_path: Path, discovered):
    bus, seen = discovered
    watcher = DirectoryWatcher(tmp_path, event_bus=bus, poll_interval=0.01, stability_seconds=0)
    await watcher.initial_scan()
    task = asyncio.create_task(watcher.run())

    clip = touch(tmp_path / "a.mp4")
    for _ in range(200):
        if seen:
            break
        await asyncio.sleep(0.01)

    watcher.stop()
    await asyncio.wait_for(task, timeout=1)
    assert seen == [str(clip)]
