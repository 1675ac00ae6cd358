import pytest

from match_collector.core.event_bus import EventBus
from match_collector.core.event_topics import ENGINE_ERROR, EVENT_BUS_ERROR
from match_collector.core.engines.error_engine import GuardianErrorEngine


@pytest.mark.asyncio
async def test_event_bus_publish_subscribe():
    bus = EventBus()
    received = {}

    async def handler(**payload):
        received.update(payload)

    bus.subscribe("custom.event", handler)
    await bus.emit("custom.event", foo=123, bar="baz")

    assert received == {"foo": 123, "bar": "baz"}


@pytest.mark.asyncio
async def test_failing_handler_is_reported_and_others_still_run():
    bus = EventBus()
    seen = []
    failures = []

    def broken(**payload):
        raise RuntimeError("handler blew up")

    async def healthy(**payload):
        seen.append(payload["path"])

    async def on_bus_error(**payload):
        failures.append(payload)

    bus.subscribe("video.discovered", broken)
    bus.subscribe("video.discovered", healthy)
    bus.subscribe(EVENT_BUS_ERROR, on_bus_error)

    await bus.emit("video.discovered", path="/clips/a.mp4")

    assert seen == ["/clips/a.mp4"]
    assert failures[0]["original_event"] == "video.discovered"
    assert str(failures[0]["exc"]) == "handler blew up"


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery():
    bus = EventBus()
    calls = []

    async def handler(**payload):
        calls.append(payload)

    bus.subscribe("match.created", handler)
    await bus.emit("match.created", match_id=1)
    bus.unsubscribe("match.created", handler)
    await bus.emit("match.created", match_id=2)

    assert calls == [{"match_id": 1}]


@pytest.mark.asyncio
async def test_guardian_error_engine_emits_engine_error_event():
    bus = EventBus()
    seen = {}

    async def on_error(**payload):
        seen.update(payload)

    bus.subscribe(ENGINE_ERROR, on_error)
    guardian = GuardianErrorEngine(event_bus=bus)

    await guardian.log_error(RuntimeError("oops"), context="unit-test", severity="warning", category="ocr", path="/clips/a.mp4")

    assert seen.get("message") == "oops"
    assert seen.get("severity") == "warning"
    assert seen.get("context") == "unit-test"
    assert seen.get("category") == "ocr"
    assert seen.get("metadata") == {"path": "/clips/a.mp4"}


@pytest.mark.asyncio
async def test_guardian_error_summary_groups_by_category():
    guardian = GuardianErrorEngine()

    await guardian.log_error(RuntimeError("no frames"), context="ingest.recognize", category="ocr")
    await guardian.log_error(RuntimeError("disk full"), context="ingest.register_video", category="storage")
    await guardian.log_error(RuntimeError("still no frames"), context="ingest.recognize", category="ocr")

    summary = guardian.get_error_summary()
    assert summary["total_errors"] == 3
    assert summary["by_category"]["ocr"]["total_count"] == 2
    assert summary["by_category"]["ocr"]["last_error"]["message"] == "still no frames"
    assert summary["by_category"]["storage"]["total_count"] == 1
