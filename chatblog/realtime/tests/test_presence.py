import asyncio

import pytest

from chatblog.realtime.presence import PresenceTracker
from chatblog.realtime.tests.fakes import FakeGateway


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def tracker(gateway):
    return PresenceTracker(gateway)


@pytest.mark.asyncio
async def test_first_connection_marks_user_online(tracker, gateway):
    assert await tracker.connected("1") is True

    assert tracker.is_online("1")
    assert gateway.status_updates == [("1", True)]


@pytest.mark.asyncio
async def test_user_stays_online_until_last_connection_drops(tracker, gateway):
    for _ in range(3):
        await tracker.connected("1")

    assert await tracker.disconnected("1") is False
    assert await tracker.disconnected("1") is False
    assert tracker.is_online("1")
    assert tracker.connection_count("1") == 1

    assert await tracker.disconnected("1") is True
    assert not tracker.is_online("1")
    assert gateway.status_updates == [("1", True), ("1", False)]


@pytest.mark.asyncio
async def test_concurrent_connects_persist_online_once(tracker, gateway):
    await asyncio.gather(*(tracker.connected("1") for _ in range(10)))

    assert tracker.connection_count("1") == 10
    assert gateway.status_updates == [("1", True)]


@pytest.mark.asyncio
async def test_disconnect_without_connect_is_ignored(tracker, gateway):
    assert await tracker.disconnected("9") is False
    assert tracker.connection_count("9") == 0
    assert gateway.status_updates == []


@pytest.mark.asyncio
async def test_persistence_failure_does_not_break_counting(tracker, gateway, caplog):
    gateway.fail_status = True

    assert await tracker.connected("1") is True
    assert tracker.is_online("1")
    assert "Failed to update user online status" in caplog.text
