"""Tests for StageEventHub activation, subscription and fault isolation."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock

import pytest

from factory_pulse.core.exceptions import AuthenticationError
from factory_pulse.domain.actors import Actor
from factory_pulse.services.stage_events import StageEventHub, StageTransitionEvent

pytestmark = pytest.mark.unit


@pytest.fixture
def event():
    return StageTransitionEvent(
        organization_id="org-acme",
        project_id="project-1",
        from_stage_id="stage-inquiry",
        to_stage_id="stage-review",
        to_stage_name="Review",
        actor_id="user-1",
        bypass_required=False,
        occurred_at=datetime(2026, 4, 1, tzinfo=UTC),
    )


@pytest.fixture
def hub():
    hub = StageEventHub()
    hub.activate(Actor(user_id="user-1"))
    return hub


async def test_inactive_hub_delivers_nothing(event):
    hub = StageEventHub()
    callback = Mock()
    hub.subscribe(callback)

    assert await hub.publish(event) == 0
    callback.assert_not_called()


def test_activation_requires_actor():
    hub = StageEventHub()
    with pytest.raises(AuthenticationError):
        hub.activate(None)
    with pytest.raises(AuthenticationError):
        hub.activate(Actor(user_id=""))
    assert hub.is_active is False


async def test_sync_and_async_subscribers_receive_event(hub, event):
    sync_cb = Mock()
    async_cb = AsyncMock()
    hub.subscribe(sync_cb)
    hub.subscribe(async_cb)

    assert await hub.publish(event) == 2
    sync_cb.assert_called_once_with(event)
    async_cb.assert_awaited_once_with(event)


async def test_unsubscribe_stops_delivery(hub, event):
    callback = Mock()
    handle = hub.subscribe(callback)

    assert hub.unsubscribe(handle) is True
    assert hub.unsubscribe(handle) is False
    await hub.publish(event)

    callback.assert_not_called()
    assert hub.subscriber_count == 0


async def test_failing_subscriber_does_not_block_others(hub, event):
    broken = Mock(side_effect=RuntimeError("socket closed"))
    healthy = Mock()
    hub.subscribe(broken)
    hub.subscribe(healthy)

    assert await hub.publish(event) == 1
    healthy.assert_called_once_with(event)


async def test_deactivate_stops_delivery(hub, event):
    callback = Mock()
    hub.subscribe(callback)
    hub.deactivate()

    assert await hub.publish(event) == 0
    callback.assert_not_called()


async def test_subscriber_only_sees_its_organization(hub, event):
    own = Mock()
    other = Mock()
    every = Mock()
    hub.subscribe(own, organization_id="org-acme")
    hub.subscribe(other, organization_id="org-globex")
    hub.subscribe(every)

    assert await hub.publish(event) == 2
    own.assert_called_once_with(event)
    every.assert_called_once_with(event)
    other.assert_not_called()


async def test_hub_stays_active_until_last_stream_of_actor_closes(event):
    hub = StageEventHub()
    alice = Actor(user_id="user-alice")
    bob = Actor(user_id="user-bob")
    hub.activate(alice)
    hub.activate(alice)
    hub.activate(bob)

    hub.deactivate(alice)
    hub.deactivate(bob)
    assert hub.is_active is True

    hub.deactivate(alice)
    assert hub.is_active is False


def test_event_payload_is_json_ready(event):
    payload = event.to_payload()
    assert payload["occurred_at"] == "2026-04-01T00:00:00+00:00"
    assert payload["to_stage_name"] == "Review"
    assert payload["record_id"] is None
