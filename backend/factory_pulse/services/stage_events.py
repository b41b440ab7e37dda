"""StageEventHub: in-process fan-out of committed stage transitions.

Callers subscribe and get a handle back; delivery only happens while the hub
has been activated for at least one authenticated actor. Each open event
stream activates the hub for its actor and subscribes for its organization.
"""

import inspect
import itertools
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import datetime

import structlog

from factory_pulse.core.exceptions import AuthenticationError
from factory_pulse.domain.actors import Actor

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StageTransitionEvent:
    organization_id: str
    project_id: str
    from_stage_id: str | None
    to_stage_id: str
    to_stage_name: str
    actor_id: str
    bypass_required: bool
    occurred_at: datetime
    record_id: str | None = None

    def to_payload(self) -> dict:
        """JSON-ready dict for push delivery."""
        payload = asdict(self)
        payload["occurred_at"] = self.occurred_at.isoformat()
        return payload


Subscriber = Callable[[StageTransitionEvent], Awaitable[None] | None]


class StageEventHub:
    """Injectable subscribe/unsubscribe hub gated by per-actor activation."""

    def __init__(self):
        self._subscribers: dict[int, tuple[str | None, Subscriber]] = {}
        self._handles = itertools.count(1)
        self._activations: Counter[str] = Counter()

    @property
    def is_active(self) -> bool:
        return bool(self._activations)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def activate(self, actor: Actor | None) -> None:
        """Start delivering events on behalf of an authenticated actor.

        Activations are counted per user, so concurrent streams of one user
        keep the hub active until the last one closes.

        Raises:
            AuthenticationError: no actor, or an actor without a user id
        """
        if actor is None or not actor.user_id:
            raise AuthenticationError("Stage events require an authenticated actor")
        self._activations[actor.user_id] += 1
        logger.info("stage_event_hub_activated", user_id=actor.user_id, active_users=len(self._activations))

    def deactivate(self, actor: Actor | None = None) -> None:
        """Drop one activation of an actor, or every activation when none is given."""
        if actor is None:
            if self._activations:
                logger.info("stage_event_hub_deactivated", active_users=0)
            self._activations.clear()
            return
        if self._activations[actor.user_id] <= 1:
            self._activations.pop(actor.user_id, None)
        else:
            self._activations[actor.user_id] -= 1
        logger.info("stage_event_hub_deactivated", user_id=actor.user_id, active_users=len(self._activations))

    def subscribe(self, callback: Subscriber, organization_id: str | None = None) -> int:
        """Register a callback; with an organization_id it only sees that organization's events."""
        handle = next(self._handles)
        self._subscribers[handle] = (organization_id, callback)
        return handle

    def unsubscribe(self, handle: int) -> bool:
        """Remove a subscriber. Returns False for an unknown handle."""
        return self._subscribers.pop(handle, None) is not None

    async def publish(self, event: StageTransitionEvent) -> int:
        """Deliver an event to every matching subscriber; returns the number of successful deliveries.

        A failing subscriber is logged and skipped.
        """
        if not self.is_active:
            logger.debug("stage_event_dropped", project_id=event.project_id, reason="hub_inactive")
            return 0

        delivered = 0
        for handle, (organization_id, callback) in list(self._subscribers.items()):
            if organization_id is not None and organization_id != event.organization_id:
                continue
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.warning(
                    "stage_event_subscriber_failed",
                    handle=handle,
                    project_id=event.project_id,
                    exc_info=True,
                )
        return delivered
