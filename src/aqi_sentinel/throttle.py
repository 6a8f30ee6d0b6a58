"""Alert and feed throttles.

The alert throttle implements an escalation-aware cool-down: an alert is
suppressed while any covering tier (by default, the same tier or a more
severe one) has alerted within the cool-down window. The feed throttle
regenerates the feed document at most once per render interval.

Both throttles are stateless; the state they decide over is passed in
explicitly and guarded by its own lock.
"""

import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from enum import Enum

from .severity import TIERS, SeverityTier

# Given the current rank and the tracked ranks, return the ranks whose
# recent alerts suppress an alert at the current rank.
CoveringRule = Callable[[int, Iterable[int]], Iterable[int]]


def covering_rule(rank: int, tracked: Iterable[int]) -> list[int]:
    """Same or higher ranks cover the current one."""
    return [r for r in tracked if r >= rank]


def independent_rule(rank: int, tracked: Iterable[int]) -> list[int]:
    """Each rank only has its own cool-down."""
    return [r for r in tracked if r == rank]


COVERING_RULES: dict[str, CoveringRule] = {
    "covering": covering_rule,
    "independent": independent_rule,
}


class AlertDecision(Enum):
    """Outcome of evaluating a reading against the alert throttle."""

    SUPPRESS = "suppress"
    DISPATCH = "dispatch"


class FeedDecision(Enum):
    """Outcome of evaluating a reading against the feed throttle."""

    SKIP = "skip"
    REGENERATE = "regenerate"


class AlertThrottleState:
    """When each tracked tier last alerted.

    Ranks below the alert floor are never tracked. A value of None means
    the tier has never alerted.
    """

    def __init__(self, tracked_ranks: Iterable[int]):
        self.last_fired: dict[int, datetime | None] = {rank: None for rank in tracked_ranks}
        self.lock = threading.Lock()

    @property
    def tracked_ranks(self) -> list[int]:
        return sorted(self.last_fired)

    def snapshot(self) -> dict[int, datetime | None]:
        """Return a copy of the last-fired timestamps."""
        with self.lock:
            return dict(self.last_fired)


class FeedThrottleState:
    """Last rendered feed document and when it was rendered."""

    def __init__(self) -> None:
        self.last_rendered_at: datetime | None = None
        self.rendered_content: str | None = None
        self.lock = threading.Lock()

    def current_document(self) -> str | None:
        """Return the latest rendered document, or None if never rendered."""
        with self.lock:
            return self.rendered_content


class AlertThrottle:
    """Decides whether a reading at a given tier should alert."""

    def __init__(
        self,
        floor: int,
        cooldown: timedelta = timedelta(hours=24),
        rule: CoveringRule = covering_rule,
    ):
        """Initialize the alert throttle.

        Args:
            floor: Minimum tier rank worth alerting about
            cooldown: Window during which a covering alert suppresses new ones
            rule: Which tracked ranks suppress an alert at a given rank
        """
        self.floor = floor
        self.cooldown = cooldown
        self.rule = rule

    def new_state(self) -> AlertThrottleState:
        """Create a state tracking every tier at or above the floor."""
        return AlertThrottleState(tier.rank for tier in TIERS if tier.rank >= self.floor)

    def _blocking_since(
        self, tier: SeverityTier, now: datetime, state: AlertThrottleState
    ) -> datetime | None:
        """Return the most recent covering alert inside the cool-down, if any."""
        recent = [
            fired
            for rank in self.rule(tier.rank, state.tracked_ranks)
            if (fired := state.last_fired.get(rank)) is not None and now - fired < self.cooldown
        ]
        return max(recent) if recent else None

    def evaluate(
        self, tier: SeverityTier, now: datetime, state: AlertThrottleState
    ) -> AlertDecision:
        """Decide whether to alert, recording the alert if so.

        The timestamp is committed together with the decision. A later
        delivery failure does not undo it.

        Args:
            tier: Tier of the current reading
            now: Time of the evaluation
            state: Alert state for the station

        Returns:
            DISPATCH if an alert should be sent, SUPPRESS otherwise
        """
        if tier.rank < self.floor:
            return AlertDecision.SUPPRESS

        with state.lock:
            if self._blocking_since(tier, now, state) is not None:
                return AlertDecision.SUPPRESS
            state.last_fired[tier.rank] = now
            return AlertDecision.DISPATCH

    def time_until_alert(
        self, tier: SeverityTier, now: datetime, state: AlertThrottleState
    ) -> timedelta | None:
        """Get time remaining until this tier can alert again.

        Returns:
            Time remaining, or None if an alert would dispatch now (or the
            tier is below the floor and never alerts)
        """
        if tier.rank < self.floor:
            return None

        with state.lock:
            blocking = self._blocking_since(tier, now, state)

        if blocking is None:
            return None
        return self.cooldown - (now - blocking)


class FeedThrottle:
    """Decides when to regenerate the feed document."""

    def __init__(self, floor: int, interval: timedelta = timedelta(minutes=60)):
        self.floor = floor
        self.interval = interval

    def evaluate(
        self, tier: SeverityTier, now: datetime, state: FeedThrottleState
    ) -> FeedDecision:
        """Decide whether the feed is due, without changing state."""
        if tier.rank < self.floor:
            return FeedDecision.SKIP

        last = state.last_rendered_at
        if last is None or (now - last) >= self.interval:
            return FeedDecision.REGENERATE

        return FeedDecision.SKIP

    def regenerate(
        self,
        tier: SeverityTier,
        now: datetime,
        state: FeedThrottleState,
        render: Callable[[], str],
    ) -> FeedDecision:
        """Render and store a new document if one is due.

        If render raises, the state is left untouched and the exception
        propagates to the caller.
        """
        with state.lock:
            decision = self.evaluate(tier, now, state)
            if decision is FeedDecision.REGENERATE:
                document = render()
                state.rendered_content = document
                state.last_rendered_at = now
            return decision
