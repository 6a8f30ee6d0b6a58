"""Poll cycle: fetch, classify, refresh the feed, alert."""

from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

import structlog

from .errors import FetchError, RenderError
from .feed import render_alert_message, render_feed_document
from .metrics import (
    ALERT_DECISIONS,
    CURRENT_RANK,
    CURRENT_VALUE,
    FEED_DECISIONS,
    POLLS,
    RENDER_ERRORS,
)
from .severity import SeverityTier
from .throttle import (
    AlertDecision,
    AlertThrottle,
    AlertThrottleState,
    FeedDecision,
    FeedThrottle,
    FeedThrottleState,
)
from .waqi import Reading

log = structlog.get_logger()


class ReadingSource(Protocol):
    def fetch_reading(self, station_id: str) -> Reading: ...


class Dispatcher(Protocol):
    @property
    def enabled(self) -> bool: ...

    def dispatch(self, message: str) -> Future[bool]: ...

    def shutdown(self, wait: bool = True) -> None: ...


FeedRenderer = Callable[[SeverityTier, Reading], str]
AlertRenderer = Callable[[SeverityTier, Reading], str]


@dataclass
class CycleResult:
    """What happened during one poll cycle."""

    started_at: datetime
    reading: Reading | None = None
    feed_decision: FeedDecision | None = None
    alert_decision: AlertDecision | None = None
    delivery: Future[bool] | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def fetched(self) -> bool:
        return self.reading is not None


class AqiMonitor:
    """Runs poll cycles for one station and owns both throttle states."""

    def __init__(
        self,
        station_id: str | None,
        source: ReadingSource | None,
        dispatcher: Dispatcher,
        alert_throttle: AlertThrottle,
        feed_throttle: FeedThrottle,
        render_feed: FeedRenderer = render_feed_document,
        render_alert: AlertRenderer = render_alert_message,
    ):
        """Initialize the monitor.

        Args:
            station_id: Station to poll, or None if fetching is disabled
            source: Where readings come from, or None if fetching is disabled
            dispatcher: Delivers alert messages
            alert_throttle: Decides when to alert
            feed_throttle: Decides when to refresh the feed
            render_feed: Formats the feed document
            render_alert: Formats the alert message
        """
        self.station_id = station_id
        self.source = source
        self.dispatcher = dispatcher
        self.alert_throttle = alert_throttle
        self.feed_throttle = feed_throttle
        self.render_feed = render_feed
        self.render_alert = render_alert

        self.alert_state: AlertThrottleState = alert_throttle.new_state()
        self.feed_state = FeedThrottleState()

    def run_cycle(self, now: datetime | None = None, deliver: bool = True) -> CycleResult:
        """Run one poll cycle.

        No error raised inside a cycle escapes it. A failed fetch leaves both
        throttles untouched; a failure in the feed step does not stop the
        alert step and vice versa.

        Args:
            now: Evaluation time (defaults to the current UTC time)
            deliver: If False, alerts are evaluated and logged but not sent
                and the alert throttle is not updated

        Returns:
            Summary of the cycle
        """
        now = now or datetime.now(timezone.utc)
        result = CycleResult(started_at=now)

        reading = self._fetch(result)
        if reading is None:
            return result
        result.reading = reading

        tier = reading.tier
        CURRENT_VALUE.set(reading.value)
        CURRENT_RANK.set(tier.rank)
        log.info(
            "AQI reading",
            station=reading.context.station_name,
            aqi=reading.value,
            tier=tier.label,
            rank=tier.rank,
        )

        self._feed_step(tier, reading, now, result)
        self._alert_step(tier, reading, now, result, deliver)
        return result

    def _fetch(self, result: CycleResult) -> Reading | None:
        if self.source is None or not self.station_id:
            POLLS.labels(status="disabled").inc()
            log.warning("Skipping poll, AQI source is not configured")
            result.errors.append("fetch disabled")
            return None

        try:
            reading = self.source.fetch_reading(self.station_id)
        except FetchError as e:
            POLLS.labels(status="fetch_error").inc()
            log.error("Failed to fetch AQI reading", station=self.station_id, error=str(e))
            result.errors.append(f"fetch: {e}")
            return None
        except Exception as e:
            POLLS.labels(status="fetch_error").inc()
            log.exception("Unexpected error fetching AQI reading", station=self.station_id)
            result.errors.append(f"fetch: {e}")
            return None

        POLLS.labels(status="ok").inc()
        return reading

    def _feed_step(
        self, tier: SeverityTier, reading: Reading, now: datetime, result: CycleResult
    ) -> None:
        try:
            decision = self.feed_throttle.regenerate(
                tier, now, self.feed_state, lambda: self.render_feed(tier, reading)
            )
        except RenderError as e:
            RENDER_ERRORS.labels(kind="feed").inc()
            log.error("Failed to render feed", error=str(e))
            result.errors.append(f"feed: {e}")
            return
        except Exception as e:
            RENDER_ERRORS.labels(kind="feed").inc()
            log.exception("Unexpected error refreshing feed")
            result.errors.append(f"feed: {e}")
            return

        result.feed_decision = decision
        FEED_DECISIONS.labels(decision=decision.value).inc()
        if decision is FeedDecision.REGENERATE:
            log.info("Feed regenerated", tier=tier.label)

    def _alert_step(
        self,
        tier: SeverityTier,
        reading: Reading,
        now: datetime,
        result: CycleResult,
        deliver: bool,
    ) -> None:
        if tier.rank < self.alert_throttle.floor:
            result.alert_decision = AlertDecision.SUPPRESS
            return

        try:
            # Must happen before the throttle commits
            message = self.render_alert(tier, reading)
        except RenderError as e:
            RENDER_ERRORS.labels(kind="alert").inc()
            log.error("Failed to render alert", error=str(e))
            result.errors.append(f"alert: {e}")
            return
        except Exception as e:
            RENDER_ERRORS.labels(kind="alert").inc()
            log.exception("Unexpected error rendering alert")
            result.errors.append(f"alert: {e}")
            return

        if not deliver:
            remaining = self.alert_throttle.time_until_alert(tier, now, self.alert_state)
            result.alert_decision = (
                AlertDecision.DISPATCH if remaining is None else AlertDecision.SUPPRESS
            )
            log.info("Dry run, alert not sent", decision=result.alert_decision.value)
            return

        decision = self.alert_throttle.evaluate(tier, now, self.alert_state)
        result.alert_decision = decision
        ALERT_DECISIONS.labels(decision=decision.value).inc()

        if decision is AlertDecision.SUPPRESS:
            log.info("Alert suppressed", tier=tier.label)
            return

        log.warning("Dispatching alert", tier=tier.label, aqi=reading.value)
        try:
            result.delivery = self.dispatcher.dispatch(message)
        except Exception as e:
            log.exception("Failed to queue alert")
            result.errors.append(f"dispatch: {e}")
