"""Daemon that polls AQI on a schedule and serves the feed."""

import functools
import threading
import time

import schedule
import structlog

from . import __version__
from .config import Config
from .feed import render_feed_document
from .metrics import SERVICE_INFO
from .monitor import AqiMonitor, Dispatcher
from .notify import AlertDispatcher, DisabledDispatcher, TelegramClient
from .server import create_app, register_health_check, start_server
from .throttle import COVERING_RULES, AlertThrottle, FeedThrottle
from .waqi import WaqiClient

log = structlog.get_logger()


def build_dispatcher(config: Config) -> Dispatcher:
    """Create the alert dispatcher, or a disabled one if Telegram isn't configured."""
    tg = config.telegram
    if tg.bot_token and tg.chat_id:
        return AlertDispatcher(TelegramClient(tg.bot_token, tg.chat_id))
    return DisabledDispatcher()


def build_monitor(config: Config, dispatcher: Dispatcher | None = None) -> AqiMonitor:
    """Wire up a monitor from configuration."""
    waqi = config.waqi
    source = WaqiClient(waqi.token) if waqi.token and waqi.station_id else None

    return AqiMonitor(
        station_id=waqi.station_id,
        source=source,
        dispatcher=dispatcher or build_dispatcher(config),
        alert_throttle=AlertThrottle(
            floor=config.alert_floor,
            cooldown=config.alert_cooldown,
            rule=COVERING_RULES[config.alert_covering],
        ),
        feed_throttle=FeedThrottle(floor=config.feed_floor, interval=config.render_interval),
        render_feed=functools.partial(render_feed_document, link=config.feed_link),
    )


class AqiDaemon:
    """Polls on a schedule and serves the feed until stopped."""

    def __init__(self, config: Config, monitor: AqiMonitor | None = None):
        self.config = config
        self.monitor = monitor or build_monitor(config)
        self.scheduler = schedule.Scheduler()
        self._stop_event = threading.Event()

        self.app = create_app(self.monitor.feed_state)
        register_health_check(self.app, self._fetch_health)
        register_health_check(self.app, self._dispatch_health)

    def _fetch_health(self) -> tuple[str, bool]:
        return "fetch", self.monitor.source is not None

    def _dispatch_health(self) -> tuple[str, bool]:
        return "dispatch", self.monitor.dispatcher.enabled

    def _run_cycle(self) -> None:
        try:
            self.monitor.run_cycle()
        except Exception:
            log.exception("Poll cycle failed unexpectedly")

    def schedule_polls(self) -> None:
        """Register the poll job on the scheduler."""
        poll = self.config.schedule
        if poll.at_hours:
            for hour in poll.at_hours:
                self.scheduler.every().day.at(f"{hour:02d}:00").do(self._run_cycle)
        elif poll.at_minutes:
            for minute in poll.at_minutes:
                self.scheduler.every().hour.at(f":{minute:02d}").do(self._run_cycle)
        else:
            self.scheduler.every(poll.every_minutes).minutes.do(self._run_cycle)
        log.info("Polling scheduled", interval=poll.describe())

    def run(self) -> None:
        """Start the daemon and block until stopped."""
        SERVICE_INFO.info({"version": __version__, "station": self.config.waqi.station_id or ""})
        for problem in self.config.problems():
            log.warning("Configuration problem", problem=problem)

        log.info(
            "Starting AQI daemon",
            station=self.config.waqi.station_id,
            alert_floor=self.config.alert_floor,
            feed_floor=self.config.feed_floor,
        )
        start_server(self.app, host=self.config.host, port=self.config.port)

        self._run_cycle()
        self.schedule_polls()

        try:
            while not self._stop_event.is_set():
                self.scheduler.run_pending()
                time.sleep(1)
        except KeyboardInterrupt:
            log.info("Received shutdown signal")
            self.stop()

    def stop(self) -> None:
        """Stop the daemon."""
        log.info("Stopping AQI daemon")
        self._stop_event.set()
        self.scheduler.clear()
        self.monitor.dispatcher.shutdown(wait=False)


def run_daemon(config: Config) -> None:
    """Run the daemon with the given configuration."""
    AqiDaemon(config).run()
