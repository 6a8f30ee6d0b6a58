"""Configuration loading for aqi-sentinel."""

import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

import yaml

from .errors import ConfigError
from .severity import TIERS
from .throttle import COVERING_RULES

DEFAULT_CONFIG_PATH = Path.home() / ".aqi-sentinel" / "config.yaml"

_EVERY_MINUTES = re.compile(r"^\*/(\d+) \* \* \* \*$")
_HOURLY_AT = re.compile(r"^(\d+) \* \* \* \*$")
_EVERY_HOURS = re.compile(r"^0 \*/(\d+) \* \* \*$")
_DURATION = re.compile(r"^(\d+)([hdm])$")
_DURATION_UNITS = {"h": "hours", "d": "days", "m": "minutes"}


def parse_duration(s: str) -> timedelta:
    """Parse a duration string like '24h', '7d' or '30m' to timedelta."""
    s = s.strip().lower()
    match = _DURATION.match(s)
    if not match:
        raise ConfigError(f"Invalid duration format: {s}. Use e.g., 24h, 7d, 30m")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


def _positive_duration(name: str, raw: str) -> timedelta:
    try:
        duration = parse_duration(raw)
    except ConfigError as e:
        raise ConfigError(f"{name}: {e}") from None
    if duration <= timedelta(0):
        raise ConfigError(f"{name} must be longer than zero, got {raw!r}")
    return duration


@dataclass(frozen=True)
class PollSchedule:
    """When to poll.

    Either at fixed wall-clock times (minutes past every hour, or the top of
    given hours of the day) or every N minutes counted from startup.
    """

    every_minutes: int | None = None
    at_minutes: tuple[int, ...] = ()
    at_hours: tuple[int, ...] = ()

    def describe(self) -> str:
        if self.at_hours:
            return "daily at " + ", ".join(f"{h:02d}:00" for h in self.at_hours)
        if self.at_minutes:
            return "hourly at " + ", ".join(f":{m:02d}" for m in self.at_minutes)
        return f"every {self.every_minutes} minutes from startup"


def _step(s: str, raw: str, period: int) -> tuple[int, ...]:
    """Expand a cron '*/N' step into the values it matches, like cron does."""
    step = int(raw)
    if not 0 < step < period or period % step:
        raise ConfigError(f"Step in poll interval {s!r} must divide {period}")
    return tuple(range(0, period, step))


def parse_interval(s: str) -> PollSchedule:
    """Parse a poll interval.

    Accepts the cron expressions that repeat on a fixed wall-clock grid
    ('*/30 * * * *', '15 * * * *', '0 */2 * * *') or a duration ('30m'),
    which runs every 30 minutes counted from startup.
    """
    s = " ".join(s.split())
    if match := _EVERY_MINUTES.match(s):
        return PollSchedule(at_minutes=_step(s, match.group(1), 60))
    if match := _HOURLY_AT.match(s):
        minute = int(match.group(1))
        if minute > 59:
            raise ConfigError(f"Invalid minute in poll interval: {s}")
        return PollSchedule(at_minutes=(minute,))
    if match := _EVERY_HOURS.match(s):
        return PollSchedule(at_hours=_step(s, match.group(1), 24))

    try:
        minutes = int(parse_duration(s).total_seconds() // 60)
    except ConfigError:
        raise ConfigError(
            f"Unsupported poll interval: {s!r}. Use e.g. '*/30 * * * *' or '30m'"
        ) from None
    if minutes <= 0:
        raise ConfigError(f"Poll interval must be at least one minute: {s!r}")
    return PollSchedule(every_minutes=minutes)


def _parse_rank(name: str, raw: str | int) -> int:
    """Parse a tier rank, rejecting ranks outside the tier table."""
    message = f"{name} must be a tier rank (0-{len(TIERS) - 1}), got {raw!r}"
    try:
        rank = int(raw)
    except (TypeError, ValueError):
        raise ConfigError(message) from None
    if not 0 <= rank < len(TIERS):
        raise ConfigError(message)
    return rank


def _env_values() -> dict[str, str | None]:
    return {
        "aqi_token": os.environ.get("AQI_TOKEN"),
        "station_id": os.environ.get("STATION_ID"),
        "tg_token": os.environ.get("TG_TOKEN"),
        "tg_chat_id": os.environ.get("TG_CHAT_ID"),
        "host": os.environ.get("HOST"),
        "port": os.environ.get("PORT"),
        "check_interval": os.environ.get("CHECK_INTERVAL"),
        "alert_floor": os.environ.get("ALERT_FLOOR"),
        "feed_floor": os.environ.get("FEED_FLOOR"),
        "alert_cooldown": os.environ.get("ALERT_COOLDOWN"),
        "render_interval": os.environ.get("RENDER_INTERVAL"),
        "alert_covering": os.environ.get("ALERT_COVERING"),
        "feed_link": os.environ.get("FEED_LINK"),
        "log_level": os.environ.get("LOG_LEVEL"),
    }


@dataclass
class WaqiConfig:
    """Upstream data source configuration."""

    token: str | None = None
    station_id: str | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.station_id)


@dataclass
class TelegramConfig:
    """Alert delivery configuration."""

    bot_token: str | None = None
    chat_id: str | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)


@dataclass
class Config:
    """Application configuration."""

    waqi: WaqiConfig = field(default_factory=WaqiConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    host: str = "127.0.0.1"
    port: int = 8080
    check_interval: str = "*/30 * * * *"
    alert_floor: int = 3
    feed_floor: int = 2
    alert_cooldown: timedelta = timedelta(hours=24)
    render_interval: timedelta = timedelta(minutes=60)
    alert_covering: str = "covering"
    feed_link: str = "http://localhost/"
    log_level: str = "INFO"

    @property
    def schedule(self) -> PollSchedule:
        return parse_interval(self.check_interval)

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        config = cls()
        config._apply(_env_values())
        return config

    @classmethod
    def from_file(cls, path: Path) -> "Config":
        """Load configuration from YAML file, with env var overrides."""
        config = cls()

        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            waqi = data.get("waqi") or {}
            telegram = data.get("telegram") or {}
            alerts = data.get("alerts") or {}
            feed = data.get("feed") or {}
            server = data.get("server") or {}
            config._apply(
                {
                    "aqi_token": waqi.get("token"),
                    "station_id": waqi.get("station_id"),
                    "tg_token": telegram.get("bot_token"),
                    "tg_chat_id": telegram.get("chat_id"),
                    "host": server.get("host"),
                    "port": server.get("port"),
                    "check_interval": data.get("check_interval"),
                    "alert_floor": alerts.get("floor"),
                    "alert_cooldown": alerts.get("cooldown"),
                    "alert_covering": alerts.get("covering"),
                    "feed_floor": feed.get("floor"),
                    "render_interval": feed.get("render_interval"),
                    "feed_link": feed.get("link"),
                    "log_level": data.get("log_level"),
                }
            )

        config._apply(_env_values())
        return config

    def _apply(self, values: dict[str, str | int | None]) -> None:
        """Overwrite fields for every value that is set, parsing as needed."""
        v = {k: val for k, val in values.items() if val is not None and val != ""}

        if "aqi_token" in v:
            self.waqi.token = str(v["aqi_token"])
        if "station_id" in v:
            self.waqi.station_id = str(v["station_id"])
        if "tg_token" in v:
            self.telegram.bot_token = str(v["tg_token"])
        if "tg_chat_id" in v:
            self.telegram.chat_id = str(v["tg_chat_id"])
        if "host" in v:
            self.host = str(v["host"])
        if "port" in v:
            try:
                self.port = int(v["port"])
            except ValueError:
                raise ConfigError(f"Port must be an integer, got {v['port']!r}") from None
        if "check_interval" in v:
            self.check_interval = str(v["check_interval"])
            parse_interval(self.check_interval)
        if "alert_floor" in v:
            self.alert_floor = _parse_rank("Alert floor", v["alert_floor"])
        if "feed_floor" in v:
            self.feed_floor = _parse_rank("Feed floor", v["feed_floor"])
        if "alert_cooldown" in v:
            self.alert_cooldown = _positive_duration("Alert cooldown", str(v["alert_cooldown"]))
        if "render_interval" in v:
            self.render_interval = _positive_duration("Render interval", str(v["render_interval"]))
        if "alert_covering" in v:
            covering = str(v["alert_covering"]).lower()
            if covering not in COVERING_RULES:
                raise ConfigError(
                    f"Alert covering must be one of {sorted(COVERING_RULES)}, got {covering!r}"
                )
            self.alert_covering = covering
        if "feed_link" in v:
            self.feed_link = str(v["feed_link"])
        if "log_level" in v:
            self.log_level = str(v["log_level"]).upper()

    def problems(self) -> list[str]:
        """Return non-fatal configuration problems worth logging at startup."""
        problems = []
        if not self.waqi.enabled:
            problems.append("AQI_TOKEN or STATION_ID not set; readings will not be fetched")
        if not self.telegram.enabled:
            problems.append("TG_TOKEN or TG_CHAT_ID not set; alerts will not be delivered")
        if self.alert_floor < self.feed_floor:
            problems.append(
                f"Alert floor ({self.alert_floor}) is below feed floor ({self.feed_floor}); "
                "some alerts will have no matching feed entry"
            )
        return problems
