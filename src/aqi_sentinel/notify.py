"""Telegram alert delivery."""

from concurrent.futures import Future, ThreadPoolExecutor

import httpx

from .errors import DispatchError
from .logging import get_logger
from .metrics import ALERT_DELIVERIES

log = get_logger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramClient:
    """Simple Telegram Bot API client."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        base_url: str = TELEGRAM_API_URL,
        client: httpx.Client | None = None,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=10.0)

    def send(self, message: str, silent: bool = False) -> bool:
        """Send a message to the configured chat.

        Args:
            message: Plain text message
            silent: If True, deliver without a notification sound

        Returns:
            True if successful, False otherwise
        """
        try:
            self.send_or_raise(message, silent=silent)
            return True
        except DispatchError as e:
            log.error("Telegram send failed", error=str(e))
            return False

    def send_or_raise(self, message: str, silent: bool = False) -> None:
        """Send a message, raising DispatchError on any failure."""
        try:
            response = self.client.post(
                f"{self.base_url}/bot{self.bot_token}/sendMessage",
                json={
                    "chat_id": self.chat_id,
                    "text": message,
                    "disable_notification": silent,
                },
            )
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            raise DispatchError(f"Telegram API error: HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise DispatchError(f"Telegram request failed: {e}") from e
        except ValueError as e:
            raise DispatchError(f"Telegram response is not valid JSON: {e}") from e

        if not body.get("ok", False):
            raise DispatchError(f"Telegram rejected message: {body.get('description')}")
        log.debug("Telegram message sent", chat_id=self.chat_id)


class AlertDispatcher:
    """Fire-and-forget alert delivery on a background worker.

    The caller gets a Future back but never has to wait on it; the outcome
    is logged and counted when the send completes.
    """

    def __init__(self, client: TelegramClient):
        self.client = client
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="alert-dispatch")

    @property
    def enabled(self) -> bool:
        return True

    def dispatch(self, message: str) -> Future[bool]:
        """Queue a message for delivery."""
        future = self._executor.submit(self._deliver, message)
        future.add_done_callback(self._log_outcome)
        return future

    def _deliver(self, message: str) -> bool:
        self.client.send_or_raise(message)
        return True

    @staticmethod
    def _log_outcome(future: Future[bool]) -> None:
        error = future.exception()
        if error is None:
            ALERT_DELIVERIES.labels(status="success").inc()
            log.info("Alert delivered")
        else:
            ALERT_DELIVERIES.labels(status="failure").inc()
            log.error("Alert delivery failed", error=str(error))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class DisabledDispatcher:
    """Stands in for the dispatcher when Telegram isn't configured."""

    @property
    def enabled(self) -> bool:
        return False

    def dispatch(self, message: str) -> Future[bool]:
        ALERT_DELIVERIES.labels(status="skipped").inc()
        log.warning("Alert not delivered, Telegram is not configured", message=message)
        future: Future[bool] = Future()
        future.set_result(False)
        return future

    def shutdown(self, wait: bool = True) -> None:
        pass
