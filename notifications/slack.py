"""Slack incoming-webhook channel.

Posts plain-text messages to a webhook URL with exponential backoff on
429/5xx. Delivery is best effort: `send` returns False instead of raising.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import aiohttp

from core.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    exponential_base: float = 2.0
    retry_on_status: Tuple[int, ...] = (429, 500, 502, 503, 504)

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt (exponential backoff)."""
        delay = self.base_delay * (self.exponential_base ** attempt)
        return min(delay, self.max_delay)


@dataclass
class SlackConfig:
    webhook_url: str
    channel: Optional[str] = None
    username: str = "Fuel Office"
    timeout_seconds: int = 10
    retry_config: RetryConfig = field(default_factory=RetryConfig)


class SlackNotifier:
    """Send messages to a Slack webhook.

    Example:
        notifier = SlackNotifier(SlackConfig(webhook_url=settings.slack_webhook_url))
        await notifier.send("Truck Pending Linking: T100 ABC")
        await notifier.close()
    """

    def __init__(self, config: SlackConfig):
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def _payload(self, text: str, fields: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"text": text, "username": self.config.username}
        if self.config.channel:
            payload["channel"] = self.config.channel
        if fields:
            payload["attachments"] = [{
                "fields": [{"title": k, "value": str(v), "short": True} for k, v in fields.items()],
            }]
        return payload

    async def send(self, text: str, fields: Optional[Dict[str, Any]] = None) -> bool:
        """Post a message, retrying transient failures.

        Returns:
            True if Slack accepted the message
        """
        if self._session is None:
            self._session = aiohttp.ClientSession()

        retry_config = self.config.retry_config
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        payload = self._payload(text, fields)

        for attempt in range(retry_config.max_retries + 1):
            try:
                async with self._session.post(self.config.webhook_url, json=payload, timeout=timeout) as response:
                    if response.status < 400:
                        return True

                    body = await response.text()
                    if response.status in retry_config.retry_on_status and attempt < retry_config.max_retries:
                        if response.status == 429:
                            delay = float(response.headers.get("Retry-After", retry_config.get_delay(attempt)))
                        else:
                            delay = retry_config.get_delay(attempt)
                        logger.warning(
                            f"Slack webhook returned {response.status}, "
                            f"retrying in {delay:.1f}s (attempt {attempt + 1}/{retry_config.max_retries})"
                        )
                        await asyncio.sleep(delay)
                        continue

                    logger.error(f"Slack webhook error {response.status}: {body}")
                    return False

            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                if attempt < retry_config.max_retries:
                    delay = retry_config.get_delay(attempt)
                    logger.warning(f"Slack webhook request failed: {e}, retrying in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    continue
                logger.error(f"Slack webhook request failed after {retry_config.max_retries} retries: {e}")
                return False

        return False
