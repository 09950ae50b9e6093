"""DeliveryEngine — POST a JSON payload to webhook endpoints with retry/backoff.

Endpoints are treated as alternatives, not a broadcast list: they are tried
in configured order and delivery stops at the first one that answers 2xx.
Each endpoint gets up to ``max_attempts`` tries with exponential backoff
between them (1s, 2s, … by default) and produces exactly one log entry
describing how its attempt sequence ended.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

import httpx
from loguru import logger

from healthhook.store.models import DeliveryLogEntry, WebhookEndpoint

from .models import Delivered, DeliveryOutcome, SyncError, SyncErrorKind

CONTENT_TYPE = "application/json; charset=utf-8"

LogSink = Callable[[DeliveryLogEntry], None]
SleepFn = Callable[[float], Awaitable[None]]


class DeliveryEngine:
    """Deliver payloads over HTTP.

    Args:
        log_sink: Receives one ``DeliveryLogEntry`` per attempted endpoint
            (typically ``PreferenceStore.add_log``).
        client: Pre-configured ``httpx.AsyncClient`` (for testing).  When
            omitted the engine creates and owns one.
        timeout_seconds: Connect/read/write/pool timeout per attempt.
        max_attempts: Tries per endpoint.
        initial_backoff_ms: Delay after the first failed try; doubles each time.
        sleep: Awaitable used for backoff delays (for testing).
        transport: Transport for the engine-owned client (for testing).
    """

    def __init__(
        self,
        log_sink: LogSink | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        initial_backoff_ms: int = 1000,
        sleep: SleepFn = asyncio.sleep,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._log_sink = log_sink
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
            transport=transport,
        )
        self.max_attempts = max_attempts
        self.initial_backoff_ms = initial_backoff_ms
        self._sleep = sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def backoff_seconds(self, attempt: int) -> float:
        """Delay after failed ``attempt`` (1-based) before the next one."""
        return self.initial_backoff_ms * (2 ** (attempt - 1)) / 1000.0

    async def deliver(
        self,
        endpoints: list[WebhookEndpoint],
        payload: bytes,
        *,
        data_type: str | None = None,
        record_count: int | None = None,
    ) -> DeliveryOutcome:
        """Try ``endpoints`` in order until one accepts ``payload``."""
        if not endpoints:
            return SyncError(SyncErrorKind.NO_ENDPOINTS_CONFIGURED, "No webhook URLs configured")

        last_error: str | None = None
        for endpoint in endpoints:
            ok, error = await self._post_with_retry(endpoint, payload, data_type, record_count)
            if ok:
                return Delivered(url=endpoint.url)
            last_error = error

        return SyncError(
            SyncErrorKind.ENDPOINT_DELIVERY_FAILED,
            last_error or "All webhook posts failed",
            last_error=last_error,
        )

    async def _post_with_retry(
        self,
        endpoint: WebhookEndpoint,
        payload: bytes,
        data_type: str | None,
        record_count: int | None,
    ) -> tuple[bool, str | None]:
        started = datetime.now(timezone.utc)
        headers = {"Content-Type": CONTENT_TYPE, **endpoint.headers}
        status_code: int | None = None
        error: str | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self._client.post(endpoint.url, content=payload, headers=headers)
            except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
                error = f"Invalid URL: {e}"
                logger.warning(f"Webhook {endpoint.url} rejected: {error}")
                break
            except ValueError as e:
                # Raised while building the request, e.g. a header value httpx cannot encode.
                error = f"Invalid request: {e}"
                logger.warning(f"Webhook {endpoint.url} rejected: {error}")
                break
            except httpx.HTTPError as e:
                error = str(e) or type(e).__name__
                logger.debug(f"Webhook {endpoint.url} attempt {attempt}/{self.max_attempts} failed: {error}")
            else:
                status_code = response.status_code
                if response.is_success:
                    logger.info(f"Webhook {endpoint.url} accepted {data_type or 'payload'} (HTTP {status_code})")
                    self._record(endpoint.url, started, status_code, True, None, data_type, record_count)
                    return True, None
                error = f"HTTP {status_code}: {response.reason_phrase}"
                logger.debug(f"Webhook {endpoint.url} attempt {attempt}/{self.max_attempts} returned {error}")

            if attempt < self.max_attempts:
                await self._sleep(self.backoff_seconds(attempt))

        logger.warning(f"Webhook {endpoint.url} failed after retries: {error}")
        self._record(endpoint.url, started, status_code, False, error, data_type, record_count)
        return False, error

    def _record(
        self,
        url: str,
        started: datetime,
        status_code: int | None,
        success: bool,
        error: str | None,
        data_type: str | None,
        record_count: int | None,
    ) -> None:
        if self._log_sink is None:
            return
        entry = DeliveryLogEntry(
            url=url,
            timestamp=started,
            status_code=status_code,
            success=success,
            error_message=error,
            data_type=data_type,
            record_count=record_count,
        )
        try:
            self._log_sink(entry)
        except Exception as e:
            logger.error(f"Could not record delivery log entry for {url}: {e}")
