"""Concurrency-bounded request execution with rate-limit backoff."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence, Tuple

from aiolimiter import AsyncLimiter
from tqdm.asyncio import tqdm

from txsync.app_config import AppConfig
from txsync.errors import MetadataNotFound, RequestFailed, TransientRateLimited
from txsync.transport import Request, Response, Transport

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429
NOT_FOUND_STATUS = 404


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                return candidate
    return value


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a Retry-After header value into seconds.

    Accepts plain seconds ("120", "1.5") and milliseconds ("500ms").
    Returns None when the header is absent or unreadable.
    """
    if value is None:
        return None
    value = str(value).strip()
    try:
        if value.endswith("ms"):
            return float(value[:-2]) / 1000
        return float(value)
    except ValueError:
        logger.warning("Failed to parse Retry-After header '%s'. Falling back to the default wait.", value)
        return None


class RateLimitedExecutor:
    """
    Runs batches of requests through a fixed pool of workers.

    A 429 answer never fails a request: the worker holding it waits for the
    server's Retry-After (or the default) plus a safety margin and sends the
    same request again, as many times as needed. Any other failure fails the
    batch once the requests already in flight have settled; from then on a
    rate-limited request is abandoned rather than retried.
    """

    def __init__(
            self,
            transport: Transport,
            config: AppConfig,
            rate_limiter: Optional[AsyncLimiter] = None,
            sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.transport = transport
        self.concurrency = config.request_concurrency
        self.default_retry_after = config.default_retry_after_seconds
        self.retry_margin = config.retry_margin_seconds
        self.show_progress = config.show_progress
        self.rate_limiter = rate_limiter if rate_limiter is not None else AsyncLimiter(
            max_rate=config.max_requests_per_period,
            time_period=config.rate_period_seconds
        )
        self._sleep = sleep

    def retry_delay(self, retry_after_header: Optional[str]) -> float:
        """Seconds to wait before resending a rate-limited request."""
        retry_after = parse_retry_after(retry_after_header)
        if retry_after is None:
            retry_after = self.default_retry_after
        return retry_after + self.retry_margin

    async def _attempt(self, request: Request) -> Any:
        async with self.rate_limiter:
            response: Response = await self.transport.send(request)

        if response.status_code == 200:
            return response.body
        if response.status_code == RATE_LIMIT_STATUS:
            raise TransientRateLimited(request.path, _header(response.headers, "Retry-After"))
        if response.status_code == NOT_FOUND_STATUS and request.allow_not_found:
            raise MetadataNotFound(request.path)
        raise RequestFailed(
            f"{request.method} {request.path} failed with status {response.status_code}: {response.body}",
            status_code=response.status_code,
            url=request.path
        )

    async def _wait_to_retry(self, delay: float, abort: Optional[asyncio.Event]) -> bool:
        """Sleep for ``delay`` seconds. Returns False if ``abort`` was set before or during the wait."""
        if abort is None:
            await self._sleep(delay)
            return True
        if abort.is_set():
            return False

        sleeper = asyncio.ensure_future(self._sleep(delay))
        aborted = asyncio.ensure_future(abort.wait())
        try:
            await asyncio.wait({sleeper, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            aborted.cancel()
        return not abort.is_set()

    async def execute_one(self, request: Request, abort: Optional[asyncio.Event] = None) -> Any:
        """
        Send a single request, waiting out rate limits.

        Args:
            request: The request to send.
            abort: Set by the surrounding batch once it has failed. A request
                that is rate limited after that point is given up instead of
                waiting for another retry.

        Returns:
            The decoded response body, or None when a lookup that allows
            it came back 404.

        Raises:
            RequestFailed: On any failure other than a rate limit.
            TransientRateLimited: If ``abort`` was set while the request was
                rate limited.
        """
        while True:
            try:
                return await self._attempt(request)
            except TransientRateLimited as exc:
                delay = self.retry_delay(exc.retry_after)
                if abort is not None and abort.is_set():
                    logger.info("%s. Batch already failed, not retrying.", exc)
                    raise
                logger.warning("%s. Waiting %ss to retry.", exc, delay)
                if not await self._wait_to_retry(delay, abort):
                    logger.info("Batch failed while waiting to retry %s %s. Giving up.", request.method, request.path)
                    raise
            except MetadataNotFound as exc:
                logger.debug("%s", exc)
                return None
            except RequestFailed as exc:
                logger.error("%s", exc)
                raise

    async def execute(self, requests: Sequence[Request], description: Optional[str] = None) -> List[Any]:
        """
        Run a batch of requests with at most ``concurrency`` in flight.

        Args:
            requests: The requests to send.
            description: Label for the progress bar.

        Returns:
            Response bodies, index-aligned with ``requests``.

        Raises:
            RequestFailed: The first failure in the batch. No further requests
                are dispatched after it. In-flight ones finish their current
                round trip but are not retried or waited on after a 429.
        """
        requests = list(requests)
        results: List[Any] = [None] * len(requests)
        if not requests:
            return results

        queue: asyncio.Queue = asyncio.Queue()
        for item in enumerate(requests):
            queue.put_nowait(item)
        failures: List[Tuple[int, Exception]] = []
        failed = asyncio.Event()
        progress = tqdm(total=len(requests), desc=description, unit="request", disable=not self.show_progress)

        async def worker() -> None:
            while not failed.is_set():
                try:
                    index, request = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    results[index] = await self.execute_one(request, abort=failed)
                except Exception as exc:
                    failures.append((index, exc))
                    failed.set()
                    return
                progress.update(1)

        try:
            await asyncio.gather(*(worker() for _ in range(min(self.concurrency, len(requests)))))
        finally:
            progress.close()

        if failures:
            index, error = failures[0]
            logger.error("Batch '%s' failed at request %d of %d.", description or "requests", index + 1, len(requests))
            raise error
        return results
