"""
Daylog Backend — Open-Meteo Weather Service
=============================================

What:  Concrete WeatherProvider backed by the Open-Meteo forecast API.
How:   One GET to /v1/forecast with current_weather=true for the configured
       coordinates; the temperature is rendered as "<value> °C". Calls are
       wrapped in tenacity retries and a circuit breaker.
Who:   Built once in the application lifespan; shared by EntryService and
       the weather/health routes.
When:  Whenever an entry is created without caller-supplied weather text.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transient failures
       (transport errors, timeouts, 429 and 5xx responses)
    2. Circuit breaker: after N consecutive failed lookups, fail instantly
       until the recovery timeout elapses
    3. Everything else (4xx, malformed payload) fails without retrying
"""

import logging
import time
import uuid
from typing import Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from daylog.config import Settings, settings as default_settings
from daylog.exceptions import CircuitBreakerOpenError, WeatherServiceError
from daylog.services.weather_base import WeatherProvider

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Implements the circuit breaker pattern to prevent cascade failures.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not thread-safe; the event loop is the only caller.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        """
        Args:
            failure_threshold: Consecutive failures before opening circuit
            recovery_timeout: Seconds to wait before testing recovery
        """
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through the circuit breaker.

        Raises:
            CircuitBreakerOpenError if circuit is OPEN and recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.monotonic() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


def _is_transient(exc: BaseException) -> bool:
    """Retry on network trouble, rate limiting and server-side errors only."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


def format_temperature(temperature: float) -> str:
    return f"{temperature} °C"


# ══════════════════════════════════════════════════════════════════════════
# Open-Meteo Service
# ══════════════════════════════════════════════════════════════════════════

class OpenMeteoWeatherService(WeatherProvider):
    """
    Open-Meteo implementation of WeatherProvider.

    Error Handling Chain:
        API call fails → tenacity retries (retry_max_attempts with backoff)
        → All retries fail → record circuit breaker failure → WeatherServiceError
        → Threshold reached → further calls rejected instantly (CircuitBreakerOpenError)
        → Recovery timeout → one trial call allowed (HALF_OPEN)
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            config: Settings to read coordinates, timeouts and retry knobs from.
            client: Pre-built HTTP client (tests pass one with a MockTransport).
                    When omitted the service owns and closes its own client.
        """
        self.settings = config or default_settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.settings.weather_timeout)

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=self.settings.cb_failure_threshold,
            recovery_timeout=self.settings.cb_recovery_timeout,
        )

        logger.info(
            "OpenMeteoWeatherService initialized for (%.2f, %.2f), "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            self.settings.weather_latitude,
            self.settings.weather_longitude,
            self.settings.cb_failure_threshold,
            self.settings.cb_recovery_timeout,
        )

    @property
    def query_params(self) -> dict:
        return {
            "latitude": self.settings.weather_latitude,
            "longitude": self.settings.weather_longitude,
            "current_weather": "true",
        }

    async def current_conditions(self) -> str:
        """
        Fetch current temperature and render it as display text.

        Flow:
            1. Check circuit breaker → may raise CircuitBreakerOpenError
            2. Request the forecast with retry logic
            3. Record success/failure in circuit breaker
            4. Return e.g. "12.0 °C"

        Raises:
            CircuitBreakerOpenError: Circuit is open (too many recent failures)
            WeatherServiceError: Lookup failed after all retry attempts
        """
        request_id = uuid.uuid4().hex[:8]

        self.circuit_breaker.can_execute()

        try:
            temperature = await self._fetch_with_retry(request_id)
        except RetryError as e:
            self.circuit_breaker.record_failure()
            last = e.last_attempt.exception() if e.last_attempt else None
            logger.error("[%s] All weather retries exhausted: %s", request_id, last)
            raise WeatherServiceError(
                message="Weather lookup failed after multiple attempts.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"request_id": request_id, "attempts": self.settings.retry_max_attempts},
            ) from e
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Weather lookup failed: %s", request_id, e)
            raise WeatherServiceError(
                message="Weather lookup failed.",
                context={"request_id": request_id, "error_type": type(e).__name__},
            ) from e

        self.circuit_breaker.record_success()
        return format_temperature(temperature)

    async def _fetch_with_retry(self, request_id: str) -> float:
        retrying = AsyncRetrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.settings.retry_max_attempts),
            wait=wait_exponential_jitter(
                initial=self.settings.retry_min_wait,
                max=self.settings.retry_max_wait,
                jitter=1,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        async for attempt in retrying:
            with attempt:
                return await self._fetch_temperature(request_id)

    async def _fetch_temperature(self, request_id: str) -> float:
        start_time = time.perf_counter()
        try:
            response = await self._client.get(
                self.settings.weather_api_url, params=self.query_params
            )
            response.raise_for_status()
            payload = response.json()
            temperature = float(payload["current_weather"]["temperature"])
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.warning(
                "[%s] Weather API call failed after %.0fms: %s", request_id, duration_ms, e
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "[%s] Weather lookup completed in %.0fms: %s °C",
            request_id,
            duration_ms,
            temperature,
        )
        return temperature

    async def health_check(self) -> bool:
        """Single unretried forecast request; True if it answers with 2xx."""
        try:
            response = await self._client.get(
                self.settings.weather_api_url, params=self.query_params
            )
            return response.is_success
        except httpx.HTTPError as e:
            logger.warning("Weather health check failed: %s", e)
            return False

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
