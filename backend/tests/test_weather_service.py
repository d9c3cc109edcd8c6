"""
Daylog Backend — Weather Service Unit Tests (Mocked Transport)
================================================================

What:  Tests for OpenMeteoWeatherService and its CircuitBreaker.
How:   httpx.MockTransport answers in place of the Open-Meteo API; retry
       waits are configured to zero so retries run instantly.

What we test:
    ✅ Temperature rendered as "<value> °C"
    ✅ Transient failures (5xx, 429, network) are retried
    ✅ Client errors and malformed payloads are not retried
    ✅ Circuit breaker opens after consecutive failed lookups
    ❌ Real API calls
"""

import httpx
import pytest

from daylog.config import Settings
from daylog.exceptions import CircuitBreakerOpenError, WeatherServiceError
from daylog.services.weather_service import (
    CircuitBreaker,
    OpenMeteoWeatherService,
    format_temperature,
)


def _settings(**overrides) -> Settings:
    values = dict(
        retry_max_attempts=3,
        retry_min_wait=0,
        retry_max_wait=0,
        cb_failure_threshold=2,
        cb_recovery_timeout=60,
    )
    values.update(overrides)
    return Settings(**values)


class ScriptedApi:
    """MockTransport handler that replays a list of responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def _ok(temperature=12.5) -> httpx.Response:
    return httpx.Response(200, json={"current_weather": {"temperature": temperature}})


def _service(api: ScriptedApi, **overrides) -> OpenMeteoWeatherService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(api))
    return OpenMeteoWeatherService(_settings(**overrides), client=client)


class TestCircuitBreaker:
    """Tests for the CircuitBreaker resilience pattern."""

    def test_initial_state_is_closed(self):
        """New circuit breaker should start in CLOSED (allowing calls)."""
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        assert cb.state == "closed"
        assert cb.failure_count == 0

    def test_stays_closed_under_threshold(self):
        """Circuit breaker should remain CLOSED when failures < threshold."""
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        for _ in range(4):
            cb.record_failure()
        assert cb.state == "closed"
        assert cb.can_execute() is True

    def test_open_circuit_rejects_calls(self):
        """OPEN circuit breaker should reject calls with CircuitBreakerOpenError."""
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        cb.record_failure()

        assert cb.state == "open"
        with pytest.raises(CircuitBreakerOpenError):
            cb.can_execute()

    def test_half_open_after_recovery_timeout(self):
        """With a zero timeout the next check moves to HALF_OPEN and allows a call."""
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()

        assert cb.can_execute() is True
        assert cb.state == "half_open"

    def test_half_open_failure_reopens(self):
        """A failed trial call sends the circuit straight back to OPEN."""
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=0)
        for _ in range(3):
            cb.record_failure()
        cb.can_execute()

        cb.record_failure()
        assert cb.state == "open"

    def test_success_resets_failure_count(self):
        """Successful calls should reset the failure counter and close the circuit."""
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        cb.record_failure()
        cb.record_failure()

        cb.record_success()
        assert cb.failure_count == 0
        assert cb.state == "closed"


class TestOpenMeteoWeatherService:
    """Tests for current_conditions() against a scripted API."""

    def test_format_temperature(self):
        assert format_temperature(12.5) == "12.5 °C"
        assert format_temperature(-3.0) == "-3.0 °C"

    @pytest.mark.asyncio
    async def test_current_conditions_success(self):
        """A 200 answer becomes '<temperature> °C'."""
        api = ScriptedApi(_ok(12.5))
        service = _service(api)

        assert await service.current_conditions() == "12.5 °C"
        assert service.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_request_carries_coordinates(self):
        """The configured coordinates and current_weather flag are sent."""
        api = ScriptedApi(_ok())
        service = _service(api, weather_latitude=60.17, weather_longitude=24.94)

        await service.current_conditions()

        params = api.requests[0].url.params
        assert params["latitude"] == "60.17"
        assert params["longitude"] == "24.94"
        assert params["current_weather"] == "true"

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self):
        """Two 503s followed by a 200 succeed on the third attempt."""
        api = ScriptedApi(httpx.Response(503), httpx.Response(503), _ok(7.0))
        service = _service(api)

        assert await service.current_conditions() == "7.0 °C"
        assert len(api.requests) == 3

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self):
        """Transport errors count as transient."""
        api = ScriptedApi(httpx.ConnectError("offline"), _ok(1.5))
        service = _service(api)

        assert await service.current_conditions() == "1.5 °C"
        assert len(api.requests) == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_weather_error(self):
        """Persistent 5xx answers fail after retry_max_attempts tries."""
        api = ScriptedApi(httpx.Response(500))
        service = _service(api)

        with pytest.raises(WeatherServiceError) as exc_info:
            await service.current_conditions()

        assert len(api.requests) == 3
        assert exc_info.value.retry_after == 60
        assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        """A 400 fails immediately."""
        api = ScriptedApi(httpx.Response(400))
        service = _service(api)

        with pytest.raises(WeatherServiceError):
            await service.current_conditions()
        assert len(api.requests) == 1

    @pytest.mark.asyncio
    async def test_malformed_payload_is_not_retried(self):
        """A 200 without current_weather fails without retrying."""
        api = ScriptedApi(httpx.Response(200, json={"hourly": {}}))
        service = _service(api)

        with pytest.raises(WeatherServiceError):
            await service.current_conditions()
        assert len(api.requests) == 1

    @pytest.mark.asyncio
    async def test_circuit_opens_after_repeated_failures(self):
        """Once the threshold is reached, calls fail without touching the API."""
        api = ScriptedApi(httpx.Response(400))
        service = _service(api, cb_failure_threshold=2)

        for _ in range(2):
            with pytest.raises(WeatherServiceError):
                await service.current_conditions()

        with pytest.raises(CircuitBreakerOpenError):
            await service.current_conditions()
        assert len(api.requests) == 2

    @pytest.mark.asyncio
    async def test_health_check_returns_bool(self):
        """Health check reports reachability without raising."""
        healthy = _service(ScriptedApi(_ok()))
        broken = _service(ScriptedApi(httpx.ConnectError("offline")))

        assert await healthy.health_check() is True
        assert await broken.health_check() is False

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self):
        """Only a client the service created itself is closed."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(ScriptedApi(_ok())))
        service = OpenMeteoWeatherService(_settings(), client=client)

        await service.aclose()

        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_aclose_closes_owned_client(self):
        """The default client is closed by aclose()."""
        service = OpenMeteoWeatherService(_settings())

        await service.aclose()

        assert service._client.is_closed
