"""
Daylog Backend — Abstract Weather Provider Interface
======================================================

What:  Abstract base class for services that describe the current weather.
How:   Concrete providers inherit from WeatherProvider and implement
       current_conditions() and health_check().
Who:   Called by EntryService when a new entry arrives without weather text,
       and by the weather preview and health routes.
"""

from abc import ABC, abstractmethod


class WeatherProvider(ABC):
    """
    Abstract interface for current-conditions lookups.

    Contract:
        - current_conditions() returns the display text stored with an entry
        - Implementations handle their own retry logic and error translation
        - All provider-specific errors are wrapped in WeatherServiceError

    Implementations:
        - OpenMeteoWeatherService: Open-Meteo forecast API (no key required)
    """

    @abstractmethod
    async def current_conditions(self) -> str:
        """
        Fetch the current conditions as display text, e.g. "12.0 °C".

        Raises:
            WeatherServiceError: the provider failed after all retries.
            CircuitBreakerOpenError: too many recent consecutive failures.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Lightweight reachability check. Returns True if the provider answers."""
        ...

    async def aclose(self) -> None:
        """Release network resources. No-op unless a provider holds any."""
        return None


# Stored in place of the weather text when the provider cannot answer
WEATHER_UNAVAILABLE_TEXT = "Weather unavailable"
