"""
Daylog Backend — Services Layer
=================================

What:  Business logic sitting between routes (HTTP) and the entry store.
How:   Services are constructed once in the application lifespan with their
       collaborators passed in, then reached by routes through app.state.

Service Inventory:
    - WeatherProvider (abstract): Interface for current-conditions lookups
    - OpenMeteoWeatherService: Concrete provider using the Open-Meteo API
    - MediaService: Photo/voice upload validation, storage and cleanup
    - EntryService: Orchestrates media → weather → store insert
"""
