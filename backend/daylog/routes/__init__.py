"""
Daylog Backend — API Routes Package
=====================================

What:  HTTP route handlers that accept requests and return responses.

Route Inventory:
    - entries.py: POST /api/entries          (save an entry)
                  GET  /api/entries          (all entries, newest first)
                  GET  /api/entries/stream   (live snapshots, SSE)
    - media.py:   GET  /api/media/{ref}      (stored photo / recording)
    - weather.py: GET  /api/weather/current  (weather text preview)
    - health.py:  GET  /health               (service health check)

Routes stay thin: they extract request data, call a service or the store,
and shape the response. Business logic lives in services.
"""
