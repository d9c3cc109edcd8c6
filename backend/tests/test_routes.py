"""
Daylog Backend — API Endpoint Tests
=====================================

What:  End-to-end tests of the HTTP surface through httpx's ASGITransport.
How:   The app is built per test with isolated settings and the stub weather
       provider; its lifespan opens a real store in tmp_path.

What we test:
    ✅ POST /api/entries (text only, with media, bad media, bad timestamp, storage down)
    ✅ GET /api/entries ordering, X-Total-Count and compression
    ✅ GET /api/entries/stream event format, never compressed
    ✅ GET /api/media/{ref} serving and 404
    ✅ GET /api/weather/current with and without a working provider
    ✅ GET /health status levels
    ✅ X-Request-ID propagation and replacement of unsafe IDs
"""

import asyncio
import json
import re
from unittest.mock import AsyncMock, patch

import pytest

from daylog.exceptions import StorageUnavailableError
from daylog.schemas.entry import MAX_TIMESTAMP_MS, EntryDraft
from daylog.services.weather_base import WEATHER_UNAVAILABLE_TEXT


def _events(body: str):
    """Parse a text/event-stream body into (event, data) pairs."""
    events = []
    for block in body.strip().split("\n\n"):
        fields = dict(line.split(": ", 1) for line in block.splitlines())
        events.append((fields["event"], json.loads(fields["data"])))
    return events


class TestCreateEntry:
    """Tests for POST /api/entries."""

    @pytest.mark.asyncio
    async def test_create_text_entry(self, test_client):
        response = await test_client.post(
            "/api/entries", data={"title": "Day 1", "description": "Hiked"}
        )

        assert response.status_code == 201
        body = response.json()
        assert body["id"] == 1
        assert body["title"] == "Day 1"
        assert body["weather"] == "12.5 °C"
        assert body["image_url"] is None

    @pytest.mark.asyncio
    async def test_create_entry_with_photo(self, test_client, sample_image_bytes):
        """The returned image_url serves the uploaded bytes."""
        response = await test_client.post(
            "/api/entries",
            data={"title": "Lake"},
            files={"image": ("lake.jpg", sample_image_bytes, "image/jpeg")},
        )
        assert response.status_code == 201
        image_url = response.json()["image_url"]

        media = await test_client.get(image_url)
        assert media.status_code == 200
        assert media.content == sample_image_bytes

    @pytest.mark.asyncio
    async def test_bad_photo_type_is_rejected(self, test_client):
        response = await test_client.post(
            "/api/entries",
            data={"title": "Anim"},
            files={"image": ("anim.gif", b"GIF89a", "image/gif")},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_supplied_weather_and_no_fetch(self, test_client, stub_weather):
        """Form weather is stored as-is; fetch_weather=false skips the lookup."""
        supplied = await test_client.post(
            "/api/entries", data={"title": "A", "weather": "1.0 °C"}
        )
        skipped = await test_client.post(
            "/api/entries", data={"title": "B", "fetch_weather": "false"}
        )

        assert supplied.json()["weather"] == "1.0 °C"
        assert skipped.json()["weather"] is None
        assert skipped.json()["weather_display"] == "No weather data"
        assert stub_weather.calls == 0

    @pytest.mark.asyncio
    async def test_storage_failure_returns_503(self, test_client, test_app):
        """StorageUnavailableError maps to 503 storage_unavailable."""
        with patch.object(
            test_app.state.store, "insert", AsyncMock(side_effect=StorageUnavailableError())
        ):
            response = await test_client.post("/api/entries", data={"title": "Lost"})

        assert response.status_code == 503
        assert response.json()["error"] == "storage_unavailable"

        listing = await test_client.get("/api/entries")
        assert listing.json()["total_count"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timestamp", [str(10**15), str(2**63), "-1"])
    async def test_out_of_range_timestamp_is_rejected(self, test_client, timestamp):
        """The entry is refused and the journal stays listable."""
        response = await test_client.post(
            "/api/entries", data={"title": "Far off", "timestamp": timestamp}
        )

        assert response.status_code == 422
        listing = await test_client.get("/api/entries")
        assert listing.status_code == 200
        assert listing.json()["total_count"] == 0

    @pytest.mark.asyncio
    async def test_latest_accepted_timestamp_lists(self, test_client):
        await test_client.post(
            "/api/entries",
            data={"title": "Last", "timestamp": str(MAX_TIMESTAMP_MS), "fetch_weather": "false"},
        )

        listing = await test_client.get("/api/entries")

        assert listing.status_code == 200
        assert listing.json()["entries"][0]["display_date"] == "Dec 30, 9999 - 23:59"


class TestListEntries:
    """Tests for GET /api/entries."""

    @pytest.mark.asyncio
    async def test_empty_journal(self, test_client):
        response = await test_client.get("/api/entries")

        assert response.status_code == 200
        assert response.json() == {"entries": [], "total_count": 0}
        assert response.headers["X-Total-Count"] == "0"

    @pytest.mark.asyncio
    async def test_same_timestamp_lists_later_insert_first(self, test_client):
        """Day 1 and Day 2 at t=1000 list as [2, 1]."""
        for title in ("Day 1", "Day 2"):
            await test_client.post(
                "/api/entries",
                data={"title": title, "timestamp": "1000", "fetch_weather": "false"},
            )

        response = await test_client.get("/api/entries")

        assert [entry["id"] for entry in response.json()["entries"]] == [2, 1]
        assert response.headers["X-Total-Count"] == "2"

    @pytest.mark.asyncio
    async def test_large_listing_is_gzipped(self, test_client):
        await test_client.post(
            "/api/entries", data={"title": "Long", "description": "walked " * 200}
        )

        response = await test_client.get("/api/entries", headers={"Accept-Encoding": "gzip"})

        assert response.headers["content-encoding"] == "gzip"
        assert response.json()["entries"][0]["title"] == "Long"


class TestEntryStream:
    """Tests for GET /api/entries/stream."""

    @pytest.mark.asyncio
    async def test_stream_sends_snapshot_per_insert(self, test_client, test_app):
        """One event on connect, one per insert; closing the store ends the stream."""
        store = test_app.state.store
        request = asyncio.create_task(
            test_client.get("/api/entries/stream", headers={"Accept-Encoding": "gzip"})
        )
        while store.subscriber_count == 0:
            await asyncio.sleep(0.01)

        await store.insert(EntryDraft(title="Live"))
        await asyncio.sleep(0.2)
        await store.close()
        response = await asyncio.wait_for(request, timeout=5)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert "content-encoding" not in response.headers
        events = _events(response.text)
        assert [name for name, _ in events] == ["snapshot", "snapshot"]
        assert events[0][1]["total_count"] == 0
        assert events[1][1]["entries"][0]["title"] == "Live"


class TestMedia:
    """Tests for GET /api/media/{reference}."""

    @pytest.mark.asyncio
    async def test_missing_media_returns_404(self, test_client):
        response = await test_client.get("/api/media/image/2025/01/01/missing.jpg")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestWeather:
    """Tests for GET /api/weather/current."""

    @pytest.mark.asyncio
    async def test_current_weather(self, test_client):
        response = await test_client.get("/api/weather/current")

        assert response.status_code == 200
        assert response.json() == {"weather": "12.5 °C", "available": True}

    @pytest.mark.asyncio
    async def test_weather_unavailable(self, test_client, stub_weather):
        stub_weather.fail = True

        response = await test_client.get("/api/weather/current")

        assert response.json() == {"weather": WEATHER_UNAVAILABLE_TEXT, "available": False}


class TestHealth:
    """Tests for GET /health."""

    @pytest.mark.asyncio
    async def test_healthy(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["weather"] == "available"

    @pytest.mark.asyncio
    async def test_degraded_when_weather_down(self, test_client, stub_weather):
        stub_weather.healthy = False

        response = await test_client.get("/health")

        assert response.json()["status"] == "degraded"
        assert response.json()["weather"] == "unavailable"

    @pytest.mark.asyncio
    async def test_unhealthy_when_store_closed(self, test_client, test_app):
        await test_app.state.store.close()

        response = await test_client.get("/health")

        assert response.json()["status"] == "unhealthy"
        assert response.json()["database"] == "disconnected"


class TestRequestId:
    """Tests for the request ID middleware."""

    @pytest.mark.asyncio
    async def test_generated_request_id(self, test_client):
        response = await test_client.get("/api/entries")

        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_client_request_id_is_echoed(self, test_client):
        response = await test_client.get("/api/entries", headers={"X-Request-ID": "trace-42"})

        assert response.headers["X-Request-ID"] == "trace-42"

    @pytest.mark.asyncio
    async def test_error_body_carries_request_id(self, test_client):
        response = await test_client.get(
            "/api/media/image/missing.jpg", headers={"X-Request-ID": "trace-43"}
        )

        assert response.json()["request_id"] == "trace-43"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "supplied", ["x" * 65, "trace 42", "trace/42", "id=<script>"]
    )
    async def test_unsafe_request_id_is_replaced(self, test_client, supplied):
        """Oversized or non-token IDs are not echoed into headers or logs."""
        response = await test_client.get("/api/entries", headers={"X-Request-ID": supplied})

        rid = response.headers["X-Request-ID"]
        assert rid != supplied
        assert re.fullmatch(r"[0-9a-f]{8}", rid)

    @pytest.mark.asyncio
    async def test_longest_accepted_request_id_is_echoed(self, test_client):
        supplied = "a.b_c-" + "9" * 58

        response = await test_client.get("/api/entries", headers={"X-Request-ID": supplied})

        assert response.headers["X-Request-ID"] == supplied
