"""
Daylog Backend — Settings Tests
=================================

What:  Tests for the field validators on Settings.
How:   Settings are built directly with keyword overrides; a bad value must
       fail at construction rather than on the first request that uses it.

What we test:
    ✅ Display time zone must be a known IANA name
    ✅ Log level and schema mismatch policy are normalized
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from daylog.config import Settings
from daylog.schemas.entry import format_display_date


class TestDisplayTimezone:
    """Tests for display_timezone validation."""

    @pytest.mark.parametrize("zone", ["Mars/Olympus_Mons", "", "../etc/passwd", "UTC+2"])
    def test_unknown_zone_is_rejected(self, zone):
        with pytest.raises(PydanticValidationError) as exc_info:
            Settings(display_timezone=zone)

        assert "display_timezone" in str(exc_info.value)

    def test_known_zone_is_accepted(self):
        """An accepted zone renders entry dates."""
        config = Settings(display_timezone="Europe/Helsinki")

        assert config.display_timezone == "Europe/Helsinki"
        assert format_display_date(0, config.display_timezone) == "Jan 01, 1970 - 02:00"


class TestNormalization:
    """Tests for case-insensitive settings."""

    def test_log_level_is_uppercased(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            Settings(log_level="verbose")

    def test_schema_policy_is_lowercased(self):
        assert Settings(schema_mismatch_policy="FAIL").schema_mismatch_policy == "fail"
