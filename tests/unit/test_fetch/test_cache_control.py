"""Unit tests for Cache-Control to TTL conversion."""

import pytest

from esi_processor.fetch.cache_control import get_cache_time


class TestGetCacheTime:
    """Tests for get_cache_time."""

    def test_max_age_in_milliseconds(self) -> None:
        """Test that max-age seconds are converted to milliseconds."""
        assert get_cache_time("public, max-age=10") == 10000

    def test_max_age_alone(self) -> None:
        """Test a bare max-age directive."""
        assert get_cache_time("max-age=3600") == 3_600_000

    def test_missing_header(self) -> None:
        """Test that an absent header means immediately stale."""
        assert get_cache_time(None) == 0
        assert get_cache_time("") == 0

    def test_no_max_age(self) -> None:
        """Test that a header without max-age gives zero."""
        assert get_cache_time("public") == 0

    @pytest.mark.parametrize(
        "header",
        [
            "no-cache",
            "no-store",
            "no-cache, max-age=10",
            "max-age=10, no-cache",
            "public, max-age=10, no-store",
            "No-Cache",
        ],
    )
    def test_no_cache_wins(self, header: str) -> None:
        """Test that no-cache and no-store override max-age."""
        assert get_cache_time(header) == 0

    def test_s_maxage_is_not_max_age(self) -> None:
        """Test that s-maxage is not mistaken for max-age."""
        assert get_cache_time("s-maxage=30") == 0

    def test_spaces_around_equals(self) -> None:
        """Test tolerance for whitespace around the equals sign."""
        assert get_cache_time("public, max-age = 5") == 5000

    def test_zero_max_age(self) -> None:
        """Test that max-age=0 gives zero."""
        assert get_cache_time("max-age=0") == 0
