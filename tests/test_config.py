"""Unit tests for core/config.py -- duration parsing and Settings rules.

Settings are built with explicit keyword arguments, which take precedence
over the DEBUG=true set by conftest.
"""

from datetime import timedelta

import pytest

from core.config import Settings, parse_duration

SECRET = "k" * 32


class TestParseDuration:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("24h", timedelta(hours=24)),
            ("168h", timedelta(hours=168)),
            ("15m", timedelta(minutes=15)),
            ("1h30m", timedelta(hours=1, minutes=30)),
            ("45s", timedelta(seconds=45)),
            ("250ms", timedelta(milliseconds=250)),
            ("1.5h", timedelta(minutes=90)),
        ],
    )
    def test_valid(self, text: str, expected: timedelta) -> None:
        assert parse_duration(text) == expected

    @pytest.mark.parametrize("text", ["", "   ", "24", "h", "24x", "1h 30m", "-5m", "abc"])
    def test_invalid(self, text: str) -> None:
        with pytest.raises(ValueError):
            parse_duration(text)


class TestSettings:
    def test_defaults(self) -> None:
        s = Settings(debug=False, jwt_secret=SECRET, database_url="sqlite://")
        assert s.app_port == 8080
        assert s.jwt_ttl == timedelta(hours=24)
        assert s.refresh_token_ttl == timedelta(hours=168)

    def test_ttl_strings_are_parsed(self) -> None:
        s = Settings(debug=False, jwt_secret=SECRET, database_url="sqlite://", jwt_ttl="15m", refresh_token_ttl="72h")
        assert s.jwt_ttl == timedelta(minutes=15)
        assert s.refresh_token_ttl == timedelta(hours=72)

    def test_bad_refresh_ttl_falls_back(self) -> None:
        """An unparseable REFRESH_TOKEN_TTL keeps the 168h default instead of failing startup."""
        s = Settings(debug=False, jwt_secret=SECRET, database_url="sqlite://", refresh_token_ttl="forever")
        assert s.refresh_token_ttl == timedelta(hours=168)

    def test_production_requires_secret(self) -> None:
        with pytest.raises(ValueError):
            Settings(debug=False, jwt_secret="", database_url="sqlite://")

    def test_production_requires_database_url(self) -> None:
        with pytest.raises(ValueError):
            Settings(debug=False, jwt_secret=SECRET, database_url="")

    def test_short_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            Settings(debug=True, jwt_secret="too-short", database_url="sqlite://")

    def test_debug_generates_secret_and_dev_database(self) -> None:
        s = Settings(debug=True, jwt_secret="", database_url="")
        assert len(s.jwt_secret) >= 32
        assert s.database_url.startswith("sqlite:///")
        assert s.database_url.endswith("teamgate_dev.db")
