"""
tests/test_config.py -- Unit tests for core/config.py Settings validation.

Settings is built directly with _env_file=None so a developer's .env never
leaks into these cases; the cached get_settings() singleton is left alone.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings

GOOD_KEY = "k" * 32


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSecretKeyPolicy:
    def test_debug_generates_key(self, monkeypatch) -> None:
        monkeypatch.delenv("SECRET_KEY", raising=False)
        settings = _settings(debug=True, secret_key="")
        assert len(settings.secret_key) >= 32

    def test_production_requires_key(self, monkeypatch) -> None:
        monkeypatch.delenv("SECRET_KEY", raising=False)
        with pytest.raises(ValidationError, match="SECRET_KEY is required"):
            _settings(debug=False, secret_key="")

    def test_short_key_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least 32"):
            _settings(debug=False, secret_key="too-short")

    def test_explicit_key_kept(self) -> None:
        assert _settings(debug=False, secret_key=GOOD_KEY).secret_key == GOOD_KEY


class TestFieldValidation:
    def test_defaults(self) -> None:
        settings = _settings(secret_key=GOOD_KEY, bcrypt_rounds=10, token_expire_seconds=7 * 24 * 3600)
        assert settings.jwt_algorithm == "HS256"
        assert settings.token_revocation_enabled is True
        assert settings.registration_role_policy in ("honor", "force_user")

    def test_algorithm_normalized(self) -> None:
        assert _settings(secret_key=GOOD_KEY, jwt_algorithm="hs512").jwt_algorithm == "HS512"

    def test_asymmetric_algorithm_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _settings(secret_key=GOOD_KEY, jwt_algorithm="RS256")

    @pytest.mark.parametrize("ttl", [10, 31 * 24 * 3600])
    def test_token_ttl_bounds(self, ttl: int) -> None:
        with pytest.raises(ValidationError):
            _settings(secret_key=GOOD_KEY, token_expire_seconds=ttl)

    @pytest.mark.parametrize("rounds", [3, 17])
    def test_bcrypt_rounds_bounds(self, rounds: int) -> None:
        with pytest.raises(ValidationError):
            _settings(secret_key=GOOD_KEY, bcrypt_rounds=rounds)

    def test_unknown_registration_policy_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _settings(secret_key=GOOD_KEY, registration_role_policy="anything")

    def test_blank_database_url_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _settings(secret_key=GOOD_KEY, database_url="  ")
