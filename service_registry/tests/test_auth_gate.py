"""
Unit tests for the auth gate.
"""

import time
from unittest.mock import MagicMock

import jwt
import pytest

from service_registry.app.auth import AuthGate
from shared.config import get_config
from shared.errors import (
    ExpiredTokenError,
    InvalidCredentialError,
    InvalidTokenError,
    MissingTokenError,
)

SECRET = "test-signing-secret-0123456789abcdef"


class TestAuthGate:
    """Test cases for AuthGate."""

    @pytest.fixture
    def config(self):
        return get_config(
            jwt_secret=SECRET,
            basic_auth_key="test-key",
            organization_name="acme",
        )

    @pytest.fixture
    def gate(self, config):
        gate = AuthGate(config)
        gate.logger = MagicMock()
        return gate

    def test_issue_then_verify(self, gate):
        """A freshly issued token verifies to the claims it was signed with."""
        token = gate.issue_token("test-key")

        claims = gate.verify(f"Bearer {token.token}")

        assert claims == token.claims
        assert claims == {"name": "admin", "org": "acme"}

    def test_token_expires_after_seven_days(self, gate):
        now = time.time()
        token = gate.issue_token("test-key", now=now)

        payload = jwt.decode(token.token, SECRET, algorithms=["HS256"])

        assert payload["exp"] - payload["iat"] == 7 * 24 * 60 * 60
        assert payload["iat"] == int(now)
        assert token.expires_at.timestamp() == payload["exp"]

    def test_expired_token(self, gate):
        token = gate.issue_token("test-key", now=time.time() - 8 * 24 * 60 * 60)

        with pytest.raises(ExpiredTokenError) as exc_info:
            gate.verify(f"Bearer {token.token}")

        assert exc_info.value.status_code == 401

    def test_token_signed_with_other_secret(self, gate):
        forged = jwt.encode(
            {"name": "admin", "org": "acme", "exp": int(time.time()) + 60},
            "some-other-secret-0123456789abcdef",
            algorithm="HS256",
        )

        with pytest.raises(InvalidTokenError):
            gate.verify(f"Bearer {forged}")

    def test_tampered_token(self, gate):
        token = gate.issue_token("test-key").token
        header, payload, signature = token.split(".")
        tampered = ".".join([header, payload, signature[::-1]])

        with pytest.raises(InvalidTokenError):
            gate.verify(f"Bearer {tampered}")

    def test_token_without_expiry_is_rejected(self, gate):
        token = jwt.encode({"name": "admin"}, SECRET, algorithm="HS256")

        with pytest.raises(InvalidTokenError):
            gate.verify(f"Bearer {token}")

    @pytest.mark.parametrize("header", [None, "", "   "])
    def test_missing_token(self, gate, header):
        with pytest.raises(MissingTokenError) as exc_info:
            gate.verify(header)

        assert exc_info.value.status_code == 401

    @pytest.mark.parametrize("header", ["Basic dGVzdA==", "Bearer", "token-without-scheme"])
    def test_malformed_authorization_header(self, gate, header):
        with pytest.raises(InvalidTokenError):
            gate.verify(header)

    def test_scheme_is_case_insensitive(self, gate):
        token = gate.issue_token("test-key").token

        assert gate.verify(f"bearer {token}")["name"] == "admin"

    @pytest.mark.parametrize("credential", ["wrong-key", "", None, "test-key "])
    def test_bad_credential(self, gate, credential):
        with pytest.raises(InvalidCredentialError):
            gate.issue_token(credential)

        gate.logger.warning.assert_called_with("Login rejected")

    def test_login_disabled_when_basic_auth_type_is_not_key(self):
        gate = AuthGate(get_config(jwt_secret=SECRET, basic_auth_key="test-key", basic_auth_type="none"))

        with pytest.raises(InvalidCredentialError):
            gate.issue_token("test-key")

    def test_login_outcomes_are_streamed(self, gate):
        gate.issue_token("test-key")
        with pytest.raises(InvalidCredentialError):
            gate.issue_token("nope")

        first, second = gate.metrics.drain()

        assert (first.source, first.outcome) == ("auth_post", "success")
        assert (second.source, second.outcome) == ("auth_post", "failure")
        assert first.organization == "acme"


class TestSecurityPosture:
    """Test cases for default-secret warnings."""

    def test_defaults_produce_warnings(self):
        gate = AuthGate(get_config())
        gate.logger = MagicMock()

        warnings = gate.check_security_posture()

        assert len(warnings) == 2
        assert gate.logger.warning.call_count == 2

    def test_custom_values_are_quiet(self):
        gate = AuthGate(get_config(jwt_secret=SECRET, basic_auth_key="test-key"))
        gate.logger = MagicMock()

        assert gate.check_security_posture() == []
        gate.logger.warning.assert_not_called()

    def test_default_key_ignored_when_login_disabled(self):
        gate = AuthGate(get_config(jwt_secret=SECRET, basic_auth_type="none"))
        gate.logger = MagicMock()

        warnings = gate.check_security_posture()

        assert len(warnings) == 0
