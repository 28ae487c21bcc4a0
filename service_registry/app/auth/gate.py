"""
Bootstrap login and bearer token verification for the Registry Service.
"""

import hmac
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import jwt

from shared.config import RegistryConfig
from shared.errors import (
    ExpiredTokenError,
    InvalidCredentialError,
    InvalidTokenError,
    MissingTokenError,
)
from shared.logging import get_logger
from ..streams import MetricsEvent, MetricsStream

ALGORITHM = "HS256"
_REGISTERED_CLAIMS = ("exp", "iat", "nbf")


@dataclass(frozen=True)
class AuthToken:
    """A signed, time-limited credential."""
    token: str
    claims: Dict[str, Any]
    expires_at: datetime


class AuthGate:
    """Issues tokens from the bootstrap credential and verifies bearer tokens.

    Tokens are verified statelessly; nothing is stored server side, so there
    is no revocation short of rotating the signing secret.
    """

    def __init__(self, config: RegistryConfig):
        self.config = config
        self.logger = get_logger("registry.auth.gate")
        self.metrics = MetricsStream("auth_post")

    def check_security_posture(self) -> List[str]:
        """Warn when the bootstrap key or signing secret are left at their defaults."""
        warnings = []
        if self.config.basic_auth_type == "key" and self.config.is_default("basic_auth_key"):
            warnings.append(
                "Server is running with default basic authorization key configured! "
                "For security purposes, it is highly recommended to set a custom value!"
            )
        if self.config.is_default("jwt_secret"):
            warnings.append(
                "Server is running with default jwt secret configured! "
                "For security purposes, it is highly recommended to set a custom value!"
            )
        for message in warnings:
            self.logger.warning(message)
        return warnings

    def issue_token(self, credential: Optional[str], now: Optional[float] = None) -> AuthToken:
        """Exchange the bootstrap credential for a signed token."""
        start_time = time.time()
        try:
            token = self._issue(credential, now)
        except InvalidCredentialError:
            self._record("failure", start_time)
            self.logger.warning("Login rejected")
            raise

        self._record("success", start_time)
        self.logger.info(
            "Token issued",
            user=token.claims.get("name"),
            organization=token.claims.get("org"),
            expires_at=token.expires_at.isoformat(),
        )
        return token

    def _issue(self, credential: Optional[str], now: Optional[float]) -> AuthToken:
        if self.config.basic_auth_type != "key":
            raise InvalidCredentialError()
        if not isinstance(credential, str):
            raise InvalidCredentialError()

        expected = self.config.basic_auth_key.encode("utf-8")
        if not hmac.compare_digest(credential.encode("utf-8"), expected):
            raise InvalidCredentialError()

        issued_at = int(now if now is not None else time.time())
        expires = issued_at + self.config.jwt_expires_in_seconds
        claims = {"name": "admin", "org": self.config.organization_name}
        payload = {**claims, "iat": issued_at, "exp": expires}

        token = jwt.encode(payload, self.config.jwt_secret, algorithm=ALGORITHM)
        return AuthToken(
            token=token,
            claims=claims,
            expires_at=datetime.fromtimestamp(expires, tz=timezone.utc),
        )

    def verify(self, authorization: Optional[str]) -> Dict[str, Any]:
        """Verify an Authorization header value and return its identity claims."""
        if not authorization or not authorization.strip():
            raise MissingTokenError()

        scheme, _, token = authorization.strip().partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            raise InvalidTokenError(
                'Authorization header is malformed. Format is "Authorization: Bearer [token]"'
            )

        try:
            payload = jwt.decode(
                token,
                self.config.jwt_secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredTokenError() from exc
        except jwt.PyJWTError as exc:
            raise InvalidTokenError() from exc

        return {key: value for key, value in payload.items() if key not in _REGISTERED_CLAIMS}

    def _record(self, outcome: str, start_time: float):
        self.metrics.push(MetricsEvent(
            source=self.metrics.name,
            kind=None,
            outcome=outcome,
            duration_ms=(time.time() - start_time) * 1000,
            organization=self.config.organization_name,
        ))
