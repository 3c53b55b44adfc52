"""
Identity gate: maps a signed-in account onto one of the two roster users.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Protocol

import requests

from shared.constants import ERROR_MESSAGES, find_roster_entry_by_email
from shared.errors import AuthenticationFailed, UnauthorizedIdentity
from shared.types import User

logger = logging.getLogger(__name__)

SIGN_IN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"
REQUEST_TIMEOUT = 15  # seconds

# Identity Toolkit error codes that mean "wrong email or password".
CREDENTIAL_ERRORS = {
    "EMAIL_NOT_FOUND",
    "INVALID_PASSWORD",
    "INVALID_LOGIN_CREDENTIALS",
    "INVALID_EMAIL",
    "USER_DISABLED",
}


class Authenticator(Protocol):
    """Verifies a password and returns the account's opaque uid."""

    def sign_in(self, email: str, password: str) -> str:
        ...


@dataclass
class FirebaseAuthenticator:
    """Email/password sign-in against Firebase Authentication's REST API."""

    api_key: str

    def sign_in(self, email: str, password: str) -> str:
        try:
            response = requests.post(
                SIGN_IN_URL,
                params={"key": self.api_key},
                json={
                    "email": email,
                    "password": password,
                    "returnSecureToken": True,
                },
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.error("Firebase sign-in request failed: %s", e)
            raise AuthenticationFailed(
                ERROR_MESSAGES["GENERIC_LOGIN_ERROR"], cause=e
            ) from e

        if response.status_code == 200:
            return response.json()["localId"]

        try:
            error_code = response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            error_code = f"HTTP {response.status_code}"
        # Codes can carry a suffix, e.g. "INVALID_PASSWORD : ...".
        if error_code.split(" ")[0] in CREDENTIAL_ERRORS:
            raise AuthenticationFailed()
        logger.error("Firebase sign-in error: %s", error_code)
        raise AuthenticationFailed(ERROR_MESSAGES["GENERIC_LOGIN_ERROR"])


@dataclass
class InMemoryAuthenticator:
    """Test double: accepts the configured password for each email."""

    passwords: Dict[str, str] = field(default_factory=dict)
    calls: list = field(default_factory=list)

    def sign_in(self, email: str, password: str) -> str:
        self.calls.append(email)
        expected = self.passwords.get(email.lower())
        if expected is None or password != expected:
            raise AuthenticationFailed()
        return f"local-{email.lower()}"


@dataclass
class IdentityGate:
    authenticator: Authenticator

    def sign_in(self, email: str, password: str) -> User:
        """
        Signs a participant in.

        Raises:
            UnauthorizedIdentity: The email is not on the roster; no
                authentication attempt is made.
            AuthenticationFailed: The credential was rejected.
        """
        entry = find_roster_entry_by_email(email)
        if entry is None:
            logger.info("Rejected sign-in for email outside the roster")
            raise UnauthorizedIdentity()

        uid = self.authenticator.sign_in(entry.email, password)
        logger.info("Signed in %s (%s)", entry.username, entry.id)
        return User(
            uid=uid,
            id=entry.id,
            username=entry.username,
            partner_id=entry.partner_id,
            email=entry.email,
        )
