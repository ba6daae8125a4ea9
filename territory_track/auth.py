"""Auth session lifecycle on top of the backend auth API.

Keeps the current access/refresh tokens and signed-in user id. The rest of
the core only ever asks for :attr:`AuthSession.owner_id`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .backend import BackendClient
from .errors import BackendError, ErrorKind, NotSignedInError
from .result import Err, Ok, Result
from .utils import mask_tail

LOGGER = logging.getLogger(__name__)


@dataclass
class AuthUser:
    id: str
    email: Optional[str] = None


class AuthSession:
    def __init__(self, client: BackendClient) -> None:
        self._client = client
        self.user: Optional[AuthUser] = None
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None

    @property
    def signed_in(self) -> bool:
        return self.user is not None and bool(self.access_token)

    @property
    def owner_id(self) -> str:
        if self.user is None:
            raise NotSignedInError("No user is signed in")
        return self.user.id

    def sign_in(self, email: str, password: str) -> Result[AuthUser]:
        LOGGER.info("Signing in email=%s", email)
        return self._adopt(self._client.sign_in_with_password(email, password), "Sign in")

    def sign_up(self, email: str, password: str) -> Result[Optional[AuthUser]]:
        """Register an account.

        Projects with email confirmation return a user but no session; the
        result is then ``Ok(None)`` and the caller must sign in after
        confirming.
        """

        LOGGER.info("Signing up email=%s", email)
        result = self._client.sign_up(email, password)
        if not result.ok:
            return result
        payload = result.unwrap() or {}
        if isinstance(payload, Mapping) and payload.get("access_token"):
            return self._adopt(result, "Sign up")
        LOGGER.info("Sign up pending email confirmation for %s", email)
        return Ok(None)

    def refresh(self) -> Result[AuthUser]:
        if not self.refresh_token:
            return Err(BackendError(ErrorKind.UNAUTHORIZED, "No refresh token available"))
        LOGGER.info("Refreshing session refresh_token=%s", mask_tail(self.refresh_token))
        return self._adopt(self._client.refresh_session(self.refresh_token), "Token refresh")

    def sign_out(self) -> Result[None]:
        """Sign out remotely and always clear local state."""

        result: Result[None] = Ok(None)
        if self.access_token:
            result = self._client.sign_out()
            if not result.ok:
                LOGGER.warning("Remote sign out failed: %s", result.error)
        self.user = None
        self.access_token = None
        self.refresh_token = None
        self._client.set_access_token(None)
        LOGGER.info("Signed out")
        return result

    def _adopt(self, result: Result[Any], context: str) -> Result[AuthUser]:
        if not result.ok:
            return result
        payload = result.unwrap()
        if not isinstance(payload, Mapping):
            return Err(BackendError(ErrorKind.DECODE, f"{context} returned an unexpected payload"))
        access_token = payload.get("access_token")
        user_payload = payload.get("user")
        if not access_token or not isinstance(user_payload, Mapping) or not user_payload.get("id"):
            LOGGER.error("%s response lacks access_token or user", context)
            return Err(BackendError(ErrorKind.DECODE, f"{context} response lacks a session"))
        self.access_token = str(access_token)
        refresh = payload.get("refresh_token")
        self.refresh_token = str(refresh) if refresh else self.refresh_token
        self.user = AuthUser(id=str(user_payload["id"]), email=user_payload.get("email"))
        self._client.set_access_token(self.access_token)
        LOGGER.info(
            "%s ok user=%s access_token=%s",
            context,
            self.user.id,
            mask_tail(self.access_token),
        )
        return Ok(self.user)


__all__ = ["AuthSession", "AuthUser"]
