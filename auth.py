from __future__ import annotations

import logging
from typing import Callable, List, Optional

import requests

from errors import FetchError, Unauthenticated
from models import User

logger = logging.getLogger(__name__)


class IdentityClient:
    """REST client for the Identity Toolkit account endpoints."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://identitytoolkit.googleapis.com/v1",
        timeout: float = 10.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _post(self, action: str, payload: dict) -> dict:
        try:
            resp = requests.post(
                f"{self.base_url}/accounts:{action}",
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error("Identity request %s failed: %s", action, e)
            raise FetchError(f"{action} failed: {e}") from e
        return resp.json()

    def sign_up(self, email: str, password: str) -> User:
        data = self._post(
            "signUp", {"email": email, "password": password, "returnSecureToken": True}
        )
        return User(uid=data["localId"], email=data.get("email", email))

    def sign_in(self, email: str, password: str) -> User:
        data = self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return User(uid=data["localId"], email=data.get("email", email))

    def reset_password(self, email: str) -> None:
        self._post("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})


class SessionListener:
    def __init__(self, provider: "SessionProvider", callback: Callable[[Optional[User]], None]) -> None:
        self._provider = provider
        self._callback = callback

    def cancel(self) -> None:
        if self._callback in self._provider._callbacks:
            self._provider._callbacks.remove(self._callback)


class SessionProvider:
    """Tracks the signed-in user and notifies listeners when it changes."""

    def __init__(self, identity: Optional[IdentityClient] = None) -> None:
        self.identity = identity
        self.current_user: Optional[User] = None
        self._callbacks: List[Callable[[Optional[User]], None]] = []

    def listen(self, callback: Callable[[Optional[User]], None]) -> SessionListener:
        """Register ``callback`` and call it once with the current user."""
        self._callbacks.append(callback)
        callback(self.current_user)
        return SessionListener(self, callback)

    def set_user(self, user: Optional[User]) -> None:
        self.current_user = user
        for callback in list(self._callbacks):
            callback(user)

    def _require_identity(self) -> IdentityClient:
        if self.identity is None:
            raise ValueError("identity client not configured")
        return self.identity

    def sign_up(self, email: str, password: str) -> User:
        user = self._require_identity().sign_up(email, password)
        self.set_user(user)
        return user

    def sign_in(self, email: str, password: str) -> User:
        user = self._require_identity().sign_in(email, password)
        self.set_user(user)
        return user

    def reset_password(self, email: str) -> None:
        self._require_identity().reset_password(email)

    def sign_out(self) -> None:
        self.set_user(None)

    def require(self) -> User:
        if self.current_user is None:
            logger.error("No active session")
            raise Unauthenticated()
        return self.current_user
