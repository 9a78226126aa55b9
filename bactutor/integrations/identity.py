"""
Supabase identity provider client.

Talks to the Supabase Auth (GoTrue) REST API over httpx:
- password sign-in and sign-up
- OAuth authorize URL for browser sign-in (Google), and reading the
  session back from the redirect URL
- sign-out and token refresh
- auth-state listeners notified on SIGNED_IN / SIGNED_OUT

The rest of the tutor only sees `AuthSession` as an opaque token plus a
user id.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import parse_qs, urlencode, urlsplit

import httpx
from loguru import logger

AuthListener = Callable[[str, "AuthSession | None"], None]


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    refresh_token: str | None
    user_id: str
    email: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuthSession:
        user = data.get("user") or {}
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            user_id=user.get("id", ""),
            email=user.get("email"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "user": {"id": self.user_id, "email": self.email},
        }


@dataclass(frozen=True)
class AuthResult:
    session: AuthSession | None = None
    error: str | None = None
    needs_confirmation: bool = False  # sign-up accepted, email not yet confirmed

    @property
    def ok(self) -> bool:
        return self.error is None


class SupabaseAuthClient:
    """Async client for Supabase Auth."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        redirect_url: str | None = None,
        timeout_seconds: float = 15.0,
        retry_attempts: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.redirect_url = redirect_url
        self.retry_attempts = max(1, retry_attempts)
        self.client = httpx.AsyncClient(
            base_url=f"{self.url}/auth/v1",
            headers={"apikey": anon_key, "Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )
        self._session: AuthSession | None = None
        self._listeners: list[AuthListener] = []

    async def close(self) -> None:
        await self.client.aclose()

    # ========================================
    # Session
    # ========================================

    def get_session(self) -> AuthSession | None:
        return self._session

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def restore_session(self, session: AuthSession) -> None:
        """Adopt a session saved by an earlier run, without a network call."""
        self._set_session(session, "INITIAL_SESSION")

    def _set_session(self, session: AuthSession | None, event: str) -> None:
        self._session = session
        for listener in list(self._listeners):
            listener(event, session)

    # ========================================
    # Auth flows
    # ========================================

    async def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        result = await self._token_request("password", {"email": email, "password": password})
        if result.session:
            logger.info(f"Signed in as {result.session.email or result.session.user_id}")
            self._set_session(result.session, "SIGNED_IN")
        return result

    async def sign_up(self, email: str, password: str) -> AuthResult:
        try:
            data = await self._post("/signup", {"email": email, "password": password})
        except _AuthHTTPError as e:
            return AuthResult(error=e.message)

        if "access_token" in data:
            session = AuthSession.from_dict(data)
            self._set_session(session, "SIGNED_IN")
            return AuthResult(session=session)
        # Email confirmation pending: Supabase returns the bare user
        return AuthResult(needs_confirmation=True)

    async def refresh(self) -> AuthResult:
        if not self._session or not self._session.refresh_token:
            return AuthResult(error="No session to refresh")
        result = await self._token_request("refresh_token", {"refresh_token": self._session.refresh_token})
        if result.session:
            self._set_session(result.session, "TOKEN_REFRESHED")
        return result

    def oauth_url(self, provider: str = "google") -> str:
        """URL to open in a browser for an OAuth sign-in."""
        params = {"provider": provider}
        if self.redirect_url:
            params["redirect_to"] = self.redirect_url
        return f"{self.url}/auth/v1/authorize?{urlencode(params)}"

    async def sign_in_with_redirect(self, redirect_url: str) -> AuthResult:
        """
        Finish an OAuth sign-in from the URL the browser was redirected to.

        Supabase puts the tokens in the URL fragment; the user id comes from
        GET /user with the new access token.
        """
        fragment = urlsplit(redirect_url.strip()).fragment
        params = {k: v[0] for k, v in parse_qs(fragment).items()}
        if "error_description" in params or "error" in params:
            return AuthResult(error=params.get("error_description") or params["error"])
        access_token = params.get("access_token")
        if not access_token:
            return AuthResult(error="No access token in the redirect URL")

        try:
            user = await self._request("GET", "/user", token=access_token)
        except _AuthHTTPError as e:
            return AuthResult(error=e.message)

        session = AuthSession.from_dict(
            {"access_token": access_token, "refresh_token": params.get("refresh_token"), "user": user}
        )
        logger.info(f"Signed in with OAuth as {session.email or session.user_id}")
        self._set_session(session, "SIGNED_IN")
        return AuthResult(session=session)

    async def sign_out(self) -> None:
        session = self._session
        if session is None:
            return
        try:
            await self._post("/logout", {}, token=session.access_token)
        except _AuthHTTPError as e:
            # The local session is dropped regardless; the token expires server-side
            logger.warning(f"Sign-out request failed: {e.message}")
        self._set_session(None, "SIGNED_OUT")

    # ========================================
    # HTTP
    # ========================================

    async def _token_request(self, grant_type: str, body: dict[str, Any]) -> AuthResult:
        try:
            data = await self._post(f"/token?grant_type={grant_type}", body)
        except _AuthHTTPError as e:
            return AuthResult(error=e.message)
        try:
            return AuthResult(session=AuthSession.from_dict(data))
        except KeyError:
            return AuthResult(error="Malformed token response")

    async def _post(self, path: str, body: dict[str, Any], token: str | None = None) -> dict[str, Any]:
        return await self._request("POST", path, body, token=token)

    async def _request(
        self, method: str, path: str, body: dict[str, Any] | None = None, token: str | None = None
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            try:
                response = await self.client.request(method, path, json=body, headers=headers)
                response.raise_for_status()
                return response.json() if response.content else {}

            except httpx.HTTPStatusError as e:
                last_error = e
                if e.response.status_code < 500:
                    raise _AuthHTTPError(_error_message(e.response)) from e
                logger.warning(
                    f"Auth server error {e.response.status_code} on attempt "
                    f"{attempt + 1}/{self.retry_attempts}"
                )

            except httpx.RequestError as e:
                last_error = e
                logger.warning(f"Auth request error on attempt {attempt + 1}/{self.retry_attempts}: {e}")

            if attempt < self.retry_attempts - 1:
                await asyncio.sleep(2**attempt)

        logger.error(f"Auth request {path} failed after {self.retry_attempts} attempts: {last_error}")
        raise _AuthHTTPError("Authentication service unavailable") from last_error


class _AuthHTTPError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    return (
        data.get("error_description")
        or data.get("msg")
        or data.get("message")
        or data.get("error")
        or f"HTTP {response.status_code}"
    )
