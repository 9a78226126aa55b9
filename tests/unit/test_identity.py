"""
Unit tests for the Supabase auth client.

Uses httpx.MockTransport so requests never leave the process.
"""

import json

import httpx
import pytest

from bactutor.integrations import identity
from bactutor.integrations.identity import AuthSession, SupabaseAuthClient

TOKEN_BODY = {
    "access_token": "at-1",
    "refresh_token": "rt-1",
    "user": {"id": "user-1", "email": "prof@example.dz"},
}


def make_client(handler, **kwargs):
    return SupabaseAuthClient(
        "https://demo.supabase.co/",
        "anon-key",
        redirect_url="http://localhost:3000",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    async def instant(_seconds):
        return None

    monkeypatch.setattr(identity.asyncio, "sleep", instant)


class TestSignIn:
    @pytest.mark.asyncio
    async def test_password_sign_in(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=TOKEN_BODY)

        client = make_client(handler)
        events = []
        client.on_auth_state_change(lambda event, session: events.append((event, session)))

        result = await client.sign_in_with_password("prof@example.dz", "secret")

        assert result.ok
        assert result.session.user_id == "user-1"
        assert client.get_session() == result.session
        assert events == [("SIGNED_IN", result.session)]
        request = seen[0]
        assert request.url.path == "/auth/v1/token"
        assert request.url.params["grant_type"] == "password"
        assert request.headers["apikey"] == "anon-key"
        assert json.loads(request.content) == {"email": "prof@example.dz", "password": "secret"}
        await client.close()

    @pytest.mark.asyncio
    async def test_bad_credentials(self):
        client = make_client(
            lambda request: httpx.Response(400, json={"error_description": "Invalid login credentials"})
        )
        result = await client.sign_in_with_password("a@b.c", "wrong")
        assert not result.ok
        assert result.error == "Invalid login credentials"
        assert client.get_session() is None
        await client.close()

    @pytest.mark.asyncio
    async def test_server_errors_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                return httpx.Response(503)
            return httpx.Response(200, json=TOKEN_BODY)

        client = make_client(handler, retry_attempts=2)
        result = await client.sign_in_with_password("a@b.c", "pw")
        assert result.ok
        assert len(attempts) == 2
        await client.close()

    @pytest.mark.asyncio
    async def test_service_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        client = make_client(handler, retry_attempts=2)
        result = await client.sign_in_with_password("a@b.c", "pw")
        assert result.error == "Authentication service unavailable"
        await client.close()


class TestSignUp:
    @pytest.mark.asyncio
    async def test_confirmation_pending(self):
        client = make_client(lambda request: httpx.Response(200, json={"id": "user-2", "email": "x@y.z"}))
        result = await client.sign_up("x@y.z", "pw")
        assert result.ok
        assert result.needs_confirmation
        assert result.session is None
        await client.close()

    @pytest.mark.asyncio
    async def test_immediate_session(self):
        client = make_client(lambda request: httpx.Response(200, json=TOKEN_BODY))
        result = await client.sign_up("x@y.z", "pw")
        assert result.session.access_token == "at-1"
        await client.close()

    @pytest.mark.asyncio
    async def test_rejected(self):
        client = make_client(lambda request: httpx.Response(422, json={"msg": "Password should be at least 6 characters"}))
        result = await client.sign_up("x@y.z", "pw")
        assert result.error == "Password should be at least 6 characters"
        await client.close()


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_sign_out_notifies_and_clears(self):
        seen = []

        def handler(request):
            seen.append(request)
            if request.url.path.endswith("/logout"):
                return httpx.Response(204)
            return httpx.Response(200, json=TOKEN_BODY)

        client = make_client(handler)
        events = []
        unsubscribe = client.on_auth_state_change(lambda event, session: events.append(event))
        await client.sign_in_with_password("a@b.c", "pw")

        await client.sign_out()

        assert client.get_session() is None
        assert events == ["SIGNED_IN", "SIGNED_OUT"]
        assert seen[-1].headers["Authorization"] == "Bearer at-1"

        unsubscribe()
        await client.sign_in_with_password("a@b.c", "pw")
        assert events == ["SIGNED_IN", "SIGNED_OUT"]
        await client.close()

    @pytest.mark.asyncio
    async def test_sign_out_failure_still_clears_session(self):
        def handler(request):
            if request.url.path.endswith("/logout"):
                return httpx.Response(401, json={"message": "expired"})
            return httpx.Response(200, json=TOKEN_BODY)

        client = make_client(handler)
        await client.sign_in_with_password("a@b.c", "pw")
        await client.sign_out()
        assert client.get_session() is None
        await client.close()

    @pytest.mark.asyncio
    async def test_refresh(self):
        refreshed = {**TOKEN_BODY, "access_token": "at-2"}
        client = make_client(
            lambda request: httpx.Response(
                200, json=refreshed if request.url.params["grant_type"] == "refresh_token" else TOKEN_BODY
            )
        )
        await client.sign_in_with_password("a@b.c", "pw")
        result = await client.refresh()
        assert result.session.access_token == "at-2"
        assert client.get_session().access_token == "at-2"
        await client.close()

    @pytest.mark.asyncio
    async def test_refresh_without_session(self):
        client = make_client(lambda request: httpx.Response(500))
        result = await client.refresh()
        assert not result.ok
        await client.close()

    def test_oauth_url(self):
        client = make_client(lambda request: httpx.Response(200))
        url = client.oauth_url()
        assert url.startswith("https://demo.supabase.co/auth/v1/authorize?")
        assert "provider=google" in url
        assert "redirect_to=http%3A%2F%2Flocalhost%3A3000" in url

    def test_session_from_dict(self):
        session = AuthSession.from_dict(TOKEN_BODY)
        assert session.email == "prof@example.dz"
        assert session.refresh_token == "rt-1"

    def test_session_dict_round_trip(self):
        session = AuthSession.from_dict(TOKEN_BODY)
        assert AuthSession.from_dict(session.to_dict()) == session

    def test_restore_session_notifies_without_request(self):
        seen = []
        client = make_client(lambda request: seen.append(request) or httpx.Response(500))
        events = []
        client.on_auth_state_change(lambda event, session: events.append(event))

        client.restore_session(AuthSession.from_dict(TOKEN_BODY))

        assert client.get_session().user_id == "user-1"
        assert events == ["INITIAL_SESSION"]
        assert seen == []


class TestOAuthRedirect:
    @pytest.mark.asyncio
    async def test_tokens_read_from_fragment(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"id": "user-9", "email": "g@example.dz"})

        client = make_client(handler)
        result = await client.sign_in_with_redirect(
            "http://localhost:3000/#access_token=at-9&refresh_token=rt-9&token_type=bearer"
        )

        assert result.ok
        assert result.session.user_id == "user-9"
        assert result.session.refresh_token == "rt-9"
        assert client.get_session() == result.session
        assert seen[0].method == "GET"
        assert seen[0].url.path == "/auth/v1/user"
        assert seen[0].headers["Authorization"] == "Bearer at-9"
        await client.close()

    @pytest.mark.asyncio
    async def test_provider_error_in_fragment(self):
        client = make_client(lambda request: httpx.Response(500))
        result = await client.sign_in_with_redirect(
            "http://localhost:3000/#error=access_denied&error_description=User+cancelled"
        )
        assert result.error == "User cancelled"
        assert client.get_session() is None
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_token(self):
        client = make_client(lambda request: httpx.Response(500))
        result = await client.sign_in_with_redirect("http://localhost:3000/")
        assert not result.ok
        await client.close()

    @pytest.mark.asyncio
    async def test_rejected_token(self):
        client = make_client(lambda request: httpx.Response(401, json={"msg": "invalid JWT"}))
        result = await client.sign_in_with_redirect("http://localhost:3000/#access_token=bad")
        assert result.error == "invalid JWT"
        await client.close()
