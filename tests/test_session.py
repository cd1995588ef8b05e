from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from supabase import AuthError

from unilink.config import Config
from unilink.errors import AuthenticationError
from unilink.models import OrganizationProfile, StudentProfile
from unilink.session import (OrganizationSignUp, SessionProvider, StudentSignUp, build_profile_row,
                             requires_session)


def auth_session(user_id="user-ada", email="ada@unilag.edu.ng"):
    return SimpleNamespace(user=SimpleNamespace(id=user_id, email=email), access_token="token")


def auth_client(session=None):
    client = MagicMock()
    client.auth.get_session = AsyncMock(return_value=session)
    client.auth.sign_out = AsyncMock()
    return client


def test_student_profile_row():
    row = build_profile_row("u1", "ada@unilag.edu.ng",
                            StudentSignUp(name="Ada Obi", university="UNILAG", department="Economics"))
    assert row["account_type"] == "student"
    assert row["bio"] == "Student at UNILAG"
    assert row["avatar_url"] == "https://api.dicebear.com/7.x/initials/svg?seed=Ada%20Obi"
    assert row["is_verified"] is False


def test_organization_profile_row():
    row = build_profile_row("o1", "hr@paystack.com",
                            OrganizationSignUp(company_name="Paystack", industry="Fintech", location="Lagos"))
    assert row["account_type"] == "organization"
    assert row["name"] == "Paystack"
    assert row["bio"] == "Fintech company based in Lagos"
    assert "identicon" in row["avatar_url"]


async def test_current_session_none_when_signed_out(store):
    provider = SessionProvider(auth_client(None), store)
    assert await provider.current_session() is None
    assert await provider.load_context() is None


async def test_load_context_resolves_profile_and_admin(store, admin):
    provider = SessionProvider(auth_client(auth_session(admin["id"], "Admin@UniLink.ng")), store,
                               admin_email=Config.ADMIN_EMAIL)

    context = await provider.load_context()

    assert context.user_id == admin["id"]
    assert context.is_admin
    assert isinstance(context.profile, StudentProfile)


async def test_non_admin_context(store, paystack):
    provider = SessionProvider(auth_client(auth_session(paystack["id"], "hr@paystack.com")), store)

    context = await provider.load_context()

    assert not context.is_admin
    assert context.is_organization
    assert isinstance(context.profile, OrganizationProfile)


async def test_sign_in_error_becomes_authentication_error(store):
    client = auth_client()
    client.auth.sign_in_with_password = AsyncMock(side_effect=AuthError("Invalid login credentials", None))

    with pytest.raises(AuthenticationError):
        await SessionProvider(client, store).sign_in("ada@unilag.edu.ng", "wrong")


async def test_sign_in_returns_session(store):
    client = auth_client()
    client.auth.sign_in_with_password = AsyncMock(return_value=SimpleNamespace(session=auth_session()))

    session = await SessionProvider(client, store).sign_in("ada@unilag.edu.ng", "secret")

    assert session.user_id == "user-ada"
    assert session.access_token == "token"


async def test_sign_up_creates_profile_row(store):
    client = auth_client()
    client.auth.sign_up = AsyncMock(return_value=SimpleNamespace(user=SimpleNamespace(id="new-user")))

    profile = await SessionProvider(client, store).sign_up(
        "new@unn.edu.ng", "secret", StudentSignUp(name="Ngozi", university="UNN", department="Law"))

    assert isinstance(profile, StudentProfile)
    assert store.rows("profiles", id="new-user")[0]["email"] == "new@unn.edu.ng"


def test_session_change_callback_and_unsubscribe(store):
    client = auth_client()
    subscription = MagicMock()
    client.auth.on_auth_state_change.return_value = subscription
    seen = []

    unsubscribe = SessionProvider(client, store).on_session_change(seen.append)
    handler = client.auth.on_auth_state_change.call_args.args[0]
    handler("SIGNED_IN", auth_session())
    handler("SIGNED_OUT", None)

    assert [s.user_id if s else None for s in seen] == ["user-ada", None]
    assert unsubscribe is subscription.unsubscribe


async def test_requires_session_is_a_no_op_without_context():
    calls = []

    class Screen:
        context = None

        @requires_session
        async def act(self):
            calls.append("called")
            return "done"

    assert await Screen().act() is None
    assert calls == []
