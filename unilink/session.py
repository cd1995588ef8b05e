"""
Session handling for UniLink on top of Supabase Auth.
Provides the explicit ``SessionContext`` that every screen is built with,
and the ``requires_session`` guard for screen operations.
"""
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Optional, Union
from urllib.parse import quote

from pydantic import BaseModel, Field
from supabase import AuthError

from unilink.config import Config
from unilink.errors import AuthenticationError
from unilink.models import AccountType, OrganizationProfile, StudentProfile, parse_profile

logger = logging.getLogger(__name__)

AVATAR_URL = "https://api.dicebear.com/7.x/{style}/svg?seed={seed}"


@dataclass(frozen=True)
class Session:
    user_id: str
    email: Optional[str] = None
    access_token: Optional[str] = None


@dataclass
class SessionContext:
    """Who is signed in, resolved once and handed to each screen."""

    session: Session
    profile: Optional[Union[StudentProfile, OrganizationProfile]] = None
    is_admin: bool = False

    @property
    def user_id(self) -> str:
        return self.session.user_id

    @property
    def is_organization(self) -> bool:
        return isinstance(self.profile, OrganizationProfile)


class StudentSignUp(BaseModel):
    name: str = Field(..., min_length=1, description="Full name")
    university: str = Field("", description="University")
    department: str = Field("", description="Department")


class OrganizationSignUp(BaseModel):
    company_name: str = Field(..., min_length=1, description="Company name")
    industry: str = Field("", description="Industry")
    website: str = Field("", description="Company website")
    location: str = Field("", description="Head office location")


def requires_session(func):
    """
    Decorator for screen coroutines that need a signed-in user.

    Without a context the call is a no-op and returns None, so nothing is sent
    to the remote store.
    """
    @wraps(func)
    async def wrapper(self, *args, **kwargs):
        if getattr(self, "context", None) is None:
            logger.debug(f"{func.__name__} skipped: no signed-in user")
            return None
        return await func(self, *args, **kwargs)

    return wrapper


def _to_session(raw) -> Optional[Session]:
    if raw is None or getattr(raw, "user", None) is None:
        return None
    return Session(user_id=str(raw.user.id), email=raw.user.email, access_token=getattr(raw, "access_token", None))


def build_profile_row(user_id: str, email: str, details: Union[StudentSignUp, OrganizationSignUp]) -> dict:
    """Profile payload written right after sign-up."""
    row = {"id": user_id, "email": email, "is_verified": False}
    if isinstance(details, StudentSignUp):
        row.update({
            "account_type": AccountType.STUDENT.value,
            "name": details.name,
            "university": details.university,
            "department": details.department,
            "avatar_url": AVATAR_URL.format(style="initials", seed=quote(details.name)),
            "bio": f"Student at {details.university}" if details.university else "",
        })
    else:
        row.update({
            "account_type": AccountType.ORGANIZATION.value,
            "name": details.company_name,
            "industry": details.industry,
            "website": details.website,
            "location": details.location,
            "avatar_url": AVATAR_URL.format(style="identicon", seed=quote(details.company_name)),
            "bio": f"{details.industry} company based in {details.location}".strip(),
        })
    return row


class SessionProvider:
    """Current session, session-change stream and sign-in/out."""

    def __init__(self, client, store, admin_email: Optional[str] = None):
        self.client = client
        self.store = store
        self.admin_email = (admin_email or Config.ADMIN_EMAIL).lower()

    async def current_session(self) -> Optional[Session]:
        return _to_session(await self.client.auth.get_session())

    def on_session_change(self, callback: Callable[[Optional[Session]], None]) -> Callable[[], None]:
        """
        Register ``callback`` for sign-in / sign-out / refresh events.

        Returns:
            callable: call it to stop listening
        """
        def handler(_event, raw_session):
            callback(_to_session(raw_session))

        subscription = self.client.auth.on_auth_state_change(handler)
        return subscription.unsubscribe

    async def sign_in(self, email: str, password: str) -> Session:
        try:
            response = await self.client.auth.sign_in_with_password({"email": email, "password": password})
        except AuthError as e:
            raise AuthenticationError(str(e)) from e
        session = _to_session(response.session)
        if session is None:
            raise AuthenticationError("Sign-in returned no session")
        logger.info(f"Signed in {email}")
        return session

    async def sign_up(self, email: str, password: str,
                      details: Union[StudentSignUp, OrganizationSignUp]):
        """
        Create the auth user and its profile row.

        Returns:
            Profile: the stored profile
        """
        try:
            response = await self.client.auth.sign_up({"email": email, "password": password})
        except AuthError as e:
            raise AuthenticationError(str(e)) from e
        if response.user is None:
            raise AuthenticationError("Sign-up returned no user")

        stored = await self.store.insert("profiles", build_profile_row(str(response.user.id), email, details))
        logger.info(f"Created {stored.get('account_type')} profile for {email}")
        return parse_profile(stored)

    async def sign_out(self) -> None:
        await self.client.auth.sign_out()

    async def load_context(self) -> Optional[SessionContext]:
        """Resolve the signed-in user and their profile, or None when signed out."""
        session = await self.current_session()
        if session is None:
            return None
        rows = await self.store.select("profiles", {"id": session.user_id}, limit=1)
        profile = parse_profile(rows[0]) if rows else None
        if profile is None:
            logger.warning(f"No profile row for user {session.user_id}")
        return SessionContext(
            session=session,
            profile=profile,
            is_admin=bool(session.email) and session.email.lower() == self.admin_email,
        )
