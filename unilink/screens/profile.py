"""
Profile screen: view a profile, edit your own, connect with others.

Admins (``Config.ADMIN_EMAIL``) can also toggle another profile's verified
badge; verifying sends the owner a ``system`` notification.
"""
import logging
from typing import Hashable, List, Optional

from unilink.errors import ConflictError, InputValidationError
from unilink.models import ConnectionStatus, NotificationType, StudentProfile, parse_profile
from unilink.mutations import Mutation, MutationResult
from unilink.screens.base import Screen
from unilink.session import requires_session
from unilink.social import SYSTEM_ACTOR, find_connection, request_connection, send_notification

logger = logging.getLogger(__name__)

INSTITUTIONAL_DOMAIN = ".edu.ng"

VERIFIED_MESSAGE = "Congratulations! Your account has been verified by an admin."
ALREADY_CONNECTED = "You are already connected or have a pending request with this user."


def split_list(value: str) -> List[str]:
    """``"Python, SQL, "`` -> ``["Python", "SQL"]``"""
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def is_institutional_email(email: str) -> bool:
    email = (email or "").strip().lower()
    return "@" in email and email.endswith(INSTITUTIONAL_DOMAIN)


class ProfileScreen(Screen):
    name = "profile"

    STUDENT_FIELDS = ("university", "department", "level")
    ORGANIZATION_FIELDS = ("industry", "location", "website")

    def __init__(self, store, realtime, context=None, notices=None, target_id: Optional[str] = None):
        super().__init__(store, realtime, context, notices)
        self.target_id = target_id
        self.viewed = None
        self.connection_status: Optional[str] = None

    @property
    def is_own(self) -> bool:
        return self.viewed is not None and self.viewed.id == self.user_id

    @property
    def is_admin(self) -> bool:
        return bool(self.context and self.context.is_admin)

    async def load(self) -> None:
        target = self.target_id or self.user_id
        if not target:
            return
        rows = await self._read("profile", self.store.select("profiles", {"id": target}, limit=1), default=[])
        self.viewed = parse_profile(rows[0]) if rows else None
        if self.viewed is None:
            self.error = self.error or "Profile not found."
            return
        self.connection_status = None
        if self.user_id and not self.is_own:
            connection = await self._read("connection", find_connection(self.store, self.user_id, target))
            self.connection_status = connection.status if connection else None

    # ============================================================================
    # EDITING
    # ============================================================================

    def form_data(self) -> dict:
        """Current values as edit-form strings; lists are comma separated."""
        if self.viewed is None:
            return {}
        data = {"name": self.viewed.name, "bio": self.viewed.bio, "skills": ", ".join(self.viewed.skills)}
        if isinstance(self.viewed, StudentProfile):
            data["courses"] = ", ".join(self.viewed.courses)
            fields = self.STUDENT_FIELDS
        else:
            fields = self.ORGANIZATION_FIELDS
        for name in fields:
            data[name] = getattr(self.viewed, name) or ""
        return data

    def build_patch(self, form: dict) -> dict:
        """Variant-specific ``profiles`` update from edit-form values."""
        name = (form.get("name", self.viewed.name) or "").strip()
        if not name:
            raise InputValidationError("Name cannot be empty")
        patch = {
            "name": name,
            "bio": (form.get("bio", self.viewed.bio) or "").strip(),
            "skills": split_list(form.get("skills", self.viewed.skills)),
        }
        if isinstance(self.viewed, StudentProfile):
            fields = self.STUDENT_FIELDS
            patch["courses"] = split_list(form.get("courses", self.viewed.courses))
        else:
            fields = self.ORGANIZATION_FIELDS
        for field_name in fields:
            if field_name in form:
                patch[field_name] = (form[field_name] or "").strip()
        return patch

    @requires_session
    async def save(self, form: dict) -> MutationResult:
        if self.viewed is None or not self.is_own:
            raise InputValidationError("You can only edit your own profile")
        patch = self.build_patch(form)
        profile_id = self.viewed.id

        def apply():
            before = self.viewed
            self.viewed = before.model_copy(update=patch)

            def undo():
                self.viewed = before

            return undo

        async def remote():
            rows = await self.store.update("profiles", patch, {"id": profile_id})
            if not rows:
                raise ConflictError("Profile no longer exists")
            return parse_profile(rows[0])

        def confirm(profile):
            self.viewed = profile
            self.context.profile = profile

        return await self.coordinator.run(Mutation(
            key=("profiles", profile_id), apply=apply, remote=remote, confirm=confirm,
            label="update your profile",
        ))

    # ============================================================================
    # ADMIN
    # ============================================================================

    @requires_session
    async def toggle_verification(self) -> MutationResult:
        """Flip the viewed profile's verified badge (admins only)."""
        if not self.is_admin:
            raise InputValidationError("Only admins can change verification")
        if self.viewed is None:
            raise InputValidationError("No profile loaded")
        profile_id = self.viewed.id
        verified = not self.viewed.is_verified

        def apply():
            self.viewed = self.viewed.model_copy(update={"is_verified": verified})
            return lambda: self._set_verified(profile_id, not verified)

        async def remote():
            rows = await self.store.update("profiles", {"is_verified": verified}, {"id": profile_id})
            if not rows:
                raise ConflictError("Profile no longer exists")
            if verified:
                await send_notification(self.store, profile_id, None, NotificationType.SYSTEM,
                                        VERIFIED_MESSAGE, SYSTEM_ACTOR)
            return parse_profile(rows[0])

        def confirm(profile):
            if self.viewed is not None and self.viewed.id == profile.id:
                self.viewed = profile

        return await self.coordinator.run(Mutation(
            key=("profiles", profile_id), apply=apply, remote=remote, confirm=confirm,
            label="update verification status",
        ))

    def _set_verified(self, profile_id: str, verified: bool) -> None:
        if self.viewed is not None and self.viewed.id == profile_id:
            self.viewed = self.viewed.model_copy(update={"is_verified": verified})

    # ============================================================================
    # CONNECTING
    # ============================================================================

    @requires_session
    async def connect(self) -> MutationResult:
        if self.viewed is None or self.is_own:
            raise InputValidationError("You cannot connect with yourself")
        if self.connection_status is not None:
            self.notices.post(ALREADY_CONNECTED, level="warning")
            return MutationResult(ok=False, error=ConflictError(ALREADY_CONNECTED))
        recipient_id = self.viewed.id

        def apply():
            before = self.connection_status
            self.connection_status = ConnectionStatus.PENDING.value

            def undo():
                self.connection_status = before

            return undo

        async def remote():
            return await request_connection(self.store, self.user_id, recipient_id, self.actor)

        def confirm(connection):
            self.connection_status = connection.status

        return await self.coordinator.run(Mutation(
            key=("connections", recipient_id), apply=apply, remote=remote, confirm=confirm,
            label="send the connection request", conflict_message=ALREADY_CONNECTED,
        ))

    async def resync(self, key: Hashable) -> None:
        table, entity_id = key
        if table == "connections":
            connection = await find_connection(self.store, self.user_id, entity_id)
            self.connection_status = connection.status if connection else None
            return
        rows = await self.store.select("profiles", {"id": entity_id}, limit=1)
        if rows and self.viewed is not None and self.viewed.id == entity_id:
            self.viewed = parse_profile(rows[0])
