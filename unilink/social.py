"""Cross-user side effects shared by several screens: notifications and connections."""
import logging
from typing import Optional

from unilink.errors import ConflictError, InputValidationError, UniLinkError
from unilink.models import (ActorSnapshot, Connection, ConnectionStatus, Notification,
                            NotificationType, parse)

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = ActorSnapshot(
    name="UniLink Admin",
    avatar_url="https://ui-avatars.com/api/?name=Admin&background=10b981&color=fff",
)


async def send_notification(store, recipient_id: str, actor_id: Optional[str], type: NotificationType,
                            content: str, actor: ActorSnapshot,
                            related_id: Optional[str] = None) -> Optional[Notification]:
    """
    Notify ``recipient_id`` about something ``actor_id`` did.

    Nothing is written when actor and recipient are the same user. A failed
    write is logged and does not affect the action that triggered it.

    Returns:
        Notification: the stored notification, or None if none was created
    """
    if actor_id is not None and actor_id == recipient_id:
        logger.debug(f"Skipping self-notification ({type}) for {recipient_id}")
        return None

    record = {
        "user_id": recipient_id,
        "type": NotificationType(type).value,
        "content": content,
        "is_read": False,
        "actor_data": actor.model_dump(),
    }
    if related_id is not None:
        record["related_id"] = related_id

    try:
        stored = await store.insert("notifications", record)
    except UniLinkError as e:
        logger.warning(f"Notification to {recipient_id} not delivered: {e}")
        return None
    return parse(Notification, stored)


async def find_connection(store, user_a: str, user_b: str) -> Optional[Connection]:
    """The single connection between two users, whoever requested it."""
    rows = await store.select(
        "connections",
        any_of=[
            {"requester_id": user_a, "recipient_id": user_b},
            {"requester_id": user_b, "recipient_id": user_a},
        ],
        limit=1,
    )
    return parse(Connection, rows[0]) if rows else None


async def request_connection(store, requester_id: str, recipient_id: str, actor: ActorSnapshot) -> Connection:
    """
    Create a pending connection and notify the recipient.

    Raises:
        InputValidationError: requester and recipient are the same user
        ConflictError: a connection already exists for this pair, in either direction
    """
    if requester_id == recipient_id:
        raise InputValidationError("You cannot connect with yourself")

    if await find_connection(store, requester_id, recipient_id) is not None:
        raise ConflictError("A connection with this user already exists")

    stored = await store.insert("connections", {
        "requester_id": requester_id,
        "recipient_id": recipient_id,
        "status": ConnectionStatus.PENDING.value,
    })
    await send_notification(store, recipient_id, requester_id, NotificationType.CONNECT,
                            "sent you a connection request", actor, related_id=requester_id)
    return parse(Connection, stored)


async def accept_connection(store, connection: Connection, me: str, actor: ActorSnapshot) -> Connection:
    """Accept a pending request addressed to ``me`` and let the requester know."""
    if connection.recipient_id != me:
        raise InputValidationError("Only the recipient can accept a connection request")

    rows = await store.update(
        "connections",
        {"status": ConnectionStatus.ACCEPTED.value},
        {"id": connection.id, "recipient_id": me, "status": ConnectionStatus.PENDING.value},
    )
    if not rows:
        raise ConflictError("This request is no longer pending")

    await send_notification(store, connection.requester_id, me, NotificationType.CONNECT,
                            "accepted your connection request", actor, related_id=me)
    return parse(Connection, rows[0])
