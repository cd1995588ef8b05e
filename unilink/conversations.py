"""Conversation identity for two-party message threads."""
from typing import Union

from unilink.errors import InputValidationError
from unilink.models import Connection

SEPARATOR = "_"


def conversation_key(user_a: str, user_b: str) -> str:
    """
    Stable key shared by both participants of a thread.

    Args:
        user_a: One participant id
        user_b: The other participant id

    Returns:
        str: The two ids sorted lexicographically and joined with ``_``
    """
    if not user_a or not user_b:
        raise InputValidationError("Both participants are required")
    if user_a == user_b:
        raise InputValidationError("Cannot open a conversation with yourself")
    return SEPARATOR.join(sorted((str(user_a), str(user_b))))


def other_party(connection: Union[Connection, dict], me: str) -> str:
    """The counterpart of ``me`` in a connection, whichever side initiated it."""
    if isinstance(connection, dict):
        requester, recipient = connection["requester_id"], connection["recipient_id"]
    else:
        requester, recipient = connection.requester_id, connection.recipient_id
    return recipient if requester == me else requester
