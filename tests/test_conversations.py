import pytest

from unilink.conversations import conversation_key, other_party
from unilink.errors import InputValidationError
from unilink.models import Connection


def test_conversation_key_is_symmetric():
    assert conversation_key("user-b", "user-a") == conversation_key("user-a", "user-b")


def test_conversation_key_sorts_and_joins_with_underscore():
    assert conversation_key("zed", "amy") == "amy_zed"


def test_conversation_with_self_is_rejected():
    with pytest.raises(InputValidationError):
        conversation_key("user-a", "user-a")


@pytest.mark.parametrize("a, b", [("", "user-b"), ("user-a", None)])
def test_conversation_needs_both_participants(a, b):
    with pytest.raises(InputValidationError):
        conversation_key(a, b)


def test_other_party_from_either_side():
    connection = Connection(id="c1", requester_id="amy", recipient_id="zed")
    assert other_party(connection, "amy") == "zed"
    assert other_party(connection, "zed") == "amy"
    assert other_party({"requester_id": "amy", "recipient_id": "zed"}, "zed") == "amy"
