import pytest

from unilink.screens.notifications import NotificationsScreen

from tests.fakes import make_context


@pytest.fixture
def inbox(store, ada):
    older = store.seed("notifications", user_id=ada["id"], type="like", content="liked your post",
                       is_read=False, actor_data={"name": "Tunde Bakare", "avatar_url": ""})
    newer = store.seed("notifications", user_id=ada["id"], type="connect", content="sent you a connection request",
                       is_read=False, actor_data={"name": "Chioma Eze", "avatar_url": ""})
    store.seed("notifications", user_id="user-someone", type="like", content="not for Ada")
    return older, newer


async def open_inbox(store, hub, notices, user_id):
    screen = NotificationsScreen(store, hub, make_context(store, user_id), notices)
    await screen.enter()
    return screen


async def test_loads_own_notifications_newest_first(store, hub, notices, ada, inbox):
    older, newer = inbox
    screen = await open_inbox(store, hub, notices, ada["id"])

    assert [n.id for n in screen.notifications] == [newer["id"], older["id"]]
    assert screen.unread_count == 2
    assert screen.notifications.get(newer["id"]).actor_data.name == "Chioma Eze"
    assert [n.id for n in screen.connect_requests()] == [newer["id"]]


async def test_live_inserts_are_scoped_to_recipient(store, hub, notices, ada, tunde):
    screen = await open_inbox(store, hub, notices, ada["id"])

    await store.insert("notifications", {"user_id": tunde["id"], "type": "like", "content": "for Tunde"})
    await store.insert("notifications", {"user_id": ada["id"], "type": "comment", "content": "for Ada"})

    assert [n.content for n in screen.notifications] == ["for Ada"]
    assert screen.unread_count == 1


async def test_mark_as_read(store, hub, notices, ada, inbox):
    older, _ = inbox
    screen = await open_inbox(store, hub, notices, ada["id"])

    result = await screen.mark_as_read(older["id"])

    assert result.ok
    assert screen.notifications.get(older["id"]).is_read
    assert store.rows("notifications", id=older["id"])[0]["is_read"] is True
    assert screen.unread_count == 1


async def test_failed_mark_as_read_reverts(store, hub, notices, ada, inbox):
    older, _ = inbox
    screen = await open_inbox(store, hub, notices, ada["id"])
    store.fail("update", "notifications")

    result = await screen.mark_as_read(older["id"])

    assert not result.ok
    assert not screen.notifications.get(older["id"]).is_read
    assert len(notices.items) == 1


async def test_mark_all_read(store, hub, notices, ada, inbox):
    screen = await open_inbox(store, hub, notices, ada["id"])

    results = await screen.mark_all_read()

    assert len(results) == 2
    assert screen.unread_count == 0
    assert all(row["is_read"] for row in store.rows("notifications", user_id=ada["id"]))
    assert store.rows("notifications", user_id="user-someone")[0].get("is_read") is None
