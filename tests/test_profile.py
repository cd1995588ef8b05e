import pytest

from unilink.errors import InputValidationError
from unilink.screens.profile import ProfileScreen, is_institutional_email, split_list

from tests.fakes import make_context


async def open_profile(store, hub, notices, viewer_id, target_id=None, is_admin=False):
    screen = ProfileScreen(store, hub, make_context(store, viewer_id, is_admin=is_admin), notices,
                           target_id=target_id)
    await screen.enter()
    return screen


async def test_own_profile_form_data(store, hub, notices, ada):
    screen = await open_profile(store, hub, notices, ada["id"])

    assert screen.is_own
    form = screen.form_data()
    assert form["courses"] == "ECO 201"
    assert form["university"] == "University of Lagos"
    assert "industry" not in form


async def test_connection_status_found_from_either_side(store, hub, notices, ada, tunde):
    store.seed("connections", requester_id=tunde["id"], recipient_id=ada["id"], status="accepted")

    screen = await open_profile(store, hub, notices, ada["id"], target_id=tunde["id"])

    assert not screen.is_own
    assert screen.connection_status == "accepted"


async def test_save_student_profile_parses_lists(store, hub, notices, ada):
    screen = await open_profile(store, hub, notices, ada["id"])

    result = await screen.save({"name": "Ada Obi", "bio": "Econ nerd", "courses": "ECO 201, ECO 305, ",
                                "skills": "Excel, SQL", "department": "Economics", "level": "300L"})

    assert result.ok
    row = store.rows("profiles", id=ada["id"])[0]
    assert row["courses"] == ["ECO 201", "ECO 305"]
    assert row["skills"] == ["Excel", "SQL"]
    assert row["level"] == "300L"
    assert screen.viewed.bio == "Econ nerd"
    assert screen.context.profile.skills == ["Excel", "SQL"]


async def test_save_organization_profile(store, hub, notices, paystack):
    screen = await open_profile(store, hub, notices, paystack["id"])

    await screen.save({"name": "Paystack", "industry": "Payments", "skills": "Go, Python"})

    row = store.rows("profiles", id=paystack["id"])[0]
    assert row["industry"] == "Payments"
    assert "courses" not in row


async def test_failed_save_reverts(store, hub, notices, ada):
    screen = await open_profile(store, hub, notices, ada["id"])
    store.fail("update", "profiles")

    result = await screen.save({"name": "Someone Else"})

    assert not result.ok
    assert screen.viewed.name == "Ada Obi"


async def test_cannot_edit_other_profiles_or_blank_name(store, hub, notices, ada, tunde):
    other = await open_profile(store, hub, notices, ada["id"], target_id=tunde["id"])
    with pytest.raises(InputValidationError):
        await other.save({"name": "Hacked"})

    own = await open_profile(store, hub, notices, ada["id"])
    with pytest.raises(InputValidationError):
        await own.save({"name": "  "})


async def test_admin_verification_sends_system_notification(store, hub, notices, admin, tunde):
    screen = await open_profile(store, hub, notices, admin["id"], target_id=tunde["id"], is_admin=True)

    result = await screen.toggle_verification()

    assert result.ok
    assert screen.viewed.is_verified
    assert store.rows("profiles", id=tunde["id"])[0]["is_verified"] is True
    [notification] = store.rows("notifications")
    assert notification["type"] == "system"
    assert notification["user_id"] == tunde["id"]
    assert notification["actor_data"]["name"] == "UniLink Admin"


async def test_revoking_verification_sends_nothing(store, hub, notices, admin, tunde):
    next(row for row in store.tables["profiles"] if row["id"] == tunde["id"])["is_verified"] = True
    screen = await open_profile(store, hub, notices, admin["id"], target_id=tunde["id"], is_admin=True)

    await screen.toggle_verification()

    assert not screen.viewed.is_verified
    assert store.rows("notifications") == []


async def test_failed_verification_reverts(store, hub, notices, admin, tunde):
    screen = await open_profile(store, hub, notices, admin["id"], target_id=tunde["id"], is_admin=True)
    store.fail("update", "profiles")

    result = await screen.toggle_verification()

    assert not result.ok
    assert not screen.viewed.is_verified


async def test_only_admins_verify(store, hub, notices, ada, tunde):
    screen = await open_profile(store, hub, notices, ada["id"], target_id=tunde["id"])
    with pytest.raises(InputValidationError):
        await screen.toggle_verification()


async def test_connect_from_profile(store, hub, notices, ada, tunde):
    screen = await open_profile(store, hub, notices, ada["id"], target_id=tunde["id"])

    result = await screen.connect()

    assert result.ok
    assert screen.connection_status == "pending"
    assert store.rows("notifications")[0]["type"] == "connect"


def test_institutional_email():
    assert is_institutional_email("ada@unilag.edu.ng")
    assert is_institutional_email(" ADA@UNN.EDU.NG ")
    assert not is_institutional_email("ada@gmail.com")
    assert not is_institutional_email("edu.ng")


def test_split_list():
    assert split_list(" a, b ,, c ") == ["a", "b", "c"]
    assert split_list(["x", " "]) == ["x"]
