import pytest

from unilink.mutations import NoticeBoard

from tests.fakes import FakeRealtime, FakeStore


@pytest.fixture
def hub():
    return FakeRealtime()


@pytest.fixture
def store(hub):
    return FakeStore(hub=hub)


@pytest.fixture
def notices():
    return NoticeBoard()


@pytest.fixture
def ada(store):
    return store.seed("profiles", id="user-ada", name="Ada Obi", account_type="student",
                      university="University of Lagos", department="Economics",
                      email="ada@unilag.edu.ng", skills=["Excel"], courses=["ECO 201"])


@pytest.fixture
def tunde(store):
    return store.seed("profiles", id="user-tunde", name="Tunde Bakare", account_type="student",
                      university="University of Lagos", department="Computer Science",
                      email="tunde@unilag.edu.ng", skills=["Python"])


@pytest.fixture
def chioma(store):
    return store.seed("profiles", id="user-chioma", name="Chioma Eze", account_type="student",
                      university="University of Nigeria", department="Law", email="chioma@unn.edu.ng")


@pytest.fixture
def paystack(store):
    return store.seed("profiles", id="org-paystack", name="Paystack", account_type="organization",
                      industry="Fintech", location="Lagos", website="https://paystack.com")


@pytest.fixture
def admin(store):
    return store.seed("profiles", id="user-admin", name="Admin", account_type="student",
                      email="admin@unilink.ng")
