import pytest

from panchayatdb.app.session import INVALID_CREDENTIALS_MESSAGE, AuthenticationError, authenticate


def test_valid_credentials_produce_a_session(store):
    session = authenticate(store, " admin ", "password")

    assert session.username == "admin"
    assert session.admin_id == "1"
    assert session.display_name == "admin"


@pytest.mark.parametrize(("username", "password"), [("admin", "wrong"), ("root", "password"), ("", "password"), ("admin", "")])
def test_invalid_credentials_are_rejected(store, username, password):
    with pytest.raises(AuthenticationError) as excinfo:
        authenticate(store, username, password)

    assert str(excinfo.value) == INVALID_CREDENTIALS_MESSAGE


def test_store_failure_is_reported_as_login_error(store):
    store.fail("select_matching")

    with pytest.raises(AuthenticationError) as excinfo:
        authenticate(store, "admin", "password")

    assert str(excinfo.value) == "An error occurred during login"
