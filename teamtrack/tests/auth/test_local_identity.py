import pytest

from teamtrack.auth.local import LocalIdentityProvider
from teamtrack.core import security
from teamtrack.core.exceptions import AuthError
from teamtrack.models.credential import Credential

TEST_PASSWORD = "testpassword"


def test_sign_in_sets_identity_and_token(identity, make_identity, run):
    external_id = make_identity("ann@example.com", "Ann")
    assert identity.current_identity is None

    assert run(identity.sign_in("ann@example.com", TEST_PASSWORD)) == external_id
    assert identity.current_identity == external_id
    payload = security.verify_access_token(identity.current_token, secret_key="testsecretkey")
    assert payload["sub"] == external_id
    assert payload["type"] == "access"


def test_sign_in_email_is_case_insensitive(identity, make_identity, run):
    external_id = make_identity("ann@example.com")
    assert run(identity.sign_in("  ANN@Example.com ", TEST_PASSWORD)) == external_id


@pytest.mark.parametrize("email, password", [
    ("ann@example.com", "wrong-password"),
    ("nobody@example.com", TEST_PASSWORD),
])
def test_sign_in_with_bad_credentials(identity, make_identity, run, email, password):
    make_identity("ann@example.com")
    with pytest.raises(AuthError, match="Invalid email or password"):
        run(identity.sign_in(email, password))
    assert identity.current_identity is None


def test_sign_in_updates_last_login(identity, make_identity, session_factory, run):
    external_id = make_identity("ann@example.com")
    run(identity.sign_in("ann@example.com", TEST_PASSWORD))
    db = session_factory()
    try:
        credential = db.query(Credential).filter(Credential.external_id == external_id).first()
        assert credential.last_login_at is not None
        assert credential.password_hash != TEST_PASSWORD
    finally:
        db.close()


def test_duplicate_email_is_rejected(make_identity):
    make_identity("ann@example.com")
    with pytest.raises(AuthError, match="already exists"):
        make_identity("ANN@example.com")


def test_short_password_is_rejected(make_identity):
    with pytest.raises(AuthError, match="at least 6"):
        make_identity("ann@example.com", password="123")


def test_secondary_session_keeps_primary_session(identity, make_identity, run):
    owner_id = make_identity("owner@example.com")
    run(identity.sign_in("owner@example.com", TEST_PASSWORD))
    changes = []
    identity.on_identity_change(changes.append)

    async def add_colleague():
        async with identity.secondary_session() as session:
            created = await session.create_identity("colleague@example.com", TEST_PASSWORD, display_name="Col")
            assert session.current_identity == created
            return created, session

    colleague_id, session = run(add_colleague())
    assert identity.current_identity == owner_id
    assert session.current_identity is None
    assert changes == []
    assert identity.display_name(colleague_id) == "Col"
    assert identity.email_for(colleague_id) == "colleague@example.com"


def test_identity_listeners_see_sign_in_and_out(identity, make_identity, run):
    external_id = make_identity("ann@example.com")
    changes = []
    remove = identity.on_identity_change(changes.append)

    run(identity.sign_in("ann@example.com", TEST_PASSWORD))
    run(identity.sign_out())
    run(identity.sign_out())
    assert changes == [external_id, None]

    remove()
    run(identity.sign_in("ann@example.com", TEST_PASSWORD))
    assert changes == [external_id, None]


def test_restore_session(identity, make_identity, session_factory, run):
    external_id = make_identity("ann@example.com")
    run(identity.sign_in("ann@example.com", TEST_PASSWORD))
    token = identity.current_token

    other = LocalIdentityProvider(session_factory, secret_key="testsecretkey")
    assert run(other.restore_session(token)) == external_id
    assert other.current_identity == external_id


def test_restore_session_rejects_foreign_token(identity, make_identity, session_factory, run):
    make_identity("ann@example.com")
    run(identity.sign_in("ann@example.com", TEST_PASSWORD))

    other = LocalIdentityProvider(session_factory, secret_key="another-secret")
    with pytest.raises(AuthError):
        run(other.restore_session(identity.current_token))


def test_unknown_identity_lookups(identity):
    assert identity.display_name("missing") is None
    assert identity.email_for("missing") is None
