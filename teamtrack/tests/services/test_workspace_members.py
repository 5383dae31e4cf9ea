import pytest

from teamtrack.core.exceptions import (
    AccountDeactivated,
    LastOwnerViolation,
    MemberValidationError,
    NotAuthorized,
)
from teamtrack.schemas.member import MemberCreate, MemberProfileUpdate, Role
from teamtrack.store.base import MEMBERS

TEST_PASSWORD = "testpassword"


def switch_to(coordinator, run, email: str):
    run(coordinator.logout())
    return run(coordinator.login(email, TEST_PASSWORD))


# --- bootstrap ---

def test_first_login_creates_owner_profile(owner, coordinator, store, run):
    assert owner.role == Role.OWNER
    assert owner.name == "Olivia Owner"
    assert owner.email == "owner@example.com"
    assert owner.avatar_url == f"https://avatars.example.com/{owner.id}.png"
    assert run(store.get(MEMBERS, owner.id))["role"] == "Owner"
    assert coordinator.active_scopes == ["members", "tasks", "teams"]


def test_later_first_login_creates_member_profile(owner, coordinator, make_identity, run):
    make_identity("late@example.com")
    member = switch_to(coordinator, run, "late@example.com")
    assert member.role == Role.MEMBER
    assert member.name == "late"


def test_login_promotes_when_no_active_owner_remains(owner, mark, coordinator, store, run):
    # workspace lost its last Owner outside of the coordinator
    run(store.update(MEMBERS, owner.id, {"role": "Viewer"}))
    member = switch_to(coordinator, run, "mark@example.com")
    assert member.role == Role.OWNER

    # the promotion is idempotent
    again = switch_to(coordinator, run, "mark@example.com")
    assert again.role == Role.OWNER
    assert sum(1 for m in coordinator.members.values() if m.role == Role.OWNER) == 1


def test_deactivated_account_cannot_log_in(owner, mark, coordinator, identity, run):
    run(coordinator.remove_member(mark))
    run(coordinator.logout())
    with pytest.raises(AccountDeactivated):
        run(coordinator.login("mark@example.com", TEST_PASSWORD))
    assert identity.current_identity is None
    assert coordinator.current_member is None
    assert coordinator.active_scopes == []


def test_logout_tears_down_everything(owner, coordinator, run):
    run(coordinator.logout())
    assert coordinator.active_scopes == []
    assert coordinator.members == {}
    assert coordinator.current_member is None


# --- add_member ---

def test_add_member_keeps_owner_signed_in(owner, mark, coordinator, identity):
    assert identity.current_identity == owner.id
    assert coordinator.current_member_id == owner.id
    added = coordinator.members[mark]
    assert added.role == Role.MEMBER
    assert added.name == "Mark Member"
    assert [m.id for m in coordinator.active_members] == [mark, owner.id]


def test_added_member_can_log_in(mark, member_client):
    assert member_client.current_member.id == mark
    assert member_client.current_member.role == Role.MEMBER


def test_add_member_rejects_duplicate_email(owner, mark, coordinator, run):
    with pytest.raises(MemberValidationError):
        run(coordinator.add_member(MemberCreate(name="Copy", email="MARK@example.com", password=TEST_PASSWORD)))


def test_only_owner_adds_members(member_client, run):
    with pytest.raises(NotAuthorized):
        run(member_client.add_member(MemberCreate(name="Nina", email="nina@example.com", password=TEST_PASSWORD)))


# --- roles ---

def test_sole_owner_cannot_be_demoted(owner, mark, coordinator, store, run):
    with pytest.raises(LastOwnerViolation):
        run(coordinator.change_member_role(owner.id, Role.MEMBER))
    assert run(store.get(MEMBERS, owner.id))["role"] == "Owner"


def test_owner_can_step_down_after_promoting_another(owner, mark, coordinator, run):
    run(coordinator.change_member_role(mark, Role.OWNER))
    run(coordinator.change_member_role(owner.id, Role.VIEWER))
    assert coordinator.members[mark].role == Role.OWNER
    assert coordinator.members[owner.id].role == Role.VIEWER


def test_member_cannot_change_roles(owner, member_client, run):
    with pytest.raises(NotAuthorized):
        run(member_client.change_member_role(owner.id, Role.MEMBER))


def test_removed_member_role_cannot_change(owner, mark, coordinator, run):
    run(coordinator.remove_member(mark))
    with pytest.raises(MemberValidationError):
        run(coordinator.change_member_role(mark, Role.OWNER))


# --- remove / restore ---

def test_owner_cannot_remove_self(owner, coordinator, run):
    with pytest.raises(MemberValidationError, match="yourself"):
        run(coordinator.remove_member(owner.id))


def test_owner_can_remove_another_owner(owner, mark, coordinator, store, run):
    run(coordinator.change_member_role(mark, Role.OWNER))
    run(coordinator.remove_member(mark))
    assert run(store.get(MEMBERS, mark))["is_deleted"] is True
    assert [m.id for m in coordinator.active_members] == [owner.id]


def test_remove_and_restore_member(owner, mark, coordinator, run):
    run(coordinator.remove_member(mark))
    removed = coordinator.members[mark]
    assert removed.is_deleted
    assert mark not in [m.id for m in coordinator.active_members]

    with pytest.raises(MemberValidationError):
        run(coordinator.remove_member(mark))

    run(coordinator.restore_member(mark))
    assert coordinator.members[mark].is_active
    switch_to(coordinator, run, "mark@example.com")
    assert coordinator.current_member.id == mark


def test_restore_refuses_taken_email(owner, mark, coordinator, run):
    run(coordinator.remove_member(mark))
    run(coordinator.update_member_profile(owner.id, MemberProfileUpdate(email="mark@example.com")))
    with pytest.raises(MemberValidationError):
        run(coordinator.restore_member(mark))


# --- profiles ---

def test_member_updates_own_profile(mark, member_client, run):
    run(member_client.update_member_profile(mark, MemberProfileUpdate(name="Marcus")))
    assert member_client.current_member.name == "Marcus"


def test_member_cannot_edit_other_profiles(owner, member_client, run):
    with pytest.raises(NotAuthorized):
        run(member_client.update_member_profile(owner.id, MemberProfileUpdate(name="Hacked")))


def test_profile_email_must_stay_unique(owner, mark, coordinator, run):
    with pytest.raises(MemberValidationError):
        run(coordinator.update_member_profile(mark, MemberProfileUpdate(email="owner@example.com")))
    assert coordinator.members[mark].email == "mark@example.com"


def test_removed_member_client_loses_rights(owner, mark, member_client, coordinator, run):
    run(coordinator.remove_member(mark))
    # the second client mirrors the removal through its subscription
    assert member_client.current_member.is_deleted
    with pytest.raises(AccountDeactivated):
        run(member_client.update_member_profile(mark, MemberProfileUpdate(name="Still here")))
