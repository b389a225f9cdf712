import pytest

from app.core.errors import (
    CapacityExceededError, ConflictError, ForbiddenError, InvalidRequestError,
    NotFoundError, TransientStoreError,
)
from app.modules.groups.merge_service import MergeService
from tests.helpers import add_group, add_invite, active_groups, active_members


@pytest.fixture
def service(db, users):
    return MergeService(db)


def assert_single_active_group(db, user_ids):
    for uid in user_ids:
        assert len(active_groups(db, uid)) <= 1, f"{uid} is ACTIVE in more than one group"


def test_send_invite_creates_solo_group_and_notifies(db, service):
    invite = service.send_invite("u1", "u2")

    assert invite.status == "PENDING"
    assert active_members(db, invite.group_id) == ["u1"]
    assert db.rows("profile_groups", id=invite.group_id)[0]["status"] == "PENDING"

    notes = db.rows("notifications", recipient_id="u2")
    assert len(notes) == 1
    assert f"EVENT_KEY:profile_merge:{invite.id}:invited" in notes[0]["description"]


def test_send_invite_rejects_self_and_duplicates(db, service):
    with pytest.raises(InvalidRequestError):
        service.send_invite("u1", "u1")

    service.send_invite("u1", "u2")
    with pytest.raises(ConflictError):
        service.send_invite("u1", "u2")
    assert len(db.rows("profile_group_invites", invitee_id="u2")) == 1


def test_send_invite_to_unknown_user(db, service):
    with pytest.raises(NotFoundError):
        service.send_invite("u1", "ghost")
    assert db.rows("profile_groups") == []


def test_send_invite_rejects_groupmate(db, service):
    add_group(db, "g1", ["u1", "u2"])
    with pytest.raises(ConflictError):
        service.send_invite("u1", "u2")


def test_send_invite_checks_capacity(db, service):
    add_group(db, "g1", ["u1", "u3", "u5"])
    add_group(db, "g2", ["u2", "u4"])
    with pytest.raises(CapacityExceededError):
        service.send_invite("u1", "u2")
    assert db.rows("profile_group_invites") == []


def test_accept_both_solo_creates_shared_profile(db, service):
    invite = service.send_invite("u1", "u2")
    solo_group_id = invite.group_id

    result = service.accept_invite(invite.id, "u2")

    assert result.status == "ACCEPTED"
    assert result.scenario == "created"
    assert sorted(result.member_ids) == ["u1", "u2"]
    assert active_members(db, result.group_id) == ["u1", "u2"]
    assert active_groups(db, "u1") == [result.group_id]
    assert_single_active_group(db, ["u1", "u2"])

    # Solo scaffolding is gone, the accepted invite survives in the new group
    assert db.rows("profile_groups", id=solo_group_id) == []
    stored = db.rows("profile_group_invites", id=invite.id)[0]
    assert stored["status"] == "ACCEPTED"
    assert stored["group_id"] == result.group_id

    approved = db.rows("notifications", recipient_id="u1")
    assert any(f"profile_merge:{invite.id}:approved" in n["description"] for n in approved)


def test_accept_joins_inviter_group(db, service):
    add_group(db, "g1", ["u1", "u3"])
    add_invite(db, "inv1", "g1", "u1", "u2")

    result = service.accept_invite("inv1", "u2")

    assert result.scenario == "joined_inviter_group"
    assert result.group_id == "g1"
    assert active_members(db, "g1") == ["u1", "u2", "u3"]
    assert_single_active_group(db, ["u1", "u2", "u3"])


def test_accept_joins_approver_group(db, service):
    add_group(db, "g2", ["u2", "u4"])
    add_invite(db, "inv1", "g-solo", "u1", "u2")
    add_group(db, "g-solo", ["u1"], status="PENDING")

    result = service.accept_invite("inv1", "u2")

    assert result.scenario == "joined_approver_group"
    assert active_members(db, "g2") == ["u1", "u2", "u4"]
    assert db.rows("profile_groups", id="g-solo") == []
    assert db.rows("profile_group_invites", id="inv1")[0]["group_id"] == "g2"
    assert_single_active_group(db, ["u1", "u2", "u4"])


def test_accept_merges_two_groups_into_new_one(db, service):
    add_group(db, "g1", ["u1", "u3"])
    add_group(db, "g2", ["u2", "u4"])
    add_invite(db, "inv1", "g1", "u1", "u2")

    result = service.accept_invite("inv1", "u2")

    assert result.scenario == "merged"
    assert result.group_id not in ("g1", "g2")
    assert active_members(db, result.group_id) == ["u1", "u2", "u3", "u4"]
    assert db.rows("profile_groups", id="g1") == []
    assert db.rows("profile_groups", id="g2") == []
    assert_single_active_group(db, ["u1", "u2", "u3", "u4"])


def test_accept_over_capacity_leaves_no_partial_state(db, service):
    add_group(db, "g1", ["u1", "u3", "u5"])
    add_group(db, "g2", ["u2", "u4"])
    add_invite(db, "inv1", "g1", "u1", "u2")

    with pytest.raises(CapacityExceededError):
        service.accept_invite("inv1", "u2")

    assert db.rows("profile_group_invites", id="inv1")[0]["status"] == "PENDING"
    assert active_members(db, "g1") == ["u1", "u3", "u5"]
    assert active_members(db, "g2") == ["u2", "u4"]


def test_accept_twice_is_a_noop(db, service):
    invite = service.send_invite("u1", "u2")
    first = service.accept_invite(invite.id, "u2")
    groups_before = len(db.rows("profile_groups"))

    second = service.accept_invite(invite.id, "u2")

    assert second.scenario == "none"
    assert second.group_id == first.group_id
    assert len(db.rows("profile_groups")) == groups_before
    assert len(db.rows("notifications", recipient_id="u1")) == 1


def test_accept_retry_after_store_failure_converges(db, service):
    invite = service.send_invite("u1", "u2")
    db.fail("profile_group_invites", "update", times=1)

    with pytest.raises(TransientStoreError):
        service.accept_invite(invite.id, "u2")

    result = service.accept_invite(invite.id, "u2")

    assert active_members(db, result.group_id) == ["u1", "u2"]
    assert db.rows("profile_group_invites", id=invite.id)[0]["status"] == "ACCEPTED"
    assert db.rows("profile_groups", id=invite.group_id) == []
    assert_single_active_group(db, ["u1", "u2"])


def test_accept_retry_finishes_merge_interrupted_after_invite_accepted(db, service):
    add_group(db, "g1", ["u1", "u3"])
    add_group(db, "g2", ["u2", "u4"])
    add_invite(db, "inv1", "g1", "u1", "u2")
    # Memberships of the new group are written, leaving the source groups fails
    db.fail("profile_group_members", "update", times=1)

    with pytest.raises(TransientStoreError):
        service.accept_invite("inv1", "u2")
    assert db.rows("profile_group_invites", id="inv1")[0]["status"] == "ACCEPTED"

    result = service.accept_invite("inv1", "u2")

    assert result.scenario == "resumed"
    assert active_members(db, result.group_id) == ["u1", "u2", "u3", "u4"]
    assert_single_active_group(db, ["u1", "u2", "u3", "u4"])
    assert db.rows("profile_groups", id="g1") == []
    assert db.rows("profile_groups", id="g2") == []
    assert db.rows("profile_group_invites", id="inv1")[0]["group_id"] == result.group_id

    again = service.accept_invite("inv1", "u2")
    assert again.scenario == "none"
    assert again.group_id == result.group_id


def test_accept_retry_creates_group_when_membership_insert_failed(db, service):
    invite = service.send_invite("u1", "u2")
    db.fail("profile_group_members", "upsert", times=1)

    with pytest.raises(TransientStoreError):
        service.accept_invite(invite.id, "u2")
    assert active_groups(db, "u1") == []
    assert active_groups(db, "u2") == []

    result = service.accept_invite(invite.id, "u2")

    assert result.scenario == "created"
    assert active_members(db, result.group_id) == ["u1", "u2"]
    assert_single_active_group(db, ["u1", "u2"])
    stored = db.rows("profile_group_invites", id=invite.id)[0]
    assert stored["status"] == "ACCEPTED"
    assert stored["group_id"] == result.group_id
    assert db.rows("profile_groups", id=invite.group_id) == []
    assert len(db.rows("notifications", recipient_id="u1")) == 1


def test_accept_only_by_invitee(db, service):
    invite = service.send_invite("u1", "u2")
    with pytest.raises(ForbiddenError):
        service.accept_invite(invite.id, "u3")
    with pytest.raises(NotFoundError):
        service.accept_invite("missing", "u2")


def test_decline_deletes_solo_group(db, service):
    invite = service.send_invite("u1", "u2")

    result = service.reject_invite(invite.id, "u2")

    assert result.status == "DECLINED"
    assert active_groups(db, "u1") == []
    # The scaffolding group goes away together with its invites
    assert db.rows("profile_groups", id=invite.group_id) == []
    assert db.rows("profile_group_invites", id=invite.id) == []
    with pytest.raises(NotFoundError):
        service.accept_invite(invite.id, "u2")


def test_decline_keeps_non_solo_group(db, service):
    add_group(db, "g1", ["u1", "u3"])
    add_invite(db, "inv1", "g1", "u1", "u2")

    service.reject_invite("inv1", "u2")
    service.reject_invite("inv1", "u2")

    assert db.rows("profile_group_invites", id="inv1")[0]["status"] == "DECLINED"
    assert active_members(db, "g1") == ["u1", "u3"]
    with pytest.raises(ConflictError):
        service.accept_invite("inv1", "u2")


def test_decline_keeps_solo_group_with_other_pending_invites(db, service):
    first = service.send_invite("u1", "u2")
    second = service.send_invite("u1", "u3")
    assert first.group_id == second.group_id

    service.reject_invite(first.id, "u2")

    assert active_groups(db, "u1") == [first.group_id]
    result = service.accept_invite(second.id, "u3")
    assert active_members(db, result.group_id) == ["u1", "u3"]


def test_decline_after_accept_conflicts(db, service):
    invite = service.send_invite("u1", "u2")
    service.accept_invite(invite.id, "u2")
    with pytest.raises(ConflictError):
        service.reject_invite(invite.id, "u2")


def test_accept_syncs_apartment_partners(db, service):
    db.seed("apartments", {"id": "apt1", "owner_id": "u1", "partner_ids": ["u3"], "roommate_capacity": 5})
    invite = service.send_invite("u1", "u2")

    service.accept_invite(invite.id, "u2")

    # The owner is never listed as a partner
    assert db.rows("apartments", id="apt1")[0]["partner_ids"] == ["u3", "u2"]


def test_notification_failure_does_not_fail_accept(db, service):
    invite = service.send_invite("u1", "u2")
    db.fail("notifications", "insert")

    result = service.accept_invite(invite.id, "u2")

    assert result.status == "ACCEPTED"
    assert active_members(db, result.group_id) == ["u1", "u2"]
