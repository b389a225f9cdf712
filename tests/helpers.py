from tests.fake_supabase import FakeSupabase


def add_group(db: FakeSupabase, group_id: str, members, status: str = "ACTIVE", left=()):
    """Seed a group with ACTIVE members (and optional LEFT ones)"""
    db.seed("profile_groups", {"id": group_id, "created_by": members[0] if members else None, "name": "שותפים", "status": status})
    db.seed("profile_group_members", *[
        {"id": f"{group_id}-{uid}", "group_id": group_id, "user_id": uid, "status": "ACTIVE"} for uid in members
    ])
    db.seed("profile_group_members", *[
        {"id": f"{group_id}-{uid}", "group_id": group_id, "user_id": uid, "status": "LEFT"} for uid in left
    ])


def add_invite(db: FakeSupabase, invite_id: str, group_id: str, inviter_id: str, invitee_id: str, status: str = "PENDING"):
    db.seed("profile_group_invites", {
        "id": invite_id,
        "group_id": group_id,
        "inviter_id": inviter_id,
        "invitee_id": invitee_id,
        "status": status,
    })


def active_groups(db: FakeSupabase, user_id: str):
    return [r["group_id"] for r in db.rows("profile_group_members", user_id=user_id, status="ACTIVE")]


def active_members(db: FakeSupabase, group_id: str):
    return sorted(r["user_id"] for r in db.rows("profile_group_members", group_id=group_id, status="ACTIVE"))
