# Supabase tables: profile_groups, profile_group_members, profile_group_invites
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py and merge_service.py

"""
Expected Supabase table structure:

profile_groups:
- id: uuid (primary key)
- created_by: uuid (foreign key to users.id, not null)
- name: text (not null, default: 'שותפים')
- status: text (not null) - values: PENDING, ACTIVE
- created_at: timestamp (default: now())

profile_group_members:
- group_id: uuid (foreign key to profile_groups.id, not null)
- user_id: uuid (foreign key to users.id, not null)
- status: text (not null) - values: ACTIVE, LEFT
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- unique constraint on (group_id, user_id)
- recommended: partial unique index on (user_id) where status = 'ACTIVE'

profile_group_invites:
- id: uuid (primary key)
- group_id: uuid (foreign key to profile_groups.id, not null)
- inviter_id: uuid (foreign key to users.id, not null)
- invitee_id: uuid (foreign key to users.id, not null)
- status: text (not null, default: 'PENDING') - values: PENDING, ACCEPTED, DECLINED
- created_at: timestamp (default: now())
- responded_at: timestamp (nullable)
- recommended: partial unique index on (group_id, invitee_id) where status = 'PENDING'
"""

GROUP_PENDING = "PENDING"
GROUP_ACTIVE = "ACTIVE"

MEMBER_ACTIVE = "ACTIVE"
MEMBER_LEFT = "LEFT"

INVITE_PENDING = "PENDING"
INVITE_ACCEPTED = "ACCEPTED"
INVITE_DECLINED = "DECLINED"
