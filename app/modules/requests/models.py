# Supabase tables: apartments_request, matches (plus profile_group_invites, see groups/models.py)
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py and approval_service.py

"""
Expected Supabase table structure:

apartments_request:
- id: uuid (primary key)
- sender_id: uuid (foreign key to users.id, not null)
- recipient_id: uuid (foreign key to users.id, not null)
- apartment_id: uuid (foreign key to apartments.id, not null)
- type: text (nullable, default: 'JOIN_APT') - values: JOIN_APT, INVITE_APT
- status: text (not null, default: 'PENDING') - values: PENDING, APPROVED, REJECTED, CANCELLED, NOT_RELEVANT
- metadata: jsonb (nullable) - INVITE_APT rows sent to every member of a shared profile carry {"group_id": <uuid>}
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

matches:
- id: uuid (primary key)
- sender_id: uuid (foreign key to users.id, not null)
- receiver_id: uuid (nullable) - set for a match addressed to one user
- receiver_group_id: uuid (nullable) - set for a match addressed to a shared profile
- status: text (free text, see normalizer.py)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""

REQUEST_TYPE_JOIN = "JOIN_APT"
REQUEST_TYPE_INVITE = "INVITE_APT"
