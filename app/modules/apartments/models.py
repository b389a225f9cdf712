# Supabase table: apartments
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure (columns used by this service):

apartments:
- id: uuid (primary key)
- owner_id: uuid (foreign key to users.id, not null)
- partner_ids: uuid[] (not null, default: '{}') - current roommates, never contains owner_id
- roommate_capacity: integer (nullable)
- title: text (nullable)
- city: text (nullable)
- created_at: timestamp (default: now())
"""
