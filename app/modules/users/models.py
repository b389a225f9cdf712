# Supabase tables: users, auth.users
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py
# Authentication is handled by Supabase Auth (auth.users table)

"""
Expected Supabase table structure:

users:
- id: uuid (primary key, references auth.users.id)
- full_name: text (nullable)
- phone: text (nullable)
- avatar_url: text (nullable)
- role: text (nullable) - e.g. user, owner, admin
- created_at: timestamp (default: now())

Note: identity is owned by Supabase Auth; this service only reads profiles
to label notifications and to render shared-profile members.
"""

DEFAULT_USER_LABEL = "משתמש"
GROUP_LABEL_SEPARATOR = " • "
