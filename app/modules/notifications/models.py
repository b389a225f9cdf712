# Supabase table: notifications
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

notifications:
- id: uuid (primary key)
- sender_id: uuid (foreign key to users.id, not null)
- recipient_id: uuid (foreign key to users.id, not null)
- title: text (not null)
- description: text (not null) - "<text>\\n---\\n<metadata lines>"
- is_read: boolean (default: false)
- created_at: timestamp (default: now())

There is no dedicated event key column: send_once() appends an
EVENT_KEY:<key> line to the metadata block and looks it up before inserting.
"""

METADATA_SEPARATOR = "\n---\n"
EVENT_KEY_PREFIX = "EVENT_KEY:"
