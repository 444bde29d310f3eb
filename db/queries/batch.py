"""
Batch SQL queries for executemany operations.

These use positional parameters ($1, $2, etc.) required by asyncpg executemany.
Kept separate from aiosql .sql files which use named parameters.
"""

# Merge a partial document into a clinic
# Params: (slug, fields_json)
BATCH_UPDATE_CLINIC_DOCS = """
UPDATE clinics
SET doc = doc || CAST($2 AS jsonb),
    updated_at = NOW()
WHERE slug = $1
"""
