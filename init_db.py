"""Initialize the Supabase schema for TCF Prep (catalog + per-user documents)."""
import os

from dotenv import load_dotenv

from src.database import DOCUMENTS_TABLE

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")

# SQL schema
SCHEMA_SQL = f"""
-- Question catalog (one row per question, full source record kept as JSON)
CREATE TABLE IF NOT EXISTS questions (
    id TEXT PRIMARY KEY,
    subject VARCHAR(20) NOT NULL,
    weight_points INT NOT NULL,
    record JSONB NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Per-user documents: {{subject}}/answers, {{subject}}/events, {{subject}}/history
CREATE TABLE IF NOT EXISTS {DOCUMENTS_TABLE} (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id TEXT NOT NULL,
    doc_key TEXT NOT NULL,
    data JSONB NOT NULL DEFAULT '{{}}'::jsonb,
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    UNIQUE(user_id, doc_key)
);

-- Create indexes for performance
CREATE INDEX IF NOT EXISTS idx_questions_subject ON questions(subject);
CREATE INDEX IF NOT EXISTS idx_questions_weight ON questions(subject, weight_points);
CREATE INDEX IF NOT EXISTS idx_{DOCUMENTS_TABLE}_user_id ON {DOCUMENTS_TABLE}(user_id);
"""


def check_tables(client) -> bool:
    """Probe each table with a one-row select. Returns True when all exist."""
    ok = True
    for table in ("questions", DOCUMENTS_TABLE):
        try:
            client.table(table).select("*").limit(1).execute()
            print(f"  ✓ {table}")
        except Exception as e:
            print(f"  ✗ {table}: {e}")
            ok = False
    return ok


def main():
    print("Initializing Supabase schema...")
    print(f"URL: {SUPABASE_URL}")
    print("\nNote: Due to Supabase client limitations, run this SQL in Supabase SQL Editor:")
    print(SCHEMA_SQL)

    try:
        from db import get_supabase_uncached

        print("Checking tables...")
        if check_tables(get_supabase_uncached()):
            print("\n✓ Schema looks complete")
        else:
            print("\nGo to: https://app.supabase.com > SQL Editor > New Query")
            print("Paste the SQL above and run it")
    except Exception as e:
        print(f"Error: {e}")
        print("\nYou need to run the schema SQL manually in Supabase SQL Editor")


if __name__ == "__main__":
    main()
