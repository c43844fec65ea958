SCHEMA_SQL = r"""
-- Durable local state: one JSON blob per key (settings minus credentials,
-- production entries, delivery entries, unsynced changes).
CREATE TABLE IF NOT EXISTS app_state (
  key TEXT PRIMARY KEY,
  payload TEXT NOT NULL,                 -- JSON
  updated_at TEXT NOT NULL               -- ISO datetime (UTC)
);
"""

# Run once on the shared Postgres (Supabase SQL editor). Column names are the
# snake_case forms of the record fields.
REMOTE_SETUP_SQL = r"""
CREATE TABLE app_settings (
  id INT PRIMARY KEY DEFAULT 1,          -- singleton row
  settings JSONB,
  updated_at TIMESTAMPTZ DEFAULT NOW(),
  CONSTRAINT single_row_check CHECK (id = 1)
);

CREATE TABLE production_entries (
  id BIGINT PRIMARY KEY GENERATED ALWAYS AS IDENTITY,
  taka_number TEXT NOT NULL UNIQUE,
  machine_number TEXT,
  meter TEXT,
  date TEXT,                             -- dd/mm/yyyy as entered
  created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE delivery_entries (
  id TEXT PRIMARY KEY,                   -- app-generated id
  party_name TEXT NOT NULL,
  lot_number TEXT,
  delivery_date TEXT,
  taka_number TEXT NOT NULL,
  meter TEXT,
  machine_number TEXT,
  tp_number INT,
  created_at TIMESTAMPTZ DEFAULT NOW()
);
"""
