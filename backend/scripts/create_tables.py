import os
import sys

import psycopg

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)) + '/..')

from settings import settings

DDL = '''
CREATE TABLE IF NOT EXISTS events (
    tx_id TEXT PRIMARY KEY,
    device TEXT NOT NULL,
    action TEXT NOT NULL,
    source TEXT,
    client_ts BIGINT,
    ts TIMESTAMP WITH TIME ZONE NOT NULL,
    requested_state TEXT,
    confirmed_state TEXT
);

CREATE INDEX IF NOT EXISTS idx_events_device_ts ON events (device, ts DESC);

CREATE TABLE IF NOT EXISTS latest_state (
    device TEXT PRIMARY KEY,
    state TEXT NOT NULL,
    updated_at TIMESTAMP WITH TIME ZONE NOT NULL
);
'''

print('Connecting to', settings.db_url)
with psycopg.connect(settings.db_url, connect_timeout=5) as conn:
    with conn.cursor() as cur:
        cur.execute(DDL)
    conn.commit()
print('DDL applied')
