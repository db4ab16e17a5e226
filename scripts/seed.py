import json
import os

import psycopg2

DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", "5432"))
DB_NAME = os.getenv("DB_NAME", "ballot")
DB_USER = os.getenv("DB_USER", "ballot")
DB_PASSWORD = os.getenv("DB_PASSWORD", "ballot")

conn = psycopg2.connect(
    host=DB_HOST,
    port=DB_PORT,
    user=DB_USER,
    password=DB_PASSWORD,
    dbname=DB_NAME,
)
conn.autocommit = True

with conn.cursor() as cur:
    cur.execute(
        "INSERT INTO polls (title, options, expires_at) "
        "VALUES (%s, %s::jsonb, now() + interval '7 days') RETURNING id",
        ("Lunch", json.dumps(["Noodles", "Dumplings"])),
    )
    poll_id = cur.fetchone()[0]
    cur.executemany(
        "INSERT INTO coins (symbol, price) VALUES (%s, %s) "
        "ON CONFLICT (symbol) DO NOTHING",
        [("BTCUSDT", "0.0"), ("ETHUSDT", "0.0"), ("SOLUSDT", "0.0")],
    )

conn.close()
print(f"seeded poll {poll_id}")
