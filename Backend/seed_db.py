"""
Database seeding script for the Gotchi pet backend (PostgreSQL).

Populates the database with:
  - 100,000 users with random points and referral codes
  - One pet state per user with random stats
  - 500,000 activity log rows
  - 200,000 game sessions

Usage:
    python seed_db.py
"""

import time

from sqlalchemy import text

from database import engine
from models import Base

USERS = 100_000
ACTIVITIES = 500_000
SESSIONS = 200_000


def seed():
    """Run all seeding steps sequentially."""
    Base.metadata.create_all(bind=engine)

    with engine.connect() as conn:
        # ── Step 0: Clean Slate ──────────────────────────────────
        print("⏳ Cleaning existing data...")
        conn.execute(text(
            "TRUNCATE TABLE users, pet_states, user_activities, game_sessions RESTART IDENTITY CASCADE"
        ))
        conn.commit()

        # ── Step 1: Users ────────────────────────────────────────
        print(f"⏳ Inserting {USERS:,} users …")
        start = time.time()
        conn.execute(text("""
            INSERT INTO users (wallet_address, username, points, referral_code, uid)
            SELECT
                'wallet_' || lpad(n::text, 8, '0'),
                'User_' || n,
                CASE WHEN random() > 0.2 THEN floor(random() * 50000)::int ELSE 0 END,
                upper(lpad(to_hex(n), 8, '0')),
                'user_' || n || '_' || floor(extract(epoch FROM now()) * 1000)::bigint
            FROM generate_series(1, :n) AS n
            ON CONFLICT (wallet_address) DO NOTHING
        """), {"n": USERS})
        conn.commit()
        print(f"   ✓ Users inserted in {time.time() - start:.1f}s")

        # ── Step 2: Pet States ───────────────────────────────────
        print("⏳ Inserting pet states …")
        start = time.time()
        conn.execute(text("""
            INSERT INTO pet_states (
                wallet_address, health, happiness, hunger, cleanliness, energy,
                is_dead, quality_score, last_state_update
            )
            SELECT
                wallet_address,
                floor(random() * 101)::int,
                floor(random() * 101)::int,
                floor(random() * 101)::int,
                floor(random() * 101)::int,
                floor(random() * 101)::int,
                random() < 0.02,
                floor(random() * 10)::int,
                NOW() - INTERVAL '1 minute' * floor(random() * 10000)
            FROM users
        """))
        conn.commit()
        print(f"   ✓ Pet states inserted in {time.time() - start:.1f}s")

        # ── Step 3: Activity Log ─────────────────────────────────
        print(f"⏳ Inserting {ACTIVITIES:,} activities …")
        start = time.time()
        conn.execute(text("""
            INSERT INTO user_activities (wallet_address, activity_id, activity_type, name, points, timestamp)
            SELECT
                'wallet_' || lpad((floor(random() * :users) + 1)::int::text, 8, '0'),
                md5(n::text || random()::text),
                action,
                initcap(action),
                floor(random() * 150 + 20)::int,
                NOW() - INTERVAL '1 minute' * floor(random() * 100000)
            FROM (
                SELECT n, (ARRAY['feed', 'play', 'clean'])[floor(random() * 3 + 1)::int] AS action
                FROM generate_series(1, :n) AS n
            ) picks
        """), {"n": ACTIVITIES, "users": USERS})
        conn.commit()
        print(f"   ✓ Activities inserted in {time.time() - start:.1f}s")

        # ── Step 4: Game Sessions ────────────────────────────────
        print(f"⏳ Inserting {SESSIONS:,} game sessions …")
        start = time.time()
        conn.execute(text("""
            INSERT INTO game_sessions (wallet_address, session_id, start_time, end_time, score, completed)
            SELECT
                'wallet_' || lpad((floor(random() * :users) + 1)::int::text, 8, '0'),
                md5('session' || n::text),
                started,
                started + INTERVAL '1 second' * floor(random() * 600),
                floor(random() * 10000)::int,
                random() > 0.1
            FROM (
                SELECT n, NOW() - INTERVAL '1 day' * floor(random() * 365) AS started
                FROM generate_series(1, :n) AS n
            ) starts
        """), {"n": SESSIONS, "users": USERS})
        conn.commit()
        print(f"   ✓ Game sessions inserted in {time.time() - start:.1f}s")

    print("\n🎉 Database seeding complete!")


if __name__ == "__main__":
    seed()
