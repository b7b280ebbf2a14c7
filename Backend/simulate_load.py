"""
Load simulation script for the Gotchi pet API.

Continuously reads pet states, performs care actions, submits points and
fetches the leaderboard for random seeded wallets to simulate real player
behaviour under load.

Usage:
    python simulate_load.py
"""

import random
import time

import requests

API_BASE_URL = "http://localhost:8000"
SEEDED_USERS = 100_000


def random_wallet() -> str:
    return f"wallet_{random.randint(1, SEEDED_USERS):08d}"


def get_pet_state(wallet: str):
    """GET the pet state for a wallet."""
    try:
        resp = requests.get(f"{API_BASE_URL}/pet-state", params={"walletAddress": wallet}, timeout=10)
        data = resp.json()
        health = data.get("data", {}).get("health", "?")
        print(f"  ↓ pet     wallet={wallet}  health={health}  status={resp.status_code}")
        return data
    except requests.RequestException as e:
        print(f"  ✗ pet failed: {e}")
        return {}


def interact(wallet: str):
    """POST a random care action."""
    action = random.choice(["feed", "play", "clean"])
    try:
        resp = requests.post(
            f"{API_BASE_URL}/pet-state/interact",
            json={"walletAddress": wallet, "action": action},
            timeout=10,
        )
        awarded = resp.json().get("pointsAwarded", 0)
        print(f"  ↑ {action:<6}  wallet={wallet}  points={awarded}  status={resp.status_code}")
    except requests.RequestException as e:
        print(f"  ✗ interact failed: {e}")


def submit_points(wallet: str):
    """POST a random point total."""
    points = random.randint(100, 50000)
    try:
        resp = requests.post(
            f"{API_BASE_URL}/leaderboard",
            json={"walletAddress": wallet, "points": points},
            timeout=10,
        )
        print(f"  ↑ points  wallet={wallet}  points={points}  status={resp.status_code}")
    except requests.RequestException as e:
        print(f"  ✗ submit failed: {e}")


def get_leaderboard():
    """GET a random page of the leaderboard."""
    offset = random.choice([0, 0, 0, 10, 20, 50])
    try:
        resp = requests.get(f"{API_BASE_URL}/leaderboard", params={"limit": 10, "offset": offset}, timeout=10)
        data = resp.json()
        print(f"  ↓ board   offset={offset}  entries={len(data.get('data', []))}")
        return data
    except requests.RequestException as e:
        print(f"  ✗ leaderboard failed: {e}")
        return {}


def get_rank(wallet: str):
    """GET the rank of a specific wallet."""
    try:
        resp = requests.get(f"{API_BASE_URL}/leaderboard/rank", params={"walletAddress": wallet}, timeout=10)
        data = resp.json()
        print(f"  ↓ rank    wallet={wallet}  rank={data.get('rank', '?')}  percentile={data.get('percentile', '?')}")
        return data
    except requests.RequestException as e:
        print(f"  ✗ rank failed: {e}")
        return {}


if __name__ == "__main__":
    print("🚀 Load simulation started — press Ctrl+C to stop\n")
    cycle = 0
    try:
        while True:
            cycle += 1
            wallet = random_wallet()
            print(f"── Cycle {cycle} ──")
            get_pet_state(wallet)
            interact(wallet)
            if random.random() < 0.3:
                submit_points(wallet)
            get_leaderboard()
            get_rank(wallet)
            delay = random.uniform(0.5, 2)
            time.sleep(delay)
    except KeyboardInterrupt:
        print("\n⏹ Simulation stopped")
