"""Quest board worker for Render (rolls daily and monthly quest boards).

Run this as a Render 'worker' service:
  python daily_worker.py

Environment:
- DATABASE_URL (already configured in Render)
- DAILY_QUEST_COUNT
- DAILY_WORKER_INTERVAL_SECONDS
"""

import os
import time

from app import app
from bootstrap import ensure_daily_quests, ensure_monthly_quests, seed_rewards
from clock import day_key, utcnow

INTERVAL = int(os.getenv("DAILY_WORKER_INTERVAL_SECONDS", "300"))


def run_once(now=None) -> dict:
    now = now or utcnow()
    return {
        "day": day_key(now),
        "daily_quests_added": ensure_daily_quests(now),
        "monthly_quests_added": ensure_monthly_quests(now),
    }


def main():
    print("Daily quest worker started")
    with app.app_context():
        print({"rewards_added": seed_rewards()})

    last_day = None
    while True:
        with app.app_context():
            try:
                summary = run_once()
                if summary["day"] != last_day or summary["daily_quests_added"] or summary["monthly_quests_added"]:
                    print(summary)
                    last_day = summary["day"]
            except Exception as e:
                print("Worker error:", str(e))
        time.sleep(INTERVAL)


if __name__ == "__main__":
    main()
