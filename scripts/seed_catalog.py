#!/usr/bin/env python3
"""Seed the reward catalog and today's/this month's quest boards.

Safe to run repeatedly. Intended for a deploy hook or a scheduler
(e.g., Render Cron) shortly after 00:00 UTC.
"""

from app import app
from bootstrap import seed_catalog


def main():
    with app.app_context():
        summary = seed_catalog()

    print({"ok": True, **summary})


if __name__ == "__main__":
    main()
