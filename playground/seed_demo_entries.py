#!/usr/bin/env python3
"""
Script to fill a running Sleep Journal server with a few months of demo entries,
then download the resulting analytics and CSV export.

Requires the server to be running (uvicorn sleep_journal.main:app).
Registers the demo account on first use, signs in otherwise.
"""

import json
import random
import sys
from datetime import date, timedelta
from pathlib import Path

import httpx

DEMO_ACCOUNT = {
    "name": "Usuario Demo",
    "email": "demo@example.com",
    "password": "Demo12345",
    "age": 30,
    "city": "Madrid",
    "country": "España",
    "gender": "Otro",
}

COMMENTS = [
    "Me desperté varias veces",
    "Café por la tarde",
    "Dormí de un tirón",
    "Mucho calor",
    None,
    None,
]


def sign_in(client: httpx.Client) -> None:
    """Register the demo account, or sign in if it already exists."""
    response = client.post("/auth/register", json=DEMO_ACCOUNT)
    if response.status_code == 409:
        response = client.post(
            "/auth/signin",
            json={"email": DEMO_ACCOUNT["email"], "password": DEMO_ACCOUNT["password"]},
        )
    response.raise_for_status()


def demo_entry(day: date, rng: random.Random) -> dict:
    """A plausible night: better on weekends, slowly improving over time."""
    base = 6 + (1 if day.weekday() >= 5 else 0)
    rating = max(1, min(10, base + rng.randint(-3, 3)))
    bedtime_minutes = 22 * 60 + rng.randint(0, 150)
    wake_minutes = 6 * 60 + rng.randint(0, 120)
    return {
        "date": day.isoformat(),
        "rating": rating,
        "comments": rng.choice(COMMENTS),
        "start_time": f"{bedtime_minutes // 60 % 24:02d}:{bedtime_minutes % 60:02d}",
        "end_time": f"{wake_minutes // 60:02d}:{wake_minutes % 60:02d}",
    }


def main():
    base_url = "http://localhost:8000"
    output_dir = Path(__file__).parent / "demo_data"
    output_dir.mkdir(exist_ok=True)
    days = 90
    rng = random.Random(7)

    end_date = date.today()
    start_date = end_date - timedelta(days=days - 1)

    print(f"Seeding entries from {start_date} to {end_date} ({days} days)")

    with httpx.Client(base_url=base_url, timeout=30.0) as client:
        try:
            sign_in(client)
        except httpx.ConnectError:
            print("Connection error. Is the server running? Try 'uvicorn sleep_journal.main:app' first.")
            sys.exit(1)

        saved = 0
        for offset in range(days):
            day = start_date + timedelta(days=offset)
            # Leave some nights unrecorded
            if rng.random() < 0.15:
                continue
            response = client.post("/entries", json=demo_entry(day, rng))
            response.raise_for_status()
            saved += 1
        print(f"Saved {saved} entries")

        analytics = client.get("/analytics").json()
        analytics_output = output_dir / "analytics.json"
        with open(analytics_output, "w") as f:
            json.dump(analytics, f, indent=2, ensure_ascii=False)
        print(f"Saved analytics to {analytics_output}")

        export = client.get("/entries/export.csv")
        export.raise_for_status()
        export_output = output_dir / "export.csv"
        export_output.write_text(export.text, encoding="utf-8")
        print(f"Saved CSV export to {export_output}")

    print()
    print("Done!")


if __name__ == "__main__":
    main()
