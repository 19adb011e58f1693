"""
Seed script — registers sample websites and runs one on-demand audit.

Usage:
    python -m scripts.seed_websites [user_id]

This creates:
- 1 website audited every day at 03:00
- 1 website audited every Monday at 09:30
- 1 website with no schedule (on-demand only)
then requests an on-demand audit of the first one and waits for it.

Run this after starting the API and a worker. The token is signed with the
same AUTH_SECRET the API uses, so both must read the same settings.
"""

import sys

import httpx

from api.auth import sign_user_token
from client.audit_client import AuditClient, AuditClientError

BASE_URL = "http://localhost:8000"

WEBSITES = [
    {"url": "https://example.com", "name": "Example", "cron": "0 3 * * *"},
    {"url": "https://www.python.org", "name": "Python", "cron": "30 9 * * 1"},
    {"url": "https://httpbin.org", "name": "httpbin"},
]


def seed(user_id: str = "demo-user"):
    token = sign_user_token(user_id)

    with AuditClient(BASE_URL, token) as client:
        print(f"Registering {len(WEBSITES)} websites for {user_id} at {BASE_URL}...\n")
        for website in WEBSITES:
            resp = client.client.post("/websites/", json=website)
            if resp.status_code == 409:
                print(f"  [exists]  {website['url']}")
                continue
            resp.raise_for_status()
            data = resp.json()
            print(f"  [created] {data['url']} cron={data['cron']} (id: {data['id'][:8]}...)")

        print("\nRequesting an on-demand audit (this takes a while)...")
        try:
            result = client.analyze(WEBSITES[0]["url"])
        except (AuditClientError, httpx.HTTPError) as e:
            print(f"  Audit did not complete: {e}")
            return

        report = result["report"]
        print(f"  SEO score: {report['seo']}")
        for insight in result["insights"]:
            print(f"  [{insight['level']}] {insight['message']}")

    print("\nDone! Schedules:  GET /schedules")


if __name__ == "__main__":
    seed(*sys.argv[1:2])
