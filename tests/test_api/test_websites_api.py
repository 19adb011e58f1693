"""
API tests for /websites — CRUD plus keeping cron schedules in sync.
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from jobqueue.redis_queue import JobQueue
from scheduler.schedule_manager import ScheduleManager


async def _create(client, headers, **body):
    body.setdefault("url", "https://example.com")
    response = await client.post("/websites/", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_without_cron_schedules_nothing(client, auth_headers, redis_client):
    website = await _create(client, auth_headers, name="Example")

    assert website["name"] == "Example"
    assert website["cron"] is None
    assert JobQueue(redis_client).list_repeating() == []


@pytest.mark.asyncio
async def test_create_with_cron_registers_schedule(client, auth_headers, redis_client):
    website = await _create(client, auth_headers, cron="0 3 * * *")

    registration = JobQueue(redis_client).get_repeating(f"website:{website['id']}")
    assert registration.pattern == "0 3 * * *"
    assert registration.payload.user_id == "user-1"
    assert registration.payload.url == "https://example.com"

    schedules = (await client.get("/schedules", headers=auth_headers)).json()
    assert [s["id"] for s in schedules] == [f"website:{website['id']}"]
    assert schedules[0]["cron"] == "0 3 * * *"


@pytest.mark.asyncio
async def test_duplicate_url_is_409(client, auth_headers):
    await _create(client, auth_headers)
    response = await client.post("/websites/", json={"url": "https://example.com"}, headers=auth_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_same_url_for_different_users_is_allowed(client, auth_headers, other_auth_headers):
    await _create(client, auth_headers)
    await _create(client, other_auth_headers)


@pytest.mark.asyncio
@pytest.mark.parametrize("cron", ["every day", "0 3 * *", "0 3 * * * *", "99 3 * * *"])
async def test_invalid_cron_is_422(client, auth_headers, redis_client, cron):
    response = await client.post(
        "/websites/", json={"url": "https://example.com", "cron": cron}, headers=auth_headers
    )
    assert response.status_code == 422
    assert JobQueue(redis_client).list_repeating() == []


@pytest.mark.asyncio
async def test_list_only_returns_own_websites(client, auth_headers, other_auth_headers):
    await _create(client, auth_headers, url="https://a.example")
    await _create(client, other_auth_headers, url="https://b.example")

    websites = (await client.get("/websites/", headers=auth_headers)).json()
    assert [w["url"] for w in websites] == ["https://a.example"]


@pytest.mark.asyncio
async def test_get_website_includes_recent_reports(client, auth_headers):
    website = await _create(client, auth_headers)

    response = await client.get(f"/websites/{website['id']}", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["website"]["id"] == website["id"]
    assert response.json()["recent_reports"] == []


@pytest.mark.asyncio
async def test_other_users_website_is_404(client, auth_headers, other_auth_headers):
    website = await _create(client, auth_headers)
    response = await client.get(f"/websites/{website['id']}", headers=other_auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_cron_replaces_schedule(client, auth_headers, redis_client):
    website = await _create(client, auth_headers, cron="0 3 * * *")

    response = await client.put(
        f"/websites/{website['id']}", json={"cron": "*/30 * * * *"}, headers=auth_headers
    )

    assert response.status_code == 200
    assert response.json()["cron"] == "*/30 * * * *"
    queue = JobQueue(redis_client)
    assert [r.pattern for r in queue.list_repeating()] == ["*/30 * * * *"]


@pytest.mark.asyncio
async def test_update_cron_to_null_unschedules(client, auth_headers, redis_client):
    website = await _create(client, auth_headers, cron="0 3 * * *")

    response = await client.put(f"/websites/{website['id']}", json={"cron": None}, headers=auth_headers)

    assert response.json()["cron"] is None
    assert JobQueue(redis_client).list_repeating() == []


@pytest.mark.asyncio
async def test_update_name_keeps_schedule(client, auth_headers, redis_client):
    website = await _create(client, auth_headers, cron="0 3 * * *")
    queue = JobQueue(redis_client)
    before = queue.get_repeating(f"website:{website['id']}")

    response = await client.put(f"/websites/{website['id']}", json={"name": "Renamed"}, headers=auth_headers)

    assert response.json()["name"] == "Renamed"
    assert response.json()["cron"] == "0 3 * * *"
    assert queue.get_repeating(f"website:{website['id']}") == before


@pytest.mark.asyncio
async def test_update_adds_schedule(client, auth_headers, redis_client):
    website = await _create(client, auth_headers)

    await client.put(f"/websites/{website['id']}", json={"cron": "0 9 * * 1"}, headers=auth_headers)

    assert JobQueue(redis_client).get_repeating(f"website:{website['id']}").pattern == "0 9 * * 1"


@pytest.mark.asyncio
async def test_delete_unschedules_and_removes(client, auth_headers, redis_client):
    website = await _create(client, auth_headers, cron="0 3 * * *")

    response = await client.delete(f"/websites/{website['id']}", headers=auth_headers)

    assert response.status_code == 204
    assert JobQueue(redis_client).get_repeating(f"website:{website['id']}") is None
    assert (await client.get(f"/websites/{website['id']}", headers=auth_headers)).status_code == 404


@pytest.mark.asyncio
async def test_delete_missing_is_404(client, auth_headers):
    response = await client.delete("/websites/does-not-exist", headers=auth_headers)
    assert response.status_code == 404


# ── Scheduler unavailable ───────────────────────────────────────


def _fail_schedule(monkeypatch, times: int) -> None:
    """Make the next `times` registrations fail as if Redis were unreachable."""
    original = ScheduleManager.schedule
    remaining = {"failures": times}

    def schedule(self, *args, **kwargs):
        if remaining["failures"] > 0:
            remaining["failures"] -= 1
            raise RedisConnectionError("Redis unreachable")
        return original(self, *args, **kwargs)

    monkeypatch.setattr(ScheduleManager, "schedule", schedule)


@pytest.mark.asyncio
async def test_create_is_undone_when_schedule_cannot_be_registered(
    client, auth_headers, redis_client, monkeypatch
):
    _fail_schedule(monkeypatch, times=1)

    response = await client.post(
        "/websites/", json={"url": "https://example.com", "cron": "0 3 * * *"}, headers=auth_headers
    )

    assert response.status_code == 503
    assert (await client.get("/websites/", headers=auth_headers)).json() == []
    assert JobQueue(redis_client).list_repeating() == []


@pytest.mark.asyncio
async def test_update_is_reverted_when_schedule_cannot_be_registered(
    client, auth_headers, redis_client, monkeypatch
):
    website = await _create(client, auth_headers, cron="0 3 * * *")
    _fail_schedule(monkeypatch, times=1)

    response = await client.put(
        f"/websites/{website['id']}",
        json={"name": "Renamed", "cron": "*/30 * * * *"},
        headers=auth_headers,
    )

    assert response.status_code == 503
    current = (await client.get(f"/websites/{website['id']}", headers=auth_headers)).json()
    assert current["website"]["cron"] == "0 3 * * *"
    assert current["website"]["name"] == website["name"]
    restored = JobQueue(redis_client).get_repeating(f"website:{website['id']}")
    assert restored.pattern == "0 3 * * *"
