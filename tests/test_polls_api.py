"""Poll endpoints: creation, one vote per address, results and deletion."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from ballot import config
from ballot.models import Poll, Vote
from ballot.polls import RESULTS_CACHE_TTL, _redis_keys


def _future(**delta):
    return (datetime.now(timezone.utc) + timedelta(**delta)).isoformat()


async def _vote(client, poll_id, option_index, ip=None):
    headers = {"X-Forwarded-For": ip} if ip else {}
    return await client.post(
        f"/api/polls/{poll_id}/votes",
        json={"optionIndex": option_index},
        headers=headers,
    )


async def test_create_poll_returns_stored_poll(create_poll):
    poll = await create_poll(title="  Lunch  ", options=["Noodles", " Rice "])

    uuid.UUID(poll["id"])
    assert poll["title"] == "Lunch"
    assert poll["options"] == ["Noodles", "Rice"]
    assert poll["isExpired"] is False
    assert poll["createdAt"]


@pytest.mark.parametrize(
    "body",
    [
        {"title": "Lunch", "options": ["Only"]},
        {"title": "Lunch", "options": []},
        {"title": "", "options": ["A", "B"]},
        {"title": "   ", "options": ["A", "B"]},
        {"title": "Lunch", "options": ["A", " "]},
    ],
)
async def test_create_poll_rejects_invalid_body(client, body):
    response = await client.post("/api/polls", json={**body, "expiresAt": _future(hours=1)})
    assert response.status_code == 422


async def test_create_poll_requires_timezone_aware_expiry(client):
    naive = (datetime.now() + timedelta(hours=1)).replace(tzinfo=None).isoformat()
    response = await client.post(
        "/api/polls", json={"title": "Lunch", "options": ["A", "B"], "expiresAt": naive}
    )
    assert response.status_code == 422


async def test_create_poll_rejects_past_expiry(client):
    response = await client.post(
        "/api/polls",
        json={"title": "Lunch", "options": ["A", "B"], "expiresAt": _future(hours=-1)},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "expiresAt must be in the future"


async def test_get_poll(client, create_poll):
    created = await create_poll()

    response = await client.get(f"/api/polls/{created['id']}")

    assert response.status_code == 200
    assert response.json()["options"] == ["A", "B"]


async def test_get_unknown_poll_is_404(client):
    response = await client.get(f"/api/polls/{uuid.uuid4()}")
    assert response.status_code == 404


async def test_get_poll_with_malformed_id_is_422(client):
    response = await client.get("/api/polls/not-a-uuid")
    assert response.status_code == 422


async def test_one_vote_per_address_and_cascade_on_delete(client, create_poll, db_session):
    poll = await create_poll(options=["A", "B"])

    first = await _vote(client, poll["id"], 0)
    assert first.status_code == 201
    assert first.json()["voterIp"] == "1.2.3.4"
    assert first.json()["optionIndex"] == 0

    second = await _vote(client, poll["id"], 1)
    assert second.status_code == 409
    assert second.json()["detail"] == "Already voted"

    deleted = await client.delete(f"/api/polls/{poll['id']}")
    assert deleted.status_code == 204

    poll_id = uuid.UUID(poll["id"])
    remaining = await db_session.scalar(
        select(func.count(Vote.id)).where(Vote.poll_id == poll_id)
    )
    assert remaining == 0
    assert await db_session.get(Poll, poll_id) is None


@pytest.mark.parametrize("option_index", [-1, 2, 10])
async def test_vote_rejects_out_of_range_option(client, create_poll, option_index):
    poll = await create_poll(options=["A", "B"])

    response = await _vote(client, poll["id"], option_index)

    assert response.status_code == 400
    assert response.json()["detail"] == "Option index out of range"


async def test_vote_on_expired_poll_is_rejected(client, db_session):
    poll = Poll(
        title="Closed",
        options=["A", "B"],
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
    )
    db_session.add(poll)
    await db_session.commit()

    response = await _vote(client, poll.id, 0)

    assert response.status_code == 400
    assert response.json()["detail"] == "Poll has expired"
    fetched = await client.get(f"/api/polls/{poll.id}")
    assert fetched.json()["isExpired"] is True


async def test_vote_on_unknown_poll_is_404(client):
    response = await _vote(client, uuid.uuid4(), 0)
    assert response.status_code == 404


async def test_forwarded_for_ignored_unless_trusted(client, create_poll):
    poll = await create_poll()

    response = await _vote(client, poll["id"], 0, ip="9.9.9.9")

    assert response.json()["voterIp"] == "1.2.3.4"


async def test_results_count_votes_per_option(client, create_poll, monkeypatch):
    monkeypatch.setattr(config, "TRUST_PROXY_HEADERS", True)
    poll = await create_poll(options=["A", "B", "C"])

    for ip, option in [("10.0.0.1", 0), ("10.0.0.2", 2), ("10.0.0.3", 2)]:
        response = await _vote(client, poll["id"], option, ip=ip)
        assert response.status_code == 201
        assert response.json()["voterIp"] == ip

    response = await client.get(f"/api/polls/{poll['id']}/results")

    assert response.status_code == 200
    body = response.json()
    assert body["totalVotes"] == 3
    assert body["results"] == [
        {"optionIndex": 0, "label": "A", "count": 1},
        {"optionIndex": 1, "label": "B", "count": 0},
        {"optionIndex": 2, "label": "C", "count": 2},
    ]


async def test_results_are_cached_and_kept_current(client, create_poll, redis, monkeypatch):
    monkeypatch.setattr(config, "TRUST_PROXY_HEADERS", True)
    poll = await create_poll()
    total_key, options_key = _redis_keys(uuid.UUID(poll["id"]))

    empty = await client.get(f"/api/polls/{poll['id']}/results")
    assert empty.json()["totalVotes"] == 0
    assert redis.values[total_key] == "0"

    await _vote(client, poll["id"], 1, ip="10.0.0.1")
    await _vote(client, poll["id"], 1, ip="10.0.0.2")

    assert redis.values[total_key] == "2"
    assert redis.hashes[options_key] == {"1": "2"}

    response = await client.get(f"/api/polls/{poll['id']}/results")
    assert [item["count"] for item in response.json()["results"]] == [0, 2]


async def test_vote_rearms_cache_ttl_when_total_lapses_mid_vote(
    client, create_poll, redis, monkeypatch
):
    poll = await create_poll()
    total_key, options_key = _redis_keys(uuid.UUID(poll["id"]))

    async def total_present(*keys):
        # The total expires between the existence check and the increment.
        return 1

    monkeypatch.setattr(redis, "exists", total_present)

    response = await _vote(client, poll["id"], 0)

    assert response.status_code == 201
    assert redis.values[total_key] == "1"
    assert redis.ttls[total_key] == RESULTS_CACHE_TTL
    assert redis.ttls[options_key] == RESULTS_CACHE_TTL


async def test_delete_poll_drops_cached_counts(client, create_poll, redis):
    poll = await create_poll()
    await _vote(client, poll["id"], 0)
    total_key, options_key = _redis_keys(uuid.UUID(poll["id"]))
    assert total_key in redis.values

    response = await client.delete(f"/api/polls/{poll['id']}")

    assert response.status_code == 204
    assert total_key not in redis.values
    assert options_key not in redis.hashes
    assert (await client.get(f"/api/polls/{poll['id']}")).status_code == 404


async def test_delete_unknown_poll_is_404(client):
    response = await client.delete(f"/api/polls/{uuid.uuid4()}")
    assert response.status_code == 404
