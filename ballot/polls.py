import uuid
from datetime import datetime, timezone

import structlog
from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Request,
    Response,
    WebSocket,
    WebSocketDisconnect,
)
from redis.asyncio import Redis
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ballot import config
from ballot.database import get_session
from ballot.models import Poll, Vote
from ballot.redis_client import get_redis
from ballot.schemas import (
    PollCreate,
    PollOut,
    ResultItem,
    ResultsResponse,
    VoteOut,
    VoteRequest,
)
from ballot.ws import ConnectionManager

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["polls"])
manager = ConnectionManager()

RESULTS_CACHE_TTL = 300


def _redis_keys(poll_id: uuid.UUID) -> tuple[str, str]:
    return f"poll:{poll_id}:total", f"poll:{poll_id}:options"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_expired(poll: Poll, now: datetime | None = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return _as_utc(poll.expires_at) <= now


def voter_ip(request: Request) -> str:
    if config.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else "unknown"


def _poll_out(poll: Poll) -> PollOut:
    return PollOut(
        id=poll.id,
        title=poll.title,
        options=list(poll.options),
        expiresAt=_as_utc(poll.expires_at),
        createdAt=_as_utc(poll.created_at),
        isExpired=is_expired(poll),
    )


async def _get_poll_or_404(session: AsyncSession, poll_id: uuid.UUID) -> Poll:
    poll = await session.get(Poll, poll_id)
    if not poll:
        raise HTTPException(status_code=404, detail="Poll not found")
    return poll


@router.post("/api/polls", response_model=PollOut, status_code=201)
async def create_poll(
    payload: PollCreate,
    session: AsyncSession = Depends(get_session),
):
    expires_at = payload.expiresAt.astimezone(timezone.utc)
    if expires_at <= datetime.now(timezone.utc):
        raise HTTPException(status_code=400, detail="expiresAt must be in the future")

    poll = Poll(title=payload.title, options=payload.options, expires_at=expires_at)
    session.add(poll)
    await session.commit()
    await session.refresh(poll)

    logger.info("poll_created", poll_id=str(poll.id), options=len(poll.options))
    return _poll_out(poll)


@router.get("/api/polls/{poll_id}", response_model=PollOut)
async def get_poll(
    poll_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
):
    poll = await _get_poll_or_404(session, poll_id)
    return _poll_out(poll)


@router.post("/api/polls/{poll_id}/votes", response_model=VoteOut, status_code=201)
async def vote(
    poll_id: uuid.UUID,
    payload: VoteRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
):
    poll = await _get_poll_or_404(session, poll_id)

    if is_expired(poll):
        raise HTTPException(status_code=400, detail="Poll has expired")

    # The schema does not bound option_index; it is checked here.
    if not 0 <= payload.optionIndex < len(poll.options):
        raise HTTPException(status_code=400, detail="Option index out of range")

    ip = voter_ip(request)
    new_vote = Vote(poll_id=poll_id, option_index=payload.optionIndex, voter_ip=ip)
    session.add(new_vote)
    try:
        await session.commit()
    except IntegrityError:
        # idx_votes_poll_ip rejects a second vote from the same address.
        await session.rollback()
        logger.info("vote_rejected", poll_id=str(poll_id), reason="duplicate_voter")
        raise HTTPException(status_code=409, detail="Already voted")

    logger.info("vote_recorded", poll_id=str(poll_id), option_index=payload.optionIndex)

    total_key, _ = _redis_keys(poll_id)
    if await redis.exists(total_key):
        await _update_redis_counts(
            redis=redis, poll_id=poll_id, option_index=payload.optionIndex
        )

    results = await _get_results(session, redis, poll)
    await manager.broadcast(
        poll_id,
        {
            "type": "poll_results_updated",
            "pollId": str(poll_id),
            "totalVotes": results.totalVotes,
            "results": [item.model_dump() for item in results.results],
        },
    )

    return VoteOut(
        voteId=new_vote.id,
        pollId=poll_id,
        optionIndex=payload.optionIndex,
        voterIp=ip,
    )


@router.get("/api/polls/{poll_id}/results", response_model=ResultsResponse)
async def get_results(
    poll_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
):
    poll = await _get_poll_or_404(session, poll_id)
    return await _get_results(session, redis, poll)


@router.delete("/api/polls/{poll_id}", status_code=204)
async def delete_poll(
    poll_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    redis: Redis = Depends(get_redis),
):
    poll = await _get_poll_or_404(session, poll_id)

    # votes go with the poll through ON DELETE CASCADE
    await session.delete(poll)
    await session.commit()
    await redis.delete(*_redis_keys(poll_id))

    await manager.broadcast(poll_id, {"type": "poll_deleted", "pollId": str(poll_id)})
    await manager.close_channel(poll_id)

    logger.info("poll_deleted", poll_id=str(poll_id))
    return Response(status_code=204)


@router.websocket("/ws/polls/{poll_id}")
async def poll_ws(websocket: WebSocket, poll_id: uuid.UUID):
    await manager.connect(poll_id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(poll_id, websocket)


async def _update_redis_counts(
    *,
    redis: Redis,
    poll_id: uuid.UUID,
    option_index: int,
) -> None:
    total_key, options_key = _redis_keys(poll_id)
    # Re-arm both TTLs so a key that lapsed mid-vote cannot outlive the window.
    async with redis.pipeline(transaction=True) as pipe:
        pipe.hincrby(options_key, str(option_index), 1)
        pipe.incr(total_key)
        pipe.expire(options_key, RESULTS_CACHE_TTL)
        pipe.expire(total_key, RESULTS_CACHE_TTL)
        await pipe.execute()


async def _get_results(
    session: AsyncSession, redis: Redis, poll: Poll
) -> ResultsResponse:
    total_key, options_key = _redis_keys(poll.id)
    cached_total = await redis.get(total_key)

    if cached_total is None:
        counts_result = await session.execute(
            select(Vote.option_index, func.count(Vote.id))
            .where(Vote.poll_id == poll.id)
            .group_by(Vote.option_index)
        )
        counts = {str(row[0]): int(row[1]) for row in counts_result.all()}
        total_votes = sum(counts.values())
        await redis.delete(options_key)
        if counts:
            await redis.hset(options_key, mapping=counts)
            await redis.expire(options_key, RESULTS_CACHE_TTL)
        await redis.set(total_key, total_votes, ex=RESULTS_CACHE_TTL)
    else:
        cached_counts = await redis.hgetall(options_key)
        counts = {str(k): int(v) for k, v in cached_counts.items()}
        total_votes = int(cached_total)

    results = [
        ResultItem(
            optionIndex=index,
            label=label,
            count=counts.get(str(index), 0),
        )
        for index, label in enumerate(poll.options)
    ]

    return ResultsResponse(pollId=poll.id, totalVotes=total_votes, results=results)
