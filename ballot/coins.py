"""Coin selection and one-vote-per-user coin voting."""
import httpx
import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ballot.binance import fetch_crypto_prices
from ballot.database import get_session
from ballot.models import Coin, CoinVote, CoinVoteCount
from ballot.schemas import (
    CoinOut,
    CoinPollOut,
    CoinSelection,
    CoinTally,
    CoinVoteRequest,
    PricesRefreshed,
    StatusOut,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["coins"])

PLACEHOLDER_PRICE = "0.0"
TOP_TALLY_LIMIT = 3


def _tally_upsert(dialect_name: str, symbol: str):
    insert = postgresql.insert if dialect_name == "postgresql" else sqlite.insert
    stmt = insert(CoinVoteCount).values(symbol=symbol, votes=1)
    return stmt.on_conflict_do_update(
        index_elements=["symbol"],
        set_={"votes": CoinVoteCount.votes + 1},
    )


@router.get("/coins", response_model=list[CoinOut])
async def get_coins(session: AsyncSession = Depends(get_session)):
    result = await session.execute(select(Coin).order_by(Coin.id))
    return result.scalars().all()


@router.post("/admin/select-coins", response_model=StatusOut)
async def select_coins(
    selection: CoinSelection,
    session: AsyncSession = Depends(get_session),
):
    # A new selection starts a fresh round: coin_votes cascade with the coins
    # and the tallies are cleared so they keep matching the votes.
    await session.execute(delete(Coin))
    await session.execute(delete(CoinVoteCount))
    session.add_all(
        [Coin(symbol=symbol, price=PLACEHOLDER_PRICE) for symbol in selection.symbols]
    )
    await session.commit()

    logger.info("coins_selected", symbols=selection.symbols)
    return StatusOut(status="Coins selected successfully")


@router.post("/admin/refresh-prices", response_model=PricesRefreshed)
async def refresh_prices(session: AsyncSession = Depends(get_session)):
    try:
        prices = await fetch_crypto_prices()
    except httpx.HTTPError as exc:
        logger.warning("price_refresh_failed", error=str(exc))
        raise HTTPException(status_code=502, detail="Price source unavailable") from exc

    by_symbol = {price.symbol: price.price for price in prices}
    coins = (await session.execute(select(Coin))).scalars().all()

    updated = 0
    for coin in coins:
        price = by_symbol.get(coin.symbol)
        if price is not None and price != coin.price:
            coin.price = price
            updated += 1
    await session.commit()

    logger.info("prices_refreshed", updated=updated, selected=len(coins))
    return PricesRefreshed(updated=updated)


@router.get("/poll", response_model=CoinPollOut)
async def get_poll(session: AsyncSession = Depends(get_session)):
    coins = (await session.execute(select(Coin).order_by(Coin.id))).scalars().all()

    votes_result = await session.execute(
        select(CoinVote.coin_symbol, func.count(CoinVote.id)).group_by(
            CoinVote.coin_symbol
        )
    )
    vote_counts = {symbol: int(count) for symbol, count in votes_result.all()}

    return CoinPollOut(
        coins=[CoinOut.model_validate(coin) for coin in coins],
        votes=vote_counts,
    )


@router.get("/poll/top", response_model=list[CoinTally])
async def get_top_votes(session: AsyncSession = Depends(get_session)):
    result = await session.execute(
        select(CoinVoteCount)
        .order_by(CoinVoteCount.votes.desc(), CoinVoteCount.symbol)
        .limit(TOP_TALLY_LIMIT)
    )
    return result.scalars().all()


@router.post("/vote", response_model=StatusOut)
async def vote(
    vote_data: CoinVoteRequest,
    session: AsyncSession = Depends(get_session),
):
    coin = await session.scalar(
        select(Coin).where(Coin.symbol == vote_data.coin_symbol)
    )
    if coin is None:
        raise HTTPException(status_code=404, detail="Coin not found")

    existing_vote = await session.scalar(
        select(CoinVote.id).where(
            CoinVote.coin_symbol == vote_data.coin_symbol,
            CoinVote.user_id == vote_data.user_id,
        )
    )
    if existing_vote is not None:
        raise HTTPException(status_code=400, detail="Already voted")

    dialect_name = session.get_bind().dialect.name
    try:
        session.add(CoinVote(coin_symbol=vote_data.coin_symbol, user_id=vote_data.user_id))
        await session.flush()
        await session.execute(_tally_upsert(dialect_name, vote_data.coin_symbol))
        await session.commit()
    except IntegrityError:
        # a concurrent request won the unique (coin_symbol, user_id) race
        await session.rollback()
        raise HTTPException(status_code=400, detail="Already voted")

    logger.info("coin_vote_recorded", coin_symbol=vote_data.coin_symbol)
    return StatusOut(status="Vote recorded")
