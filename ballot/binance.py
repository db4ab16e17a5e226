"""Ticker price lookups against the Binance public API."""
import httpx
import structlog
from pydantic import BaseModel

from ballot.config import BINANCE_TICKER_URL

logger = structlog.get_logger(__name__)


class CryptoPrice(BaseModel):
    symbol: str
    price: str


async def fetch_crypto_prices(
    client: httpx.AsyncClient | None = None,
    url: str = BINANCE_TICKER_URL,
) -> list[CryptoPrice]:
    """Fetch every ticker price.

    Entries missing a string ``symbol`` or ``price`` are skipped. HTTP and
    transport failures propagate as ``httpx.HTTPError``.
    """
    if client is None:
        async with httpx.AsyncClient(timeout=10.0) as own_client:
            return await fetch_crypto_prices(own_client, url)

    response = await client.get(url)
    response.raise_for_status()
    payload = response.json()

    prices = []
    for entry in payload if isinstance(payload, list) else []:
        if not isinstance(entry, dict):
            continue
        symbol, price = entry.get("symbol"), entry.get("price")
        if isinstance(symbol, str) and isinstance(price, str):
            prices.append(CryptoPrice(symbol=symbol, price=price))

    logger.info("binance_prices_fetched", count=len(prices))
    return prices
