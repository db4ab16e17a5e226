import os

from dotenv import load_dotenv

load_dotenv()


def _env(key: str, default: str) -> str:
    return os.getenv(key, default)


def _flag(key: str, default: str = "false") -> bool:
    return _env(key, default).lower() in ("1", "true", "yes")


DB_HOST = _env("DB_HOST", "localhost")
DB_PORT = _env("DB_PORT", "5432")
DB_NAME = _env("DB_NAME", "ballot")
DB_USER = _env("DB_USER", "ballot")
DB_PASSWORD = _env("DB_PASSWORD", "ballot")

DATABASE_URL = _env(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)

REDIS_URL = _env("REDIS_URL", "redis://localhost:6379/0")

RUN_MIGRATIONS = _flag("RUN_MIGRATIONS")
AUTO_CREATE_TABLES = _flag("AUTO_CREATE_TABLES")

CORS_ORIGINS = [
    origin.strip()
    for origin in _env("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

LOG_LEVEL = _env("LOG_LEVEL", "INFO").upper()
LOG_JSON = _flag("LOG_JSON")

# Only enable behind a proxy that overwrites X-Forwarded-For.
TRUST_PROXY_HEADERS = _flag("TRUST_PROXY_HEADERS")

BINANCE_TICKER_URL = _env(
    "BINANCE_TICKER_URL", "https://api.binance.com/api/v3/ticker/price"
)

HOST = _env("HOST", "0.0.0.0")
PORT = int(_env("PORT", "8080"))
