from pathlib import Path

import structlog
from alembic import command
from alembic.config import Config

logger = structlog.get_logger(__name__)

ROOT_DIR = Path(__file__).resolve().parent.parent
ALEMBIC_INI = ROOT_DIR / "alembic.ini"


def alembic_config(url: str | None = None, **kwargs) -> Config:
    cfg = Config(str(ALEMBIC_INI), **kwargs)
    cfg.set_main_option("script_location", str(ROOT_DIR / "alembic"))
    # The app owns logging; env.py must not reload alembic.ini handlers over it.
    cfg.attributes["configure_logger"] = False
    if url:
        cfg.set_main_option("sqlalchemy.url", url.replace("%", "%%"))
    return cfg


def run_migrations(url: str | None = None, revision: str = "head") -> None:
    """Apply pending revisions up to ``revision``, one transaction each."""
    logger.info("migrations_started", revision=revision)
    command.upgrade(alembic_config(url), revision)
    logger.info("migrations_applied", revision=revision)
