"""
Migration Runner - Runs Alembic migrations at application startup.

Enabled with RUN_MIGRATIONS_ON_STARTUP. alembic/env.py drives the async
engine itself, so this module only needs the command API.
"""

from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from structlog import get_logger

from ledger.config import settings

logger = get_logger(__name__)

# Path to alembic.ini relative to project root
ALEMBIC_INI_PATH = Path(__file__).parent.parent.parent / "alembic.ini"


def get_alembic_config() -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI_PATH))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url.replace("%", "%%"))
    return alembic_cfg


def get_head_revision(alembic_cfg: Config) -> str | None:
    """Get the head revision from migration scripts."""
    return ScriptDirectory.from_config(alembic_cfg).get_current_head()


def run_migrations() -> None:
    """
    Upgrade the gateway schema to head.

    Blocking; call it from a worker thread when an event loop is running,
    because env.py starts its own loop.
    """
    if not ALEMBIC_INI_PATH.exists():
        logger.warning("alembic_config_missing", path=str(ALEMBIC_INI_PATH))
        return

    alembic_cfg = get_alembic_config()
    head = get_head_revision(alembic_cfg)
    logger.info("migrations_starting", head_revision=head)
    try:
        command.upgrade(alembic_cfg, "head")
    except Exception as e:
        logger.error("migrations_failed", error=str(e))
        raise RuntimeError(f"Database migration failed: {e}") from e
    logger.info("migrations_complete", head_revision=head)
