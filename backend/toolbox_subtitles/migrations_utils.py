"""Database migration status helpers used at startup."""

import logging
from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from toolbox_subtitles.config import BACKEND_ROOT

logger = logging.getLogger("toolbox_subtitles.migrations")


def get_alembic_config() -> Config:
    """Load ``alembic.ini`` from the backend root.

    Raises:
        FileNotFoundError: if the ini file is missing
    """
    alembic_ini_path = BACKEND_ROOT / "alembic.ini"
    if not alembic_ini_path.exists():
        raise FileNotFoundError(f"alembic.ini not found at {alembic_ini_path}")

    config = Config(str(alembic_ini_path))
    config.set_main_option("script_location", str(Path(BACKEND_ROOT) / "alembic"))
    return config


async def check_migration_status(engine: AsyncEngine) -> tuple[str, str]:
    """Return ``(current_revision, head_revision)``.

    Either value is ``"none"`` when absent and both are ``"unknown"`` when the
    check itself fails.
    """
    try:
        config = get_alembic_config()

        async with engine.begin() as conn:
            result = await conn.execute(text("SELECT version_num FROM alembic_version"))
            current = result.scalar_one_or_none()

        head = ScriptDirectory.from_config(config).get_current_head()
        return (current or "none", head or "none")

    except Exception as e:
        logger.warning("Could not check migration status: %s", e)
        return ("unknown", "unknown")
