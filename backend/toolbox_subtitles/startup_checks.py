"""Application startup validation."""

import logging
from pathlib import Path

from toolbox_subtitles.config import DEFAULT_SECRET_KEY, settings
from toolbox_subtitles.database import Base, engine

# Import models so metadata is populated for create_all safeguards
from toolbox_subtitles.models import subtitle_job, toolbox_talk  # noqa: F401

logger = logging.getLogger("toolbox_subtitles.startup")


async def ensure_core_tables() -> None:
    """Create missing tables; existing tables are left alone."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)


def validate_configuration() -> list[str]:
    """Validate application configuration.

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    if settings.is_production:
        if settings.secret_key == DEFAULT_SECRET_KEY:
            errors.append("SECRET_KEY is still set to default value in production.")
        elif len(settings.secret_key) < 32:
            errors.append(
                f"SECRET_KEY is too short ({len(settings.secret_key)} chars). "
                "Use at least 32 characters in production."
            )

    if not settings.database_url:
        errors.append("DATABASE_URL is not configured")

    storage_root = Path(settings.storage_root)
    if storage_root.exists() and not storage_root.is_dir():
        errors.append(f"STORAGE_ROOT is not a directory: {storage_root}")

    return errors


def validate_services() -> list[str]:
    """Check credentials for the external services.

    Returns:
        List of warnings; jobs fail with a configuration error until fixed
    """
    warnings = []
    if not settings.elevenlabs_api_key:
        warnings.append("ELEVENLABS_API_KEY is not set; transcription will fail")
    if not settings.claude_api_key:
        warnings.append("CLAUDE_API_KEY is not set; translation will fail")
    return warnings


async def run_startup_checks() -> None:
    """Run all startup validation checks.

    Raises:
        RuntimeError: If critical configuration errors are found
    """
    logger.info("Running startup validation checks...")

    await ensure_core_tables()

    config_errors = validate_configuration()
    if config_errors:
        logger.error("Configuration validation failed:")
        for error in config_errors:
            logger.error("  - %s", error)
        raise RuntimeError(
            f"Configuration validation failed with {len(config_errors)} error(s). "
            "Fix configuration and restart."
        )
    logger.info("Configuration validation passed")

    service_warnings = validate_services()
    if service_warnings:
        logger.warning("External service checks found issues:")
        for warning in service_warnings:
            logger.warning("  - %s", warning)
    else:
        logger.info("External service credentials present")

    logger.info("Startup validation completed")
