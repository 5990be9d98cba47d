"""Startup seeding: default categories and the admin account."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from specmarket.auth.service import ensure_admin
from specmarket.catalog.service import seed_categories

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from specmarket.config import Settings

logger = structlog.get_logger()


async def seed_reference_data(db: AsyncSession, settings: Settings) -> None:
    """Idempotently insert default categories and, when configured, the admin user."""
    await seed_categories(db)
    if settings.admin_email and settings.admin_password:
        await ensure_admin(db, settings.admin_email, settings.admin_password)
    else:
        logger.info("admin_seed_skipped", reason="SPM_ADMIN_EMAIL or SPM_ADMIN_PASSWORD not set")
    await db.commit()
