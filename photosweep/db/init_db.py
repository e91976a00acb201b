from __future__ import annotations

import logging

from photosweep.db.migrations import apply_migrations
from photosweep.db.models import Base
from photosweep.db.session import get_engine

logger = logging.getLogger(__name__)


def initialize_database() -> None:
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    applied = apply_migrations(engine)
    if applied:
        logger.info("Applied schema migrations: %s", ", ".join(applied))
