from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

from mind_reset.db import describe_db
from mind_reset.logging_utils import configure_logging

logger = logging.getLogger("mind_reset.init_db")


def main() -> None:
    configure_logging()
    project_root = Path(__file__).resolve().parents[1]
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        raise RuntimeError(f"alembic.ini not found at: {alembic_ini}")

    cfg = Config(str(alembic_ini))
    command.upgrade(cfg, "head")
    logger.info("Document store migrated (alembic upgrade head): %s", describe_db()["url"])


if __name__ == "__main__":
    main()
