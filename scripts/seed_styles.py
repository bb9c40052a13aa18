#!/usr/bin/env python3
"""Insert the built-in styles and default templates into the configured database."""

import sys

from sqlalchemy.exc import SQLAlchemyError

from app.core.settings import settings
from app.db.base import Base
from app.db.session import get_engine, init_engine, session_scope
from app.services.styles import StyleService


def main():
    init_engine(settings.database_url)
    Base.metadata.create_all(bind=get_engine())

    try:
        with session_scope() as db:
            seeded = StyleService(db).seed_built_ins()
    except SQLAlchemyError as exc:
        print(f"Failed to seed styles: {exc}", file=sys.stderr)
        sys.exit(1)

    if seeded:
        print(f"Seeded {len(seeded)} styles: {', '.join(seeded)}")
    else:
        print("All built-in styles already present")


if __name__ == "__main__":
    main()
