"""
websession Database Package

This package provides database connection and session management
using SQLAlchemy.

Modules:
- engine: Database engine configuration, SessionLocal factory, init_db()
- deps: Database session dependency for FastAPI

Usage:
    from websession.db.engine import SessionLocal

    with SessionLocal() as db:
        # perform database operations
        pass

Note that "session" in this package means a SQLAlchemy unit of work;
website sessions live in websession.session.

Environment Variables:
    DATABASE_URL: SQLAlchemy database connection URL
    SQL_ECHO: Log every SQL statement (default: false)
"""
