"""
websession - cookie-based sessions and pluggable authentication

This package provides the session and authentication core for a web
application: session creation, validation and expiry, persistent
(autologin) keys, garbage collection of stale sessions, and a
multi-method authenticator with database-password, SSH and LDAP
strategies and account activation, recovery and lockout support.

Packages:
- core: Process settings and database-backed site configuration
- db: Database engine and session management
- models: SQLAlchemy ORM models for users, settings and auth methods
- session: Session handler, session tables, cookies and request context
- auth: Authenticator, user store, auth methods and FastAPI adapter
- cli: Command-line management tools

Usage:
    # Run the API server
    uvicorn websession.main:app --reload --port 8000

    # Create tables and seed defaults
    python -m websession.cli.commands init-db

Environment Variables:
    DATABASE_URL: Database connection URL
    LOG_LEVEL: Logging level (default: INFO)
    LOG_FILE: Optional log file
"""

__version__ = "0.1.0"
