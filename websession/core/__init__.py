"""
websession Core Package

This package contains process settings and the database-backed site
configuration used by the session handler and authenticator.

Modules:
- settings: Environment-driven process settings
- site_config: Name/value settings table and the typed AuthConfig

Environment Variables:
    DATABASE_URL: SQLAlchemy database connection URL
    ANONYMOUS_USER_ID: User id representing "not logged in"
"""
