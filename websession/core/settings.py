from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process settings.

    Optional:
      - DATABASE_URL (defaults to a local SQLite file)
      - *_TABLE: names of the persisted tables. SESSION_VARIABLES_TABLE and
        LASTVISIT_TABLE may be set empty to disable those features.
      - ANONYMOUS_USER_ID: the user id that represents "not logged in"
      - LOG_LEVEL, LOG_FILE: logging level and optional log file
      - SSH_TIMEOUT, LDAP_TIMEOUT: delegated auth connection timeouts
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./websession.db"
    sql_echo: bool = False
    log_level: str = "INFO"
    log_file: Optional[str] = Field(default=None, description="Also write logs to this file")

    # Table names
    sessions_table: str = "sessions"
    session_keys_table: str = "session_keys"
    session_variables_table: Optional[str] = Field(
        default="session_variables",
        description="Session variable table; empty disables session variables",
    )
    settings_table: str = "settings"
    users_table: str = "users"
    lastvisit_table: Optional[str] = Field(
        default="user_visits",
        description="Last-visit table; empty disables last-visit bookkeeping",
    )
    auth_methods_table: str = "auth_methods"
    auth_params_table: str = "auth_methods_params"

    anonymous_user_id: int = 1

    # Auth method defaults
    bcrypt_cost: int = Field(
        default=14,
        description="bcrypt cost used when hashing new passwords",
    )
    ssh_timeout: int = Field(
        default=5,
        validation_alias="SSH_TIMEOUT",
        description="Connection timeout in seconds for SSH-delegated auth",
    )
    ldap_timeout: int = Field(
        default=5,
        validation_alias="LDAP_TIMEOUT",
        description="Connection timeout in seconds for LDAP auth",
    )

    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]


settings = Settings()
