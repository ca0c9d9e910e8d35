"""Configuration management for pgreconcile."""

import os

from dotenv import find_dotenv, load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

_CURRENT_ENV = os.getenv("ENV", "dev")

# Global flag to track if dotenvs have been loaded
_dotenvs_loaded = False


def load_dotenvs() -> None:
    """
    Load environment variables from .env files.

    Loads variables from:
    - .env.common
    - .env.{ENV} (where ENV defaults to 'dev')

    pyinfra deploys call this before reading ``os.environ``; the CLI relies on
    :class:`Settings` reading the same files.
    """
    global _dotenvs_loaded

    if _dotenvs_loaded:
        return

    load_dotenv(find_dotenv(".env.common", usecwd=True))
    load_dotenv(find_dotenv(f".env.{_CURRENT_ENV}", usecwd=True))

    _dotenvs_loaded = True


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env.common", f".env.{_CURRENT_ENV}"),
        env_prefix="PGRECONCILE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ##### Logging #####
    LOG_LEVEL: str = "INFO"
    LOG_JSON_FORMAT: bool = False

    ##### Run #####
    LOCK_FILE: str = "/run/pgreconcile.lock"
    COMMAND_TIMEOUT: int = 600

    ##### Host #####
    SERVICE_ACCOUNT: str = "postgres"
    SYSTEMD_OVERRIDE_DIR: str = "/etc/systemd/system"
    OS_RELEASE_PATH: str = "/etc/os-release"
    # pyinfra deploys stage the password statement here, owned by SERVICE_ACCOUNT with mode 0700
    SECRETS_DIR: str = "/var/lib/pgreconcile"


settings = Settings()
