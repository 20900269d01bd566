"""
Configuration for the schema engine and its PostgreSQL backend
Environment-aware configuration based on APP_ENV
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional, Union

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Environment modes
EnvironmentMode = Literal["development", "test", "production"]


def load_app_environment(mode: Optional[str] = None, base_path: Optional[Path] = None) -> str:
    """
    Load environment variables from the appropriate .env file.

    Priority:
    1. Explicit 'mode' argument
    2. APP_ENV environment variable
    3. Default to 'development'

    Loads .env.{mode} from ``base_path`` (default: current directory) if it exists.
    """
    if not mode:
        mode = os.getenv('APP_ENV', 'development')

    env_file = (base_path or Path.cwd()) / f'.env.{mode}'

    if env_file.exists():
        logger.info(f"Loading config from {env_file}")
        # override=False lets variables already set in the process win over the file
        load_dotenv(env_file, override=False)
    else:
        logger.debug(f"No config file found for mode '{mode}' at {env_file}")

    return mode


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration"""

    host: str
    port: int
    database: str
    user: str
    password: str

    # Connection pool settings
    min_pool_size: int = 2
    max_pool_size: int = 10
    command_timeout: int = 60  # seconds

    ssl_mode: str = "require"

    @property
    def asyncpg_ssl(self) -> Union[bool, str]:
        """ssl argument for asyncpg: True (require), False (disable) or 'prefer'"""
        if self.ssl_mode == 'require':
            return True
        if self.ssl_mode == 'disable':
            return False
        return 'prefer'

    def pool_options(self) -> dict:
        """Keyword arguments for asyncpg.create_pool"""
        return {
            'host': self.host,
            'port': self.port,
            'database': self.database,
            'user': self.user,
            'password': self.password,
            'min_size': self.min_pool_size,
            'max_size': self.max_pool_size,
            'command_timeout': self.command_timeout,
            'ssl': self.asyncpg_ssl,
        }

    @classmethod
    def from_environment(cls, mode: Optional[EnvironmentMode] = None) -> 'DatabaseConfig':
        """
        Load configuration from environment variables

        Environment variables:
        - APP_ENV: Environment mode (development, test, production)
        - DB_HOST: Database host (default: localhost)
        - DB_PORT: Database port (default: 5432)
        - DB_NAME: Database name (default: schema_engine)
        - DB_USER / DB_PASSWORD: Credentials
        - DB_SSL_MODE: SSL mode (default: prefer in development, require otherwise)
        - DB_MIN_POOL_SIZE / DB_MAX_POOL_SIZE: Pool bounds
        - DB_COMMAND_TIMEOUT: Per-statement timeout in seconds
        """
        mode = load_app_environment(mode)

        config = cls(
            host=os.getenv('DB_HOST', 'localhost'),
            port=int(os.getenv('DB_PORT', '5432')),
            database=os.getenv('DB_NAME', 'schema_engine'),
            user=os.getenv('DB_USER', 'postgres'),
            password=os.getenv('DB_PASSWORD', ''),
            ssl_mode=os.getenv('DB_SSL_MODE', 'prefer' if mode in ('development', 'test') else 'require'),
            min_pool_size=int(os.getenv('DB_MIN_POOL_SIZE', '2')),
            max_pool_size=int(os.getenv('DB_MAX_POOL_SIZE', '10')),
            command_timeout=int(os.getenv('DB_COMMAND_TIMEOUT', '60')),
        )

        config.validate_safety(mode)
        return config

    def validate_safety(self, mode: str):
        """Ensure configuration is safe for the requested mode"""
        if mode == 'test':
            if 'test' not in self.database:
                raise ValueError(
                    f"SAFETY ERROR: Test mode requested but database is '{self.database}'. "
                    f"Test database must contain 'test'."
                )
            if 'prod' in self.database:
                raise ValueError(
                    f"SAFETY ERROR: Test mode requested but database '{self.database}' appears to be production."
                )
        if mode == 'production' and self.ssl_mode != 'require':
            logger.warning(f"⚠️  Production database configured with ssl_mode='{self.ssl_mode}'")

    @classmethod
    def for_local_development(cls) -> 'DatabaseConfig':
        """Configuration for local PostgreSQL instance"""
        return cls(
            host='localhost',
            port=5432,
            database='schema_engine',
            user='postgres',
            password='postgres',
            ssl_mode='prefer',
            min_pool_size=2,
            max_pool_size=5,
        )

    @classmethod
    def for_testing(cls) -> 'DatabaseConfig':
        """Configuration for test PostgreSQL database"""
        return cls(
            host='localhost',
            port=5432,
            database='schema_engine_test',
            user='postgres',
            password='postgres',
            ssl_mode='prefer',
            min_pool_size=1,
            max_pool_size=5,
        )


@dataclass
class EngineConfig:
    """
    Query engine settings.

    Environment Variables:
    - ENGINE_MAX_LIMIT: Upper bound applied to every requested limit (default: 200)
    - ENGINE_BATCH_SIZE: Parent keys per batched HasMany query (default: 500)
    - ENGINE_LOG_SQL: Log generated SQL text at INFO (default: false)
    """
    max_limit: int = 200
    batch_size: int = 500
    log_sql: bool = False

    @classmethod
    def from_environment(cls) -> "EngineConfig":
        return cls(
            max_limit=int(os.getenv("ENGINE_MAX_LIMIT", "200")),
            batch_size=int(os.getenv("ENGINE_BATCH_SIZE", "500")),
            log_sql=_env_bool("ENGINE_LOG_SQL"),
        )


# Utility functions
def get_environment_mode() -> EnvironmentMode:
    """Get current environment mode from APP_ENV variable"""
    mode = os.getenv('APP_ENV', 'development').lower()
    if mode not in ('development', 'test', 'production'):
        mode = 'development'
    return mode  # type: ignore


def is_test_mode() -> bool:
    """Check if running in test mode"""
    return get_environment_mode() == 'test'
