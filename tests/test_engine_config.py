"""
Tests for environment-driven configuration.
"""

import pytest

from schema_engine.config import (
    DatabaseConfig,
    EngineConfig,
    get_environment_mode,
    is_test_mode,
    load_app_environment,
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ("APP_ENV", "DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD", "DB_SSL_MODE",
                 "DB_MIN_POOL_SIZE", "DB_MAX_POOL_SIZE", "DB_COMMAND_TIMEOUT",
                 "ENGINE_MAX_LIMIT", "ENGINE_BATCH_SIZE", "ENGINE_LOG_SQL"):
        # Recorded by monkeypatch, so values load_dotenv sets are undone too
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    # No stray .env.* files from the working directory
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestDatabaseConfig:
    def test_defaults(self, clean_env):
        config = DatabaseConfig.from_environment("development")
        assert config.host == "localhost"
        assert config.port == 5432
        assert config.database == "schema_engine"
        assert config.ssl_mode == "prefer"
        assert config.command_timeout == 60

    def test_reads_environment(self, clean_env):
        clean_env.setenv("DB_HOST", "db.internal")
        clean_env.setenv("DB_PORT", "6543")
        clean_env.setenv("DB_NAME", "crm")
        clean_env.setenv("DB_MAX_POOL_SIZE", "20")

        config = DatabaseConfig.from_environment("production")

        assert config.host == "db.internal"
        assert config.port == 6543
        assert config.max_pool_size == 20
        assert config.ssl_mode == "require"

    def test_env_file_loaded_without_overriding_process(self, clean_env, tmp_path):
        (tmp_path / ".env.test").write_text("DB_NAME=crm_test\nDB_USER=from_file\n")
        clean_env.setenv("DB_USER", "from_process")

        config = DatabaseConfig.from_environment("test")

        assert config.database == "crm_test"
        assert config.user == "from_process"

    @pytest.mark.parametrize("database", ["crm", "crm_prod_test"])
    def test_test_mode_refuses_unsafe_database(self, clean_env, database):
        clean_env.setenv("DB_NAME", database)
        with pytest.raises(ValueError, match="SAFETY ERROR"):
            DatabaseConfig.from_environment("test")

    def test_for_testing_is_safe(self):
        config = DatabaseConfig.for_testing()
        config.validate_safety("test")
        assert "test" in config.database


class TestEngineConfig:
    def test_defaults(self, clean_env):
        config = EngineConfig.from_environment()
        assert config == EngineConfig(max_limit=200, batch_size=500, log_sql=False)

    def test_reads_environment(self, clean_env):
        clean_env.setenv("ENGINE_MAX_LIMIT", "50")
        clean_env.setenv("ENGINE_BATCH_SIZE", "100")
        clean_env.setenv("ENGINE_LOG_SQL", "yes")

        config = EngineConfig.from_environment()

        assert config.max_limit == 50
        assert config.batch_size == 100
        assert config.log_sql is True


class TestEnvironmentMode:
    def test_unknown_mode_falls_back_to_development(self, clean_env):
        clean_env.setenv("APP_ENV", "staging")
        assert get_environment_mode() == "development"

    def test_is_test_mode(self, clean_env):
        clean_env.setenv("APP_ENV", "TEST")
        assert is_test_mode()

    def test_load_app_environment_defaults_to_development(self, clean_env):
        assert load_app_environment() == "development"


class TestPoolOptions:
    @pytest.mark.parametrize("ssl_mode, expected", [("require", True), ("disable", False), ("prefer", "prefer")])
    def test_ssl_mapping(self, ssl_mode, expected):
        config = DatabaseConfig("localhost", 5432, "crm", "app", "pw", ssl_mode=ssl_mode)
        assert config.pool_options()["ssl"] == expected

    def test_credentials_passed_unescaped(self):
        config = DatabaseConfig("localhost", 5432, "crm", "app", "p@ss/word")
        options = config.pool_options()
        assert options["password"] == "p@ss/word"
        assert "dsn" not in options
        assert not hasattr(config, "asyncpg_dsn")

    def test_pool_bounds_and_timeout(self):
        options = DatabaseConfig.for_testing().pool_options()
        assert options["min_size"] == 1
        assert options["max_size"] == 5
        assert options["command_timeout"] == 60
