"""Tests for PoolConfig."""

import pytest

from supabase_pool import BackoffStrategy, PoolConfig, PoolConfigurationError

ENV_VARS = [
    "SUPABASE_URL",
    "NEXT_PUBLIC_SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_KEY",
    "SUPABASE_POOL_SIZE",
    "SUPABASE_CONNECTION_TIMEOUT",
    "SUPABASE_IDLE_TIMEOUT",
    "SUPABASE_RETRY_ATTEMPTS",
    "SUPABASE_RETRY_DELAY",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Remove pool variables for the test and restore the environment afterwards.

    Returns a path to a .env file that does not exist yet.
    """
    for name in ENV_VARS:
        # setenv records the original state so anything loaded from .env is undone
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)
    return tmp_path / ".env"


class TestPoolConfig:
    """Test construction and validation."""

    def test_defaults(self):
        config = PoolConfig(url="https://abc.supabase.co")
        assert config.pool_size == 10
        assert config.connection_timeout == 5.0
        assert config.idle_timeout == 300.0
        assert config.retry_attempts == 3
        assert config.retry_delay == 1.0
        assert config.retry_backoff is BackoffStrategy.FIXED
        assert config.cleanup_interval == 30.0
        assert config.query_timeout is None
        assert config.validation_table == "_health_check"

    @pytest.mark.parametrize("pool_size", [0, -1])
    def test_pool_size_must_be_positive(self, pool_size):
        with pytest.raises(PoolConfigurationError) as exc_info:
            PoolConfig(url="https://abc.supabase.co", pool_size=pool_size)
        assert exc_info.value.parameter == "pool_size"

    @pytest.mark.parametrize("field,value", [
        ("connection_timeout", 0),
        ("idle_timeout", -1),
        ("retry_attempts", -1),
        ("retry_delay", -0.5),
        ("cleanup_interval", 0),
        ("query_timeout", 0),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(PoolConfigurationError, match=field):
            PoolConfig(url="https://abc.supabase.co", **{field: value})

    def test_is_immutable(self):
        config = PoolConfig(url="https://abc.supabase.co")
        with pytest.raises(AttributeError):
            config.pool_size = 20

    def test_key_not_in_repr(self):
        config = PoolConfig(url="https://abc.supabase.co", key="super-secret")
        assert "super-secret" not in repr(config)


class TestFromDict:
    """Test PoolConfig.from_dict."""

    def test_from_dict_with_defaults(self):
        config = PoolConfig.from_dict({"url": "https://abc.supabase.co"})
        assert config.url == "https://abc.supabase.co"
        assert config.key == ""
        assert config.pool_size == 10

    def test_from_dict_with_custom_values(self):
        config = PoolConfig.from_dict({
            "url": "https://abc.supabase.co",
            "key": "service-key",
            "pool_size": "4",
            "connection_timeout": 2,
            "idle_timeout": 60,
            "retry_attempts": 5,
            "retry_delay": 0.25,
            "retry_backoff": "exponential",
            "query_timeout": "30",
        })
        assert config.key == "service-key"
        assert config.pool_size == 4
        assert config.connection_timeout == 2.0
        assert config.idle_timeout == 60.0
        assert config.retry_attempts == 5
        assert config.retry_delay == 0.25
        assert config.retry_backoff is BackoffStrategy.EXPONENTIAL
        assert config.query_timeout == 30.0

    def test_from_dict_requires_url(self):
        with pytest.raises(PoolConfigurationError, match="url"):
            PoolConfig.from_dict({"pool_size": 3})

    def test_from_dict_unknown_backoff(self):
        with pytest.raises(PoolConfigurationError, match="retry_backoff"):
            PoolConfig.from_dict({"url": "https://abc.supabase.co", "retry_backoff": "random"})


class TestFromEnv:
    """Test PoolConfig.from_env."""

    def test_from_env_defaults(self, clean_env, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://abc.supabase.co")

        config = PoolConfig.from_env(dotenv_path=str(clean_env))

        assert config.url == "https://abc.supabase.co"
        assert config.key == ""
        assert config.pool_size == 10
        assert config.connection_timeout == 5.0

    def test_from_env_converts_milliseconds(self, clean_env, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://abc.supabase.co")
        monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service-key")
        monkeypatch.setenv("SUPABASE_POOL_SIZE", "20")
        monkeypatch.setenv("SUPABASE_CONNECTION_TIMEOUT", "2500")
        monkeypatch.setenv("SUPABASE_IDLE_TIMEOUT", "60000")
        monkeypatch.setenv("SUPABASE_RETRY_ATTEMPTS", "5")
        monkeypatch.setenv("SUPABASE_RETRY_DELAY", "200")

        config = PoolConfig.from_env(dotenv_path=str(clean_env))

        assert config.key == "service-key"
        assert config.pool_size == 20
        assert config.connection_timeout == 2.5
        assert config.idle_timeout == 60.0
        assert config.retry_attempts == 5
        assert config.retry_delay == 0.2

    def test_from_env_fallback_names(self, clean_env, monkeypatch):
        monkeypatch.setenv("NEXT_PUBLIC_SUPABASE_URL", "https://public.supabase.co")
        monkeypatch.setenv("SUPABASE_KEY", "anon-key")

        config = PoolConfig.from_env(dotenv_path=str(clean_env))

        assert config.url == "https://public.supabase.co"
        assert config.key == "anon-key"

    def test_from_env_reads_dotenv_file(self, clean_env):
        clean_env.write_text(
            "SUPABASE_URL=https://dotenv.supabase.co\n"
            "SUPABASE_SERVICE_ROLE_KEY=from-file\n"
            "SUPABASE_POOL_SIZE=3\n"
        )

        config = PoolConfig.from_env(dotenv_path=str(clean_env))

        assert config.url == "https://dotenv.supabase.co"
        assert config.key == "from-file"
        assert config.pool_size == 3

    def test_from_env_requires_url(self, clean_env):
        with pytest.raises(PoolConfigurationError, match="SUPABASE_URL"):
            PoolConfig.from_env(dotenv_path=str(clean_env))

    def test_from_env_rejects_garbage(self, clean_env, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://abc.supabase.co")
        monkeypatch.setenv("SUPABASE_POOL_SIZE", "lots")

        with pytest.raises(PoolConfigurationError, match="SUPABASE_POOL_SIZE"):
            PoolConfig.from_env(dotenv_path=str(clean_env))

    def test_from_env_validates(self, clean_env, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://abc.supabase.co")
        monkeypatch.setenv("SUPABASE_POOL_SIZE", "0")

        with pytest.raises(PoolConfigurationError, match="pool_size"):
            PoolConfig.from_env(dotenv_path=str(clean_env))
