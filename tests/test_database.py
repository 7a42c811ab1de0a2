import pytest
from shared.database import DatabaseManager, PoolConfig


class TestPoolConfig:
    def test_api_preset(self):
        cfg = PoolConfig.for_service("api")
        assert (cfg.min_size, cfg.max_size) == (0, 10)

    def test_overrides_win_and_unknown_keys_are_dropped(self):
        cfg = PoolConfig.for_service("scripts", ssl="require", bogus=1)
        assert cfg.ssl == "require"
        assert cfg.max_size == 1
        assert not hasattr(cfg, "bogus")

    def test_unknown_service_uses_defaults(self):
        assert PoolConfig.for_service("other") == PoolConfig()


class TestPoolKwargs:
    def test_session_mode_keeps_statement_cache(self):
        db = DatabaseManager("postgresql://u:p@db.example.test:5432/paste")
        kwargs = db.pool_kwargs()
        assert not db.transaction_pooler
        assert kwargs["statement_cache_size"] == 100
        assert kwargs["init"] is not None

    def test_transaction_pooler_disables_session_state(self):
        db = DatabaseManager(
            "postgresql://u:p@db.example.test:6543/paste", PoolConfig(min_size=3, ssl="require")
        )
        kwargs = db.pool_kwargs()
        assert db.transaction_pooler
        assert kwargs["statement_cache_size"] == 0
        assert kwargs["min_size"] == 0
        assert kwargs["init"] is None
        assert kwargs["ssl"] == "require"


class TestLifecycle:
    def test_pool_before_connect_raises(self):
        db = DatabaseManager("postgresql://localhost/paste")
        assert not db.is_connected
        with pytest.raises(RuntimeError):
            _ = db.pool

    @pytest.mark.anyio
    async def test_health_without_pool(self):
        assert await DatabaseManager("postgresql://localhost/paste").check_health() is False
