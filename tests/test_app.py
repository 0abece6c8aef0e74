# tests/test_app.py
"""
Application Wiring Tests - Composition Root, CLI and PID Guard

Files that USE this module:
- pytest (test runner executes these tests)

Files that this module USES:
- bullion.app (build_* wiring, main, PID helpers)
- bullion.config.settings (Settings)
- unittest.mock (patch for settings and requests.get)
"""
import logging
import os
import random
import sys
import types
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import Mock, patch
import requests
from pydantic import ValidationError

from bullion import app
from bullion.adapters.persistence.row_store import PRICES_TABLE, InMemoryRowStore, JsonFileRowStore
from bullion.adapters.providers import GoldApiSource, MetalPriceApiSource
from bullion.application.source_chain import ChainedPriceSource
from bullion.config.settings import Settings
from bullion.domain.errors import ConfigurationError
from bullion.domain.models import Instrument


def _settings(**values):
    values.setdefault("STORE_BACKEND", "memory")
    values.setdefault("RANDOM_SEED", 11)
    return Settings(_env_file=None, **values)


class TestWiring:
    def test_single_source_is_used_directly(self):
        service = app.build_service(_settings())
        assert isinstance(service.cache.source, GoldApiSource)
        assert isinstance(service.writer.store, InMemoryRowStore)
        assert service.evaluator.retrigger_mode == "edge"
        assert service.cache.ttl == 60

    def test_multiple_sources_are_chained(self):
        service = app.build_service(_settings(
            PRICE_SOURCES=["metal_price_api", "gold_api"],
            METALS_API_KEY="k" * 32,
        ))
        chain = service.cache.source
        assert isinstance(chain, ChainedPriceSource)
        assert isinstance(chain.sources[0], MetalPriceApiSource)
        assert isinstance(chain.sources[1], GoldApiSource)

    def test_metal_price_api_needs_key(self):
        with pytest.raises(ConfigurationError, match="METALS_API_KEY"):
            app.build_service(_settings(PRICE_SOURCES=["metal_price_api"]))

    def test_json_backend(self, tmp_path):
        settings = _settings(STORE_BACKEND="json", STORE_PATH=str(tmp_path / "db.json"))
        assert isinstance(app.build_store(settings), JsonFileRowStore)

    def test_sources_share_limiter(self):
        sources = app.build_sources(
            _settings(PRICE_SOURCES=["gold_api", "goodreturns"]),
            rng=random.Random(0),
        )
        assert sources[0].limiter is sources[1].limiter
        assert sources[1].crawler.limiter is sources[0].limiter


class TestMain:
    @patch("bullion.adapters.providers.base.requests.get")
    def test_once_with_upstream_down_writes_fallback_cycle(self, mock_get, capsys):
        mock_get.side_effect = requests.exceptions.ConnectionError("offline")
        store = InMemoryRowStore()
        settings = _settings(BULLION_LOG_STDOUT=False)

        with patch("bullion.config.settings", settings), \
                patch("bullion.app.build_store", return_value=store):
            exit_code = app.main(["--once"])

        assert exit_code == 0
        assert len(store.select_where(PRICES_TABLE)) == len(Instrument)
        assert "generated locally" in capsys.readouterr().out

    def _health(self, store):
        settings = _settings(BULLION_LOG_STDOUT=False, PRICE_SOURCES=["goodreturns"])
        with patch("bullion.config.settings", settings), \
                patch("bullion.app.build_store", return_value=store):
            return app.main(["--health"])

    def test_health_flag_fresh_store(self, capsys):
        store = InMemoryRowStore()
        store.insert(PRICES_TABLE, {"metal_type": "gold", "price_usd": 2000.0, "source": "Gold API",
                                    "timestamp": datetime.now(timezone.utc).isoformat()})
        assert self._health(store) == 0
        out = capsys.readouterr().out
        assert "Status: HEALTHY - All systems healthy" in out
        assert "cache:" not in out

    def test_health_flag_stale_store(self, capsys):
        store = InMemoryRowStore()
        stale = datetime.now(timezone.utc) - timedelta(hours=1)
        store.insert(PRICES_TABLE, {"metal_type": "gold", "price_usd": 2000.0, "source": "Gold API",
                                    "timestamp": stale.isoformat()})
        assert self._health(store) == 1
        assert "[FAIL] store: Store stale" in capsys.readouterr().out

    def test_health_flag_empty_store(self, capsys):
        assert self._health(InMemoryRowStore()) == 1
        assert "holds no gold rows" in capsys.readouterr().out

    def test_invalid_settings_exit_code(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(_env_file=None, FX_RATES={"USD": 1, "XYZ": 2})
        error = exc_info.value

        def fail(name):
            raise error

        config = types.ModuleType("bullion.config")
        config.__getattr__ = fail
        with patch.dict(sys.modules, {"bullion.config": config}):
            assert app.main(["--once"]) == 2


class TestRefreshJob:
    def _job(self, ok=True, used_fallback=False):
        service = Mock()
        service.run_cycle.return_value = Mock(ok=ok, used_fallback=used_fallback)
        checker = Mock()
        checker.get_overall_health.return_value = {
            "status": "degraded",
            "message": "Degraded - 1 component(s) failed: cache",
            "checks": {"cache": {"healthy": False, "message": "Serving fallback prices"}},
        }
        return app.make_refresh_job(service, checker), service, checker

    def test_healthy_cycle_skips_report(self):
        job, service, checker = self._job()
        job()
        service.run_cycle.assert_called_once_with()
        checker.get_overall_health.assert_not_called()

    def test_fallback_cycle_logs_health(self, caplog):
        job, _, checker = self._job(used_fallback=True)
        with caplog.at_level(logging.WARNING, logger="bullion.app"):
            job()
        checker.get_overall_health.assert_called_once_with(app.SERVING_HEALTH_COMPONENTS)
        assert "[FAIL] cache: Serving fallback prices" in caplog.text


class TestPidGuard:
    def test_env_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("BULLION_PID_FILE", str(tmp_path / "x.pid"))
        assert app._get_pid_file() == tmp_path / "x.pid"

    def test_default_next_to_store(self, monkeypatch, tmp_path):
        monkeypatch.delenv("BULLION_PID_FILE", raising=False)
        settings = _settings(STORE_PATH=str(tmp_path / "data" / "db.json"))
        assert app._get_pid_file(settings) == tmp_path / "data" / "bullion.pid"

    def test_live_instance_blocks(self, tmp_path):
        pid_file = tmp_path / "bullion.pid"
        pid_file.write_text(str(os.getpid()))
        with pytest.raises(RuntimeError, match="already running"):
            app._check_existing_instance(pid_file)

    def test_garbage_pid_file_removed(self, tmp_path):
        pid_file = tmp_path / "bullion.pid"
        pid_file.write_text("not-a-pid")
        app._check_existing_instance(pid_file)
        assert not pid_file.exists()

    def test_create_and_remove(self, tmp_path):
        pid_file = tmp_path / "run" / "bullion.pid"
        app._create_pid_file(pid_file)
        assert pid_file.read_text() == str(os.getpid())
        app._remove_pid_file(pid_file)
        assert not pid_file.exists()
