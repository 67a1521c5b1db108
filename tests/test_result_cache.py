"""
Tests for the SQL-backed and in-memory result caches.
"""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from database.connection import create_test_provider
from result_cache import InMemoryResultCache, SqlResultCache
from vetting_errors import CacheError
from vetting_types import Recommendation

from conftest import build_result as make_result


@pytest.fixture
def sql_cache():
    provider = create_test_provider()
    yield SqlResultCache(provider)
    provider.close()


class TestSqlResultCache:
    """Tests for SqlResultCache."""

    def test_miss_returns_none(self, sql_cache):
        assert sql_cache.get_latest("530196605") is None

    def test_save_then_get_latest(self, sql_cache):
        result = make_result(recommendation=Recommendation.REVIEW)
        saved = sql_cache.save(result, "analyst")
        cached = sql_cache.get_latest("53-0196605")

        assert cached.result.to_dict() == result.to_dict()
        assert cached.vetted_by == "analyst"
        assert cached.record_id == saved.record_id
        assert cached.vetted_at.tzinfo is not None
        assert datetime.now(timezone.utc) - cached.vetted_at < timedelta(minutes=1)

    def test_explicit_timestamp(self, sql_cache):
        vetted_at = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
        saved = sql_cache.save(make_result(), "analyst", vetted_at=vetted_at)
        assert saved.vetted_at == vetted_at
        assert sql_cache.get_latest("530196605").vetted_at == vetted_at

    def test_latest_write_wins(self, sql_cache):
        sql_cache.save(make_result(recommendation=Recommendation.PASS), "first")
        sql_cache.save(make_result(recommendation=Recommendation.REJECT), "second")
        cached = sql_cache.get_latest("530196605")
        assert cached.result.recommendation == Recommendation.REJECT
        assert cached.vetted_by == "second"

    def test_list_and_stats(self, sql_cache):
        sql_cache.save(make_result("111111111", Recommendation.PASS), "a")
        sql_cache.save(make_result("222222222", Recommendation.REVIEW), "b")
        assert sql_cache.get_stats() == {'total': 2, 'pass': 1, 'review': 1, 'reject': 0}
        listed = sql_cache.list_vetted(recommendation=Recommendation.REVIEW)
        assert [c.result.ein for c in listed] == ["222222222"]

    def test_read_failure_raises_cache_error(self):
        provider = MagicMock()
        provider.session_scope.side_effect = SQLAlchemyError("disk I/O error")
        cache = SqlResultCache(provider, create_tables=False)
        with pytest.raises(CacheError):
            cache.get_latest("530196605")

    def test_write_failure_raises_cache_error(self):
        provider = MagicMock()
        provider.session_scope.side_effect = SQLAlchemyError("disk full")
        cache = SqlResultCache(provider, create_tables=False)
        with pytest.raises(CacheError):
            cache.save(make_result(), "analyst")

    def test_from_config(self, tmp_path, write_config):
        config = write_config(f"database:\n  url: sqlite:///{tmp_path / 'cache.db'}\n")
        cache = SqlResultCache.from_config(config)
        cache.save(make_result(), "analyst")
        assert cache.get_latest("530196605").vetted_by == "analyst"
        cache.provider.close()


class TestInMemoryResultCache:
    """Tests for InMemoryResultCache."""

    def test_latest_write_wins(self):
        cache = InMemoryResultCache()
        cache.save(make_result(recommendation=Recommendation.PASS), "first")
        cache.save(make_result(ein="53-0196605", recommendation=Recommendation.REVIEW), "second")
        assert len(cache) == 1
        cached = cache.get_latest("530196605")
        assert cached.result.recommendation == Recommendation.REVIEW
        assert cached.record_id == 2

    def test_explicit_timestamp(self):
        cache = InMemoryResultCache()
        vetted_at = datetime(2025, 1, 1, 9, 30)
        cached = cache.save(make_result(), "analyst", vetted_at=vetted_at)
        assert cached.vetted_at == vetted_at.replace(tzinfo=timezone.utc)

    def test_concurrent_saves(self):
        cache = InMemoryResultCache()
        eins = [f"{i:09d}" for i in range(1, 51)]
        threads = [threading.Thread(target=cache.save, args=(make_result(ein=ein), "worker")) for ein in eins]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert len(cache) == 50
        assert sorted(c.record_id for c in (cache.get_latest(e) for e in eins)) == list(range(1, 51))
