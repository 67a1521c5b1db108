"""
Result cache

Stores vetting verdicts keyed by EIN and returns the most recent one.
SqlResultCache persists through SQLAlchemy with retried sessions;
InMemoryResultCache keeps the latest write per EIN for tests and
single-process use.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from database.connection import DatabaseSessionProvider, DatabaseSettings, db_retry
from database.repositories import RepositoryError, VettingResultRepository, ensure_utc
from profile_utils import clean_ein
from vetting_errors import CacheError
from vetting_types import CachedVetting, VettingResult

logger = logging.getLogger(__name__)


class ResultCache(ABC):
    """Latest-verdict store consumed by the vetting pipeline"""

    @abstractmethod
    def get_latest(self, ein: str) -> Optional[CachedVetting]:
        ...

    @abstractmethod
    def save(self, result: VettingResult, vetted_by: str,
             vetted_at: Optional[datetime] = None) -> CachedVetting:
        ...


class SqlResultCache(ResultCache):
    """ResultCache backed by the vetting_results table

    Every call opens its own session. Transient OperationalErrors are
    retried; anything left over surfaces as CacheError.
    """

    def __init__(self, provider: DatabaseSessionProvider, create_tables: bool = True):
        self.provider = provider
        if create_tables:
            self.provider.create_tables()

    @classmethod
    def from_config(cls, config) -> 'SqlResultCache':
        provider = DatabaseSessionProvider(DatabaseSettings.from_config(config.database))
        return cls(provider)

    @db_retry
    def _read_latest(self, ein: str) -> Optional[CachedVetting]:
        with self.provider.session_scope() as session:
            record = VettingResultRepository(session).get_latest_by_ein(ein)
            if record is None:
                return None
            return VettingResultRepository.to_cached(record)

    @db_retry
    def _write(self, result: VettingResult, vetted_by: str, vetted_at: datetime) -> CachedVetting:
        with self.provider.session_scope() as session:
            record = VettingResultRepository(session).save_result(result, vetted_by, vetted_at)
            return CachedVetting(result=result, vetted_at=vetted_at,
                                 vetted_by=vetted_by, record_id=record.id)

    def get_latest(self, ein: str) -> Optional[CachedVetting]:
        try:
            return self._read_latest(clean_ein(ein))
        except (SQLAlchemyError, RepositoryError, ValueError, KeyError) as e:
            raise CacheError(f"Failed to read cached result for {clean_ein(ein)}: {e}") from e

    def save(self, result: VettingResult, vetted_by: str,
             vetted_at: Optional[datetime] = None) -> CachedVetting:
        try:
            return self._write(result, vetted_by, ensure_utc(vetted_at or datetime.now(timezone.utc)))
        except (SQLAlchemyError, RepositoryError) as e:
            raise CacheError(f"Failed to save result for {clean_ein(result.ein)}: {e}") from e

    def list_vetted(self, recommendation=None, since=None, limit: int = 20) -> List[CachedVetting]:
        with self.provider.session_scope() as session:
            records = VettingResultRepository(session).list_vetted(recommendation, since, limit)
            return [VettingResultRepository.to_cached(r) for r in records]

    def get_stats(self) -> Dict[str, int]:
        with self.provider.session_scope() as session:
            return VettingResultRepository(session).get_stats()


class InMemoryResultCache(ResultCache):
    """Lock-protected dict keyed by EIN; the latest write wins"""

    def __init__(self):
        self._entries: Dict[str, CachedVetting] = {}
        self._lock = threading.Lock()
        self._next_id = 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_latest(self, ein: str) -> Optional[CachedVetting]:
        with self._lock:
            return self._entries.get(clean_ein(ein))

    def save(self, result: VettingResult, vetted_by: str,
             vetted_at: Optional[datetime] = None) -> CachedVetting:
        with self._lock:
            cached = CachedVetting(
                result=result,
                vetted_at=ensure_utc(vetted_at or datetime.now(timezone.utc)),
                vetted_by=vetted_by,
                record_id=self._next_id,
            )
            self._next_id += 1
            self._entries[clean_ein(result.ein)] = cached
            return cached
