"""
Vetting pipeline

Orchestrates one vetting run per EIN:

    CacheCheck -> Evaluating -> Persisted

Gates always run, scoring only once every gate passes, red flags on every
run. Every failure comes back as a VettingResponse with success=False so
callers can tell "ineligible" (a successful REJECT) from "could not be
evaluated".

Usage:
    pipeline = VettingPipeline.from_config(config, builder, sanctions_source, revocations)
    response = pipeline.vet("53-0196605")
    if response.success:
        print(response.result.recommendation)
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from audit_logger import AuditLogger, get_audit_logger, sanitize_for_logging
from collaborators import (
    CourtRecordsLookup, ProfileBuilder, ProfileBundle, RevocationLookup, SanctionsListSource,
)
from config_manager import ConfigManager
from gate_engine import GateEngine
from name_matcher import NameMatcher
from profile_utils import normalize_ein
from red_flags import RedFlagDetector
from result_cache import ResultCache, SqlResultCache
from scoring_engine import ScoringEngine
from summary import build_review_reasons, generate_gate_failure_summary, generate_summary
from vetting_errors import (
    InvalidArgumentError, NotFoundError, UpstreamUnavailableError, VettingError,
)
from vetting_types import CachedVetting, Recommendation, VettingResult

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass
class VettingResponse:
    """Outcome of one vet() call"""
    success: bool
    result: Optional[VettingResult] = None
    cached: bool = False
    cached_note: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def failure(cls, error: str, error_code: str) -> 'VettingResponse':
        return cls(success=False, error=error, error_code=error_code)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'success': self.success}
        if self.result is not None:
            data.update(self.result.to_dict())
            data['cached'] = self.cached
            if self.cached_note:
                data['cached_note'] = self.cached_note
        if not self.success:
            data['error'] = self.error
            data['error_code'] = self.error_code
        return data


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VettingPipeline:
    """Runs gates, scoring and red flags for an EIN with result caching"""

    def __init__(
        self,
        config: ConfigManager,
        profile_builder: ProfileBuilder,
        name_matcher: NameMatcher,
        revocation_lookup: RevocationLookup,
        court_lookup: Optional[CourtRecordsLookup] = None,
        cache: Optional[ResultCache] = None,
        audit_logger: Optional[AuditLogger] = None,
        reference_date: Optional[date] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            config: Loaded configuration
            profile_builder: Resolves an EIN to a profile and filing history
            name_matcher: Index over the sanctions list
            revocation_lookup: IRS auto-revocation lookup (required by gate 1)
            court_lookup: Optional federal court records lookup
            cache: Optional result store; None disables caching
            audit_logger: Audit event sink (global instance if omitted)
            reference_date: "Today" for filing age checks (tests pin this)
            clock: Current UTC time, used for cache freshness and write timestamps
        """
        self.config = config
        self.profile_builder = profile_builder
        self.name_matcher = name_matcher
        self.court_lookup = court_lookup
        self.cache = cache
        self.audit = audit_logger or get_audit_logger()
        self.reference_date = reference_date
        self.clock = clock or _utc_now
        self.gate_engine = GateEngine.from_config(config, name_matcher, revocation_lookup)

    @classmethod
    def from_config(
        cls,
        config: ConfigManager,
        profile_builder: ProfileBuilder,
        sanctions_source: SanctionsListSource,
        revocation_lookup: RevocationLookup,
        court_lookup: Optional[CourtRecordsLookup] = None,
        cache: Optional[ResultCache] = None,
    ) -> 'VettingPipeline':
        """Wire a pipeline from configuration; opens the SQL cache when enabled"""
        matcher = NameMatcher.from_source(sanctions_source, config.matching.corporate_suffixes)
        if cache is None and config.cache.enabled:
            cache = SqlResultCache.from_config(config)
        audit = AuditLogger(log_file=config.logging.audit_file or None)
        logger.info(f"Vetting pipeline ready: {len(matcher)} sanctions names indexed, "
                    f"algorithm {config.algorithm.version}")
        return cls(config, profile_builder, matcher, revocation_lookup,
                   court_lookup=court_lookup, cache=cache, audit_logger=audit)

    @property
    def caching_enabled(self) -> bool:
        return self.cache is not None and self.config.cache.enabled

    # ============================================
    # PUBLIC API
    # ============================================

    def vet(self, identifier: Any, force_refresh: bool = False,
            requested_by: Optional[str] = None) -> VettingResponse:
        """Vet one organization by EIN; never raises"""
        request_id = self.audit.new_request_id()

        try:
            ein = normalize_ein(identifier)
        except InvalidArgumentError as e:
            self.audit.log_vetting_failed(str(identifier), InvalidArgumentError.code, str(e), request_id)
            return VettingResponse.failure(str(e), InvalidArgumentError.code)

        if not force_refresh and self.caching_enabled:
            cached = self._read_cache(ein)
            if cached is not None and self._is_fresh(cached):
                self.audit.log_cache_hit(
                    ein, cached.result.recommendation.value,
                    cached.vetted_at.isoformat(), cached.vetted_by, request_id
                )
                return VettingResponse(
                    success=True,
                    result=cached.result,
                    cached=True,
                    cached_note=(f"Previously vetted on {cached.vetted_at.isoformat(timespec='seconds')} "
                                 f"by {cached.vetted_by}. Use force_refresh: true to re-vet."),
                )

        try:
            result = self.evaluate(ein)
        except VettingError as e:
            # Subclass codes (INVALID_EIN, INVALID_CONFIGURATION) collapse to the public one
            code = InvalidArgumentError.code if isinstance(e, InvalidArgumentError) else e.code
            logger.warning(f"Vetting failed for EIN {ein}: {code}: {sanitize_for_logging(e)}")
            self.audit.log_vetting_failed(ein, code, str(e), request_id)
            return VettingResponse.failure(str(e), code)
        except Exception as e:
            logger.exception(f"Unexpected error vetting EIN {ein}")
            self.audit.log_vetting_failed(ein, INTERNAL_ERROR, str(e), request_id)
            return VettingResponse.failure(f"Unexpected error: {e}", INTERNAL_ERROR)

        vetted_by = requested_by or self.config.cache.vetted_by
        if self.caching_enabled:
            self._write_cache(result, vetted_by, request_id)

        if result.gate_blocked:
            self.audit.log_gate_blocked(ein, result.gates.blocking_gate, request_id)
        self.audit.log_vetting_completed(
            ein, result.recommendation.value, result.score, len(result.red_flags),
            requested_by=vetted_by, request_id=request_id
        )
        return VettingResponse(success=True, result=result)

    def vet_batch(self, identifiers: Iterable[Any], force_refresh: bool = False,
                  requested_by: Optional[str] = None) -> Dict[str, VettingResponse]:
        """Vet many organizations concurrently, keyed by input identifier

        One failure never stops the batch; vet() already converts failures
        into responses.
        """
        unique: List[Any] = list(dict.fromkeys(identifiers))
        responses: Dict[str, VettingResponse] = {}
        if not unique:
            return responses

        batch_size = self.config.performance.batch_size
        max_workers = max(1, min(self.config.performance.max_threads, len(unique)))
        logger.info(f"Vetting batch of {len(unique)} organizations with {max_workers} threads")

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            for start in range(0, len(unique), batch_size):
                chunk = unique[start:start + batch_size]
                futures = {
                    executor.submit(self.vet, identifier, force_refresh, requested_by): identifier
                    for identifier in chunk
                }
                for future in as_completed(futures):
                    responses[str(futures[future])] = future.result()
                logger.debug(f"Batch progress: {len(responses)}/{len(unique)}")

        failed = sum(1 for r in responses.values() if not r.success)
        logger.info(f"Batch complete: {len(responses) - failed} vetted, {failed} failed")
        return responses

    # ============================================
    # EVALUATION
    # ============================================

    def _build_profile(self, ein: str) -> ProfileBundle:
        try:
            bundle = self.profile_builder.build(ein)
        except VettingError:
            raise
        except Exception as e:
            raise UpstreamUnavailableError(f"Profile data unavailable for EIN {ein}: {e}",
                                           source="profile") from e
        if bundle is None:
            raise NotFoundError(f"No organization found for EIN {ein}")
        return bundle

    def evaluate(self, ein: str) -> VettingResult:
        """Evaluate an already-normalized EIN without touching the cache

        Raises:
            NotFoundError: If no profile can be built
            UpstreamUnavailableError: If profile or revocation data is unreachable
            InvalidArgumentError: If sector thresholds are invalid
        """
        bundle = self._build_profile(ein)
        profile = bundle.profile
        thresholds = self.config.resolve_sector_thresholds(profile.ntee_code)

        gates = self.gate_engine.evaluate(profile)

        detector = RedFlagDetector(
            thresholds,
            name_matcher=self.name_matcher,
            court_lookup=self.court_lookup,
            fuzzy_threshold=self.config.matching.fuzzy_threshold,
            reference_date=self.reference_date,
        )
        red_flags = detector.detect(profile, bundle.filings)

        if not gates.all_passed:
            return VettingResult(
                ein=profile.ein,
                name=profile.name,
                gates=gates,
                recommendation=Recommendation.REJECT,
                summary=generate_gate_failure_summary(profile.name, gates.blocking_gate, gates.gates, red_flags),
                red_flags=red_flags,
                review_reasons=tuple(build_review_reasons(None, red_flags, gates.gates)),
            )

        scorer = ScoringEngine(
            thresholds,
            reference_date=self.reference_date,
            reject_on_high_flags=self.config.policy.reject_on_high_flags,
        )
        outcome = scorer.score(profile)
        recommendation = scorer.recommend(outcome.score, red_flags)

        return VettingResult(
            ein=profile.ein,
            name=profile.name,
            gates=gates,
            recommendation=recommendation,
            summary=generate_summary(profile.name, outcome.score, recommendation,
                                     outcome.checks, red_flags, profile.years_operating),
            red_flags=red_flags,
            score=outcome.score,
            checks=outcome.checks,
            review_reasons=tuple(build_review_reasons(outcome.checks, red_flags)),
        )

    # ============================================
    # CACHE
    # ============================================

    def _read_cache(self, ein: str) -> Optional[CachedVetting]:
        try:
            return self.cache.get_latest(ein)
        except Exception as e:
            logger.warning(f"Cache read failed for EIN {ein}, evaluating fresh: {sanitize_for_logging(e)}")
            return None

    def _is_fresh(self, cached: CachedVetting) -> bool:
        vetted_at = cached.vetted_at
        if vetted_at.tzinfo is None:
            vetted_at = vetted_at.replace(tzinfo=timezone.utc)
        return self.clock() - vetted_at < timedelta(days=self.config.cache.max_age_days)

    def _write_cache(self, result: VettingResult, vetted_by: str, request_id: str) -> None:
        try:
            self.cache.save(result, vetted_by, vetted_at=self.clock())
        except Exception as e:
            logger.warning(f"Failed to cache result for EIN {result.ein}: {sanitize_for_logging(e)}")
            self.audit.log_cache_write_failed(result.ein, str(e), request_id)
