"""
Weighted scoring checks

Four checks (tenure, revenue range, expense-to-revenue ratio, filing
recency) scored PASS/REVIEW/FAIL against a ThresholdConfig. PASS earns the
full weight, REVIEW half, FAIL nothing. Runs only once every gate passes.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Dict, Any, Iterable, List, Optional, Tuple

from config_manager import DEFAULT_SECTOR_OVERRIDES, ThresholdConfig
from vetting_types import (
    CheckResult, LatestFilingSummary, OrganizationProfile, Recommendation,
    RedFlag, ScoredCheck, Severity,
)

logger = logging.getLogger(__name__)


# ============================================
# FORMATTING
# ============================================

def format_number(num: float) -> str:
    """Compact dollar amount: 1.5M, 65K, 900"""
    sign = "-" if num < 0 else ""
    magnitude = abs(num)
    if magnitude >= 1_000_000:
        return f"{sign}{magnitude / 1_000_000:.1f}M"
    if magnitude >= 1_000:
        return f"{sign}{magnitude / 1_000:.0f}K"
    return f"{num:.0f}"


def format_percent(ratio: float) -> str:
    return f"{ratio * 100:.1f}%"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def filing_age(latest_filing: Optional[LatestFilingSummary], reference_date: Optional[date] = None) -> Optional[int]:
    """Whole tax years between the filing and the reference date"""
    if latest_filing is None or latest_filing.tax_year is None:
        return None
    reference_date = reference_date or date.today()
    return reference_date.year - int(latest_filing.tax_year)


# ============================================
# SECTOR THRESHOLDS
# ============================================

def ntee_major_category(ntee_code: Optional[str]) -> Optional[str]:
    """First letter of an NTEE code, or None when it is not A-Z"""
    if not ntee_code:
        return None
    first = ntee_code.strip()[:1].upper()
    return first if 'A' <= first <= 'Z' else None


def resolve_thresholds(
    base: ThresholdConfig,
    ntee_code: Optional[str],
    overrides: Optional[Dict[str, Dict[str, Any]]] = None,
) -> ThresholdConfig:
    """Merge the sector override for an NTEE major category onto base

    Raises:
        ConfigurationError: If the merged thresholds are invalid
    """
    if overrides is None:
        overrides = DEFAULT_SECTOR_OVERRIDES
    category = ntee_major_category(ntee_code)
    if category is None or not overrides.get(category):
        return base
    resolved = base.merged(overrides[category]).validate()
    logger.debug(f"Applied sector thresholds for NTEE category {category}")
    return resolved


def supported_sectors(overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> List[str]:
    return sorted((overrides if overrides is not None else DEFAULT_SECTOR_OVERRIDES).keys())


# ============================================
# SCORING ENGINE
# ============================================

@dataclass(frozen=True)
class ScoringOutcome:
    """Checks and the score they add up to"""
    checks: Tuple[ScoredCheck, ...]
    score: int


class ScoringEngine:
    """Stateless scorer bound to one threshold set"""

    def __init__(
        self,
        thresholds: ThresholdConfig,
        reference_date: Optional[date] = None,
        reject_on_high_flags: bool = False,
    ):
        self.thresholds = thresholds.validate()
        self.reference_date = reference_date
        self.reject_on_high_flags = reject_on_high_flags

    def _today(self) -> date:
        return self.reference_date or date.today()

    def check_years_operating(self, profile: OrganizationProfile) -> ScoredCheck:
        t = self.thresholds
        years = profile.years_operating

        if years is None or years < 0:
            result, detail = CheckResult.FAIL, "No ruling date available"
        elif years < t.years_review_min:
            result = CheckResult.FAIL
            detail = (f"Less than {_plural(t.years_review_min, 'year')} operating "
                      f"({_plural(years, 'year')} since {profile.ruling_date})")
        elif years < t.years_pass_min:
            result = CheckResult.REVIEW
            detail = f"{years} years operating (since {profile.ruling_date}) - newer organization"
        else:
            result = CheckResult.PASS
            detail = f"{years} years operating (since {profile.ruling_date})"

        return ScoredCheck("years_operating", result, t.weight_years_operating, detail)

    def check_revenue_range(self, profile: OrganizationProfile) -> ScoredCheck:
        t = self.thresholds
        revenue = profile.latest_filing.total_revenue if profile.latest_filing else None

        if revenue is None:
            result, detail = CheckResult.FAIL, "No revenue data available"
        elif revenue < 0:
            result = CheckResult.FAIL
            detail = f"Negative revenue (${format_number(revenue)}) - data anomaly requires investigation"
        elif revenue == 0:
            result, detail = CheckResult.FAIL, "Zero revenue reported"
        elif revenue < t.revenue_fail_min:
            result = CheckResult.FAIL
            detail = f"${format_number(revenue)} revenue - too small to assess reliably"
        elif revenue < t.revenue_pass_min:
            result = CheckResult.REVIEW
            detail = f"${format_number(revenue)} revenue - small but viable"
        elif revenue <= t.revenue_pass_max:
            result = CheckResult.PASS
            detail = f"${format_number(revenue)} revenue - appropriate size for impact"
        elif revenue <= t.revenue_review_max:
            result = CheckResult.REVIEW
            detail = f"${format_number(revenue)} revenue - larger organization, may have different needs"
        else:
            result = CheckResult.FAIL
            detail = (f"${format_number(revenue)} revenue - outside target scope "
                      f"(>${format_number(t.revenue_review_max)})")

        return ScoredCheck("revenue_range", result, t.weight_revenue_range, detail)

    def check_overhead_ratio(self, profile: OrganizationProfile) -> ScoredCheck:
        t = self.thresholds
        ratio = profile.latest_filing.overhead_ratio if profile.latest_filing else None

        # Unknown is not proof of a problem
        if ratio is None:
            result, detail = CheckResult.REVIEW, "Cannot calculate expense efficiency - missing data"
        elif ratio < 0:
            result = CheckResult.FAIL
            detail = (f"Negative expense-to-revenue ratio ({format_percent(ratio)}) "
                      "- data anomaly requires investigation")
        elif t.expense_ratio_pass_min <= ratio <= t.expense_ratio_pass_max:
            result = CheckResult.PASS
            detail = f"{format_percent(ratio)} expense-to-revenue ratio - healthy fund deployment"
        elif t.expense_ratio_pass_max < ratio <= t.expense_ratio_high_review:
            result = CheckResult.REVIEW
            detail = (f"{format_percent(ratio)} expense-to-revenue ratio "
                      "- spending exceeds revenue (check reserves)")
        elif ratio > t.expense_ratio_high_review:
            result = CheckResult.FAIL
            detail = f"{format_percent(ratio)} expense-to-revenue ratio - potentially unsustainable"
        elif ratio >= t.expense_ratio_low_review:
            result = CheckResult.REVIEW
            detail = (f"{format_percent(ratio)} expense-to-revenue ratio "
                      "- lower than typical (accumulating reserves?)")
        else:
            result = CheckResult.FAIL
            detail = f"{format_percent(ratio)} expense-to-revenue ratio - very low fund deployment"

        return ScoredCheck("overhead_ratio", result, t.weight_overhead_ratio, detail)

    def check_recent_990(self, profile: OrganizationProfile) -> ScoredCheck:
        t = self.thresholds
        filing = profile.latest_filing
        age = filing_age(filing, self._today())

        if filing is None or age is None:
            result, detail = CheckResult.FAIL, "No 990 filings on record"
        elif age <= t.filing_pass_max_years:
            result = CheckResult.PASS
            detail = f"Most recent 990 from {filing.tax_period} ({filing.form_type})"
        elif age <= t.filing_review_max_years:
            result = CheckResult.REVIEW
            detail = f"Most recent 990 from {filing.tax_period} - data is {_plural(age, 'year')} old"
        else:
            result = CheckResult.FAIL
            detail = (f"Most recent 990 from {filing.tax_period} - data is "
                      f"{_plural(age, 'year')} old (too stale)")

        return ScoredCheck("recent_990", result, t.weight_recent_990, detail)

    def run_checks(self, profile: OrganizationProfile) -> Tuple[ScoredCheck, ...]:
        return (
            self.check_years_operating(profile),
            self.check_revenue_range(profile),
            self.check_overhead_ratio(profile),
            self.check_recent_990(profile),
        )

    @staticmethod
    def calculate_score(checks: Iterable[ScoredCheck]) -> int:
        """Sum of points, rounded half up"""
        total = sum(check.points for check in checks)
        return int(math.floor(total + 0.5))

    def score(self, profile: OrganizationProfile) -> ScoringOutcome:
        checks = self.run_checks(profile)
        return ScoringOutcome(checks=checks, score=self.calculate_score(checks))

    def recommend(self, score: int, red_flags: Iterable[RedFlag] = ()) -> Recommendation:
        t = self.thresholds
        if self.reject_on_high_flags and any(f.severity == Severity.HIGH for f in red_flags):
            return Recommendation.REJECT
        if score >= t.score_pass_min:
            return Recommendation.PASS
        if score >= t.score_review_min:
            return Recommendation.REVIEW
        return Recommendation.REJECT
