"""
Unit tests for weighted scoring checks, score calculation and sector thresholds.
"""

import pytest

from config_manager import ThresholdConfig
from scoring_engine import (
    ScoringEngine,
    filing_age,
    format_number,
    ntee_major_category,
    resolve_thresholds,
    supported_sectors,
)
from vetting_errors import ConfigurationError
from vetting_types import CheckResult, Recommendation, RedFlag, RedFlagType, ScoredCheck, Severity

from conftest import REFERENCE_DATE


@pytest.fixture
def scorer():
    return ScoringEngine(ThresholdConfig(), reference_date=REFERENCE_DATE)


class TestYearsOperating:
    """Tests for the tenure check."""

    @pytest.mark.parametrize("years,expected", [
        (None, CheckResult.FAIL),
        (0, CheckResult.FAIL),
        (1, CheckResult.REVIEW),
        (2, CheckResult.REVIEW),
        (3, CheckResult.PASS),
        (40, CheckResult.PASS),
    ])
    def test_bands(self, scorer, make_profile, years, expected):
        check = scorer.check_years_operating(make_profile(years_operating=years))
        assert check.result == expected
        assert check.weight == 10

    def test_missing_ruling_date_detail(self, scorer, make_profile):
        check = scorer.check_years_operating(make_profile(years_operating=None))
        assert check.detail == "No ruling date available"


class TestRevenueRange:
    """Tests for the revenue range check."""

    @pytest.mark.parametrize("revenue,expected", [
        (None, CheckResult.FAIL),
        (-5_000, CheckResult.FAIL),
        (0, CheckResult.FAIL),
        (20_000, CheckResult.FAIL),
        (30_000, CheckResult.REVIEW),
        (50_000, CheckResult.PASS),
        (10_000_000, CheckResult.PASS),
        (20_000_000, CheckResult.REVIEW),
        (60_000_000, CheckResult.FAIL),
    ])
    def test_bands(self, scorer, make_profile, make_filing, revenue, expected):
        profile = make_profile(latest_filing=make_filing(revenue=revenue, expenses=10_000))
        assert scorer.check_revenue_range(profile).result == expected

    def test_large_revenue_with_custom_range_needs_review(self, make_profile, make_filing):
        thresholds = ThresholdConfig(revenue_pass_min=100_000, revenue_pass_max=10_000_000)
        scorer = ScoringEngine(thresholds, reference_date=REFERENCE_DATE)
        profile = make_profile(latest_filing=make_filing(revenue=48_000_000, expenses=40_000_000))
        check = scorer.check_revenue_range(profile)
        assert check.result == CheckResult.REVIEW
        assert check.detail.startswith("$48.0M revenue")

    def test_no_filing(self, scorer, make_profile):
        check = scorer.check_revenue_range(make_profile(latest_filing=None))
        assert check.detail == "No revenue data available"


class TestOverheadRatio:
    """Tests for the expense-to-revenue ratio check."""

    @pytest.mark.parametrize("ratio,expected", [
        (None, CheckResult.REVIEW),
        (-0.1, CheckResult.FAIL),
        (0.3, CheckResult.FAIL),
        (0.4, CheckResult.REVIEW),
        (0.5, CheckResult.REVIEW),
        (0.6, CheckResult.PASS),
        (0.9, CheckResult.PASS),
        (1.3, CheckResult.PASS),
        (1.4, CheckResult.REVIEW),
        (1.5, CheckResult.REVIEW),
        (1.6, CheckResult.FAIL),
    ])
    def test_bands(self, scorer, make_profile, make_filing, ratio, expected):
        profile = make_profile(latest_filing=make_filing(overhead_ratio=ratio))
        assert scorer.check_overhead_ratio(profile).result == expected

    def test_missing_data_detail(self, scorer, make_profile, make_filing):
        profile = make_profile(latest_filing=make_filing(overhead_ratio=None))
        assert "missing data" in scorer.check_overhead_ratio(profile).detail


class TestRecent990:
    """Tests for the filing recency check (reference year 2025)."""

    @pytest.mark.parametrize("tax_year,expected", [
        (2024, CheckResult.PASS),
        (2022, CheckResult.PASS),
        (2021, CheckResult.REVIEW),
        (2020, CheckResult.FAIL),
    ])
    def test_bands(self, scorer, make_profile, make_filing, tax_year, expected):
        profile = make_profile(latest_filing=make_filing(tax_year=tax_year))
        assert scorer.check_recent_990(profile).result == expected

    def test_no_filing_fails(self, scorer, make_profile):
        check = scorer.check_recent_990(make_profile(latest_filing=None))
        assert check.result == CheckResult.FAIL
        assert check.detail == "No 990 filings on record"

    def test_filing_age(self, make_filing):
        assert filing_age(make_filing(tax_year=2021), REFERENCE_DATE) == 4
        assert filing_age(None, REFERENCE_DATE) is None


class TestScoreAndRecommendation:
    """Tests for score calculation and recommendation cutoffs."""

    def test_default_weights_sum_to_100(self):
        assert sum(ThresholdConfig().weights.values()) == 100

    def test_healthy_profile_scores_100(self, scorer, healthy_profile):
        outcome = scorer.score(healthy_profile)
        assert outcome.score == 100
        assert [c.name for c in outcome.checks] == [
            "years_operating", "revenue_range", "overhead_ratio", "recent_990",
        ]

    def test_review_earns_half_weight(self):
        checks = [
            ScoredCheck("years_operating", CheckResult.PASS, 10, ""),
            ScoredCheck("revenue_range", CheckResult.REVIEW, 25, ""),
            ScoredCheck("overhead_ratio", CheckResult.PASS, 35, ""),
            ScoredCheck("recent_990", CheckResult.FAIL, 30, ""),
        ]
        # 10 + 12.5 + 35 + 0 = 57.5, rounded half up
        assert ScoringEngine.calculate_score(checks) == 58

    def test_score_within_bounds(self, scorer, make_profile, make_filing):
        profiles = [
            make_profile(),
            make_profile(years_operating=None, latest_filing=None),
            make_profile(years_operating=1, latest_filing=make_filing(tax_year=2021, revenue=30_000,
                                                                      expenses=45_000)),
        ]
        for profile in profiles:
            assert 0 <= scorer.score(profile).score <= 100

    @pytest.mark.parametrize("score,expected", [
        (100, Recommendation.PASS),
        (75, Recommendation.PASS),
        (74, Recommendation.REVIEW),
        (50, Recommendation.REVIEW),
        (49, Recommendation.REJECT),
        (0, Recommendation.REJECT),
    ])
    def test_recommendation_cutoffs(self, scorer, score, expected):
        assert scorer.recommend(score) == expected

    def test_high_flags_advisory_by_default(self, scorer):
        flags = [RedFlag(Severity.HIGH, RedFlagType.COURT_RECORDS, "1 federal court case(s) on record")]
        assert scorer.recommend(90, flags) == Recommendation.PASS

    def test_reject_on_high_flags_policy(self):
        scorer = ScoringEngine(ThresholdConfig(), reject_on_high_flags=True)
        high = [RedFlag(Severity.HIGH, RedFlagType.COURT_RECORDS, "x")]
        medium = [RedFlag(Severity.MEDIUM, RedFlagType.TOO_NEW, "x")]
        assert scorer.recommend(90, high) == Recommendation.REJECT
        assert scorer.recommend(90, medium) == Recommendation.PASS

    def test_invalid_thresholds_rejected(self):
        with pytest.raises(ConfigurationError):
            ScoringEngine(ThresholdConfig(weight_recent_990=40))


class TestSectorThresholds:
    """Tests for NTEE sector overrides."""

    def test_major_category(self):
        assert ntee_major_category("p20") == "P"
        assert ntee_major_category("") is None
        assert ntee_major_category("9X") is None

    def test_health_sector_raises_revenue_ceiling(self):
        resolved = resolve_thresholds(ThresholdConfig(), "E32")
        assert resolved.revenue_pass_max == 50_000_000
        assert resolved.red_flag_high_comp_ratio == 0.5
        assert resolved.weights == ThresholdConfig().weights

    def test_unknown_sector_uses_base(self):
        base = ThresholdConfig()
        assert resolve_thresholds(base, "B25") is base
        assert resolve_thresholds(base, None) is base

    def test_invalid_merged_override_raises(self):
        with pytest.raises(ConfigurationError):
            resolve_thresholds(ThresholdConfig(), "P20", {"P": {"revenue_pass_min": 100_000_000}})

    def test_supported_sectors(self):
        assert supported_sectors() == ["A", "E", "K", "L", "O", "P", "S"]

    def test_sector_override_changes_revenue_band(self, make_profile, make_filing):
        profile = make_profile(ntee_code="P20", latest_filing=make_filing(revenue=20_000, expenses=18_000))
        base_check = ScoringEngine(ThresholdConfig()).check_revenue_range(profile)
        sector_check = ScoringEngine(resolve_thresholds(ThresholdConfig(), "P20")).check_revenue_range(profile)
        assert base_check.result == CheckResult.FAIL
        assert sector_check.result == CheckResult.REVIEW


class TestFormatting:
    def test_format_number(self):
        assert format_number(1_500_000) == "1.5M"
        assert format_number(65_000) == "65K"
        assert format_number(900) == "900"
        assert format_number(-5_000) == "-5K"
