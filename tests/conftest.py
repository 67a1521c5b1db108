"""
Shared fixtures for the vetting engine test suite.

Profiles are built from a healthy baseline and tweaked per test; the
sanctions list is a small fixed snapshot; reference dates are pinned so
filing-age arithmetic is deterministic.
"""

import sys
from datetime import date
from pathlib import Path
from typing import Any, Callable

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from audit_logger import AuditLogger, reset_audit_logger
from collaborators import (
    ProfileBundle, RevocationIndex, RevocationRecord, StaticProfileBuilder, StaticSanctionsSource,
)
from config_manager import ConfigManager
from gate_engine import GATE_ORDER
from name_matcher import NameMatcher, SanctionsEntry
from vetting_types import (
    CheckResult, FilingRecord, GateLayerResult, GateResult, GateVerdict, LatestFilingSummary,
    OrganizationProfile, Recommendation, ScoredCheck, VettingResult, VettingSummary,
)

REFERENCE_DATE = date(2025, 6, 1)

HEALTHY_EIN = "530196605"
REVOKED_EIN = "111111111"
REINSTATED_EIN = "222222222"

SANCTIONS_ENTRIES = (
    SanctionsEntry(ent_num="1001", name="Al Haramain Islamic Foundation", sdn_type="Entity", program="SDGT"),
    SanctionsEntry(ent_num="1002", name="Benevolence International Foundation", sdn_type="Entity",
                   program="SDGT", aliases=("BIF-USA",)),
    SanctionsEntry(ent_num="2001", name="John Quincy Doe", sdn_type="Individual", program="SDNTK"),
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep deployment env vars and singletons out of every test."""
    for var in ("DATABASE_URL", "VETTING_CONFIG", "VETTING_CACHE_MAX_AGE_DAYS"):
        monkeypatch.delenv(var, raising=False)
    ConfigManager.reset_instance()
    reset_audit_logger()
    yield
    ConfigManager.reset_instance()
    reset_audit_logger()


def build_filing(tax_year: int = 2023, revenue: Any = 500_000, expenses: Any = 450_000,
                 compensation_ratio: Any = 0.1, **overrides) -> LatestFilingSummary:
    ratio = expenses / revenue if revenue and expenses is not None else None
    values = dict(
        tax_period=f"{tax_year}-12",
        tax_year=tax_year,
        total_revenue=revenue,
        total_expenses=expenses,
        total_assets=1_200_000,
        total_liabilities=300_000,
        overhead_ratio=ratio,
        officer_compensation_ratio=compensation_ratio,
    )
    values.update(overrides)
    return LatestFilingSummary(**values)


def build_profile(**overrides) -> OrganizationProfile:
    """Healthy 501(c)(3) human services organization; override any field."""
    values = dict(
        ein=HEALTHY_EIN,
        name="Helping Hands Community Services",
        city="Springfield",
        state="IL",
        subsection="03",
        ntee_code="P20",
        ruling_date="2005-06-01",
        years_operating=20,
        latest_filing=build_filing(),
        filing_count=3,
    )
    values.update(overrides)
    return OrganizationProfile(**values)


def build_result(ein: str = HEALTHY_EIN, recommendation: Recommendation = Recommendation.PASS,
                 blocked: bool = False) -> VettingResult:
    """Minimal consistent verdict for storage tests; blocked results fail the sanctions gate."""
    verdicts = [GateVerdict.PASS] * 4
    if blocked:
        verdicts[1] = GateVerdict.FAIL
    gates = GateLayerResult(gates=tuple(
        GateResult(name, verdict, "detail") for name, verdict in zip(GATE_ORDER, verdicts)
    ))
    if blocked:
        return VettingResult(ein, "Blocked Org", gates, Recommendation.REJECT,
                             VettingSummary("Does Not Meet Criteria: Pre-Screen Gate Failure", "j"))
    score = {Recommendation.PASS: 90, Recommendation.REVIEW: 60, Recommendation.REJECT: 20}[recommendation]
    return VettingResult(
        ein, "Helping Hands", gates, recommendation, VettingSummary("h", "j"),
        score=score, checks=(ScoredCheck("years_operating", CheckResult.PASS, 10, "ok"),),
    )


@pytest.fixture
def make_profile() -> Callable[..., OrganizationProfile]:
    return build_profile


@pytest.fixture
def make_filing() -> Callable[..., LatestFilingSummary]:
    return build_filing


@pytest.fixture
def healthy_profile() -> OrganizationProfile:
    return build_profile()


@pytest.fixture
def sanctions_source() -> StaticSanctionsSource:
    return StaticSanctionsSource(SANCTIONS_ENTRIES)


@pytest.fixture
def name_matcher(sanctions_source) -> NameMatcher:
    return NameMatcher.from_source(sanctions_source)


@pytest.fixture
def revocation_index() -> RevocationIndex:
    return RevocationIndex([
        RevocationRecord(ein=REVOKED_EIN, legal_name="Lapsed Charity", revocation_date="2021-05-15"),
        RevocationRecord(ein=REINSTATED_EIN, legal_name="Returned Charity",
                         revocation_date="2019-05-15", reinstatement_date="2020-01-10"),
    ])


@pytest.fixture
def profile_builder() -> StaticProfileBuilder:
    return StaticProfileBuilder([
        ProfileBundle(
            profile=build_profile(),
            filings=(
                FilingRecord(tax_period=202312, total_revenue=500_000, total_expenses=450_000),
                FilingRecord(tax_period=202212, total_revenue=480_000, total_expenses=430_000),
            ),
        ),
        ProfileBundle(
            profile=build_profile(ein="987654321", name="Al Haramain Islamic Foundation, Inc."),
        ),
        ProfileBundle(
            profile=build_profile(ein="123456789", name="Riverbend Youth League", ntee_code="O50"),
        ),
    ])


@pytest.fixture
def write_config(tmp_path) -> Callable[[str], ConfigManager]:
    """Write YAML text to a temp config.yaml and load it."""
    def _write(text: str) -> ConfigManager:
        path = tmp_path / "config.yaml"
        path.write_text(text, encoding="utf-8")
        return ConfigManager(str(path))
    return _write


@pytest.fixture
def default_config(tmp_path) -> ConfigManager:
    """Built-in defaults (no config file on disk)."""
    return ConfigManager(str(tmp_path / "missing.yaml"))


@pytest.fixture
def audit_logger() -> AuditLogger:
    return AuditLogger()
