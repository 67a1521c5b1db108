"""
Unit tests for the four pre-screen eligibility gates.
"""

from unittest.mock import Mock

import pytest

from collaborators import RevocationLookup
from config_manager import PortfolioFitConfig
from gate_engine import (
    GATE_FILING_EXISTS,
    GATE_OFAC_SANCTIONS,
    GATE_ORDER,
    GATE_PORTFOLIO_FIT,
    GATE_VERIFIED_501C3,
    GateEngine,
    matches_ntee_category,
)
from vetting_errors import UpstreamUnavailableError
from vetting_types import GateVerdict

from conftest import REINSTATED_EIN, REVOKED_EIN


@pytest.fixture
def engine(name_matcher, revocation_index):
    return GateEngine(name_matcher, revocation_index)


class TestGateLayer:
    """Tests for the gate layer as a whole."""

    def test_healthy_profile_passes_every_gate(self, engine, healthy_profile):
        result = engine.evaluate(healthy_profile)
        assert result.all_passed
        assert result.blocking_gate is None
        assert tuple(g.gate for g in result.gates) == GATE_ORDER

    def test_all_gates_run_after_a_failure(self, engine, make_profile):
        profile = make_profile(subsection="04", latest_filing=None, filing_count=0)
        result = engine.evaluate(profile)
        assert len(result.gates) == 4
        assert result.blocking_gate == GATE_VERIFIED_501C3
        assert not result.get(GATE_FILING_EXISTS).passed

    def test_blocking_gate_is_first_failure(self, engine, make_profile):
        profile = make_profile(latest_filing=None, filing_count=0, ntee_code="X20")
        result = engine.evaluate(profile)
        assert result.blocking_gate == GATE_FILING_EXISTS

    def test_from_config(self, default_config, name_matcher, revocation_index):
        engine = GateEngine.from_config(default_config, name_matcher, revocation_index)
        assert engine.public_charity_subsection == "03"
        assert engine.portfolio_fit == default_config.portfolio_fit


class TestVerified501c3Gate:
    """Tests for gate 1."""

    def test_public_charity_not_revoked_passes(self, engine, healthy_profile):
        gate = engine.check_verified_501c3(healthy_profile)
        assert gate.verdict == GateVerdict.PASS
        assert gate.detail == "Valid 501(c)(3) status confirmed"
        assert [sc.passed for sc in gate.sub_checks] == [True, True, True]

    def test_wrong_subsection_blocks(self, engine, make_profile):
        result = engine.evaluate(make_profile(subsection="04"))
        assert result.blocking_gate == GATE_VERIFIED_501C3
        gate = result.get(GATE_VERIFIED_501C3)
        assert gate.detail == "Failed: 501(c)(3) classification"
        assert '"04"' in gate.sub_checks[0].detail

    def test_numeric_subsection_is_normalized(self, engine, make_profile):
        assert engine.check_verified_501c3(make_profile(subsection=3)).passed

    def test_revoked_status_fails(self, engine, make_profile):
        gate = engine.check_verified_501c3(make_profile(ein=REVOKED_EIN))
        assert not gate.passed
        assert gate.detail == "Failed: IRS revocation check"
        assert gate.sub_checks[1].detail == "Tax-exempt status revoked 2021-05-15"

    def test_reinstated_status_passes(self, engine, make_profile):
        assert engine.check_verified_501c3(make_profile(ein=REINSTATED_EIN)).passed

    def test_missing_ruling_date_fails(self, engine, make_profile):
        gate = engine.check_verified_501c3(make_profile(ruling_date=None))
        assert gate.detail == "Failed: IRS determination letter"

    def test_revocation_lookup_failure_propagates(self, name_matcher, healthy_profile):
        lookup = Mock(spec=RevocationLookup)
        lookup.check.side_effect = ConnectionError("IRS list unavailable")
        engine = GateEngine(name_matcher, lookup)
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            engine.evaluate(healthy_profile)
        assert exc_info.value.source == "revocation"


class TestSanctionsGate:
    """Tests for gate 2."""

    def test_no_match_passes(self, engine, healthy_profile):
        gate = engine.check_sanctions(healthy_profile)
        assert gate.passed
        assert gate.detail == "No OFAC SDN matches found"

    def test_exact_match_fails(self, engine, make_profile):
        gate = engine.check_sanctions(make_profile(name="Al Haramain Islamic Foundation, Inc."))
        assert gate.verdict == GateVerdict.FAIL
        assert gate.detail.startswith("OFAC SDN MATCH: 1 sanctioned match(es)")
        assert "ent 1001" in gate.detail

    def test_alias_match_fails(self, engine, make_profile):
        assert not engine.check_sanctions(make_profile(name="BIF USA")).passed

    def test_near_match_does_not_fail_gate(self, engine, make_profile):
        assert engine.check_sanctions(make_profile(name="Al Haramain Islamik Foundation")).passed


class TestFilingExistsGate:
    """Tests for gate 3."""

    def test_latest_filing_passes(self, engine, healthy_profile):
        gate = engine.check_filing_exists(healthy_profile)
        assert gate.passed
        assert gate.detail == "3 990 filing(s) on record"

    def test_filing_count_alone_passes(self, engine, make_profile):
        assert engine.check_filing_exists(make_profile(latest_filing=None, filing_count=2)).passed

    def test_no_filings_fails(self, engine, make_profile):
        gate = engine.check_filing_exists(make_profile(latest_filing=None, filing_count=0))
        assert not gate.passed


class TestPortfolioFitGate:
    """Tests for gate 4."""

    def test_allowed_category_passes(self, engine, healthy_profile):
        gate = engine.check_portfolio_fit(healthy_profile)
        assert gate.passed
        assert gate.detail == "NTEE code P20 is within portfolio scope"

    def test_category_outside_scope_fails(self, engine, make_profile):
        gate = engine.check_portfolio_fit(make_profile(ntee_code="X20"))
        assert not gate.passed
        assert gate.detail == "NTEE category X20 is outside portfolio scope"

    def test_missing_ntee_fails(self, engine, make_profile):
        gate = engine.check_portfolio_fit(make_profile(ntee_code=""))
        assert not gate.passed
        assert "NTEE classification missing" in gate.detail

    def test_excluded_ein_fails(self, name_matcher, revocation_index, healthy_profile):
        engine = GateEngine(name_matcher, revocation_index,
                            PortfolioFitConfig(excluded_eins=("53-0196605",)))
        gate = engine.check_portfolio_fit(healthy_profile)
        assert not gate.passed
        assert gate.detail == "Excluded by platform policy"

    def test_included_ein_overrides_category(self, name_matcher, revocation_index, make_profile):
        engine = GateEngine(name_matcher, revocation_index,
                            PortfolioFitConfig(included_eins=("530196605",)))
        gate = engine.check_portfolio_fit(make_profile(ntee_code="X20"))
        assert gate.passed
        assert gate.detail == "Included by platform override"

    def test_excluded_wins_over_included(self, name_matcher, revocation_index, healthy_profile):
        engine = GateEngine(name_matcher, revocation_index,
                            PortfolioFitConfig(excluded_eins=("530196605",), included_eins=("530196605",)))
        gate = engine.check_portfolio_fit(healthy_profile)
        assert gate.verdict == GateVerdict.FAIL
        assert gate.detail == "Excluded by platform policy"

    def test_disabled_gate_passes(self, name_matcher, revocation_index, make_profile):
        engine = GateEngine(name_matcher, revocation_index, PortfolioFitConfig(enabled=False))
        gate = engine.check_portfolio_fit(make_profile(ntee_code="X20"))
        assert gate.passed
        assert gate.detail == "Portfolio-fit gate disabled"

    def test_matches_ntee_category_prefixes(self):
        assert matches_ntee_category("P20", ("P",))
        assert matches_ntee_category("b25", ("B2",))
        assert not matches_ntee_category("B35", ("B2",))
        assert not matches_ntee_category("", ("P",))
