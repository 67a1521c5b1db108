"""
Pre-screen eligibility gates

Four gates in fixed order. All four always run so a rejected organization
keeps its full gate trace; blocking_gate reports the first failure.
"""

import logging
from typing import List, Optional

from audit_logger import sanitize_for_logging
from collaborators import RevocationLookup
from config_manager import ConfigManager, PortfolioFitConfig
from name_matcher import NameMatcher
from profile_utils import clean_ein
from vetting_errors import UpstreamUnavailableError
from vetting_types import (
    GateLayerResult, GateResult, GateSubCheck, GateVerdict, OrganizationProfile,
)

logger = logging.getLogger(__name__)

GATE_VERIFIED_501C3 = "verified_501c3"
GATE_OFAC_SANCTIONS = "ofac_sanctions"
GATE_FILING_EXISTS = "filing_exists"
GATE_PORTFOLIO_FIT = "portfolio_fit"

GATE_ORDER = (GATE_VERIFIED_501C3, GATE_OFAC_SANCTIONS, GATE_FILING_EXISTS, GATE_PORTFOLIO_FIT)


def _verdict(passed: bool) -> GateVerdict:
    return GateVerdict.PASS if passed else GateVerdict.FAIL


def matches_ntee_category(ntee_code: str, allowed_categories) -> bool:
    """True if any allowed prefix is a prefix of the NTEE code"""
    upper = (ntee_code or "").upper()
    return bool(upper) and any(prefix and upper.startswith(prefix.upper()) for prefix in allowed_categories)


class GateEngine:
    """Evaluates the four eligibility gates for a profile"""

    def __init__(
        self,
        name_matcher: NameMatcher,
        revocation_lookup: RevocationLookup,
        portfolio_fit: Optional[PortfolioFitConfig] = None,
        public_charity_subsection: str = "03",
    ):
        self.name_matcher = name_matcher
        self.revocation_lookup = revocation_lookup
        self.portfolio_fit = portfolio_fit or PortfolioFitConfig()
        self.public_charity_subsection = public_charity_subsection

    @classmethod
    def from_config(cls, config: ConfigManager, name_matcher: NameMatcher,
                    revocation_lookup: RevocationLookup) -> 'GateEngine':
        return cls(
            name_matcher=name_matcher,
            revocation_lookup=revocation_lookup,
            portfolio_fit=config.portfolio_fit,
            public_charity_subsection=config.matching.public_charity_subsection,
        )

    def evaluate(self, profile: OrganizationProfile) -> GateLayerResult:
        """Run every gate; never short-circuits

        Raises:
            UpstreamUnavailableError: If the revocation lookup fails
        """
        gates = (
            self.check_verified_501c3(profile),
            self.check_sanctions(profile),
            self.check_filing_exists(profile),
            self.check_portfolio_fit(profile),
        )
        result = GateLayerResult(gates=gates)
        if not result.all_passed:
            logger.info(f"EIN {profile.ein} blocked at gate {result.blocking_gate}")
        return result

    # ============================================
    # GATE 1: VERIFIED 501(c)(3)
    # ============================================

    def check_verified_501c3(self, profile: OrganizationProfile) -> GateResult:
        sub_checks: List[GateSubCheck] = []

        is_public_charity = profile.subsection == self.public_charity_subsection
        sub_checks.append(GateSubCheck(
            label="501(c)(3) classification",
            passed=is_public_charity,
            detail=("Classified as 501(c)(3) tax-exempt organization" if is_public_charity
                    else f'Subsection code is "{profile.subsection or ""}", '
                         f'not "{self.public_charity_subsection}" (501(c)(3))'),
        ))

        try:
            status = self.revocation_lookup.check(profile.ein)
        except UpstreamUnavailableError:
            raise
        except Exception as e:
            logger.error(f"Revocation lookup failed for EIN {profile.ein}: {sanitize_for_logging(e)}")
            raise UpstreamUnavailableError(
                f"IRS revocation lookup unavailable: {e}", source="revocation"
            ) from e
        sub_checks.append(GateSubCheck(
            label="IRS revocation check",
            passed=not status.revoked,
            detail=status.detail,
        ))

        has_ruling_date = bool(profile.ruling_date)
        sub_checks.append(GateSubCheck(
            label="IRS determination letter",
            passed=has_ruling_date,
            detail=(f"IRS determination date: {profile.ruling_date}" if has_ruling_date
                    else "No IRS determination date on record"),
        ))

        failures = [sc.label for sc in sub_checks if not sc.passed]
        return GateResult(
            gate=GATE_VERIFIED_501C3,
            verdict=_verdict(not failures),
            detail="Valid 501(c)(3) status confirmed" if not failures else f"Failed: {', '.join(failures)}",
            sub_checks=tuple(sub_checks),
        )

    # ============================================
    # GATE 2: SANCTIONS
    # ============================================

    def check_sanctions(self, profile: OrganizationProfile) -> GateResult:
        matches = self.name_matcher.exact_lookup(profile.name)
        if not matches:
            return GateResult(
                gate=GATE_OFAC_SANCTIONS,
                verdict=GateVerdict.PASS,
                detail="No OFAC SDN matches found",
            )

        listed = "; ".join(
            f"{m.name} (ent {m.ent_num}, {m.sdn_type}, {m.program or 'no program'}, {m.basis.value})"
            for m in matches
        )
        return GateResult(
            gate=GATE_OFAC_SANCTIONS,
            verdict=GateVerdict.FAIL,
            detail=f'OFAC SDN MATCH: {len(matches)} sanctioned match(es) for "{profile.name}": {listed}',
        )

    # ============================================
    # GATE 3: FILING EXISTS
    # ============================================

    def check_filing_exists(self, profile: OrganizationProfile) -> GateResult:
        has_filing = profile.latest_filing is not None or profile.filing_count > 0
        count = max(profile.filing_count, 1 if profile.latest_filing is not None else 0)
        return GateResult(
            gate=GATE_FILING_EXISTS,
            verdict=_verdict(has_filing),
            detail=(f"{count} 990 filing(s) on record" if has_filing
                    else "No 990 tax filings on record, cannot evaluate financials"),
        )

    # ============================================
    # GATE 4: PORTFOLIO FIT
    # ============================================

    def check_portfolio_fit(self, profile: OrganizationProfile) -> GateResult:
        config = self.portfolio_fit
        ein = clean_ein(profile.ein)
        sub_checks: List[GateSubCheck] = []

        is_excluded = ein in {clean_ein(e) for e in config.excluded_eins}
        sub_checks.append(GateSubCheck(
            label="EIN exclusion list",
            passed=not is_excluded,
            detail="Excluded by platform policy" if is_excluded else "Not on exclusion list",
        ))

        is_included = ein in {clean_ein(e) for e in config.included_eins}
        sub_checks.append(GateSubCheck(
            label="EIN inclusion list",
            passed=True,
            detail=("Included by platform override" if is_included
                    else "Not on inclusion list (standard NTEE check applies)"),
        ))

        ntee_code = (profile.ntee_code or "").upper()
        ntee_matched = matches_ntee_category(ntee_code, config.allowed_ntee_categories)
        if ntee_matched:
            ntee_detail = f"NTEE code {ntee_code} matches allowed categories"
        elif not ntee_code:
            ntee_detail = "No NTEE code on file (unclassified)"
        else:
            ntee_detail = f"NTEE category {ntee_code} is outside portfolio scope"
        sub_checks.append(GateSubCheck(label="NTEE category match", passed=ntee_matched, detail=ntee_detail))

        if not config.enabled:
            passed, detail = True, "Portfolio-fit gate disabled"
        elif is_excluded:
            passed, detail = False, "Excluded by platform policy"
        elif is_included:
            passed, detail = True, "Included by platform override"
        elif ntee_matched:
            passed, detail = True, f"NTEE code {ntee_code} is within portfolio scope"
        elif not ntee_code:
            passed, detail = False, "NTEE classification missing, portfolio fit cannot be verified"
        else:
            passed, detail = False, f"NTEE category {ntee_code} is outside portfolio scope"

        return GateResult(
            gate=GATE_PORTFOLIO_FIT,
            verdict=_verdict(passed),
            detail=detail,
            sub_checks=tuple(sub_checks),
        )
