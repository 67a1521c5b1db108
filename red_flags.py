"""
Red flag detection

Advisory findings attached to every result, gate-blocked or not. Every
rule is evaluated on every run; the optional court records lookup degrades
to a skipped rule when it fails.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from audit_logger import sanitize_for_logging
from collaborators import CourtRecordsLookup, CourtRecordsResult
from config_manager import ThresholdConfig
from name_matcher import NameMatcher
from profile_utils import tax_period_to_months
from scoring_engine import filing_age, format_number, format_percent
from vetting_errors import InvalidArgumentError
from vetting_types import (
    CourtCaseSummary, FilingRecord, OrganizationProfile, RedFlag, RedFlagType, Severity,
)

logger = logging.getLogger(__name__)

COURT_NAMES = {
    "scotus": "U.S. Supreme Court",
    "ca1": "1st Circuit", "ca2": "2nd Circuit", "ca3": "3rd Circuit", "ca4": "4th Circuit",
    "ca5": "5th Circuit", "ca6": "6th Circuit", "ca7": "7th Circuit", "ca8": "8th Circuit",
    "ca9": "9th Circuit", "ca10": "10th Circuit", "ca11": "11th Circuit",
    "cadc": "D.C. Circuit", "cafc": "Federal Circuit", "dcd": "D.C. District",
    "almd": "M.D. Alabama", "alnd": "N.D. Alabama", "alsd": "S.D. Alabama",
    "azd": "D. Arizona", "ared": "E.D. Arkansas", "arwd": "W.D. Arkansas",
    "cacd": "C.D. California", "caed": "E.D. California", "cand": "N.D. California", "casd": "S.D. California",
    "cod": "D. Colorado", "ctd": "D. Connecticut", "ded": "D. Delaware",
    "flmd": "M.D. Florida", "flnd": "N.D. Florida", "flsd": "S.D. Florida",
    "gamd": "M.D. Georgia", "gand": "N.D. Georgia", "gasd": "S.D. Georgia",
    "hid": "D. Hawaii", "idd": "D. Idaho",
    "ilcd": "C.D. Illinois", "ilnd": "N.D. Illinois", "ilsd": "S.D. Illinois",
    "innd": "N.D. Indiana", "insd": "S.D. Indiana", "iand": "N.D. Iowa", "iasd": "S.D. Iowa",
    "ksd": "D. Kansas", "kyed": "E.D. Kentucky", "kywd": "W.D. Kentucky",
    "laed": "E.D. Louisiana", "lamd": "M.D. Louisiana", "lawd": "W.D. Louisiana",
    "med": "D. Maine", "mdd": "D. Maryland", "mad": "D. Massachusetts",
    "mied": "E.D. Michigan", "miwd": "W.D. Michigan", "mnd": "D. Minnesota",
    "msnd": "N.D. Mississippi", "mssd": "S.D. Mississippi", "moed": "E.D. Missouri", "mowd": "W.D. Missouri",
    "mtd": "D. Montana", "ned": "D. Nebraska", "nvd": "D. Nevada", "nhd": "D. New Hampshire",
    "njd": "D. New Jersey", "nmd": "D. New Mexico",
    "nyed": "E.D. New York", "nynd": "N.D. New York", "nysd": "S.D. New York", "nywd": "W.D. New York",
    "nced": "E.D. North Carolina", "ncmd": "M.D. North Carolina", "ncwd": "W.D. North Carolina",
    "ndd": "D. North Dakota", "ohnd": "N.D. Ohio", "ohsd": "S.D. Ohio",
    "oked": "E.D. Oklahoma", "oknd": "N.D. Oklahoma", "okwd": "W.D. Oklahoma", "ord": "D. Oregon",
    "paed": "E.D. Pennsylvania", "pamd": "M.D. Pennsylvania", "pawd": "W.D. Pennsylvania",
    "rid": "D. Rhode Island", "scd": "D. South Carolina", "sdd": "D. South Dakota",
    "tned": "E.D. Tennessee", "tnmd": "M.D. Tennessee", "tnwd": "W.D. Tennessee",
    "txed": "E.D. Texas", "txnd": "N.D. Texas", "txsd": "S.D. Texas", "txwd": "W.D. Texas",
    "utd": "D. Utah", "vtd": "D. Vermont", "vaed": "E.D. Virginia", "vawd": "W.D. Virginia",
    "waed": "E.D. Washington", "wawd": "W.D. Washington",
    "wvnd": "N.D. West Virginia", "wvsd": "S.D. West Virginia",
    "wied": "E.D. Wisconsin", "wiwd": "W.D. Wisconsin", "wyd": "D. Wyoming",
}


def resolve_court_name(code: str) -> str:
    """Readable court name for a court code; unknown codes pass through"""
    return COURT_NAMES.get((code or "").strip().lower(), code)


class RedFlagDetector:
    """Evaluates every red flag rule for a profile"""

    def __init__(
        self,
        thresholds: ThresholdConfig,
        name_matcher: Optional[NameMatcher] = None,
        court_lookup: Optional[CourtRecordsLookup] = None,
        fuzzy_threshold: float = 0.85,
        reference_date: Optional[date] = None,
    ):
        if not 0.0 <= fuzzy_threshold < 1.0:
            raise InvalidArgumentError(
                f"Near-match threshold must be in [0, 1), got {fuzzy_threshold}",
                field="fuzzy_threshold",
                code="INVALID_THRESHOLD",
                suggestion="Use a value below 1.0; exact matches are handled by the sanctions gate",
            )
        self.thresholds = thresholds
        self.name_matcher = name_matcher
        self.court_lookup = court_lookup
        self.fuzzy_threshold = fuzzy_threshold
        self.reference_date = reference_date

    def detect(self, profile: OrganizationProfile, filings: Sequence[FilingRecord] = ()) -> Tuple[RedFlag, ...]:
        flags: List[RedFlag] = []
        flags.extend(self.check_stale_filing(profile))
        flags.extend(self.check_expense_ratio(profile))
        flags.extend(self.check_very_low_revenue(profile))
        flags.extend(self.check_revenue_decline(filings))
        flags.extend(self.check_too_new(profile))
        flags.extend(self.check_officer_compensation(profile))
        flags.extend(self.check_court_records(profile))
        flags.extend(self.check_sanctions_near_match(profile))
        return tuple(flags)

    def check_stale_filing(self, profile: OrganizationProfile) -> List[RedFlag]:
        filing = profile.latest_filing
        age = filing_age(filing, self.reference_date or date.today())
        if age is None or age <= self.thresholds.red_flag_stale_filing_years:
            return []
        return [RedFlag(
            Severity.HIGH, RedFlagType.STALE_FILING,
            f"Most recent 990 is from {filing.tax_period} ({age} years old)",
        )]

    def check_expense_ratio(self, profile: OrganizationProfile) -> List[RedFlag]:
        ratio = profile.latest_filing.overhead_ratio if profile.latest_filing else None
        if ratio is None:
            return []
        t = self.thresholds
        if ratio > t.red_flag_high_expense_ratio:
            return [RedFlag(
                Severity.HIGH, RedFlagType.VERY_HIGH_OVERHEAD,
                f"Expense-to-revenue ratio is {format_percent(ratio)} - spending far exceeds income",
            )]
        if ratio < t.red_flag_low_expense_ratio:
            return [RedFlag(
                Severity.MEDIUM, RedFlagType.LOW_FUND_DEPLOYMENT,
                f"Expense-to-revenue ratio is only {format_percent(ratio)} - low fund deployment",
            )]
        return []

    def check_very_low_revenue(self, profile: OrganizationProfile) -> List[RedFlag]:
        revenue = profile.latest_filing.total_revenue if profile.latest_filing else None
        if revenue is None or revenue >= self.thresholds.red_flag_very_low_revenue:
            return []
        return [RedFlag(
            Severity.MEDIUM, RedFlagType.VERY_LOW_REVENUE,
            f"Revenue is only ${format_number(revenue)} - very small operation",
        )]

    def check_revenue_decline(self, filings: Iterable[FilingRecord]) -> List[RedFlag]:
        ordered = sorted(filings, key=lambda f: f.tax_period, reverse=True)
        if len(ordered) < 2:
            return []
        latest, previous = ordered[0], ordered[1]

        # Filings far apart reflect a reporting gap, not a year-over-year decline
        gap = tax_period_to_months(latest.tax_period) - tax_period_to_months(previous.tax_period)
        if gap > self.thresholds.revenue_decline_max_gap_months:
            return []
        if latest.total_revenue is None or previous.total_revenue is None:
            return []
        if previous.total_revenue <= 0 or latest.total_revenue < 0:
            return []

        decline = (previous.total_revenue - latest.total_revenue) / previous.total_revenue
        if decline <= self.thresholds.red_flag_revenue_decline_pct:
            return []
        return [RedFlag(
            Severity.MEDIUM, RedFlagType.REVENUE_DECLINE,
            f"Revenue declined {format_percent(decline)} year-over-year "
            f"(${format_number(previous.total_revenue)} → ${format_number(latest.total_revenue)})",
        )]

    def check_too_new(self, profile: OrganizationProfile) -> List[RedFlag]:
        years = profile.years_operating
        floor = self.thresholds.red_flag_too_new_years
        if years is None or years >= floor:
            return []
        return [RedFlag(
            Severity.MEDIUM, RedFlagType.TOO_NEW,
            f"Organization is less than {floor} year{'' if floor == 1 else 's'} old",
        )]

    def check_officer_compensation(self, profile: OrganizationProfile) -> List[RedFlag]:
        ratio = profile.latest_filing.officer_compensation_ratio if profile.latest_filing else None
        if ratio is None or ratio <= 0:
            return []
        t = self.thresholds
        if ratio > t.red_flag_high_comp_ratio:
            return [RedFlag(
                Severity.HIGH, RedFlagType.HIGH_OFFICER_COMPENSATION,
                f"Officer/director compensation is {format_percent(ratio)} of total expenses, "
                f"exceeds {format_percent(t.red_flag_high_comp_ratio)} threshold",
            )]
        if ratio > t.red_flag_moderate_comp_ratio:
            return [RedFlag(
                Severity.MEDIUM, RedFlagType.HIGH_OFFICER_COMPENSATION,
                f"Officer/director compensation is {format_percent(ratio)} of total expenses (elevated)",
            )]
        return []

    def check_court_records(self, profile: OrganizationProfile) -> List[RedFlag]:
        if self.court_lookup is None:
            return []
        try:
            result: CourtRecordsResult = self.court_lookup.check(profile.name)
        except Exception as e:
            logger.warning(f"Court records lookup failed for '{sanitize_for_logging(profile.name)}', "
                           f"skipping rule: {sanitize_for_logging(e)}")
            return []

        count = max(result.case_count, len(result.cases))
        if not result.found or count < 1:
            return []
        cases = tuple(
            CourtCaseSummary(
                court=resolve_court_name(c.court),
                url=c.url,
                date_filed=c.date_filed,
                case_name=c.case_name,
            )
            for c in result.cases
        )
        return [RedFlag(
            Severity.HIGH, RedFlagType.COURT_RECORDS,
            f"{count} federal court case(s) on record",
            cases=cases,
        )]

    def check_sanctions_near_match(self, profile: OrganizationProfile) -> List[RedFlag]:
        if self.name_matcher is None:
            return []
        exact = {m.ent_num for m in self.name_matcher.exact_lookup(profile.name)}
        near = tuple(
            m for m in self.name_matcher.fuzzy_lookup(profile.name, self.fuzzy_threshold)
            if m.ent_num not in exact
        )
        if not near:
            return []
        best = near[0]
        return [RedFlag(
            Severity.MEDIUM, RedFlagType.SANCTIONS_NEAR_MATCH,
            f"{len(near)} possible near-match(es) on OFAC SDN list; closest: "
            f"{best.matched_name or best.name} ({best.similarity:.2f} similarity)",
            matches=near,
        )]
