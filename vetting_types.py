"""
Domain records for the Nonprofit Vetting Engine

Every record is a frozen dataclass: a vetting run takes an immutable profile
snapshot and produces an immutable verdict. Records that end up in the result
cache round-trip through to_dict()/from_dict().
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict, List, Optional, Tuple

from profile_utils import clean_ein, finite_or_none, normalize_subsection
from vetting_errors import InvalidArgumentError


# ============================================
# ENUMS
# ============================================

class GateVerdict(str, PyEnum):
    """Outcome of a hard eligibility gate"""
    PASS = "PASS"
    FAIL = "FAIL"


class CheckResult(str, PyEnum):
    """Outcome of a weighted scoring check"""
    PASS = "PASS"
    REVIEW = "REVIEW"
    FAIL = "FAIL"


class Recommendation(str, PyEnum):
    """Final vetting recommendation"""
    PASS = "PASS"
    REVIEW = "REVIEW"
    REJECT = "REJECT"


class Severity(str, PyEnum):
    """Red flag severity"""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


class RedFlagType(str, PyEnum):
    """Category of an advisory red flag"""
    STALE_FILING = "stale_990"
    LOW_FUND_DEPLOYMENT = "low_fund_deployment"
    VERY_HIGH_OVERHEAD = "very_high_overhead"
    VERY_LOW_REVENUE = "very_low_revenue"
    REVENUE_DECLINE = "revenue_decline"
    TOO_NEW = "too_new"
    HIGH_OFFICER_COMPENSATION = "high_officer_compensation"
    COURT_RECORDS = "court_records"
    SANCTIONS_NEAR_MATCH = "sanctions_near_match"


class MatchBasis(str, PyEnum):
    """How a sanctions list entry matched a candidate name"""
    EXACT = "exact"
    ALIAS = "alias"
    FUZZY = "fuzzy"


# ============================================
# ORGANIZATION SNAPSHOT
# ============================================

@dataclass(frozen=True)
class LatestFilingSummary:
    """Summary of the most recent 990 filing"""
    tax_period: str  # "YYYY-MM"
    tax_year: int
    form_type: str = "990"
    total_revenue: Optional[float] = None
    total_expenses: Optional[float] = None
    total_assets: Optional[float] = None
    total_liabilities: Optional[float] = None
    overhead_ratio: Optional[float] = None
    officer_compensation_ratio: Optional[float] = None

    def __post_init__(self):
        # Ratios are a finite number or None, never NaN/Infinity
        object.__setattr__(self, 'overhead_ratio', finite_or_none(self.overhead_ratio))
        object.__setattr__(self, 'officer_compensation_ratio',
                           finite_or_none(self.officer_compensation_ratio))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tax_period': self.tax_period,
            'tax_year': self.tax_year,
            'form_type': self.form_type,
            'total_revenue': self.total_revenue,
            'total_expenses': self.total_expenses,
            'total_assets': self.total_assets,
            'total_liabilities': self.total_liabilities,
            'overhead_ratio': self.overhead_ratio,
            'officer_compensation_ratio': self.officer_compensation_ratio,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LatestFilingSummary':
        return cls(**{k: data.get(k) for k in cls.__dataclass_fields__ if k in data})


@dataclass(frozen=True)
class FilingRecord:
    """One entry of an organization's filing history"""
    tax_period: int  # YYYYMM
    total_revenue: Optional[float] = None
    total_expenses: Optional[float] = None
    tax_year: Optional[int] = None

    def __post_init__(self):
        if self.tax_year is None:
            object.__setattr__(self, 'tax_year', int(self.tax_period) // 100)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'tax_period': self.tax_period,
            'tax_year': self.tax_year,
            'total_revenue': self.total_revenue,
            'total_expenses': self.total_expenses,
        }


@dataclass(frozen=True)
class OrganizationProfile:
    """Immutable snapshot of an organization used for one vetting run"""
    ein: str
    name: str
    city: str = ""
    state: str = ""
    subsection: Optional[str] = None
    ntee_code: str = ""
    ruling_date: Optional[str] = None
    years_operating: Optional[int] = None
    latest_filing: Optional[LatestFilingSummary] = None
    filing_count: int = 0

    def __post_init__(self):
        object.__setattr__(self, 'ein', clean_ein(self.ein))
        object.__setattr__(self, 'subsection', normalize_subsection(self.subsection))
        object.__setattr__(self, 'ntee_code', (self.ntee_code or "").strip().upper())
        years = finite_or_none(self.years_operating)
        object.__setattr__(self, 'years_operating', int(years) if years is not None else None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ein': self.ein,
            'name': self.name,
            'address': {'city': self.city, 'state': self.state},
            'subsection': self.subsection,
            'ntee_code': self.ntee_code,
            'ruling_date': self.ruling_date,
            'years_operating': self.years_operating,
            'latest_990': self.latest_filing.to_dict() if self.latest_filing else None,
            'filing_count': self.filing_count,
        }


# ============================================
# GATE RESULTS
# ============================================

@dataclass(frozen=True)
class GateSubCheck:
    """Named sub-check recorded inside a gate for auditability"""
    label: str
    passed: bool
    detail: str

    def to_dict(self) -> Dict[str, Any]:
        return {'label': self.label, 'passed': self.passed, 'detail': self.detail}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GateSubCheck':
        return cls(label=data['label'], passed=bool(data['passed']), detail=data.get('detail', ''))


@dataclass(frozen=True)
class GateResult:
    """Outcome of one eligibility gate"""
    gate: str
    verdict: GateVerdict
    detail: str
    sub_checks: Tuple[GateSubCheck, ...] = ()

    @property
    def passed(self) -> bool:
        return self.verdict == GateVerdict.PASS

    def to_dict(self) -> Dict[str, Any]:
        return {
            'gate': self.gate,
            'verdict': self.verdict.value,
            'detail': self.detail,
            'sub_checks': [sc.to_dict() for sc in self.sub_checks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GateResult':
        return cls(
            gate=data['gate'],
            verdict=GateVerdict(data['verdict']),
            detail=data.get('detail', ''),
            sub_checks=tuple(GateSubCheck.from_dict(sc) for sc in data.get('sub_checks') or []),
        )


@dataclass(frozen=True)
class GateLayerResult:
    """All four gates, in evaluation order"""
    gates: Tuple[GateResult, ...]

    @property
    def all_passed(self) -> bool:
        return all(g.passed for g in self.gates)

    @property
    def blocking_gate(self) -> Optional[str]:
        """Name of the first gate that failed, if any"""
        for gate in self.gates:
            if not gate.passed:
                return gate.gate
        return None

    def get(self, gate_name: str) -> Optional[GateResult]:
        for gate in self.gates:
            if gate.gate == gate_name:
                return gate
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'all_passed': self.all_passed,
            'blocking_gate': self.blocking_gate,
            'gates': [g.to_dict() for g in self.gates],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GateLayerResult':
        return cls(gates=tuple(GateResult.from_dict(g) for g in data.get('gates') or []))


# ============================================
# SCORING AND RED FLAGS
# ============================================

@dataclass(frozen=True)
class ScoredCheck:
    """One weighted scoring check"""
    name: str
    result: CheckResult
    weight: int
    detail: str

    @property
    def passed(self) -> bool:
        return self.result == CheckResult.PASS

    @property
    def points(self) -> float:
        """Full weight on PASS, half on REVIEW, nothing on FAIL"""
        if self.result == CheckResult.PASS:
            return float(self.weight)
        if self.result == CheckResult.REVIEW:
            return self.weight * 0.5
        return 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'passed': self.passed,
            'result': self.result.value,
            'detail': self.detail,
            'weight': self.weight,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScoredCheck':
        return cls(
            name=data['name'],
            result=CheckResult(data['result']),
            weight=data['weight'],
            detail=data.get('detail', ''),
        )


@dataclass(frozen=True)
class SanctionsMatch:
    """A sanctions list entry that matched a candidate name"""
    ent_num: str
    name: str
    sdn_type: str
    program: str
    basis: MatchBasis
    matched_name: str = ""
    similarity: Optional[float] = None  # fuzzy matches only

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ent_num': self.ent_num,
            'name': self.name,
            'matched_name': self.matched_name or self.name,
            'sdn_type': self.sdn_type,
            'program': self.program,
            'basis': self.basis.value,
            'similarity': round(self.similarity, 4) if self.similarity is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SanctionsMatch':
        return cls(
            ent_num=str(data['ent_num']),
            name=data['name'],
            sdn_type=data.get('sdn_type', ''),
            program=data.get('program', ''),
            basis=MatchBasis(data['basis']),
            matched_name=data.get('matched_name', ''),
            similarity=data.get('similarity'),
        )


@dataclass(frozen=True)
class CourtCaseSummary:
    """Court case attached to a court_records red flag"""
    court: str
    url: str = ""
    date_filed: Optional[str] = None
    case_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'court': self.court,
            'url': self.url,
            'date_filed': self.date_filed,
            'case_name': self.case_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CourtCaseSummary':
        return cls(
            court=data.get('court', ''),
            url=data.get('url', ''),
            date_filed=data.get('date_filed'),
            case_name=data.get('case_name', ''),
        )


@dataclass(frozen=True)
class RedFlag:
    """Advisory finding attached to a result regardless of recommendation"""
    severity: Severity
    flag_type: RedFlagType
    detail: str
    cases: Tuple[CourtCaseSummary, ...] = ()
    matches: Tuple[SanctionsMatch, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'severity': self.severity.value,
            'type': self.flag_type.value,
            'detail': self.detail,
        }
        if self.cases:
            data['cases'] = [c.to_dict() for c in self.cases]
        if self.matches:
            data['matches'] = [m.to_dict() for m in self.matches]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RedFlag':
        return cls(
            severity=Severity(data['severity']),
            flag_type=RedFlagType(data['type']),
            detail=data.get('detail', ''),
            cases=tuple(CourtCaseSummary.from_dict(c) for c in data.get('cases') or []),
            matches=tuple(SanctionsMatch.from_dict(m) for m in data.get('matches') or []),
        )


# ============================================
# VERDICT
# ============================================

@dataclass(frozen=True)
class VettingSummary:
    """Human-readable explanation of a verdict"""
    headline: str
    justification: str
    key_factors: Tuple[str, ...] = ()  # "+" positive, "-" negative, "~" neutral
    next_steps: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'headline': self.headline,
            'justification': self.justification,
            'key_factors': list(self.key_factors),
            'next_steps': list(self.next_steps),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VettingSummary':
        return cls(
            headline=data.get('headline', ''),
            justification=data.get('justification', ''),
            key_factors=tuple(data.get('key_factors') or []),
            next_steps=tuple(data.get('next_steps') or []),
        )


@dataclass(frozen=True)
class VettingResult:
    """Terminal artifact of one vetting run

    gate_blocked is derived from the gate layer. A gate-blocked result has
    no score and no checks and is always REJECT.
    """
    ein: str
    name: str
    gates: GateLayerResult
    recommendation: Recommendation
    summary: VettingSummary
    red_flags: Tuple[RedFlag, ...] = ()
    score: Optional[int] = None
    checks: Optional[Tuple[ScoredCheck, ...]] = None
    review_reasons: Tuple[str, ...] = ()

    def __post_init__(self):
        blocked = self.gate_blocked
        if blocked != (self.score is None) or blocked != (self.checks is None):
            raise InvalidArgumentError(
                "score and checks must be absent exactly when gates block the organization",
                field="score",
                code="INCONSISTENT_RESULT",
            )
        if blocked and self.recommendation != Recommendation.REJECT:
            raise InvalidArgumentError(
                "Gate-blocked organizations must be rejected",
                field="recommendation",
                code="INCONSISTENT_RESULT",
            )

    @property
    def gate_blocked(self) -> bool:
        return not self.gates.all_passed

    @property
    def passed(self) -> bool:
        return self.recommendation == Recommendation.PASS

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ein': self.ein,
            'name': self.name,
            'passed': self.passed,
            'gates': self.gates.to_dict(),
            'gate_blocked': self.gate_blocked,
            'score': self.score,
            'summary': self.summary.to_dict(),
            'checks': [c.to_dict() for c in self.checks] if self.checks is not None else None,
            'recommendation': self.recommendation.value,
            'review_reasons': list(self.review_reasons),
            'red_flags': [f.to_dict() for f in self.red_flags],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'VettingResult':
        checks = data.get('checks')
        return cls(
            ein=data['ein'],
            name=data['name'],
            gates=GateLayerResult.from_dict(data['gates']),
            recommendation=Recommendation(data['recommendation']),
            summary=VettingSummary.from_dict(data.get('summary') or {}),
            red_flags=tuple(RedFlag.from_dict(f) for f in data.get('red_flags') or []),
            score=data.get('score'),
            checks=tuple(ScoredCheck.from_dict(c) for c in checks) if checks is not None else None,
            review_reasons=tuple(data.get('review_reasons') or []),
        )


@dataclass(frozen=True)
class CachedVetting:
    """Most recent stored verdict for an organization"""
    result: VettingResult
    vetted_at: datetime
    vetted_by: str
    record_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'result': self.result.to_dict(),
            'vetted_at': self.vetted_at.isoformat(),
            'vetted_by': self.vetted_by,
            'record_id': self.record_id,
        }
