"""
Human-readable verdict summaries

Headline, justification, signed key factors ("+" positive, "-" negative,
"~" neutral) and next steps for scored and gate-blocked results, plus the
review reasons shown next to a recommendation.
"""

from typing import Iterable, List, Optional, Sequence

from vetting_types import (
    CheckResult, GateResult, Recommendation, RedFlag, RedFlagType, ScoredCheck,
    Severity, VettingSummary,
)

REJECT_NEXT_STEPS = (
    "Do not proceed with funding consideration",
    "Document rejection reason for records",
    "Consider alternative organizations in this space",
)

VERDICT_CONFIG = {
    Recommendation.PASS: {
        'headline': "Approved for Tier 2 Vetting",
        'template': ("Organization meets Tier 1 criteria with a score of {score}/100. {name} is a "
                     "verified 501(c)(3) with {years} years of operating history and healthy financials."),
        'next_steps': (
            "Proceed to Tier 2 deep-dive vetting",
            "Review program effectiveness and impact metrics",
            "Verify leadership and governance structure",
        ),
    },
    Recommendation.REVIEW: {
        'headline': "Manual Review Required",
        'template': ("Organization scored {score}/100, requiring manual review. {issues_summary} "
                     "Verify these concerns before proceeding."),
        'next_steps': (
            "Review flagged items manually",
            "Request additional documentation if needed",
            "Re-evaluate after addressing concerns",
        ),
    },
    Recommendation.REJECT: {
        'headline': "Does Not Meet Criteria",
        'template': "Organization does not meet minimum Tier 1 criteria (score: {score}/100). {issues_summary}",
        'next_steps': REJECT_NEXT_STEPS,
    },
}

# check name -> result -> (sign, factor)
CHECK_MESSAGES = {
    'years_operating': {
        CheckResult.PASS: ("+", "Established track record"),
        CheckResult.REVIEW: ("~", "Newer organization"),
        CheckResult.FAIL: ("-", "Insufficient operating history"),
    },
    'revenue_range': {
        CheckResult.PASS: ("+", "Revenue in target range"),
        CheckResult.REVIEW: ("~", "Revenue outside ideal range"),
        CheckResult.FAIL: ("-", "Revenue outside acceptable range"),
    },
    'overhead_ratio': {
        CheckResult.PASS: ("+", "Healthy expense-to-revenue ratio"),
        CheckResult.REVIEW: ("~", "Expense ratio needs review"),
        CheckResult.FAIL: ("-", "Concerning expense ratio"),
    },
    'recent_990': {
        CheckResult.PASS: ("+", "Recent financial data available"),
        CheckResult.REVIEW: ("~", "Financial data slightly dated"),
        CheckResult.FAIL: ("-", "Financial data too old or missing"),
    },
}

RED_FLAG_FACTORS = {
    RedFlagType.STALE_FILING: "Financial data is severely outdated",
    RedFlagType.LOW_FUND_DEPLOYMENT: "Low fund deployment ratio",
    RedFlagType.VERY_HIGH_OVERHEAD: "Unsustainable expense-to-revenue ratio",
    RedFlagType.VERY_LOW_REVENUE: "Very small operation",
    RedFlagType.REVENUE_DECLINE: "Significant revenue decline",
    RedFlagType.TOO_NEW: "Very new organization",
    RedFlagType.HIGH_OFFICER_COMPENSATION: "High officer/director compensation ratio",
    RedFlagType.COURT_RECORDS: "Federal court cases on record",
    RedFlagType.SANCTIONS_NEAR_MATCH: "Possible sanctions list near-match",
}

GATE_LABELS = {
    'verified_501c3': "501(c)(3) verification",
    'ofac_sanctions': "OFAC sanctions check",
    'filing_exists': "990 filing requirement",
    'portfolio_fit': "portfolio fit policy",
}


def _red_flag_factors(red_flags: Iterable[RedFlag], existing: List[str]) -> List[str]:
    """Negative factors for red flags, skipping ones already present"""
    factors: List[str] = []
    for flag in red_flags:
        message = RED_FLAG_FACTORS.get(flag.flag_type, flag.detail)
        if any(message in f for f in existing + factors):
            continue
        factors.append(f"- {message} ({flag.severity.value})")
    return factors


def generate_summary(
    name: str,
    score: int,
    recommendation: Recommendation,
    checks: Sequence[ScoredCheck],
    red_flags: Sequence[RedFlag],
    years_operating: Optional[int],
) -> VettingSummary:
    """Summary for a scored (not gate-blocked) result"""
    config = VERDICT_CONFIG[recommendation]

    key_factors: List[str] = []
    for check in checks:
        messages = CHECK_MESSAGES.get(check.name)
        if messages:
            sign, factor = messages[check.result]
            key_factors.append(f"{sign} {factor}")
    key_factors.extend(_red_flag_factors(red_flags, key_factors))

    issues = [c.detail for c in checks if c.result != CheckResult.PASS][:3]
    issues_summary = (f"Key concerns: {'; '.join(issues)}." if issues
                      else "No specific concerns identified.")

    justification = config['template'].format(
        score=score,
        name=name,
        years=years_operating if years_operating is not None else "unknown",
        issues_summary=issues_summary,
    )

    return VettingSummary(
        headline=config['headline'],
        justification=justification,
        key_factors=tuple(key_factors),
        next_steps=tuple(config['next_steps']),
    )


def generate_gate_failure_summary(
    name: str,
    blocking_gate: str,
    gates: Sequence[GateResult],
    red_flags: Sequence[RedFlag] = (),
) -> VettingSummary:
    """Summary for a gate-blocked result; there is no score to show"""
    gate_label = GATE_LABELS.get(blocking_gate, blocking_gate)

    key_factors = [f"{'+' if g.passed else '-'} {g.detail}" for g in gates]
    key_factors.extend(_red_flag_factors(red_flags, key_factors))

    return VettingSummary(
        headline="Does Not Meet Criteria: Pre-Screen Gate Failure",
        justification=f"{name} failed pre-screen gate: {gate_label}. Organization was rejected before scoring.",
        key_factors=tuple(key_factors),
        next_steps=REJECT_NEXT_STEPS,
    )


def build_review_reasons(
    checks: Optional[Sequence[ScoredCheck]],
    red_flags: Sequence[RedFlag],
    gates: Sequence[GateResult] = (),
) -> List[str]:
    """Why this recommendation: failed gate, non-PASS checks, HIGH red flags"""
    reasons: List[str] = []

    for gate in gates:
        if not gate.passed:
            reasons.append(f"Gate failure: {gate.gate} ({gate.detail})")
            break

    for check in checks or ():
        if check.result != CheckResult.PASS:
            reasons.append(check.detail)

    for flag in red_flags:
        if flag.severity == Severity.HIGH:
            reasons.append(f"RED FLAG: {flag.detail}")

    return reasons
