"""
EIN, date and ratio helpers shared by profile builders and the pipeline

All functions are pure. Functions that validate raise InvalidArgumentError;
functions that derive values return None when the inputs do not support one.
"""

import math
import re
from datetime import date
from typing import Any, Optional

from vetting_errors import InvalidArgumentError

EIN_PATTERN = re.compile(r'^\d{9}$')
EIN_STRIP_PATTERN = re.compile(r'[-\s]')

# Ruling date formats: YYYY-MM-DD, YYYY-MM, YYYYMM
RULING_DATE_FULL = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$')
RULING_DATE_MONTH = re.compile(r'^(\d{4})-(\d{2})$')
RULING_DATE_COMPACT = re.compile(r'^(\d{4})(\d{2})$')

# The IRS has existed since 1913; earlier ruling dates are data errors
EARLIEST_RULING_YEAR = 1913


def clean_ein(ein: Any) -> str:
    """Strip dashes and whitespace from an EIN without validating it"""
    if ein is None:
        return ""
    return EIN_STRIP_PATTERN.sub('', str(ein))


def normalize_ein(ein: Any) -> str:
    """Normalize an EIN to its 9-digit form

    Raises:
        InvalidArgumentError: If the EIN is not 9 digits after cleaning
    """
    cleaned = clean_ein(ein)
    if not EIN_PATTERN.match(cleaned):
        raise InvalidArgumentError(
            f"Invalid EIN format: '{ein}'. Expected 9 digits (e.g. 12-3456789)",
            field="ein",
            code="INVALID_EIN",
            suggestion="Provide 9 digits, with or without a dash after the first two",
        )
    return cleaned


def format_ein(ein: Any) -> str:
    """Format EIN with standard dash (XX-XXXXXXX)"""
    digits = clean_ein(ein).zfill(9)
    return f"{digits[:2]}-{digits[2:]}"


def finite_or_none(value: Any) -> Optional[float]:
    """Return value as a float if it is a finite number, else None"""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_subsection(subsection: Any) -> Optional[str]:
    """Store subsection codes as fixed-width 2-character strings (3 -> '03')"""
    if subsection is None:
        return None
    text = str(subsection).strip()
    if not text:
        return None
    return text.zfill(2)


def parse_ruling_date(ruling_date: Optional[str]) -> Optional[date]:
    """Parse a ruling date in YYYY-MM-DD, YYYY-MM or YYYYMM form"""
    if not ruling_date:
        return None
    text = ruling_date.strip()

    try:
        match = RULING_DATE_FULL.match(text)
        if match:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

        match = RULING_DATE_MONTH.match(text) or RULING_DATE_COMPACT.match(text)
        if match:
            return date(int(match.group(1)), int(match.group(2)), 1)
    except ValueError:
        # Month 13, day 32 and similar
        return None

    return None


def calculate_years_operating(ruling_date: Optional[str], today: Optional[date] = None) -> Optional[int]:
    """Whole years elapsed since the ruling date

    Returns None when the date is missing, unparseable, before 1913 or in a
    future year.
    """
    parsed = parse_ruling_date(ruling_date)
    if parsed is None:
        return None

    today = today or date.today()
    if parsed.year < EARLIEST_RULING_YEAR or parsed.year > today.year:
        return None

    years = today.year - parsed.year
    if (today.month, today.day) < (parsed.month, parsed.day):
        years -= 1
    return years if years >= 0 else None


def calculate_overhead_ratio(revenue: Any, expenses: Any) -> Optional[float]:
    """Expenses divided by revenue; None when revenue is not positive"""
    revenue = finite_or_none(revenue)
    expenses = finite_or_none(expenses)
    if revenue is None or revenue <= 0 or expenses is None:
        return None
    return finite_or_none(expenses / revenue)


def calculate_compensation_ratio(total_compensation: Any, total_expenses: Any) -> Optional[float]:
    """Officer compensation divided by total expenses

    None when either side is missing or not positive.
    """
    compensation = finite_or_none(total_compensation)
    expenses = finite_or_none(total_expenses)
    if compensation is None or compensation <= 0 or expenses is None or expenses <= 0:
        return None
    return finite_or_none(compensation / expenses)


def format_tax_period(tax_period: Any) -> str:
    """Format a YYYYMM tax period as 'YYYY-MM'"""
    text = str(tax_period)
    return f"{text[:4]}-{text[4:6]}"


def tax_period_to_months(tax_period: Any) -> int:
    """Months since year 0 for a YYYYMM tax period, for gap arithmetic"""
    value = int(tax_period)
    return (value // 100) * 12 + (value % 100)
