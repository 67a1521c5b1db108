"""
Collaborator contracts consumed by the vetting pipeline

Abstract lookups for revocation status, court records, sanctions list
entries and organization profiles, the records they return, and in-memory
reference implementations used by tests and embedded deployments.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from profile_utils import clean_ein
from vetting_types import FilingRecord, OrganizationProfile

logger = logging.getLogger(__name__)


# ============================================
# RESULT RECORDS
# ============================================

@dataclass(frozen=True)
class RevocationStatus:
    """Result of an IRS auto-revocation list lookup"""
    found: bool
    revoked: bool
    detail: str
    revocation_date: Optional[str] = None
    reinstatement_date: Optional[str] = None
    legal_name: Optional[str] = None


@dataclass(frozen=True)
class RevocationRecord:
    """One row of the revocation list"""
    ein: str
    legal_name: str = ""
    revocation_date: str = ""
    reinstatement_date: str = ""


@dataclass(frozen=True)
class CourtCase:
    """A federal court case returned by a court records lookup"""
    case_name: str
    court: str  # court code, e.g. "ca9"
    date_filed: Optional[str] = None
    docket_number: str = ""
    url: str = ""


@dataclass(frozen=True)
class CourtRecordsResult:
    """Result of a court records search by organization name"""
    found: bool
    case_count: int
    cases: Tuple[CourtCase, ...] = ()
    detail: str = ""


@dataclass(frozen=True)
class ProfileBundle:
    """Organization profile plus its filing history"""
    profile: OrganizationProfile
    filings: Tuple[FilingRecord, ...] = ()


# ============================================
# CONTRACTS
# ============================================

class RevocationLookup(ABC):
    """Mandatory: the 501(c)(3) gate cannot be evaluated without it"""

    @abstractmethod
    def check(self, ein: str) -> RevocationStatus:
        ...


class CourtRecordsLookup(ABC):
    """Optional: failures degrade to a skipped red flag rule"""

    @abstractmethod
    def check(self, name: str) -> CourtRecordsResult:
        ...


class SanctionsListSource(ABC):
    """Provides raw primary/alias sanctions records for NameMatcher"""

    @abstractmethod
    def load_entries(self) -> Iterable:
        ...


class ProfileBuilder(ABC):
    """Builds the profile snapshot for one organization"""

    @abstractmethod
    def build(self, ein: str) -> Optional[ProfileBundle]:
        """Return None when the organization cannot be found"""
        ...


# ============================================
# IN-MEMORY IMPLEMENTATIONS
# ============================================

class RevocationIndex(RevocationLookup):
    """Revocation list held in a dict keyed by normalized EIN"""

    def __init__(self, records: Iterable[RevocationRecord] = ()):
        self._records: Dict[str, RevocationRecord] = {}
        for record in records:
            self._records[clean_ein(record.ein)] = record

    def __len__(self) -> int:
        return len(self._records)

    def check(self, ein: str) -> RevocationStatus:
        record = self._records.get(clean_ein(ein))
        if record is None:
            return RevocationStatus(
                found=False,
                revoked=False,
                detail="Not found on IRS auto-revocation list",
            )

        if record.reinstatement_date:
            return RevocationStatus(
                found=True,
                revoked=False,
                detail=(f"Revoked {record.revocation_date or 'on unknown date'}, "
                        f"reinstated {record.reinstatement_date}"),
                revocation_date=record.revocation_date or None,
                reinstatement_date=record.reinstatement_date,
                legal_name=record.legal_name or None,
            )

        return RevocationStatus(
            found=True,
            revoked=True,
            detail=f"Tax-exempt status revoked {record.revocation_date or 'on unknown date'}",
            revocation_date=record.revocation_date or None,
            legal_name=record.legal_name or None,
        )


class StaticSanctionsSource(SanctionsListSource):
    """Sanctions entries already loaded into memory"""

    def __init__(self, entries: Iterable = ()):
        self._entries = list(entries)

    def load_entries(self) -> List:
        return list(self._entries)


class StaticProfileBuilder(ProfileBuilder):
    """Profiles registered up front, keyed by normalized EIN"""

    def __init__(self, bundles: Iterable[ProfileBundle] = ()):
        self._bundles: Dict[str, ProfileBundle] = {}
        for bundle in bundles:
            self.add(bundle)

    def add(self, bundle: ProfileBundle) -> None:
        filings = tuple(sorted(bundle.filings, key=lambda f: f.tax_period, reverse=True))
        self._bundles[bundle.profile.ein] = ProfileBundle(profile=bundle.profile, filings=filings)

    def build(self, ein: str) -> Optional[ProfileBundle]:
        bundle = self._bundles.get(clean_ein(ein))
        if bundle is None:
            logger.debug(f"No profile registered for EIN {clean_ein(ein)}")
        return bundle
