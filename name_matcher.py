"""
Sanctions name matching

Normalizes organization names and compares them against an in-memory
sanctions list snapshot: exact lookups through a dict index of normalized
primary and alias names, fuzzy lookups through rapidfuzz Jaro-Winkler
extraction over the same normalized forms.
"""

import logging
import math
import re
import unicodedata
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from rapidfuzz import process
from rapidfuzz.distance import JaroWinkler

from audit_logger import sanitize_for_logging
from config_manager import DEFAULT_CORPORATE_SUFFIXES
from vetting_errors import InvalidArgumentError
from vetting_types import MatchBasis, SanctionsMatch

logger = logging.getLogger(__name__)

APOSTROPHES = re.compile(r"['‘’ʼ`]")
NON_WORD = re.compile(r'[^\w\s]|_')
WHITESPACE = re.compile(r'\s+')


@dataclass(frozen=True)
class SanctionsEntry:
    """One sanctions list record with its registered aliases"""
    ent_num: str
    name: str
    sdn_type: str = "Entity"
    program: str = ""
    aliases: Tuple[str, ...] = ()

    @property
    def is_entity(self) -> bool:
        return self.sdn_type.strip().lower() == "entity"


def normalize_name(name: Optional[str], suffixes: Iterable[str] = DEFAULT_CORPORATE_SUFFIXES) -> str:
    """Normalize a name for matching

    Lowercases, strips diacritics and punctuation, collapses whitespace and
    drops corporate suffix tokens. A name made only of suffixes keeps them.
    normalize_name(normalize_name(x)) == normalize_name(x).
    """
    if not name:
        return ""
    text = unicodedata.normalize('NFKD', name.lower())
    text = ''.join(c for c in text if unicodedata.category(c) != 'Mn')
    text = text.replace('&', ' and ')
    text = APOSTROPHES.sub('', text)
    text = NON_WORD.sub(' ', text)
    tokens = WHITESPACE.sub(' ', text).strip().split()

    suffix_set = set(suffixes)
    kept = [t for t in tokens if t not in suffix_set]
    return ' '.join(kept or tokens)


def _ent_num_key(ent_num: str) -> Tuple[int, int, str]:
    """Sort numeric entity numbers numerically, others lexically after them"""
    text = str(ent_num).strip()
    if text.isdigit():
        return (0, int(text), text)
    return (1, 0, text)


class NameMatcher:
    """Exact and fuzzy sanctions-name lookups over a list snapshot

    Instances are read-only after construction and safe to share between
    threads.
    """

    def __init__(self, entries: Iterable[SanctionsEntry],
                 suffixes: Sequence[str] = DEFAULT_CORPORATE_SUFFIXES):
        self.suffixes: Tuple[str, ...] = tuple(suffixes)
        # normalized form -> [(entry, basis, raw list string)]
        self._index: Dict[str, List[Tuple[SanctionsEntry, MatchBasis, str]]] = {}
        self._entry_count = 0

        for entry in entries:
            self._entry_count += 1
            self._add(entry.name, entry, MatchBasis.EXACT)
            for alias in entry.aliases:
                self._add(alias, entry, MatchBasis.ALIAS)

        self._forms: List[str] = list(self._index)
        logger.info(f"Indexed {self._entry_count} sanctions entries "
                    f"({len(self._forms)} distinct normalized names)")

    @classmethod
    def from_source(cls, source, suffixes: Sequence[str] = DEFAULT_CORPORATE_SUFFIXES) -> 'NameMatcher':
        """Build a matcher from any object exposing load_entries()"""
        return cls(source.load_entries(), suffixes=suffixes)

    def __len__(self) -> int:
        return self._entry_count

    def _add(self, raw: str, entry: SanctionsEntry, basis: MatchBasis) -> None:
        form = self.normalize(raw)
        if form:
            self._index.setdefault(form, []).append((entry, basis, raw))

    def normalize(self, name: Optional[str]) -> str:
        return normalize_name(name, self.suffixes)

    def exact_lookup(self, name: str) -> List[SanctionsMatch]:
        """All entries whose primary or alias normalized form equals the candidate's

        One match per entity; a primary-name hit wins over an alias hit.
        Ordered by entity number.
        """
        form = self.normalize(name)
        if not form:
            return []

        best: Dict[str, SanctionsMatch] = {}
        for entry, basis, raw in self._index.get(form, []):
            current = best.get(entry.ent_num)
            if current is None or (current.basis == MatchBasis.ALIAS and basis == MatchBasis.EXACT):
                best[entry.ent_num] = SanctionsMatch(
                    ent_num=entry.ent_num,
                    name=entry.name,
                    sdn_type=entry.sdn_type,
                    program=entry.program,
                    basis=basis,
                    matched_name=raw,
                )

        matches = sorted(best.values(), key=lambda m: _ent_num_key(m.ent_num))
        if matches:
            logger.warning(f"Exact sanctions match for '{sanitize_for_logging(name)}': "
                           f"{', '.join(m.ent_num for m in matches)}")
        return matches

    def fuzzy_lookup(self, name: str, threshold: float) -> List[SanctionsMatch]:
        """Entity-type entries with Jaro-Winkler similarity >= threshold

        One match per entity at its best similarity, sorted by similarity
        descending then entity number ascending.

        Raises:
            InvalidArgumentError: If threshold is outside [0, 1]
        """
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) \
                or math.isnan(threshold) or not 0.0 <= threshold <= 1.0:
            raise InvalidArgumentError(
                f"Invalid fuzzy threshold: {threshold}. Must be between 0.0 and 1.0",
                field="threshold",
                code="INVALID_THRESHOLD",
                suggestion="Use a similarity threshold such as 0.85",
            )

        form = self.normalize(name)
        if not form or not self._forms:
            return []

        extracted = process.extract(
            form,
            self._forms,
            scorer=JaroWinkler.normalized_similarity,
            score_cutoff=float(threshold),
            limit=None,
        )

        best: Dict[str, SanctionsMatch] = {}
        for matched_form, similarity, _ in extracted:
            for entry, basis, raw in self._index[matched_form]:
                if not entry.is_entity:
                    continue
                current = best.get(entry.ent_num)
                if current is not None and current.similarity >= similarity:
                    continue
                best[entry.ent_num] = SanctionsMatch(
                    ent_num=entry.ent_num,
                    name=entry.name,
                    sdn_type=entry.sdn_type,
                    program=entry.program,
                    basis=MatchBasis.FUZZY,
                    matched_name=raw,
                    similarity=float(similarity),
                )

        return sorted(best.values(), key=lambda m: (-m.similarity, _ent_num_key(m.ent_num)))
