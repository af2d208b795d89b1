"""
CSV column inference for remittance files.

Column meaning is inferred from header names, not position. Inference is
best-effort: the result records how each field was matched and which required
fields could not be matched, so callers can send ambiguous files to a human
reviewer instead of trusting a guess.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Pattern, Protocol, Sequence, Tuple

REQUIRED_FIELDS = ("claim_number", "service_date", "billed_amount", "paid_amount")


class MatchConfidence(str, Enum):
    EXPLICIT = "explicit"  # supplied by the caller
    EXACT = "exact"  # primary header pattern
    FALLBACK = "fallback"  # loose substring heuristic


@dataclass(frozen=True)
class ColumnMatch:
    column: str
    confidence: MatchConfidence


@dataclass
class ColumnMapping:
    """Semantic field -> CSV column, plus the required fields left unmapped"""

    matches: Dict[str, ColumnMatch] = field(default_factory=dict)
    unmapped: List[str] = field(default_factory=list)

    def column(self, field_name: str) -> Optional[str]:
        match = self.matches.get(field_name)
        return match.column if match else None

    @property
    def fallback_fields(self) -> List[str]:
        return [name for name, m in self.matches.items() if m.confidence == MatchConfidence.FALLBACK]

    @property
    def needs_review(self) -> bool:
        return bool(self.unmapped or self.fallback_fields)

    def as_dict(self) -> Dict[str, object]:
        return {
            "columns": {name: m.column for name, m in self.matches.items()},
            "confidence": {name: m.confidence.value for name, m in self.matches.items()},
            "unmapped": list(self.unmapped),
            "needs_review": self.needs_review,
        }


class ColumnMappingStrategy(Protocol):
    def infer(self, columns: Sequence[str]) -> ColumnMapping: ...


def _compile(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


class RegexColumnStrategy:
    """Match header names against ordered patterns, then loose fallbacks for required fields"""

    # First matching pattern wins for a column; order matters
    PRIMARY_PATTERNS: Tuple[Tuple[str, Pattern[str]], ...] = (
        ("claim_number", _compile(r"claim.?(number|no|num|id|identifier)")),
        ("service_date", _compile(r"service.?date")),
        ("billed_amount", _compile(r"(billed|charged|submitted).?(amount|amt|total)")),
        ("paid_amount", _compile(r"(paid|payment).?(amount|amt|total)")),
        ("adjustment_amount", _compile(r"(adjustment|adj).?(amount|amt|total)")),
        ("adjustment_codes", _compile(r"(adjustment|adj).?codes?")),
        ("service_code", _compile(r"(service|procedure|cpt|hcpcs).?code")),
        ("remittance_number", _compile(r"(remittance|remit).?(number|no|id|identifier)")),
        ("payer_identifier", _compile(r"(payer|payor).?(identifier|id|number)")),
        ("payer_name", _compile(r"(payer|payor).?name")),
        ("remittance_date", _compile(r"(remittance|remit|payment).?date")),
    )

    FALLBACK_PATTERNS: Dict[str, Tuple[Pattern[str], ...]] = {
        "claim_number": (_compile(r"claim"), _compile(r"invoice"), _compile(r"reference")),
        "service_date": (_compile(r"date.*service"), _compile(r"\bdos\b"), _compile(r"date")),
        "billed_amount": (_compile(r"billed"), _compile(r"charged?"), _compile(r"submitted")),
        "paid_amount": (
            _compile(r"paid"),
            _compile(r"payment"),
            _compile(r"reimbursed"),
            _compile(r"allowed"),
        ),
    }

    def infer(self, columns: Sequence[str]) -> ColumnMapping:
        mapping = ColumnMapping()
        used = set()

        for column in columns:
            for field_name, pattern in self.PRIMARY_PATTERNS:
                if field_name in mapping.matches:
                    continue
                if pattern.search(column):
                    mapping.matches[field_name] = ColumnMatch(column, MatchConfidence.EXACT)
                    used.add(column)
                    break

        for field_name, patterns in self.FALLBACK_PATTERNS.items():
            if field_name in mapping.matches:
                continue
            column = self._first_unused(columns, patterns, used)
            if column is not None:
                mapping.matches[field_name] = ColumnMatch(column, MatchConfidence.FALLBACK)
                used.add(column)

        mapping.unmapped = [name for name in REQUIRED_FIELDS if name not in mapping.matches]
        return mapping

    @staticmethod
    def _first_unused(columns: Sequence[str], patterns: Sequence[Pattern[str]], used: set) -> Optional[str]:
        for pattern in patterns:
            for column in columns:
                if column not in used and pattern.search(column):
                    return column
        return None


class ExplicitColumnStrategy:
    """Fixed field -> column layout for sources whose format is known in advance"""

    def __init__(self, layout: Mapping[str, str]):
        self.layout = dict(layout)

    def infer(self, columns: Sequence[str]) -> ColumnMapping:
        present = set(columns)
        mapping = ColumnMapping(
            matches={
                name: ColumnMatch(column, MatchConfidence.EXPLICIT)
                for name, column in self.layout.items()
                if column in present
            }
        )
        mapping.unmapped = [name for name in REQUIRED_FIELDS if name not in mapping.matches]
        return mapping
