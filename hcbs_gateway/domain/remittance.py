"""Remittance normalization, validation and format detection"""

import json
import logging
import os
from dataclasses import replace
from typing import Any, List, Optional, Tuple

from hcbs_gateway.domain.enums import DataFormat
from hcbs_gateway.domain.exceptions import RemittanceValidationError
from hcbs_gateway.domain.models import RemittanceDetail, RemittanceInfo, Violation
from hcbs_gateway.utils.date_utils import normalize_date
from hcbs_gateway.utils.money import parse_amount

logger = logging.getLogger(__name__)

# Header total may differ from the summed detail payments by rounding only
TOTAL_TOLERANCE_CENTS = 1


def _to_cents(value: Any) -> Optional[int]:
    # Integers are already cents; anything else is dollar text from a loose source
    if value is None or (isinstance(value, int) and not isinstance(value, bool)):
        return value
    return parse_amount(value)


def normalize(
    header: RemittanceInfo, details: List[RemittanceDetail]
) -> Tuple[RemittanceInfo, List[RemittanceDetail]]:
    """
    Canonicalize dates and amounts and reconcile the header with its details.

    Details are treated as ground truth: the header total_amount and
    claim_count are recomputed from them, overriding whatever the source
    stated. Inputs are not mutated.
    """
    normalized_details = []
    for detail in details:
        billed = _to_cents(detail.billed_amount)
        paid = _to_cents(detail.paid_amount)
        adjustment = _to_cents(detail.adjustment_amount)
        if adjustment is None and billed is not None and paid is not None:
            adjustment = billed - paid

        normalized_details.append(
            replace(
                detail,
                claim_number=(detail.claim_number or "").strip(),
                service_date=normalize_date(detail.service_date),
                billed_amount=billed,
                paid_amount=paid,
                adjustment_amount=adjustment,
                adjustment_codes=dict(detail.adjustment_codes or {}),
            )
        )

    normalized_header = replace(
        header,
        remittance_number=(header.remittance_number or "").strip(),
        remittance_date=normalize_date(header.remittance_date),
        total_amount=sum(d.paid_amount or 0 for d in normalized_details),
        claim_count=len(normalized_details),
    )

    return normalized_header, normalized_details


def collect_violations(header: RemittanceInfo, details: List[RemittanceDetail]) -> List[Violation]:
    """Every consistency problem in the remittance, in header-then-detail order"""
    violations: List[Violation] = []

    if not header.remittance_number:
        violations.append(Violation("remittance_number", "Remittance number is required"))
    if not header.remittance_date:
        violations.append(Violation("remittance_date", "Remittance date is required"))
    if header.total_amount is None:
        violations.append(Violation("total_amount", "Total amount is required"))

    if not details:
        violations.append(Violation("details", "Remittance must contain at least one detail record"))
        return violations

    for index, detail in enumerate(details):
        position = index + 1
        if not detail.claim_number:
            violations.append(
                Violation("claim_number", f"Detail record {position} is missing claim number", index)
            )
        if not detail.service_date:
            violations.append(
                Violation("service_date", f"Detail record {position} is missing service date", index)
            )
        if detail.billed_amount is None:
            violations.append(
                Violation("billed_amount", f"Detail record {position} is missing billed amount", index)
            )
        if detail.paid_amount is None:
            violations.append(
                Violation("paid_amount", f"Detail record {position} is missing paid amount", index)
            )

    if header.total_amount is not None:
        detail_total = sum(d.paid_amount or 0 for d in details)
        if abs(header.total_amount - detail_total) > TOTAL_TOLERANCE_CENTS:
            violations.append(
                Violation(
                    "total_amount",
                    f"Total amount in header ({header.total_amount / 100:.2f}) does not match "
                    f"sum of paid amounts ({detail_total / 100:.2f})",
                )
            )

    return violations


def validate(header: RemittanceInfo, details: List[RemittanceDetail]) -> None:
    """
    Raise if the remittance is incomplete or inconsistent.

    Raises:
        RemittanceValidationError: carrying every violation, not just the first
    """
    violations = collect_violations(header, details)
    if violations:
        logger.warning(
            "Remittance validation failed",
            extra={"remittance_number": header.remittance_number, "violation_count": len(violations)},
        )
        raise RemittanceValidationError(violations)


def detect_format(file_name: str, content: str, default: DataFormat = DataFormat.X12) -> DataFormat:
    """Guess a remittance file's format from its extension, then its content"""
    extension = os.path.splitext(file_name or "")[1].lower()
    if extension in (".835", ".edi"):
        return DataFormat.X12
    if extension == ".csv":
        return DataFormat.CSV
    if extension == ".json":
        return DataFormat.JSON

    stripped = (content or "").lstrip("\ufeff").strip()
    if stripped.startswith("ISA"):
        return DataFormat.X12
    if stripped[:1] in ("{", "["):
        try:
            json.loads(stripped)
            return DataFormat.JSON
        except ValueError:
            pass

    lines = stripped.splitlines()
    if len(lines) > 1:
        comma_count = lines[0].count(",")
        if comma_count > 0 and lines[1].count(",") == comma_count:
            return DataFormat.CSV

    logger.debug("Unable to determine remittance format, using default", extra={"default": default.value})
    return default
