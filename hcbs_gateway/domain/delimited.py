"""
Comma-delimited remittance files.

Parsing is best-effort: column meaning comes from a ColumnMappingStrategy
and header-level fields are lifted from the data rows, because payer CSV
exports carry no separate header record.
"""

import csv
import io
import logging
import re
from datetime import datetime
from typing import Callable, Dict, List, Optional

from hcbs_gateway.domain.column_mapping import ColumnMapping, ColumnMappingStrategy, RegexColumnStrategy
from hcbs_gateway.domain.enums import RemittanceFileType
from hcbs_gateway.domain.exceptions import RemittanceParseError
from hcbs_gateway.domain.models import Remittance, RemittanceDetail, RemittanceInfo, utcnow
from hcbs_gateway.utils.date_utils import compact_timestamp, format_date
from hcbs_gateway.utils.money import format_cents, parse_amount

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "Remittance Number",
    "Remittance Date",
    "Payer Name",
    "Payer ID",
    "Claim Number",
    "Service Date",
    "Billed Amount",
    "Paid Amount",
    "Adjustment Amount",
    "Adjustment Codes",
    "Service Code",
]

_CODE_SEPARATORS = re.compile(r"[;,]")


def parse_adjustment_codes(cell: str) -> Dict[str, str]:
    """
    Split an adjustment-code cell into the canonical mapping.

    ``CO:45:500`` becomes ``{"CO45": "CO:45:500"}``; tokens not in
    group:reason:amount form are kept verbatim under ``ADJ<n>``.
    """
    codes: Dict[str, str] = {}
    tokens = [token.strip() for token in _CODE_SEPARATORS.split(cell or "")]
    for index, token in enumerate(t for t in tokens if t):
        parts = token.split(":")
        if len(parts) == 3 and parts[0] and parts[1]:
            codes[f"{parts[0]}{parts[1]}"] = token
        else:
            codes[f"ADJ{index}"] = token
    return codes


def _read_rows(content: str) -> tuple:
    reader = csv.DictReader(io.StringIO(content))
    if not reader.fieldnames:
        raise RemittanceParseError("CSV file has no header row", "parse_csv")

    columns = [(name or "").strip() for name in reader.fieldnames]
    rows = []
    for raw in reader:
        row = {}
        for original, column in zip(reader.fieldnames, columns):
            value = raw.get(original)
            row[column] = value.strip() if isinstance(value, str) else ""
        if any(row.values()):
            rows.append(row)
    return columns, rows


def _cell(row: Dict[str, str], mapping: ColumnMapping, field_name: str) -> str:
    column = mapping.column(field_name)
    return row.get(column, "") if column else ""


def _amount(row: Dict[str, str], mapping: ColumnMapping, field_name: str, line: int) -> Optional[int]:
    try:
        return parse_amount(_cell(row, mapping, field_name))
    except ValueError as e:
        raise RemittanceParseError(f"Invalid {field_name} on CSV row {line}: {e}", "parse_csv") from e


def parse_csv(
    content: str,
    strategy: Optional[ColumnMappingStrategy] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> Remittance:
    """
    Parse a CSV remittance.

    The inferred ColumnMapping is returned on the Remittance so callers can
    route files with unmapped or loosely matched columns to manual review.

    Raises:
        RemittanceParseError: no header row, or an amount cell that is not a number
    """
    columns, rows = _read_rows(content)
    mapping = (strategy or RegexColumnStrategy()).infer(columns)
    if mapping.needs_review:
        logger.warning(
            "CSV column mapping is incomplete or inferred loosely",
            extra={"unmapped": mapping.unmapped, "fallback": mapping.fallback_fields},
        )

    details: List[RemittanceDetail] = []
    for line, row in enumerate(rows, start=2):
        details.append(
            RemittanceDetail(
                claim_number=_cell(row, mapping, "claim_number"),
                service_date=_cell(row, mapping, "service_date"),
                billed_amount=_amount(row, mapping, "billed_amount", line),
                paid_amount=_amount(row, mapping, "paid_amount", line),
                adjustment_amount=_amount(row, mapping, "adjustment_amount", line),
                adjustment_codes=parse_adjustment_codes(_cell(row, mapping, "adjustment_codes")),
                service_code=_cell(row, mapping, "service_code") or None,
            )
        )

    source = next(
        (
            row
            for row in rows
            if _cell(row, mapping, "remittance_number") and _cell(row, mapping, "remittance_date")
        ),
        rows[0] if rows else {},
    )
    now = (clock or utcnow)()

    header = RemittanceInfo(
        remittance_number=_cell(source, mapping, "remittance_number") or f"CSV-{compact_timestamp(now)}",
        remittance_date=_cell(source, mapping, "remittance_date") or format_date(now),
        payer_identifier=_cell(source, mapping, "payer_identifier"),
        payer_name=_cell(source, mapping, "payer_name"),
        total_amount=sum(d.paid_amount or 0 for d in details),
        claim_count=len(details),
        file_type=RemittanceFileType.CSV,
    )
    return Remittance(header=header, details=details, column_mapping=mapping)


def render_csv(remittance: Remittance) -> str:
    """One row per detail with the header fields repeated on every row"""
    header = remittance.header
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for detail in remittance.details:
        writer.writerow(
            [
                header.remittance_number,
                header.remittance_date,
                header.payer_name,
                header.payer_identifier,
                detail.claim_number,
                detail.service_date,
                format_cents(detail.billed_amount),
                format_cents(detail.paid_amount),
                format_cents(detail.adjustment_amount),
                ";".join((detail.adjustment_codes or {}).values()),
                detail.service_code or "",
            ]
        )
    return buffer.getvalue()
