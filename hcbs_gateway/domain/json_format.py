"""JSON remittance documents with tolerant key aliases"""

import json
from typing import Any, Dict, List, Optional, Sequence

from hcbs_gateway.domain.enums import RemittanceFileType
from hcbs_gateway.domain.exceptions import RemittanceParseError
from hcbs_gateway.domain.models import Remittance, RemittanceDetail, RemittanceInfo
from hcbs_gateway.utils.money import format_cents, parse_amount

# Alias lists are searched in order; the first present, non-empty key wins
HEADER_ALIASES: Dict[str, Sequence[str]] = {
    "remittance_number": ("remittanceNumber", "remittance_number", "number", "id"),
    "remittance_date": ("remittanceDate", "remittance_date", "date", "paymentDate"),
    "payer_identifier": ("payerIdentifier", "payer_identifier", "payerId", "payer_id"),
    "payer_name": ("payerName", "payer_name", "payer"),
    "total_amount": ("totalAmount", "total_amount", "amount", "total"),
}

DETAIL_ALIASES: Dict[str, Sequence[str]] = {
    "claim_number": ("claimNumber", "claim_number", "claim", "id"),
    "service_date": ("serviceDate", "service_date", "date"),
    "billed_amount": ("billedAmount", "billed_amount", "billed", "charged"),
    "paid_amount": ("paidAmount", "paid_amount", "paid", "payment"),
    "adjustment_amount": ("adjustmentAmount", "adjustment_amount", "adjustment"),
    "service_code": ("serviceCode", "service_code", "procedureCode"),
}

DETAIL_LIST_KEYS = ("details", "claims", "lines")


def _pick(source: Dict[str, Any], aliases: Sequence[str]) -> Any:
    for key in aliases:
        value = source.get(key)
        if value is not None and value != "":
            return value
    return None


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _adjustment_codes(item: Dict[str, Any]) -> Dict[str, str]:
    codes = item.get("adjustmentCodes") or item.get("adjustment_codes")
    if isinstance(codes, dict):
        return {str(k): str(v) for k, v in codes.items()}

    adjustments = item.get("adjustments")
    if isinstance(adjustments, list):
        result = {}
        for index, adjustment in enumerate(adjustments):
            if isinstance(adjustment, dict):
                code = _text(adjustment.get("code"))
                amount = parse_amount(adjustment.get("amount"))
                result[f"ADJ{index}"] = f"{code}:{amount if amount is not None else 0}"
            else:
                result[f"ADJ{index}"] = _text(adjustment)
        return result

    single = item.get("adjustmentCode") or item.get("adjustment_code")
    if single:
        return {"ADJ0": _text(single)}
    return {}


def _details(document: Dict[str, Any], header: Dict[str, Any]) -> List[Dict[str, Any]]:
    for source in (document, header):
        for key in DETAIL_LIST_KEYS:
            items = source.get(key)
            if isinstance(items, list):
                return items
    return []


def parse_json(content: str) -> Remittance:
    """
    Parse a JSON remittance.

    The header may sit under ``header`` or ``remittance`` or be the document
    itself; details are read from ``details``, ``claims`` or ``lines`` on the
    document or the header. Amounts are dollars.

    Raises:
        RemittanceParseError: invalid JSON, not an object, or no remittance number
    """
    try:
        document = json.loads(content)
    except ValueError as e:
        raise RemittanceParseError(f"Invalid JSON remittance: {e}", "parse_json") from e
    if not isinstance(document, dict):
        raise RemittanceParseError("JSON remittance must be an object", "parse_json")

    header_source = document.get("header") or document.get("remittance") or document
    if not isinstance(header_source, dict):
        raise RemittanceParseError("JSON remittance header must be an object", "parse_json")

    remittance_number = _text(_pick(header_source, HEADER_ALIASES["remittance_number"]))
    if not remittance_number:
        raise RemittanceParseError("Remittance number not found in JSON data", "parse_json")

    try:
        details = []
        for item in _details(document, header_source):
            if not isinstance(item, dict):
                raise RemittanceParseError("JSON remittance detail must be an object", "parse_json")
            details.append(
                RemittanceDetail(
                    claim_number=_text(_pick(item, DETAIL_ALIASES["claim_number"])),
                    service_date=_text(_pick(item, DETAIL_ALIASES["service_date"])),
                    billed_amount=parse_amount(_pick(item, DETAIL_ALIASES["billed_amount"])),
                    paid_amount=parse_amount(_pick(item, DETAIL_ALIASES["paid_amount"])),
                    adjustment_amount=parse_amount(_pick(item, DETAIL_ALIASES["adjustment_amount"])),
                    adjustment_codes=_adjustment_codes(item),
                    service_code=_text(_pick(item, DETAIL_ALIASES["service_code"])) or None,
                )
            )

        header = RemittanceInfo(
            remittance_number=remittance_number,
            remittance_date=_text(_pick(header_source, HEADER_ALIASES["remittance_date"])),
            payer_identifier=_text(_pick(header_source, HEADER_ALIASES["payer_identifier"])),
            payer_name=_text(_pick(header_source, HEADER_ALIASES["payer_name"])),
            total_amount=parse_amount(_pick(header_source, HEADER_ALIASES["total_amount"])),
            claim_count=len(details),
            file_type=RemittanceFileType.CUSTOM,
        )
    except ValueError as e:
        raise RemittanceParseError(f"Invalid amount in JSON remittance: {e}", "parse_json") from e

    return Remittance(header=header, details=details)


def remittance_to_document(remittance: Remittance) -> Dict[str, Any]:
    """Plain dict form with decimal-string amounts"""
    header = remittance.header
    return {
        "header": {
            "remittanceNumber": header.remittance_number,
            "remittanceDate": header.remittance_date,
            "payerIdentifier": header.payer_identifier,
            "payerName": header.payer_name,
            "totalAmount": format_cents(header.total_amount),
            "claimCount": header.claim_count,
            "fileType": header.file_type.value,
        },
        "details": [
            {
                "claimNumber": detail.claim_number,
                "serviceDate": detail.service_date,
                "billedAmount": format_cents(detail.billed_amount),
                "paidAmount": format_cents(detail.paid_amount),
                "adjustmentAmount": format_cents(detail.adjustment_amount),
                "adjustmentCodes": dict(detail.adjustment_codes or {}),
                "serviceCode": detail.service_code,
            }
            for detail in remittance.details
        ],
    }


def render_json(remittance: Remittance, indent: Optional[int] = 2) -> str:
    return json.dumps(remittance_to_document(remittance), indent=indent)
