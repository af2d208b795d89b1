"""
ASC X12 835 (005010X221A1) health care claim payment codec.

Only the subset needed for remittance reconciliation is handled: the
interchange/group/transaction envelope, BPR, TRN, N1*PR, DTM and the claim
loop (CLP with its SVC, DTM and CAS segments). Amounts on the wire are decimal
dollars; everything returned or accepted here is integer cents.
"""

import logging
import random
import string
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Tuple

from hcbs_gateway.config import settings
from hcbs_gateway.domain.enums import RemittanceFileType
from hcbs_gateway.domain.exceptions import RemittanceParseError
from hcbs_gateway.domain.models import Remittance, RemittanceDetail, RemittanceInfo, utcnow
from hcbs_gateway.utils.date_utils import format_date, from_edi_date, to_edi_date
from hcbs_gateway.utils.money import format_cents, parse_amount

logger = logging.getLogger(__name__)

ELEMENT_SEPARATOR = "*"
SEGMENT_TERMINATOR = "~"
COMPONENT_SEPARATOR = ":"
REPETITION_SEPARATOR = "^"

IMPLEMENTATION_GUIDE = "005010X221A1"
PLACEHOLDER_PROCEDURE_CODE = "99999"

# ISA has exactly 16 elements; the component separator and the segment
# terminator are the two characters following the 16th element separator
_ISA_ELEMENT_COUNT = 16
_CAS_MAX_TRIPLETS = 6

Segment = List[str]
ControlNumberFactory = Callable[[int], str]


@dataclass(frozen=True)
class Delimiters:
    element: str = ELEMENT_SEPARATOR
    segment: str = SEGMENT_TERMINATOR
    component: str = COMPONENT_SEPARATOR


@dataclass(frozen=True)
class BankingDetails:
    """Routing for BPR06-BPR15; without it the payment method is NON"""

    payer_routing_number: str
    payer_account_number: str
    payee_routing_number: str
    payee_account_number: str
    originating_company_id: str = ""
    payment_method: str = "ACH"
    payment_format: str = "CCP"


def random_control_number(length: int) -> str:
    return "".join(random.choices(string.digits, k=length))


# --- Parsing ---------------------------------------------------------------


def detect_delimiters(content: str) -> Delimiters:
    """Read separators from the ISA header, falling back to the defaults"""
    text = content.lstrip("\ufeff").lstrip()
    if not text.startswith("ISA") or len(text) < 4:
        return Delimiters()

    element = text[3]
    position = 3
    for _ in range(_ISA_ELEMENT_COUNT - 1):
        position = text.find(element, position + 1)
        if position == -1:
            return Delimiters(element=element)

    if len(text) < position + 3:
        return Delimiters(element=element)

    component = text[position + 1]
    terminator = text[position + 2]
    if terminator.isalnum() or terminator == element:
        return Delimiters(element=element, component=component)
    return Delimiters(element=element, segment=terminator, component=component)


def split_segments(content: str, delimiters: Delimiters) -> List[Segment]:
    segments = []
    for raw in content.lstrip("\ufeff").split(delimiters.segment):
        raw = raw.strip()
        if raw:
            segments.append([part.strip() for part in raw.split(delimiters.element)])
    return segments


def _el(segment: Segment, index: int) -> str:
    return segment[index] if index < len(segment) else ""


def _find(segments: List[Segment], segment_id: str, qualifier: Optional[str] = None) -> Optional[Segment]:
    for segment in segments:
        if segment[0] == segment_id and (qualifier is None or _el(segment, 1) == qualifier):
            return segment
    return None


def _transactions(segments: List[Segment]) -> List[List[Segment]]:
    """ST..SE transaction sets inside the ISA/GS envelope"""
    if not segments or segments[0][0] != "ISA":
        raise RemittanceParseError("Invalid X12 835 format: missing ISA interchange header", "parse_x12")
    if _find(segments, "GS") is None:
        raise RemittanceParseError("Invalid X12 835 format: missing GS functional group", "parse_x12")

    transactions: List[List[Segment]] = []
    current: Optional[List[Segment]] = None
    for segment in segments:
        if segment[0] == "ST":
            current = [segment]
            transactions.append(current)
        elif current is not None:
            current.append(segment)
            if segment[0] == "SE":
                current = None

    if not transactions:
        raise RemittanceParseError("No transactions found in X12 835 file", "parse_x12")
    return transactions


class _ClaimBuilder:
    """Accumulates the SVC, DTM and CAS segments that follow one CLP"""

    def __init__(self, clp: Segment, component_separator: str):
        self.clp = clp
        self.component_separator = component_separator
        self.service_date = ""
        self.claim_date = ""
        self.svc_date = ""
        self.service_code: Optional[str] = None
        self.adjustments: "OrderedDict[Tuple[str, str], int]" = OrderedDict()

    def add(self, segment: Segment) -> None:
        segment_id = segment[0]
        if segment_id == "SVC":
            self._add_service(segment)
        elif segment_id == "DTM":
            qualifier = _el(segment, 1)
            if qualifier == "472" and not self.service_date:
                self.service_date = from_edi_date(_el(segment, 2))
            elif qualifier == "232" and not self.claim_date:
                self.claim_date = from_edi_date(_el(segment, 2))
        elif segment_id == "CAS":
            self._add_adjustments(segment)

    def _add_service(self, segment: Segment) -> None:
        procedure = _el(segment, 1).split(self.component_separator)
        if self.service_code is None and len(procedure) > 1 and procedure[1]:
            self.service_code = procedure[1]
        if not self.svc_date and _el(segment, 5):
            self.svc_date = from_edi_date(_el(segment, 5))

    def _add_adjustments(self, segment: Segment) -> None:
        group = _el(segment, 1)
        for triplet in range(_CAS_MAX_TRIPLETS):
            reason = _el(segment, 2 + triplet * 3)
            if not reason:
                continue
            amount = parse_amount(_el(segment, 3 + triplet * 3)) or 0
            key = (group, reason)
            self.adjustments[key] = self.adjustments.get(key, 0) + amount

    def build(self) -> RemittanceDetail:
        billed = parse_amount(_el(self.clp, 3))
        paid = parse_amount(_el(self.clp, 4))

        codes: Dict[str, str] = {}
        for (group, reason), cents in self.adjustments.items():
            codes[f"{group}{reason}"] = f"{group}:{reason}:{cents}"

        if self.adjustments:
            adjustment = sum(self.adjustments.values())
        elif billed is not None and paid is not None:
            adjustment = billed - paid
        else:
            adjustment = None

        return RemittanceDetail(
            claim_number=_el(self.clp, 1),
            service_date=self.service_date or self.claim_date or self.svc_date,
            billed_amount=billed,
            paid_amount=paid,
            adjustment_amount=adjustment,
            adjustment_codes=codes,
            service_code=self.service_code,
        )


def parse_x12(content: str, today: Optional[date] = None) -> Remittance:
    """
    Parse an 835 into a header and its claim details.

    Only the first transaction set is read; additional ones are logged and
    ignored.

    Raises:
        RemittanceParseError: envelope, BPR, TRN or N1*PR missing, or an
            amount that is not a number
    """
    delimiters = detect_delimiters(content)
    transactions = _transactions(split_segments(content, delimiters))
    if len(transactions) > 1:
        logger.warning(
            "X12 file contains multiple transactions, only the first is processed",
            extra={"transaction_count": len(transactions)},
        )
    segments = transactions[0]

    bpr = _find(segments, "BPR")
    if bpr is None:
        raise RemittanceParseError("BPR segment not found in X12 835 file", "parse_x12")
    trn = _find(segments, "TRN")
    if trn is None:
        raise RemittanceParseError("TRN segment not found in X12 835 file", "parse_x12")
    payer = _find(segments, "N1", "PR")
    if payer is None:
        raise RemittanceParseError("Payer information (N1*PR) not found in X12 835 file", "parse_x12")

    remittance_date = from_edi_date(_el(bpr, 16))
    if not remittance_date:
        production = _find(segments, "DTM", "405")
        remittance_date = from_edi_date(_el(production, 2)) if production else ""
    if not remittance_date:
        remittance_date = format_date(today or date.today())

    try:
        details: List[RemittanceDetail] = []
        claim: Optional[_ClaimBuilder] = None
        for segment in segments:
            if segment[0] == "CLP":
                if claim is not None:
                    details.append(claim.build())
                claim = _ClaimBuilder(segment, delimiters.component)
            elif claim is not None:
                claim.add(segment)
        if claim is not None:
            details.append(claim.build())

        header = RemittanceInfo(
            remittance_number=_el(trn, 2),
            remittance_date=remittance_date,
            payer_identifier=_el(payer, 4),
            payer_name=_el(payer, 2),
            total_amount=parse_amount(_el(bpr, 2)),
            claim_count=len(details),
            file_type=RemittanceFileType.EDI_835,
        )
    except ValueError as e:
        raise RemittanceParseError(f"Failed to parse X12 835 data: {e}", "parse_x12") from e

    return Remittance(header=header, details=details)


# --- Generation ------------------------------------------------------------


def _clean(value: Optional[str]) -> str:
    """Strip characters that would break the envelope out of free text"""
    text = "" if value is None else str(value)
    for reserved in (ELEMENT_SEPARATOR, SEGMENT_TERMINATOR, COMPONENT_SEPARATOR, REPETITION_SEPARATOR):
        text = text.replace(reserved, " ")
    return text.strip()


def _segment(*elements: str) -> str:
    fields = list(elements)
    while len(fields) > 1 and fields[-1] == "":
        fields.pop()
    return ELEMENT_SEPARATOR.join(fields)


def _bpr(total: str, payment_date: str, banking: Optional[BankingDetails]) -> str:
    if banking is None:
        # No payment instructions: BPR05-BPR15 stay empty
        return _segment("BPR", "I", total, "C", "NON", *([""] * 11), payment_date)
    return _segment(
        "BPR",
        "I",
        total,
        "C",
        banking.payment_method,
        banking.payment_format,
        "01",
        banking.payer_routing_number,
        "DA",
        banking.payer_account_number,
        banking.originating_company_id,
        "",
        "01",
        banking.payee_routing_number,
        "DA",
        banking.payee_account_number,
        payment_date,
    )


def _cas_segments(detail: RemittanceDetail) -> List[str]:
    segments = []
    for value in (detail.adjustment_codes or {}).values():
        parts = str(value).split(":")
        if len(parts) < 2 or not parts[0] or not parts[1]:
            continue
        if len(parts) >= 3 and parts[2].lstrip("-").isdigit():
            amount = int(parts[2])
        else:
            amount = detail.adjustment_amount or 0
        segments.append(_segment("CAS", _clean(parts[0]), _clean(parts[1]), format_cents(amount)))
    return segments


def render_x12(
    remittance: Remittance,
    banking: Optional[BankingDetails] = None,
    clock: Optional[Callable[[], datetime]] = None,
    control_numbers: Optional[ControlNumberFactory] = None,
) -> str:
    """
    Serialize a remittance as an 835 interchange.

    Sender, receiver and payee identity come from settings. Segments are
    separated by ``~`` plus a newline for readability.
    """
    now = (clock or utcnow)()
    make_control_number = control_numbers or random_control_number
    isa_control = make_control_number(9)
    gs_control = make_control_number(9)
    st_control = make_control_number(4)

    header = remittance.header
    sender = _clean(settings.x12_sender_id)
    receiver = _clean(settings.x12_receiver_id)

    envelope_head = [
        "ISA*00*" + " " * 10 + "*00*" + " " * 10
        + f"*ZZ*{sender[:15]:<15}*ZZ*{receiver[:15]:<15}"
        + f"*{now:%y%m%d}*{now:%H%M}*{REPETITION_SEPARATOR}*00501*{isa_control}*0*P*{COMPONENT_SEPARATOR}",
        _segment("GS", "HP", sender, receiver, f"{now:%Y%m%d}", f"{now:%H%M}", gs_control, "X", IMPLEMENTATION_GUIDE),
    ]

    transaction: List[str] = []
    transaction.append(_segment("ST", "835", st_control, IMPLEMENTATION_GUIDE))
    transaction.append(
        _bpr(format_cents(header.total_amount or 0), to_edi_date(header.remittance_date), banking)
    )
    transaction.append(_segment("TRN", "1", _clean(header.remittance_number), _clean(header.payer_identifier)))
    transaction.append(_segment("N1", "PR", _clean(header.payer_name), "XV", _clean(header.payer_identifier)))
    transaction.append(
        _segment("N1", "PE", _clean(settings.x12_payee_name), "XX", _clean(settings.x12_payee_npi))
    )

    for detail in remittance.details:
        billed = format_cents(detail.billed_amount or 0)
        paid = format_cents(detail.paid_amount or 0)
        procedure = _clean(detail.service_code) or PLACEHOLDER_PROCEDURE_CODE
        transaction.append(_segment("CLP", _clean(detail.claim_number), "1", billed, paid))
        transaction.append(_segment("SVC", f"HC{COMPONENT_SEPARATOR}{procedure}", billed, paid))
        service_date = to_edi_date(detail.service_date)
        if service_date:
            transaction.append(_segment("DTM", "472", service_date))
        transaction.extend(_cas_segments(detail))

    # SE01 counts ST through SE inclusive
    transaction.append(_segment("SE", str(len(transaction) + 1), st_control))

    envelope_tail = [
        _segment("GE", "1", gs_control),
        _segment("IEA", "1", isa_control),
    ]

    segments = envelope_head + transaction + envelope_tail
    return (SEGMENT_TERMINATOR + "\n").join(segments) + SEGMENT_TERMINATOR
