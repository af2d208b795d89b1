"""
HL7 v2 query construction.

Messages are QBP^Q11 queries built from three segments:

    MSH|^~\\&|<sending app>|<sending facility>|<receiving app>|<receiving facility>
        |<YYYYMMDDHHMMSS>||QBP^Q11^QBP_Q11|<control id>|P|<version>
    QPD|<query name>|<query tag>|<client id>|<start date>|<end date>
    RCP|I|<limit>^RD

Fields are separated by ``|``, components by ``^``, repetitions by ``~``,
and segments end with a carriage return. Delivery is delegated to an
injected async sender (for example an MLLP socket client); without one the
message is built and returned undelivered.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from hcbs_gateway.config import settings
from hcbs_gateway.domain.enums import IntegrationProtocol
from hcbs_gateway.domain.exceptions import ConfigurationError, IntegrationError, TransportError
from hcbs_gateway.domain.models import IntegrationConfig, IntegrationResponse, RequestOptions, utcnow
from hcbs_gateway.infrastructure.protocols.base import ProtocolHandler
from hcbs_gateway.utils.date_utils import to_edi_date

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "|"
ENCODING_CHARACTERS = "^~\\&"
SEGMENT_TERMINATOR = "\r"

MLLP_START = b"\x0b"
MLLP_END = b"\x1c\x0d"

MESSAGE_TYPE = "QBP^Q11^QBP_Q11"
DEFAULT_QUERY_LIMIT = 50

QUERY_NAMES = {
    "getClient": "Z01^Client Demographics^HCBS",
    "getServices": "Z02^Client Services^HCBS",
    "getAuthorizations": "Z03^Client Authorizations^HCBS",
}

# MSA-1 acknowledgement codes
_ACCEPTED = ("AA", "CA")
_REJECTED = ("AR", "CR")

Hl7Sender = Callable[[str], Awaitable[str]]

_ESCAPES = (
    ("\\", "\\E\\"),
    ("|", "\\F\\"),
    ("^", "\\S\\"),
    ("&", "\\T\\"),
    ("~", "\\R\\"),
)


def escape(value: Any) -> str:
    text = "" if value is None else str(value)
    for raw, escaped in _ESCAPES:
        text = text.replace(raw, escaped)
    return text


def mllp_frame(message: str) -> bytes:
    """Wrap a message in MLLP start/end blocks for socket delivery"""
    return MLLP_START + message.encode("utf-8") + MLLP_END


def parse_ack_code(ack: str) -> str:
    """MSA-1 of an acknowledgement message, or "" when absent"""
    for segment in (ack or "").replace("\n", "\r").split("\r"):
        fields = segment.strip().split(FIELD_SEPARATOR)
        if fields[0] == "MSA" and len(fields) > 1:
            return fields[1]
    return ""


class Hl7v2Handler(ProtocolHandler):
    protocol = IntegrationProtocol.HL7_V2

    def __init__(
        self,
        config: IntegrationConfig,
        sender: Optional[Hl7Sender] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(config)
        self.sender = sender
        self.clock = clock or utcnow

    def build_message(self, operation: str, data: Any, control_id: str) -> str:
        """
        Raises:
            ConfigurationError: operation has no HL7 query mapping
        """
        query_name = QUERY_NAMES.get(operation)
        if query_name is None:
            raise ConfigurationError(f"Unsupported HL7 v2 operation: {operation}", self.service, operation)

        params: Dict[str, Any] = data if isinstance(data, dict) else {"clientId": data}
        limit = params.get("limit") or DEFAULT_QUERY_LIMIT

        segments: List[str] = [
            FIELD_SEPARATOR.join(
                [
                    "MSH",
                    ENCODING_CHARACTERS,
                    escape(settings.hl7_sending_application),
                    escape(settings.hl7_sending_facility),
                    escape(settings.hl7_receiving_application),
                    escape(settings.hl7_receiving_facility),
                    self.clock().strftime("%Y%m%d%H%M%S"),
                    "",
                    MESSAGE_TYPE,
                    control_id,
                    "P",
                    settings.hl7_version,
                ]
            ),
            FIELD_SEPARATOR.join(
                [
                    "QPD",
                    query_name,
                    control_id,
                    escape(params.get("clientId")),
                    to_edi_date(params.get("startDate")),
                    to_edi_date(params.get("endDate")),
                ]
            ),
            FIELD_SEPARATOR.join(["RCP", "I", f"{limit}^RD"]),
        ]
        return SEGMENT_TERMINATOR.join(segments) + SEGMENT_TERMINATOR

    async def handle(self, operation: str, data: Any, options: RequestOptions) -> IntegrationResponse:
        if operation == "checkHealth":
            return IntegrationResponse(
                success=True,
                status_code=200,
                data={"transport": "configured" if self.sender else "none"},
                metadata={"protocol": self.protocol.value},
            )

        control_id = uuid.uuid4().hex[:20]
        message = self.build_message(operation, data, control_id)
        metadata = {
            "protocol": self.protocol.value,
            "control_id": control_id,
            "correlation_id": options.correlation_id,
        }

        if self.sender is None:
            logger.info(
                "HL7 v2 message built without a transport",
                extra={"service": self.service, "operation": operation, "control_id": control_id},
            )
            return IntegrationResponse(
                success=True,
                status_code=202,
                data={"message": message, "delivered": False},
                metadata=metadata,
            )

        try:
            ack = await self.sender(message)
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"HL7 v2 delivery failed: {e}", service=self.service, endpoint=operation) from e

        code = parse_ack_code(ack)
        if code not in _ACCEPTED:
            raise IntegrationError(
                f"HL7 v2 message not accepted (MSA-1={code or 'missing'})",
                service=self.service,
                endpoint=operation,
                retryable=code not in _REJECTED,
                response_body=ack,
            )

        return IntegrationResponse(
            success=True,
            status_code=200,
            data={"message": message, "delivered": True, "ack": ack},
            metadata=metadata,
        )
