"""Protocol selection for adapters"""

from typing import Any, Optional

import httpx

from hcbs_gateway.domain.enums import IntegrationProtocol
from hcbs_gateway.domain.exceptions import ConfigurationError
from hcbs_gateway.domain.models import IntegrationConfig, IntegrationResponse, RequestOptions
from hcbs_gateway.infrastructure.protocols.base import ProtocolHandler
from hcbs_gateway.infrastructure.protocols.fhir import FhirHandler
from hcbs_gateway.infrastructure.protocols.file import FileHandler
from hcbs_gateway.infrastructure.protocols.hl7v2 import Hl7Sender, Hl7v2Handler
from hcbs_gateway.infrastructure.protocols.rest import RestHandler
from hcbs_gateway.infrastructure.protocols.sftp import SftpHandler


def build_handler(
    config: IntegrationConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    hl7_sender: Optional[Hl7Sender] = None,
    sftp_client: Any = None,
) -> ProtocolHandler:
    """
    Construct the handler for config.protocol.

    Every IntegrationProtocol member is matched explicitly so a newly added
    protocol fails loudly here instead of falling through to another handler.

    Raises:
        ConfigurationError: protocol is SOAP or unknown
    """
    protocol = config.protocol

    if protocol == IntegrationProtocol.REST:
        return RestHandler(config, transport=transport)
    elif protocol == IntegrationProtocol.HL7_FHIR:
        return FhirHandler(config, transport=transport)
    elif protocol == IntegrationProtocol.HL7_V2:
        return Hl7v2Handler(config, sender=hl7_sender)
    elif protocol == IntegrationProtocol.SFTP:
        return SftpHandler(config, sftp_client=sftp_client)
    elif protocol == IntegrationProtocol.FILE:
        return FileHandler(config)
    elif protocol == IntegrationProtocol.SOAP:
        raise ConfigurationError("SOAP protocol is not supported", service=config.name)

    raise ConfigurationError(f"Unsupported protocol: {protocol}", service=config.name)


class ProtocolDispatcher:
    """Routes adapter calls to the handler resolved once at construction"""

    def __init__(self, config: IntegrationConfig, handler: Optional[ProtocolHandler] = None, **collaborators: Any):
        self.config = config
        self.handler = handler or build_handler(config, **collaborators)

    @property
    def protocol(self) -> IntegrationProtocol:
        return self.handler.protocol

    async def open(self) -> None:
        await self.handler.open()

    async def close(self) -> None:
        await self.handler.close()

    async def dispatch(self, operation: str, data: Any, options: RequestOptions) -> IntegrationResponse:
        # Handler errors propagate; the adapter turns them into the response envelope
        return await self.handler.handle(operation, data, options)

    async def check_health(self, options: Optional[RequestOptions] = None) -> IntegrationResponse:
        return await self.handler.check_health(options)
