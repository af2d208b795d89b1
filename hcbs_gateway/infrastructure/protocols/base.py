"""Protocol handler interface shared by every transport"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from hcbs_gateway.domain.enums import IntegrationProtocol
from hcbs_gateway.domain.models import IntegrationConfig, IntegrationResponse, RequestOptions


def path_from_url(base_url: str) -> str:
    """Directory part of a file:// or sftp:// URL; bare paths are returned unchanged"""
    parsed = urlparse(base_url or "")
    if parsed.scheme in ("file", "sftp"):
        return parsed.path or "/"
    return base_url or "."


class ProtocolHandler(ABC):
    """
    Transport-specific implementation of an adapter call.

    Handlers raise IntegrationError subclasses on failure; they never build
    failure responses themselves. Converting errors into the response
    envelope is the adapter's job.
    """

    protocol: IntegrationProtocol
    default_endpoints: Dict[str, str] = {}

    def __init__(self, config: IntegrationConfig):
        self.config = config

    @property
    def service(self) -> str:
        return self.config.name

    def endpoint_for(self, operation: str) -> str:
        """Configured endpoint for an operation, else the handler default, else the operation name"""
        return self.config.endpoints.get(operation) or self.default_endpoints.get(operation) or operation

    async def open(self) -> None:
        """Establish any session the transport needs; stateless transports do nothing"""

    async def close(self) -> None:
        """Release what open() acquired"""

    @abstractmethod
    async def handle(self, operation: str, data: Any, options: RequestOptions) -> IntegrationResponse:
        ...

    async def check_health(self, options: Optional[RequestOptions] = None) -> IntegrationResponse:
        return await self.handle("checkHealth", None, options or RequestOptions())
