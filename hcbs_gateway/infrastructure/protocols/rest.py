"""REST transport over httpx"""

import base64
import logging
from typing import Any, Dict, Optional

import httpx

from hcbs_gateway.config import settings
from hcbs_gateway.domain.enums import AuthenticationType, IntegrationProtocol
from hcbs_gateway.domain.exceptions import ConfigurationError, TransportError, UpstreamError
from hcbs_gateway.domain.models import IntegrationConfig, IntegrationResponse, RequestOptions
from hcbs_gateway.infrastructure.protocols.base import ProtocolHandler

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
DEFAULT_API_KEY_HEADER = "X-API-Key"

# Operation name prefix -> HTTP verb; anything else is a GET
_METHOD_PREFIXES = (
    ("create", "POST"),
    ("post", "POST"),
    ("update", "PUT"),
    ("delete", "DELETE"),
)

_BODY_METHODS = ("POST", "PUT", "PATCH")


def infer_method(operation: str) -> str:
    for prefix, method in _METHOD_PREFIXES:
        if operation.startswith(prefix):
            return method
    return "GET"


def response_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class RestHandler(ProtocolHandler):
    """
    Calls ``base_url/endpoint`` with the verb inferred from the operation name.

    A transport can be injected (httpx.MockTransport in tests); otherwise
    httpx opens a real connection pool per call.
    """

    protocol = IntegrationProtocol.REST
    default_endpoints = {"checkHealth": "health"}
    accept = "application/json"

    def __init__(self, config: IntegrationConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(config)
        self.transport = transport

    def method_for(self, operation: str) -> str:
        override = self.config.method_overrides.get(operation)
        return override.upper() if override else infer_method(operation)

    def timeout_for(self, options: RequestOptions) -> float:
        return options.timeout or self.config.timeout_seconds or settings.http_timeout_seconds

    def url_for(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def auth_headers(self) -> Dict[str, str]:
        """
        Authentication header for the configured scheme.

        Raises:
            ConfigurationError: the credentials the scheme needs are missing
        """
        auth_type = self.config.auth_type
        credentials = self.config.credentials

        if auth_type == AuthenticationType.NONE:
            return {}

        if auth_type == AuthenticationType.BASIC:
            username = credentials.get("username")
            password = credentials.get("password")
            if username is None or password is None:
                raise ConfigurationError("Basic authentication requires username and password", self.service)
            token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
            return {"Authorization": f"Basic {token}"}

        if auth_type == AuthenticationType.API_KEY:
            api_key = credentials.get("apiKey")
            if not api_key:
                raise ConfigurationError("API key authentication requires apiKey", self.service)
            header = credentials.get("apiKeyHeader") or credentials.get("headerName") or DEFAULT_API_KEY_HEADER
            return {header: api_key}

        if auth_type == AuthenticationType.OAUTH2:
            access_token = credentials.get("accessToken")
            if not access_token:
                raise ConfigurationError("OAuth2 authentication requires accessToken", self.service)
            return {"Authorization": f"Bearer {access_token}"}

        raise ConfigurationError(f"Unsupported authentication type: {auth_type}", self.service)

    def build_headers(self, options: RequestOptions) -> Dict[str, str]:
        headers = {"Accept": self.accept, "Content-Type": "application/json"}
        headers.update(self.config.headers)
        headers.update(self.auth_headers())
        headers.update(options.headers)
        headers[CORRELATION_HEADER] = options.correlation_id
        return headers

    async def send(
        self,
        method: str,
        endpoint: str,
        options: RequestOptions,
        data: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        Issue one request.

        Raises:
            TransportError: timeout or no response received
            UpstreamError: non-2xx response; retryable for 5xx and 429
        """
        timeout = self.timeout_for(options)
        headers = self.build_headers(options)
        body = data if method in _BODY_METHODS else None
        if params is None and method not in _BODY_METHODS and isinstance(data, dict) and data:
            params = data

        logger.debug(
            "Sending request",
            extra={"service": self.service, "method": method, "endpoint": endpoint, "correlation_id": options.correlation_id},
        )
        async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
            try:
                response = await client.request(
                    method,
                    self.url_for(endpoint),
                    headers=headers,
                    json=body,
                    params=params,
                )
            except httpx.TimeoutException as e:
                raise TransportError(
                    f"{self.service} timeout after {timeout}s", service=self.service, endpoint=endpoint
                ) from e
            except httpx.RequestError as e:
                raise TransportError(
                    f"{self.service} request failed: {e}", service=self.service, endpoint=endpoint
                ) from e

        if response.is_error:
            raise UpstreamError(
                f"{self.service} returned HTTP {response.status_code}",
                service=self.service,
                endpoint=endpoint,
                status_code=response.status_code,
                response_body=response_body(response),
            )
        return response

    async def handle(self, operation: str, data: Any, options: RequestOptions) -> IntegrationResponse:
        endpoint = self.endpoint_for(operation)
        method = self.method_for(operation)
        response = await self.send(method, endpoint, options, data=data)

        return IntegrationResponse(
            success=True,
            status_code=response.status_code,
            data=response_body(response),
            metadata={
                "protocol": self.protocol.value,
                "method": method,
                "endpoint": endpoint,
                "correlation_id": options.correlation_id,
            },
        )
