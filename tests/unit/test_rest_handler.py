"""Unit tests for the REST transport and protocol dispatch"""

import base64
import json

import httpx
import pytest

from hcbs_gateway.domain.enums import AuthenticationType, IntegrationProtocol
from hcbs_gateway.domain.exceptions import ConfigurationError, TransportError, UpstreamError
from hcbs_gateway.domain.models import IntegrationConfig, RequestOptions
from hcbs_gateway.infrastructure.protocols.dispatcher import ProtocolDispatcher, build_handler
from hcbs_gateway.infrastructure.protocols.fhir import FhirHandler
from hcbs_gateway.infrastructure.protocols.file import FileHandler
from hcbs_gateway.infrastructure.protocols.rest import RestHandler, infer_method


def rest_config(**overrides) -> IntegrationConfig:
    values = dict(
        name="Ledger",
        protocol=IntegrationProtocol.REST,
        base_url="https://ledger.example.com/api/",
        endpoints={"createInvoice": "invoices", "getCustomers": "customers"},
    )
    values.update(overrides)
    return IntegrationConfig(**values)


class Recorder:
    """MockTransport handler that keeps the requests it saw"""

    def __init__(self, status_code=200, json=None):
        self.status_code = status_code
        self.json = json if json is not None else {"ok": True}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.json)


@pytest.mark.parametrize(
    "operation,method",
    [
        ("createInvoice", "POST"),
        ("postPayment", "POST"),
        ("updateClient", "PUT"),
        ("deleteFile", "DELETE"),
        ("getCustomers", "GET"),
        ("syncFinancialData", "GET"),
    ],
)
def test_infer_method(operation, method):
    assert infer_method(operation) == method


async def test_create_operation_posts_json_body():
    recorder = Recorder(status_code=201, json={"id": "INV-1"})
    handler = RestHandler(rest_config(), transport=httpx.MockTransport(recorder))
    options = RequestOptions(correlation_id="corr-1")

    response = await handler.handle("createInvoice", {"amount": "10.00"}, options)

    request = recorder.requests[0]
    assert request.method == "POST"
    assert str(request.url) == "https://ledger.example.com/api/invoices"
    assert request.headers["X-Correlation-ID"] == "corr-1"
    assert json.loads(request.content) == {"amount": "10.00"}
    assert response.success is True
    assert response.status_code == 201
    assert response.data == {"id": "INV-1"}
    assert response.metadata["method"] == "POST"


async def test_get_sends_data_as_query_params():
    recorder = Recorder(json=[])
    handler = RestHandler(rest_config(), transport=httpx.MockTransport(recorder))

    await handler.handle("getCustomers", {"active": "true"}, RequestOptions())

    request = recorder.requests[0]
    assert request.method == "GET"
    assert request.url.params["active"] == "true"
    assert request.content == b""


async def test_method_override_wins():
    recorder = Recorder()
    config = rest_config(method_overrides={"syncFinancialData": "post"})
    handler = RestHandler(config, transport=httpx.MockTransport(recorder))

    response = await handler.handle("syncFinancialData", {"since": "2024-01-01"}, RequestOptions())

    assert recorder.requests[0].method == "POST"
    assert str(recorder.requests[0].url).endswith("/syncFinancialData")
    assert response.metadata["endpoint"] == "syncFinancialData"


@pytest.mark.parametrize(
    "auth_type,credentials,header,expected",
    [
        (
            AuthenticationType.BASIC,
            {"username": "user", "password": "pass"},
            "Authorization",
            "Basic " + base64.b64encode(b"user:pass").decode("ascii"),
        ),
        (AuthenticationType.API_KEY, {"apiKey": "k-1"}, "X-API-Key", "k-1"),
        (AuthenticationType.API_KEY, {"apiKey": "k-1", "apiKeyHeader": "X-Token"}, "X-Token", "k-1"),
        (AuthenticationType.OAUTH2, {"accessToken": "tok"}, "Authorization", "Bearer tok"),
    ],
)
async def test_auth_headers(auth_type, credentials, header, expected):
    recorder = Recorder()
    config = rest_config(auth_type=auth_type, credentials=credentials)
    handler = RestHandler(config, transport=httpx.MockTransport(recorder))

    await handler.handle("getCustomers", None, RequestOptions())

    assert recorder.requests[0].headers[header] == expected


def test_missing_credentials_are_a_configuration_error():
    handler = RestHandler(rest_config(auth_type=AuthenticationType.OAUTH2))

    with pytest.raises(ConfigurationError):
        handler.auth_headers()


@pytest.mark.parametrize("status_code,retryable", [(503, True), (429, True), (404, False), (400, False)])
async def test_error_status_raises_upstream_error(status_code, retryable):
    handler = RestHandler(rest_config(), transport=httpx.MockTransport(Recorder(status_code, {"error": "x"})))

    with pytest.raises(UpstreamError) as exc_info:
        await handler.handle("getCustomers", None, RequestOptions())

    error = exc_info.value
    assert error.status_code == status_code
    assert error.retryable is retryable
    assert error.service == "Ledger"
    assert error.endpoint == "customers"
    assert error.response_body == {"error": "x"}


async def test_connection_failure_is_a_transport_error():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    handler = RestHandler(rest_config(), transport=httpx.MockTransport(refuse))

    with pytest.raises(TransportError) as exc_info:
        await handler.handle("getCustomers", None, RequestOptions())

    assert exc_info.value.retryable is True
    assert exc_info.value.status_code is None


async def test_timeout_is_a_transport_error():
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    handler = RestHandler(rest_config(timeout_seconds=2), transport=httpx.MockTransport(slow))

    with pytest.raises(TransportError, match="timeout after 2"):
        await handler.handle("getCustomers", None, RequestOptions())


async def test_check_health_uses_health_endpoint():
    recorder = Recorder(json={"status": "up"})
    handler = RestHandler(rest_config(), transport=httpx.MockTransport(recorder))

    response = await handler.check_health()

    assert str(recorder.requests[0].url) == "https://ledger.example.com/api/health"
    assert response.success is True


class TestDispatch:
    def test_handler_chosen_by_protocol(self, tmp_path):
        assert isinstance(build_handler(rest_config()), RestHandler)
        assert isinstance(build_handler(rest_config(protocol=IntegrationProtocol.HL7_FHIR)), FhirHandler)
        assert isinstance(build_handler(rest_config(protocol=IntegrationProtocol.FILE, base_url=str(tmp_path))), FileHandler)

    def test_soap_is_rejected(self):
        with pytest.raises(ConfigurationError, match="SOAP"):
            ProtocolDispatcher(rest_config(protocol=IntegrationProtocol.SOAP))

    async def test_dispatch_propagates_handler_errors(self):
        handler = RestHandler(rest_config(), transport=httpx.MockTransport(Recorder(500)))
        dispatcher = ProtocolDispatcher(rest_config(), handler=handler)

        assert dispatcher.protocol == IntegrationProtocol.REST
        with pytest.raises(UpstreamError):
            await dispatcher.dispatch("getCustomers", None, RequestOptions())
