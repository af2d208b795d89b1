"""Unit tests for the FHIR and HL7 v2 transports"""

import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from hcbs_gateway.domain.enums import IntegrationProtocol
from hcbs_gateway.domain.exceptions import ConfigurationError, IntegrationError, TransportError
from hcbs_gateway.domain.models import IntegrationConfig, RequestOptions
from hcbs_gateway.infrastructure.protocols.fhir import FHIR_JSON, FhirHandler
from hcbs_gateway.infrastructure.protocols.hl7v2 import (
    Hl7v2Handler,
    escape,
    mllp_frame,
    parse_ack_code,
)

FHIR_CONFIG = IntegrationConfig(name="Epic", protocol=IntegrationProtocol.HL7_FHIR, base_url="https://fhir.example.com/r4")
HL7_CONFIG = IntegrationConfig(name="Legacy EHR", protocol=IntegrationProtocol.HL7_V2)


def fhir_handler(responder) -> FhirHandler:
    return FhirHandler(FHIR_CONFIG, transport=httpx.MockTransport(responder))


class TestFhirHandler:
    async def test_get_client_reads_patient(self):
        seen = []

        def responder(request):
            seen.append(request)
            return httpx.Response(200, json={"resourceType": "Patient", "id": "123"})

        response = await fhir_handler(responder).handle("getClient", {"clientId": "123"}, RequestOptions())

        assert seen[0].method == "GET"
        assert seen[0].url.path == "/r4/Patient/123"
        assert seen[0].headers["Accept"] == FHIR_JSON
        assert response.data["id"] == "123"

    async def test_get_services_searches_encounters_by_date_range(self):
        seen = []

        def responder(request):
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "resourceType": "Bundle",
                    "total": 1,
                    "entry": [{"resource": {"resourceType": "Encounter", "id": "e1"}}],
                },
            )

        response = await fhir_handler(responder).handle(
            "getServices",
            {"clientId": "123", "startDate": "01/01/2024", "endDate": "2024-01-31", "status": "finished"},
            RequestOptions(),
        )

        params = seen[0].url.params
        assert seen[0].url.path == "/r4/Encounter"
        assert params["patient"] == "123"
        assert params.get_list("date") == ["ge2024-01-01", "le2024-01-31"]
        assert params["status"] == "finished"
        assert response.data == [{"resourceType": "Encounter", "id": "e1"}]
        assert response.metadata["total"] == 1

    async def test_get_authorizations_searches_coverage(self):
        seen = []

        def responder(request):
            seen.append(request)
            return httpx.Response(200, json={"resourceType": "Bundle", "entry": []})

        response = await fhir_handler(responder).handle("getAuthorizations", "123", RequestOptions())

        assert seen[0].url.path == "/r4/Coverage"
        assert seen[0].url.params["beneficiary"] == "123"
        assert response.data == []

    async def test_check_health_reads_capability_statement(self):
        seen = []

        def responder(request):
            seen.append(request)
            return httpx.Response(200, json={"resourceType": "CapabilityStatement"})

        await fhir_handler(responder).check_health()

        assert seen[0].url.path == "/r4/metadata"

    async def test_get_client_without_id_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            await fhir_handler(lambda request: httpx.Response(200)).handle("getClient", {}, RequestOptions())

    @pytest.mark.parametrize("status_code", [404, 500])
    async def test_failures_are_reported_as_retryable(self, status_code):
        handler = fhir_handler(lambda request: httpx.Response(status_code, json={"resourceType": "OperationOutcome"}))

        with pytest.raises(IntegrationError) as exc_info:
            await handler.handle("getClient", "123", RequestOptions())

        assert exc_info.value.retryable is True
        assert exc_info.value.status_code == status_code
        assert exc_info.value.endpoint == "Patient/123"
        assert exc_info.value.category == "UPSTREAM"
        assert str(exc_info.value).startswith("FHIR request failed")

    async def test_unreachable_server_stays_a_transport_error(self):
        def responder(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError) as exc_info:
            await fhir_handler(responder).handle("getClient", "123", RequestOptions())

        assert exc_info.value.to_dict()["category"] == "TRANSPORT"
        assert exc_info.value.retryable is True


class TestHl7v2Handler:
    @staticmethod
    def clock():
        return datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)

    def test_build_query_message(self):
        handler = Hl7v2Handler(HL7_CONFIG, clock=self.clock)

        message = handler.build_message(
            "getServices", {"clientId": "C|1", "startDate": "2024-01-01", "endDate": "01/31/2024"}, "CTRL1"
        )

        msh, qpd, rcp = message.rstrip("\r").split("\r")
        msh_fields = msh.split("|")
        assert msh_fields[1] == "^~\\&"
        assert msh_fields[6] == "20240115103000"
        assert msh_fields[8] == "QBP^Q11^QBP_Q11"
        assert msh_fields[9] == "CTRL1"
        assert qpd == "QPD|Z02^Client Services^HCBS|CTRL1|C\\F\\1|20240101|20240131"
        assert rcp == "RCP|I|50^RD"

    def test_unknown_operation_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            Hl7v2Handler(HL7_CONFIG).build_message("postPayment", {}, "CTRL1")

    async def test_without_sender_message_is_returned_undelivered(self):
        response = await Hl7v2Handler(HL7_CONFIG, clock=self.clock).handle("getClient", "123", RequestOptions())

        assert response.status_code == 202
        assert response.data["delivered"] is False
        assert "QPD|Z01^Client Demographics^HCBS|" in response.data["message"]

    async def test_accepted_ack(self):
        sent = []

        async def sender(message):
            sent.append(message)
            return "MSH|^~\\&|EHR|FAC|HCBS|FAC|20240115||ACK|1|P|2.5.1\rMSA|AA|CTRL1\r"

        response = await Hl7v2Handler(HL7_CONFIG, sender=sender).handle("getClient", "123", RequestOptions())

        assert response.success is True
        assert response.data["delivered"] is True
        assert sent[0].startswith("MSH|")

    @pytest.mark.parametrize("code,retryable", [("AR", False), ("AE", True), ("", True)])
    async def test_rejected_ack(self, code, retryable):
        async def sender(message):
            return f"MSA|{code}|CTRL1" if code else "MSH|^~\\&"

        with pytest.raises(IntegrationError) as exc_info:
            await Hl7v2Handler(HL7_CONFIG, sender=sender).handle("getClient", "123", RequestOptions())

        assert exc_info.value.retryable is retryable

    async def test_delivery_failure_is_a_transport_error(self):
        async def sender(message):
            raise asyncio.TimeoutError()

        with pytest.raises(TransportError):
            await Hl7v2Handler(HL7_CONFIG, sender=sender).handle("getClient", "123", RequestOptions())

    async def test_health_reports_transport(self):
        response = await Hl7v2Handler(HL7_CONFIG).check_health()

        assert response.status_code == 200
        assert response.data == {"transport": "none"}


def test_hl7_helpers():
    assert escape("a|b^c&d~e\\f") == "a\\F\\b\\S\\c\\T\\d\\R\\e\\E\\f"
    assert mllp_frame("MSH") == b"\x0bMSH\x1c\x0d"
    assert parse_ack_code("MSH|x\nMSA|CA|1") == "CA"
    assert parse_ack_code("") == ""
