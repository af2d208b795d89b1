"""HL7 FHIR (R4) transport: adapter operations mapped onto FHIR resource reads and searches"""

from typing import Any, Dict, Optional, Tuple

from hcbs_gateway.domain.enums import IntegrationProtocol
from hcbs_gateway.domain.exceptions import ConfigurationError, IntegrationError
from hcbs_gateway.domain.models import IntegrationResponse, RequestOptions
from hcbs_gateway.infrastructure.protocols.rest import RestHandler, response_body
from hcbs_gateway.utils.date_utils import normalize_date

FHIR_JSON = "application/fhir+json"

_SERVICE_QUERY_KEYS = ("clientId", "patientId", "id", "startDate", "endDate")


def retryable_copy(error: IntegrationError, message: str, endpoint: str) -> IntegrationError:
    """Same error class and status, always retryable"""
    wrapped = type(error).__new__(type(error), message)
    wrapped.__dict__.update(error.__dict__)
    wrapped.message = message
    wrapped.endpoint = endpoint
    wrapped.retryable = True
    return wrapped


def _client_id(data: Any) -> str:
    if isinstance(data, dict):
        value = data.get("clientId") or data.get("patientId") or data.get("id")
    else:
        value = data
    return str(value) if value else ""


class FhirHandler(RestHandler):
    """
    Reads and searches against a FHIR server.

    getClient -> Patient read, getServices -> Encounter search bounded by
    date, getAuthorizations -> Coverage search, checkHealth -> capability
    statement. Any other operation is a search on the resource type of the
    same name. Every failure is reported as retryable since FHIR servers
    commonly return transient errors for resources under load.
    """

    protocol = IntegrationProtocol.HL7_FHIR
    accept = FHIR_JSON

    def build_headers(self, options: RequestOptions) -> Dict[str, str]:
        headers = super().build_headers(options)
        headers["Content-Type"] = FHIR_JSON
        return headers

    def route(self, operation: str, data: Any) -> Tuple[str, Optional[Dict[str, Any]]]:
        """(path, search params) for an operation; params None means a read"""
        if operation == "checkHealth":
            return "metadata", None

        if operation == "getClient":
            client_id = _client_id(data)
            if not client_id:
                raise ConfigurationError("getClient requires clientId", self.service, "Patient")
            return f"Patient/{client_id}", None

        if operation == "getServices":
            params: Dict[str, Any] = {"patient": _client_id(data)}
            dates = []
            if isinstance(data, dict):
                if data.get("startDate"):
                    dates.append(f"ge{normalize_date(data['startDate'])}")
                if data.get("endDate"):
                    dates.append(f"le{normalize_date(data['endDate'])}")
                params.update({k: v for k, v in data.items() if k not in _SERVICE_QUERY_KEYS})
            if dates:
                params["date"] = dates
            return "Encounter", params

        if operation == "getAuthorizations":
            return "Coverage", {"beneficiary": _client_id(data)}

        return operation, dict(data) if isinstance(data, dict) else {}

    async def handle(self, operation: str, data: Any, options: RequestOptions) -> IntegrationResponse:
        path, params = self.route(operation, data)

        try:
            response = await self.send("GET", path, options, params=params or None)
        except IntegrationError as e:
            raise retryable_copy(e, f"FHIR request failed: {e.message}", path) from e

        body = response_body(response)
        metadata = {
            "protocol": self.protocol.value,
            "endpoint": path,
            "correlation_id": options.correlation_id,
        }
        if isinstance(body, dict) and body.get("resourceType") == "Bundle":
            metadata["total"] = body.get("total")
            body = [entry.get("resource") for entry in body.get("entry") or [] if entry.get("resource")]

        return IntegrationResponse(success=True, status_code=response.status_code, data=body, metadata=metadata)
