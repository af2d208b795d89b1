"""Domain-specific exceptions"""

from typing import Any, Dict, List, Optional

from hcbs_gateway.domain.models import Violation


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class AdapterStateError(DomainException):
    """Adapter used out of order, e.g. execute() before connect()"""

    pass


class IntegrationError(DomainException):
    """
    Failure talking to, or interpreting data from, an external system.

    Carries enough context (service, endpoint, status code) for an operator to
    diagnose without reading logs. Adapters convert these into the response
    envelope instead of raising them to callers.
    """

    category = "INTEGRATION"
    code = "INTEGRATION_ERROR"
    default_retryable = False

    def __init__(
        self,
        message: str,
        service: str = "",
        endpoint: str = "",
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
        response_body: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.service = service
        self.endpoint = endpoint
        self.status_code = status_code
        self.retryable = self.default_retryable if retryable is None else retryable
        self.response_body = response_body

    def details(self) -> Dict[str, Any]:
        return {"response_body": self.response_body}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize into the ``error`` field of an IntegrationResponse"""
        return {
            "code": self.code,
            "message": self.message,
            "category": self.category,
            "service": self.service,
            "endpoint": self.endpoint,
            "status_code": self.status_code,
            "retryable": self.retryable,
            "details": self.details(),
        }


class TransportError(IntegrationError):
    """Network unreachable, timeout, or no response received"""

    category = "TRANSPORT"
    code = "TRANSPORT_ERROR"
    default_retryable = True


class UpstreamError(IntegrationError):
    """Remote system answered with a non-success status"""

    category = "UPSTREAM"
    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, service: str, endpoint: str, status_code: int, response_body: Any = None):
        super().__init__(
            message,
            service=service,
            endpoint=endpoint,
            status_code=status_code,
            retryable=is_retryable_status(status_code),
            response_body=response_body,
        )


class ConfigurationError(IntegrationError):
    """Unsupported protocol/operation or missing endpoint; a deployment defect"""

    category = "CONFIGURATION"
    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, service: str = "", endpoint: str = ""):
        super().__init__(message, service=service, endpoint=endpoint, retryable=False)


class RemittanceParseError(IntegrationError):
    """Malformed EDI, CSV or JSON input"""

    category = "PARSE"
    code = "PARSE_ERROR"

    def __init__(self, message: str, endpoint: str = ""):
        super().__init__(message, service="RemittanceTransformer", endpoint=endpoint, retryable=False)


class RemittanceValidationError(IntegrationError):
    """Remittance failed consistency checks; lists every violation found"""

    category = "VALIDATION"
    code = "VALIDATION_ERROR"

    def __init__(self, violations: List[Violation]):
        self.violations = list(violations)
        summary = "; ".join(v.message for v in self.violations)
        super().__init__(
            f"Remittance data validation failed: {summary}",
            service="RemittanceTransformer",
            endpoint="validate",
            retryable=False,
        )

    def details(self) -> Dict[str, Any]:
        return {
            "violations": [
                {"field": v.field, "message": v.message, "index": v.index} for v in self.violations
            ]
        }


class CircuitOpenError(IntegrationError):
    """Breaker is OPEN; the wrapped call was not attempted"""

    category = "CIRCUIT_OPEN"
    code = "CIRCUIT_OPEN"

    def __init__(self, service: str, endpoint: str, retry_after: float):
        super().__init__(
            f"Circuit breaker for {service} is open, retry after {retry_after:.1f}s",
            service=service,
            endpoint=endpoint,
            status_code=503,
            retryable=False,
        )
        self.retry_after = retry_after

    def details(self) -> Dict[str, Any]:
        return {"retry_after": self.retry_after}


def is_retryable_status(status_code: int) -> bool:
    """Server-class and rate-limit responses are worth retrying; other client errors are not"""
    return status_code >= 500 or status_code == 429
