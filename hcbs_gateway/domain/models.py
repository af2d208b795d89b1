"""Domain models - pure Python dataclasses representing integration and remittance entities"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from hcbs_gateway.domain.enums import (
    AuthenticationType,
    CircuitState,
    DataFormat,
    IntegrationProtocol,
    IntegrationStatus,
    RemittanceFileType,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Circuit breaker -------------------------------------------------------


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Immutable breaker policy supplied at adapter construction"""

    failure_threshold: int = 5
    reset_timeout_seconds: float = 60.0
    half_open_success_threshold: int = 1

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.half_open_success_threshold < 1:
            raise ValueError("half_open_success_threshold must be >= 1")
        if self.reset_timeout_seconds < 0:
            raise ValueError("reset_timeout_seconds must be >= 0")


@dataclass(frozen=True)
class CircuitBreakerStats:
    """
    Point-in-time breaker state.

    failures only resets on the transition into CLOSED; successes is reset on
    entering HALF_OPEN and is only meaningful while HALF_OPEN.
    """

    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    successes: int = 0
    last_failure: Optional[datetime] = None
    last_success: Optional[datetime] = None
    last_state_change: Optional[datetime] = None


# --- Integration configuration ---------------------------------------------


@dataclass
class IntegrationConfig:
    """Connection settings for one external system"""

    name: str
    protocol: IntegrationProtocol
    base_url: str = ""
    auth_type: AuthenticationType = AuthenticationType.NONE
    credentials: Dict[str, str] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    timeout_seconds: Optional[float] = None
    retry_limit: int = 3
    endpoints: Dict[str, str] = field(default_factory=dict)
    method_overrides: Dict[str, str] = field(default_factory=dict)


@dataclass
class EHRIntegrationConfig:
    ehr_system: str
    version: str = ""
    data_format: DataFormat = DataFormat.JSON


@dataclass
class AccountingIntegrationConfig:
    accounting_system: str
    version: str = ""
    data_format: DataFormat = DataFormat.JSON
    export_directory: str = ""


@dataclass
class RemittanceIntegrationConfig:
    source_type: str = "clearinghouse"
    file_format: DataFormat = DataFormat.X12
    import_directory: str = ""
    archive_directory: str = ""
    error_directory: str = ""
    archive_processed_files: bool = True


# --- Adapter request / response envelopes ----------------------------------


@dataclass
class RequestOptions:
    """Per-call options; retries are honoured by callers, never by adapters"""

    timeout: Optional[float] = None
    retry_count: int = 0
    retry_delay: float = 1.0
    headers: Dict[str, str] = field(default_factory=dict)
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    priority: int = 0


@dataclass
class IntegrationResponse:
    """Uniform envelope returned by every adapter call"""

    success: bool
    status_code: int
    data: Any = None
    error: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class HealthStatus:
    status: IntegrationStatus
    response_time_ms: Optional[float]
    last_checked: datetime
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


# --- Remittance ------------------------------------------------------------


@dataclass
class RemittanceInfo:
    """Remittance header; amounts are integer cents"""

    remittance_number: str
    remittance_date: str
    payer_identifier: str = ""
    payer_name: str = ""
    total_amount: Optional[int] = 0
    claim_count: int = 0
    file_type: RemittanceFileType = RemittanceFileType.CUSTOM


@dataclass
class RemittanceDetail:
    """
    One claim line of a remittance; amounts are integer cents.

    adjustment_codes maps ``group+reason`` (e.g. ``CO45``) to
    ``"group:reason:amount_cents"``. A missing adjustment_amount is derived
    as billed - paid during normalization.
    """

    claim_number: str
    service_date: str
    billed_amount: Optional[int]
    paid_amount: Optional[int]
    adjustment_amount: Optional[int] = None
    adjustment_codes: Dict[str, str] = field(default_factory=dict)
    service_code: Optional[str] = None


@dataclass
class Remittance:
    """Header plus its details in file order"""

    header: RemittanceInfo
    details: List[RemittanceDetail] = field(default_factory=list)
    # Populated for CSV input so callers can route ambiguous files to review
    column_mapping: Optional[Any] = None


@dataclass(frozen=True)
class Violation:
    """A single validation failure; index is the detail position or None for header fields"""

    field: str
    message: str
    index: Optional[int] = None
