"""Enumerations shared by adapters, protocol handlers and the remittance transformer"""

from enum import Enum


class CircuitState(str, Enum):
    """Circuit breaker states"""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class IntegrationProtocol(str, Enum):
    """Transport an adapter speaks to its external system"""

    REST = "REST"
    HL7_FHIR = "HL7_FHIR"
    HL7_V2 = "HL7_V2"
    SFTP = "SFTP"
    FILE = "FILE"
    SOAP = "SOAP"


class AuthenticationType(str, Enum):
    NONE = "NONE"
    BASIC = "BASIC"
    API_KEY = "API_KEY"
    OAUTH2 = "OAUTH2"


class DataFormat(str, Enum):
    JSON = "JSON"
    XML = "XML"
    CSV = "CSV"
    X12 = "X12"
    HL7 = "HL7"


class RemittanceFileType(str, Enum):
    EDI_835 = "EDI_835"
    CSV = "CSV"
    CUSTOM = "CUSTOM"


class IntegrationStatus(str, Enum):
    """Health of an integration as reported by check_health"""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ERROR = "ERROR"
    MAINTENANCE = "MAINTENANCE"


def file_type_for_format(data_format: DataFormat) -> RemittanceFileType:
    """Map a wire format to the remittance file type recorded on the header"""
    if data_format == DataFormat.X12:
        return RemittanceFileType.EDI_835
    if data_format == DataFormat.CSV:
        return RemittanceFileType.CSV
    return RemittanceFileType.CUSTOM
