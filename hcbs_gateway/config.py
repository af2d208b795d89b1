"""Configuration management using Pydantic Settings"""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Service
    service_name: str = "hcbs-integration-gateway"
    log_level: str = "INFO"

    # HTTP / FHIR transport
    http_timeout_seconds: float = 30.0
    health_check_timeout_seconds: float = 5.0

    # Circuit breaker defaults applied to every adapter without an explicit policy
    breaker_failure_threshold: int = 5
    breaker_reset_timeout_seconds: float = 60.0
    breaker_half_open_success_threshold: int = 1

    # HL7 v2 message header identity (MSH-3..MSH-6, MSH-12)
    hl7_sending_application: str = "HCBS"
    hl7_sending_facility: str = "FACILITY"
    hl7_receiving_application: str = "EHR"
    hl7_receiving_facility: str = "FACILITY"
    hl7_version: str = "2.5.1"

    # X12 835 generation identity
    x12_sender_id: str = "SENDER"
    x12_receiver_id: str = "RECEIVER"
    x12_payee_name: str = ""
    x12_payee_npi: str = ""

    # Remittance file discovery
    remittance_file_extensions: List[str] = [".835", ".txt", ".csv", ".json"]


settings = Settings()
