"""Pydantic schemas for API request/response validation"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from hcbs_gateway.domain.column_mapping import ColumnMapping
from hcbs_gateway.domain.enums import RemittanceFileType
from hcbs_gateway.domain.models import Remittance, RemittanceDetail, RemittanceInfo


class RemittanceHeaderSchema(BaseModel):
    """Remittance header; amounts in cents"""

    remittance_number: str = Field(..., min_length=1)
    remittance_date: str
    payer_identifier: str = ""
    payer_name: str = ""
    total_amount_cents: int = 0
    claim_count: int = 0
    file_type: RemittanceFileType = RemittanceFileType.CUSTOM


class RemittanceDetailSchema(BaseModel):
    """Single claim line"""

    claim_number: str
    service_date: str
    billed_amount_cents: Optional[int] = None
    paid_amount_cents: Optional[int] = None
    adjustment_amount_cents: Optional[int] = None
    adjustment_codes: Dict[str, str] = Field(default_factory=dict)
    service_code: Optional[str] = None


class ColumnMappingSchema(BaseModel):
    """How CSV columns were matched; needs_review flags files for a human"""

    columns: Dict[str, str]
    confidence: Dict[str, str]
    unmapped: List[str]
    needs_review: bool


class RemittanceDocument(BaseModel):
    """Normalized remittance as returned by parse and accepted by render"""

    header: RemittanceHeaderSchema
    details: List[RemittanceDetailSchema] = Field(default_factory=list)
    column_mapping: Optional[ColumnMappingSchema] = None

    @classmethod
    def from_domain(cls, remittance: Remittance) -> "RemittanceDocument":
        header = remittance.header
        mapping = remittance.column_mapping
        return cls(
            header=RemittanceHeaderSchema(
                remittance_number=header.remittance_number,
                remittance_date=header.remittance_date,
                payer_identifier=header.payer_identifier,
                payer_name=header.payer_name,
                total_amount_cents=header.total_amount or 0,
                claim_count=header.claim_count,
                file_type=header.file_type,
            ),
            details=[
                RemittanceDetailSchema(
                    claim_number=d.claim_number,
                    service_date=d.service_date,
                    billed_amount_cents=d.billed_amount,
                    paid_amount_cents=d.paid_amount,
                    adjustment_amount_cents=d.adjustment_amount,
                    adjustment_codes=d.adjustment_codes,
                    service_code=d.service_code,
                )
                for d in remittance.details
            ],
            column_mapping=ColumnMappingSchema(**mapping.as_dict()) if isinstance(mapping, ColumnMapping) else None,
        )

    def to_domain(self) -> Remittance:
        return Remittance(
            header=RemittanceInfo(
                remittance_number=self.header.remittance_number,
                remittance_date=self.header.remittance_date,
                payer_identifier=self.header.payer_identifier,
                payer_name=self.header.payer_name,
                total_amount=self.header.total_amount_cents,
                claim_count=self.header.claim_count,
                file_type=self.header.file_type,
            ),
            details=[
                RemittanceDetail(
                    claim_number=d.claim_number,
                    service_date=d.service_date,
                    billed_amount=d.billed_amount_cents,
                    paid_amount=d.paid_amount_cents,
                    adjustment_amount=d.adjustment_amount_cents,
                    adjustment_codes=dict(d.adjustment_codes),
                    service_code=d.service_code,
                )
                for d in self.details
            ],
        )
