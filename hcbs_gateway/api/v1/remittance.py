"""POST /v1/remittance/parse and /v1/remittance/render"""

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from hcbs_gateway.api.dependencies import get_request_id, get_transformer
from hcbs_gateway.api.v1.schemas import RemittanceDocument
from hcbs_gateway.domain.enums import DataFormat
from hcbs_gateway.domain.exceptions import (
    ConfigurationError,
    RemittanceParseError,
    RemittanceValidationError,
)
from hcbs_gateway.domain.remittance import detect_format, normalize
from hcbs_gateway.domain.transformer import RemittanceTransformer
from hcbs_gateway.infrastructure.observability.logging import log_remittance_request

logger = logging.getLogger(__name__)

router = APIRouter()

MEDIA_TYPES = {
    DataFormat.X12: "application/edi-x12",
    DataFormat.CSV: "text/csv",
    DataFormat.JSON: "application/json",
}


@router.post("/remittance/parse", response_model=RemittanceDocument)
async def parse_remittance(
    request: Request,
    data_format: Optional[DataFormat] = Query(None, alias="format"),
    file_name: str = Query(""),
    transformer: RemittanceTransformer = Depends(get_transformer),
):
    """
    Parse a raw remittance file into the normalized document.

    The format is detected from file_name and content when not given.
    400 for malformed input, 422 listing every violation when the file
    parses but does not reconcile.
    """
    start_time = time.time()
    request_id = get_request_id(request)
    content = await request.body()

    if data_format is None:
        data_format = detect_format(file_name, content.decode("utf-8-sig", errors="replace"))

    try:
        remittance = transformer.parse(content, data_format)
    except RemittanceValidationError as e:
        log_remittance_request(request_id, "parse", data_format.value, "validation_error", (time.time() - start_time) * 1000)
        raise HTTPException(status_code=422, detail=e.to_dict())
    except (RemittanceParseError, ConfigurationError) as e:
        log_remittance_request(request_id, "parse", data_format.value, "parse_error", (time.time() - start_time) * 1000)
        raise HTTPException(status_code=400, detail=e.to_dict())

    log_remittance_request(
        request_id,
        "parse",
        data_format.value,
        "parsed",
        (time.time() - start_time) * 1000,
        claim_count=remittance.header.claim_count,
    )
    return RemittanceDocument.from_domain(remittance)


@router.post("/remittance/render", response_class=PlainTextResponse)
async def render_remittance(
    document: RemittanceDocument,
    request: Request,
    data_format: DataFormat = Query(DataFormat.X12, alias="format"),
    transformer: RemittanceTransformer = Depends(get_transformer),
):
    """Serialize a remittance document; totals are recomputed from the details first"""
    start_time = time.time()
    request_id = get_request_id(request)

    remittance = document.to_domain()
    header, details = normalize(remittance.header, remittance.details)
    remittance.header, remittance.details = header, details

    try:
        body = transformer.render(remittance, data_format)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())

    log_remittance_request(
        request_id,
        "render",
        data_format.value,
        "rendered",
        (time.time() - start_time) * 1000,
        claim_count=header.claim_count,
    )
    return PlainTextResponse(content=body, media_type=MEDIA_TYPES.get(data_format, "text/plain"))
