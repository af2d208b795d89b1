"""Remittance transformer: raw file content <-> normalized Remittance"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Union

from hcbs_gateway.domain.column_mapping import ColumnMappingStrategy
from hcbs_gateway.domain.delimited import parse_csv, render_csv
from hcbs_gateway.domain.enums import DataFormat, file_type_for_format
from hcbs_gateway.domain.exceptions import (
    ConfigurationError,
    RemittanceParseError,
    RemittanceValidationError,
)
from hcbs_gateway.domain.json_format import parse_json, render_json
from hcbs_gateway.domain.models import Remittance, utcnow
from hcbs_gateway.domain.remittance import normalize, validate
from hcbs_gateway.domain.x12 import BankingDetails, ControlNumberFactory, parse_x12, render_x12
from hcbs_gateway.infrastructure.observability.metrics import remittance_file_counter

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = (DataFormat.X12, DataFormat.CSV, DataFormat.JSON)


class RemittanceTransformer:
    """
    Converts remittance files between X12 835, CSV and JSON.

    Holds no mutable state; construct one per application (or per test) and
    pass it to whoever needs it. The clock and control-number factory are
    injectable so generated output can be made deterministic.
    """

    def __init__(
        self,
        column_strategy: Optional[ColumnMappingStrategy] = None,
        clock: Optional[Callable[[], datetime]] = None,
        control_numbers: Optional[ControlNumberFactory] = None,
    ):
        self.column_strategy = column_strategy
        self.clock = clock or utcnow
        self.control_numbers = control_numbers

    def parse(self, content: Union[str, bytes], data_format: DataFormat) -> Remittance:
        """
        Parse, normalize and validate a remittance file.

        Raises:
            ConfigurationError: data_format is not X12, CSV or JSON
            RemittanceParseError: content is malformed
            RemittanceValidationError: content parsed but is incomplete or inconsistent
        """
        if data_format not in SUPPORTED_FORMATS:
            raise ConfigurationError(
                f"Unsupported remittance format: {data_format.value}",
                service="RemittanceTransformer",
                endpoint="parse",
            )

        file_type = file_type_for_format(data_format)
        logger.debug("Parsing remittance", extra={"file_type": file_type.value})

        try:
            text = content.decode("utf-8-sig") if isinstance(content, bytes) else content
            remittance = self._parse(text, data_format)
            header, details = normalize(replace(remittance.header, file_type=file_type), remittance.details)
            validate(header, details)
        except RemittanceValidationError:
            remittance_file_counter.labels(file_type=file_type.value, outcome="validation_error").inc()
            raise
        except RemittanceParseError:
            remittance_file_counter.labels(file_type=file_type.value, outcome="parse_error").inc()
            raise
        except ValueError as e:
            # UnicodeDecodeError and amount errors from normalization
            remittance_file_counter.labels(file_type=file_type.value, outcome="parse_error").inc()
            raise RemittanceParseError(
                f"Failed to transform remittance data from {data_format.value}: {e}", "parse"
            ) from e

        remittance_file_counter.labels(file_type=file_type.value, outcome="parsed").inc()
        logger.info(
            "Remittance parsed",
            extra={
                "file_type": file_type.value,
                "remittance_number": header.remittance_number,
                "claim_count": header.claim_count,
                "total_amount": header.total_amount,
            },
        )
        return Remittance(header=header, details=details, column_mapping=remittance.column_mapping)

    def _parse(self, text: str, data_format: DataFormat) -> Remittance:
        if data_format == DataFormat.X12:
            return parse_x12(text, today=self.clock().date())
        if data_format == DataFormat.CSV:
            return parse_csv(text, strategy=self.column_strategy, clock=self.clock)
        return parse_json(text)

    def render(
        self,
        remittance: Remittance,
        data_format: DataFormat,
        banking: Optional[BankingDetails] = None,
    ) -> str:
        """
        Serialize a remittance to the target format.

        Raises:
            ConfigurationError: data_format is not X12, CSV or JSON
        """
        if data_format == DataFormat.X12:
            return render_x12(remittance, banking=banking, clock=self.clock, control_numbers=self.control_numbers)
        if data_format == DataFormat.CSV:
            return render_csv(remittance)
        if data_format == DataFormat.JSON:
            return render_json(remittance)
        raise ConfigurationError(
            f"Unsupported remittance format: {data_format.value}",
            service="RemittanceTransformer",
            endpoint="render",
        )
