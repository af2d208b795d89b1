"""Remittance source integration: discover, fetch, process and archive remittance files"""

import logging
import os
import posixpath
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from hcbs_gateway.config import settings
from hcbs_gateway.domain.enums import DataFormat, file_type_for_format
from hcbs_gateway.domain.exceptions import ConfigurationError
from hcbs_gateway.domain.models import (
    IntegrationConfig,
    IntegrationResponse,
    RemittanceIntegrationConfig,
    RequestOptions,
    utcnow,
)
from hcbs_gateway.domain.remittance import detect_format
from hcbs_gateway.domain.transformer import RemittanceTransformer
from hcbs_gateway.infrastructure.adapters.base import IntegrationAdapter
from hcbs_gateway.utils.date_utils import compact_timestamp, parse_date

logger = logging.getLogger(__name__)


def is_remittance_file(name: str) -> bool:
    lowered = name.lower()
    extension = os.path.splitext(lowered)[1]
    extensions = {e.lower() for e in settings.remittance_file_extensions}
    return extension in extensions or "remit" in lowered or "era" in lowered


def archived_name(name: str, moment: datetime) -> str:
    """report.835 -> report_20240115103000.835"""
    stem, extension = os.path.splitext(posixpath.basename(name))
    return f"{stem}_{compact_timestamp(moment)}{extension}"


def _within(entry: Dict[str, Any], from_date: Optional[date], to_date: Optional[date]) -> bool:
    if from_date is None and to_date is None:
        return True
    modified = parse_date(entry.get("modified"))
    if modified is None:
        return False
    if from_date is not None and modified < from_date:
        return False
    if to_date is not None and modified > to_date:
        return False
    return True


class RemittanceAdapter(IntegrationAdapter):
    """
    Wire operations: listFiles, getFile, processFile, archiveFile.

    processFile runs the transformer in-process and is not counted by the
    circuit breaker; the others go to the remote source.
    """

    local_operations = frozenset({"processFile"})

    def __init__(
        self,
        config: IntegrationConfig,
        remittance_config: RemittanceIntegrationConfig,
        transformer: Optional[RemittanceTransformer] = None,
        clock=None,
        **kwargs: Any,
    ):
        super().__init__(config, clock=clock, **kwargs)
        self.remittance_config = remittance_config
        self.transformer = transformer or RemittanceTransformer()
        self.clock = clock or utcnow

    async def call(self, operation: str, data: Any, options: RequestOptions) -> IntegrationResponse:
        if operation == "listFiles":
            return await self._list_files(data or {}, options)
        if operation == "getFile":
            return await self._get_file(data, options)
        if operation == "archiveFile":
            return await self._archive_file(data or {}, options)
        return await self.dispatcher.dispatch(operation, data, options)

    async def _list_files(self, data: Dict[str, Any], options: RequestOptions) -> IntegrationResponse:
        response = await self.dispatcher.dispatch("listFiles", None, options)
        if not isinstance(response.data, list):
            return response

        from_date = parse_date(data.get("fromDate"))
        to_date = parse_date(data.get("toDate"))
        files = [
            entry
            for entry in response.data
            if isinstance(entry, dict)
            and is_remittance_file(str(entry.get("name", "")))
            and _within(entry, from_date, to_date)
        ]
        files.sort(key=lambda entry: entry.get("modified") or "", reverse=True)

        response.data = files
        response.metadata["file_count"] = len(files)
        return response

    async def _get_file(self, data: Any, options: RequestOptions) -> IntegrationResponse:
        response = await self.dispatcher.dispatch("getFile", data, options)
        if isinstance(response.data, dict):
            data_format = detect_format(
                str(response.data.get("name", "")),
                str(response.data.get("content", "")),
                default=self.remittance_config.file_format,
            )
            response.metadata["format"] = data_format.value
            response.metadata["file_type"] = file_type_for_format(data_format).value
        return response

    async def _archive_file(self, data: Dict[str, Any], options: RequestOptions) -> IntegrationResponse:
        name = str(data.get("fileName") or "")
        processed = bool(data.get("processed", True))

        if processed and not self.remittance_config.archive_processed_files:
            return IntegrationResponse(success=True, status_code=200, data={"fileName": name, "archived": False})

        directory = self.remittance_config.archive_directory if processed else self.remittance_config.error_directory
        if not directory:
            kind = "archive" if processed else "error"
            raise ConfigurationError(f"No {kind} directory configured", service=self.name, endpoint="archiveFile")

        destination = posixpath.join(directory, archived_name(name, self.clock()))
        response = await self.dispatcher.dispatch("moveFile", {"fileName": name, "destination": destination}, options)
        response.data = {**(response.data or {}), "fileName": name, "archived": True, "processed": processed}
        logger.info(
            "Remittance file archived",
            extra={"service": self.name, "file": name, "destination": destination, "processed": processed},
        )
        return response

    async def execute_local(self, operation: str, data: Any, options: RequestOptions) -> IntegrationResponse:
        if operation != "processFile":
            return await super().execute_local(operation, data, options)

        data = data or {}
        content = data.get("content", "")
        requested = data.get("format")
        if requested:
            try:
                data_format = DataFormat(requested)
            except ValueError as e:
                raise ConfigurationError(f"Unknown remittance format: {requested}", self.name, operation) from e
        else:
            text = content.decode("utf-8-sig", errors="replace") if isinstance(content, bytes) else content
            data_format = detect_format(data.get("fileName", ""), text, default=self.remittance_config.file_format)

        remittance = self.transformer.parse(content, data_format)
        return IntegrationResponse(
            success=True,
            status_code=200,
            data=remittance,
            metadata={
                "format": data_format.value,
                "file_type": remittance.header.file_type.value,
                "claim_count": remittance.header.claim_count,
                "total_amount": remittance.header.total_amount,
                "correlation_id": options.correlation_id,
            },
        )

    # Convenience wrappers over execute()

    async def list_remittance_files(
        self,
        from_date: Optional[Union[str, date]] = None,
        to_date: Optional[Union[str, date]] = None,
        options: Optional[RequestOptions] = None,
    ) -> IntegrationResponse:
        data = {"fromDate": from_date, "toDate": to_date}
        return await self.execute("listFiles", data, options)

    async def get_remittance_file(self, file_name: str, options: Optional[RequestOptions] = None) -> IntegrationResponse:
        return await self.execute("getFile", {"fileName": file_name}, options)

    async def process_remittance_file(
        self,
        content: Union[str, bytes],
        data_format: Optional[DataFormat] = None,
        file_name: str = "",
        options: Optional[RequestOptions] = None,
    ) -> IntegrationResponse:
        data = {"content": content, "format": data_format.value if data_format else None, "fileName": file_name}
        return await self.execute("processFile", data, options)

    async def archive_remittance_file(
        self, file_name: str, processed: bool = True, options: Optional[RequestOptions] = None
    ) -> IntegrationResponse:
        return await self.execute("archiveFile", {"fileName": file_name, "processed": processed}, options)

    async def fetch_and_process(self, file_name: str, options: Optional[RequestOptions] = None) -> IntegrationResponse:
        """getFile, processFile, then archive to the archive or error directory by outcome"""
        fetched = await self.get_remittance_file(file_name, options)
        if not fetched.success:
            return fetched

        file_format = DataFormat(fetched.metadata.get("format", self.remittance_config.file_format.value))
        processed = await self.process_remittance_file(fetched.data["content"], file_format, file_name, options)
        await self.archive_remittance_file(file_name, processed=processed.success, options=options)
        return processed
