"""Local or mounted-directory file drop"""

import asyncio
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from hcbs_gateway.domain.enums import IntegrationProtocol
from hcbs_gateway.domain.exceptions import ConfigurationError, IntegrationError, TransportError
from hcbs_gateway.domain.models import IntegrationConfig, IntegrationResponse, RequestOptions
from hcbs_gateway.infrastructure.protocols.base import ProtocolHandler, path_from_url


def file_name_from(data: Any) -> str:
    if isinstance(data, dict):
        return str(data.get("fileName") or data.get("path") or "")
    return str(data or "")


def translate_os_error(error: OSError, service: str, endpoint: str) -> IntegrationError:
    """Missing files and permission problems will not fix themselves; other I/O errors might"""
    if isinstance(error, FileNotFoundError):
        return IntegrationError(f"File not found: {error.filename}", service, endpoint, status_code=404, retryable=False)
    if isinstance(error, PermissionError):
        return IntegrationError(f"Permission denied: {error.filename}", service, endpoint, status_code=403, retryable=False)
    return TransportError(f"File operation failed: {error}", service=service, endpoint=endpoint)


def _modified(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class FileHandler(ProtocolHandler):
    """listFiles, getFile, putFile, deleteFile and moveFile against a directory"""

    protocol = IntegrationProtocol.FILE

    def __init__(self, config: IntegrationConfig, root: Optional[Union[str, Path]] = None):
        super().__init__(config)
        self.root = Path(root or path_from_url(config.base_url))

    def resolve(self, name: str) -> Path:
        """
        Raises:
            ConfigurationError: name is empty or walks out of its directory
        """
        if not name:
            raise ConfigurationError("File name is required", self.service)
        path = Path(name)
        if ".." in path.parts:
            raise ConfigurationError(f"Parent references are not allowed in file paths: {name}", self.service)
        return path if path.is_absolute() else self.root / path

    def _list(self) -> List[Dict[str, Any]]:
        entries = []
        for path in sorted(self.root.iterdir()):
            if path.is_file():
                stat = path.stat()
                entries.append(
                    {"name": path.name, "path": str(path), "size": stat.st_size, "modified": _modified(stat.st_mtime)}
                )
        return entries

    def _read(self, path: Path) -> Dict[str, Any]:
        raw = path.read_bytes()
        stat = path.stat()
        return {
            "name": path.name,
            "path": str(path),
            "content": raw.decode("utf-8-sig", errors="replace"),
            "size": stat.st_size,
            "modified": _modified(stat.st_mtime),
        }

    def _write(self, path: Path, content: Union[str, bytes]) -> Dict[str, Any]:
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return {"name": path.name, "path": str(path), "size": path.stat().st_size}

    def _move(self, source: Path, destination: Path) -> Dict[str, Any]:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(destination))
        return {"source": str(source), "destination": str(destination)}

    def _check(self) -> Dict[str, Any]:
        if not self.root.is_dir():
            raise IntegrationError(f"Directory does not exist: {self.root}", self.service, "checkHealth", retryable=False)
        if not os.access(self.root, os.W_OK):
            raise IntegrationError(f"Directory is not writable: {self.root}", self.service, "checkHealth", retryable=False)
        return {"directory": str(self.root), "writable": True}

    async def handle(self, operation: str, data: Any, options: RequestOptions) -> IntegrationResponse:
        try:
            if operation == "listFiles":
                result: Any = await asyncio.to_thread(self._list)
            elif operation == "getFile":
                result = await asyncio.to_thread(self._read, self.resolve(file_name_from(data)))
            elif operation == "putFile":
                content = data.get("content", "") if isinstance(data, dict) else ""
                result = await asyncio.to_thread(self._write, self.resolve(file_name_from(data)), content)
            elif operation == "deleteFile":
                path = self.resolve(file_name_from(data))
                await asyncio.to_thread(path.unlink)
                result = {"path": str(path), "deleted": True}
            elif operation == "moveFile":
                destination = data.get("destination", "") if isinstance(data, dict) else ""
                result = await asyncio.to_thread(
                    self._move, self.resolve(file_name_from(data)), self.resolve(destination)
                )
            elif operation == "checkHealth":
                result = await asyncio.to_thread(self._check)
            else:
                raise ConfigurationError(f"Unsupported file operation: {operation}", self.service, operation)
        except OSError as e:
            raise translate_os_error(e, self.service, operation) from e

        return IntegrationResponse(
            success=True,
            status_code=200,
            data=result,
            metadata={"protocol": self.protocol.value, "directory": str(self.root)},
        )
