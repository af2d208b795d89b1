"""SFTP file drop over asyncssh"""

import logging
import posixpath
import stat
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import asyncssh

from hcbs_gateway.domain.enums import IntegrationProtocol
from hcbs_gateway.domain.exceptions import ConfigurationError, IntegrationError, TransportError
from hcbs_gateway.domain.models import IntegrationConfig, IntegrationResponse, RequestOptions
from hcbs_gateway.infrastructure.protocols.base import ProtocolHandler, path_from_url
from hcbs_gateway.infrastructure.protocols.file import file_name_from

logger = logging.getLogger(__name__)

DEFAULT_PORT = 22


def _modified(mtime: Optional[int]) -> Optional[str]:
    if mtime is None:
        return None
    return datetime.fromtimestamp(mtime, tz=timezone.utc).isoformat()


class SftpHandler(ProtocolHandler):
    """
    Same file operations as FileHandler against a remote directory.

    ``base_url`` is ``sftp://host[:port]/remote/dir``. Credentials may carry
    ``username``, ``password``, ``privateKey`` (key file path) and
    ``knownHosts`` (known_hosts file path; host keys are not checked when it
    is absent). A ready SFTP client can be injected, in which case no
    connection is opened or closed here.
    """

    protocol = IntegrationProtocol.SFTP

    def __init__(self, config: IntegrationConfig, sftp_client: Any = None):
        super().__init__(config)
        parsed = urlparse(config.base_url)
        self.host = parsed.hostname or ""
        self.port = parsed.port or DEFAULT_PORT
        self.root = path_from_url(config.base_url)
        self._sftp = sftp_client
        self._owns_client = sftp_client is None
        self._connection: Optional[asyncssh.SSHClientConnection] = None

    async def open(self) -> None:
        if self._sftp is not None:
            return
        if not self.host:
            raise ConfigurationError("SFTP base_url must include a host", self.service)

        credentials = self.config.credentials
        private_key = credentials.get("privateKey")
        try:
            self._connection = await asyncssh.connect(
                self.host,
                port=self.port,
                username=credentials.get("username"),
                password=credentials.get("password"),
                client_keys=[private_key] if private_key else None,
                known_hosts=credentials.get("knownHosts"),
            )
            self._sftp = await self._connection.start_sftp_client()
        except (OSError, asyncssh.Error) as e:
            await self._drop_connection()
            raise TransportError(f"SFTP connection failed: {e}", service=self.service, endpoint="connect") from e

        logger.info("SFTP session opened", extra={"service": self.service, "host": self.host})

    async def close(self) -> None:
        if not self._owns_client:
            return
        if self._sftp is not None:
            self._sftp.exit()
            self._sftp = None
        await self._drop_connection()

    async def _drop_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            connection.close()
            await connection.wait_closed()

    async def _discard_session(self) -> None:
        """Forget a dead session so the next call opens a fresh one"""
        if not self._owns_client:
            return
        self._sftp = None
        await self._drop_connection()

    def resolve(self, name: str) -> str:
        if not name:
            raise ConfigurationError("File name is required", self.service)
        if ".." in name.split("/"):
            raise ConfigurationError(f"Parent references are not allowed in file paths: {name}", self.service)
        return name if name.startswith("/") else posixpath.join(self.root, name)

    async def _list(self) -> List[Dict[str, Any]]:
        entries = []
        for entry in await self._sftp.readdir(self.root):
            if entry.filename in (".", ".."):
                continue
            attrs = entry.attrs
            if attrs.permissions is not None and not stat.S_ISREG(attrs.permissions):
                continue
            entries.append(
                {
                    "name": entry.filename,
                    "path": posixpath.join(self.root, entry.filename),
                    "size": attrs.size,
                    "modified": _modified(attrs.mtime),
                }
            )
        return sorted(entries, key=lambda e: e["name"])

    async def _read(self, path: str) -> Dict[str, Any]:
        async with self._sftp.open(path, "rb") as remote:
            raw = await remote.read()
        attrs = await self._sftp.stat(path)
        return {
            "name": posixpath.basename(path),
            "path": path,
            "content": raw.decode("utf-8-sig", errors="replace"),
            "size": attrs.size,
            "modified": _modified(attrs.mtime),
        }

    async def _write(self, path: str, content: Any) -> Dict[str, Any]:
        raw = content if isinstance(content, bytes) else str(content).encode("utf-8")
        await self._sftp.makedirs(posixpath.dirname(path), exist_ok=True)
        async with self._sftp.open(path, "wb") as remote:
            await remote.write(raw)
        return {"name": posixpath.basename(path), "path": path, "size": len(raw)}

    async def _move(self, source: str, destination: str) -> Dict[str, Any]:
        await self._sftp.makedirs(posixpath.dirname(destination), exist_ok=True)
        await self._sftp.rename(source, destination)
        return {"source": source, "destination": destination}

    async def handle(self, operation: str, data: Any, options: RequestOptions) -> IntegrationResponse:
        if self._sftp is None:
            await self.open()

        try:
            if operation == "listFiles":
                result: Any = await self._list()
            elif operation == "getFile":
                result = await self._read(self.resolve(file_name_from(data)))
            elif operation == "putFile":
                content = data.get("content", "") if isinstance(data, dict) else ""
                result = await self._write(self.resolve(file_name_from(data)), content)
            elif operation == "deleteFile":
                path = self.resolve(file_name_from(data))
                await self._sftp.remove(path)
                result = {"path": path, "deleted": True}
            elif operation == "moveFile":
                destination = data.get("destination", "") if isinstance(data, dict) else ""
                result = await self._move(self.resolve(file_name_from(data)), self.resolve(destination))
            elif operation == "checkHealth":
                if not await self._sftp.isdir(self.root):
                    raise IntegrationError(
                        f"Remote directory does not exist: {self.root}", self.service, operation, retryable=False
                    )
                result = {"directory": self.root}
            else:
                raise ConfigurationError(f"Unsupported SFTP operation: {operation}", self.service, operation)
        except asyncssh.SFTPNoSuchFile as e:
            raise IntegrationError(f"File not found: {e}", self.service, operation, status_code=404, retryable=False) from e
        except asyncssh.SFTPPermissionDenied as e:
            raise IntegrationError(f"Permission denied: {e}", self.service, operation, status_code=403, retryable=False) from e
        except (asyncssh.ConnectionLost, asyncssh.ChannelOpenError) as e:
            await self._discard_session()
            raise TransportError(f"SFTP session lost: {e}", service=self.service, endpoint=operation) from e
        except (OSError, asyncssh.Error) as e:
            raise TransportError(f"SFTP operation failed: {e}", service=self.service, endpoint=operation) from e

        return IntegrationResponse(
            success=True,
            status_code=200,
            data=result,
            metadata={"protocol": self.protocol.value, "host": self.host, "directory": self.root},
        )
