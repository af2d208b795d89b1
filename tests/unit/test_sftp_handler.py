"""Unit tests for the SFTP transport using an in-memory SFTP client"""

import stat
from types import SimpleNamespace

import asyncssh
import pytest

from hcbs_gateway.domain.enums import IntegrationProtocol
from hcbs_gateway.domain.exceptions import ConfigurationError, IntegrationError, TransportError
from hcbs_gateway.domain.models import IntegrationConfig, RequestOptions
from hcbs_gateway.infrastructure.protocols.sftp import SftpHandler

MTIME = 1705312800


class FakeRemoteFile:
    def __init__(self, client, path, mode):
        self.client = client
        self.path = path
        self.mode = mode

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def read(self):
        return self.client.files[self.path]

    async def write(self, data):
        self.client.files[self.path] = data


class FakeSftpClient:
    """Just enough of asyncssh.SFTPClient for the handler"""

    def __init__(self, files=None, directories=("/inbound",)):
        self.files = dict(files or {})
        self.directories = set(directories)
        self.exited = False

    async def readdir(self, path):
        entries = [SimpleNamespace(filename=".", attrs=SimpleNamespace(permissions=stat.S_IFDIR | 0o755, size=0, mtime=MTIME))]
        for file_path, data in self.files.items():
            directory, _, name = file_path.rpartition("/")
            if directory == path:
                attrs = SimpleNamespace(permissions=stat.S_IFREG | 0o644, size=len(data), mtime=MTIME)
                entries.append(SimpleNamespace(filename=name, attrs=attrs))
        return entries

    def open(self, path, mode):
        if "r" in mode and path not in self.files:
            raise asyncssh.SFTPNoSuchFile(f"No such file: {path}")
        return FakeRemoteFile(self, path, mode)

    async def stat(self, path):
        return SimpleNamespace(size=len(self.files[path]), mtime=MTIME)

    async def makedirs(self, path, exist_ok=False):
        self.directories.add(path)

    async def rename(self, source, destination):
        self.files[destination] = self.files.pop(source)

    async def remove(self, path):
        raise asyncssh.SFTPPermissionDenied(f"Cannot remove {path}")

    async def isdir(self, path):
        return path in self.directories

    def exit(self):
        self.exited = True


def sftp_handler(client) -> SftpHandler:
    config = IntegrationConfig(
        name="Clearinghouse SFTP", protocol=IntegrationProtocol.SFTP, base_url="sftp://sftp.example.com:2222/inbound"
    )
    return SftpHandler(config, sftp_client=client)


def test_address_is_read_from_base_url():
    handler = sftp_handler(FakeSftpClient())

    assert (handler.host, handler.port, handler.root) == ("sftp.example.com", 2222, "/inbound")


async def test_list_and_read():
    client = FakeSftpClient({"/inbound/a.835": b"ISA*", "/archive/old.835": b"x"})
    handler = sftp_handler(client)

    listed = await handler.handle("listFiles", None, RequestOptions())
    read = await handler.handle("getFile", "a.835", RequestOptions())

    assert [entry["name"] for entry in listed.data] == ["a.835"]
    assert listed.data[0]["modified"] == "2024-01-15T10:00:00+00:00"
    assert read.data["content"] == "ISA*"
    assert read.metadata["host"] == "sftp.example.com"


async def test_put_and_move():
    client = FakeSftpClient()
    handler = sftp_handler(client)

    await handler.handle("putFile", {"fileName": "out/batch.csv", "content": "a,b\n"}, RequestOptions())
    moved = await handler.handle(
        "moveFile", {"fileName": "out/batch.csv", "destination": "/archive/batch.csv"}, RequestOptions()
    )

    assert client.files == {"/archive/batch.csv": b"a,b\n"}
    assert "/inbound/out" in client.directories
    assert moved.data["destination"] == "/archive/batch.csv"


async def test_missing_file_is_not_found():
    with pytest.raises(IntegrationError) as exc_info:
        await sftp_handler(FakeSftpClient()).handle("getFile", "gone.835", RequestOptions())

    assert exc_info.value.status_code == 404
    assert exc_info.value.retryable is False


async def test_permission_denied():
    client = FakeSftpClient({"/inbound/a.835": b"x"})

    with pytest.raises(IntegrationError) as exc_info:
        await sftp_handler(client).handle("deleteFile", "a.835", RequestOptions())

    assert exc_info.value.status_code == 403


async def test_lost_connection_is_a_transport_error():
    client = FakeSftpClient()

    async def drop(path):
        raise asyncssh.ConnectionLost("connection reset")

    client.readdir = drop

    with pytest.raises(TransportError):
        await sftp_handler(client).handle("listFiles", None, RequestOptions())


async def test_health_checks_remote_directory():
    healthy = await sftp_handler(FakeSftpClient()).check_health()
    assert healthy.data == {"directory": "/inbound"}

    with pytest.raises(IntegrationError, match="does not exist"):
        await sftp_handler(FakeSftpClient(directories=())).check_health()


async def test_injected_client_is_not_closed():
    client = FakeSftpClient()

    await sftp_handler(client).close()

    assert client.exited is False


async def test_missing_host_is_a_configuration_error():
    handler = SftpHandler(IntegrationConfig(name="No host", protocol=IntegrationProtocol.SFTP, base_url="/inbound"))

    with pytest.raises(ConfigurationError):
        await handler.open()


async def test_unsupported_operation():
    with pytest.raises(ConfigurationError):
        await sftp_handler(FakeSftpClient()).handle("postPayment", None, RequestOptions())


class FakeConnection:
    def __init__(self, sftp_client=None, error=None):
        self.sftp_client = sftp_client
        self.error = error
        self.closed = False
        self.waited = False

    async def start_sftp_client(self):
        if self.error is not None:
            raise self.error
        return self.sftp_client

    def close(self):
        self.closed = True

    async def wait_closed(self):
        self.waited = True


def owned_sftp_handler(monkeypatch, connections) -> SftpHandler:
    """Handler that opens its own sessions from the given fake connections"""
    pending = list(connections)

    async def connect(host, **kwargs):
        return pending.pop(0)

    monkeypatch.setattr(asyncssh, "connect", connect)
    config = IntegrationConfig(
        name="Clearinghouse SFTP", protocol=IntegrationProtocol.SFTP, base_url="sftp://sftp.example.com/inbound"
    )
    return SftpHandler(config)


async def test_failed_session_start_closes_the_connection(monkeypatch):
    failed = FakeConnection(error=asyncssh.ConnectionLost("sftp subsystem refused"))
    healthy = FakeConnection(FakeSftpClient({"/inbound/a.835": b"ISA*"}))
    handler = owned_sftp_handler(monkeypatch, [failed, healthy])

    with pytest.raises(TransportError):
        await handler.handle("listFiles", None, RequestOptions())

    assert failed.closed and failed.waited
    listed = await handler.handle("listFiles", None, RequestOptions())
    assert [entry["name"] for entry in listed.data] == ["a.835"]


async def test_lost_session_is_reopened_on_next_call(monkeypatch):
    dropped_client = FakeSftpClient()

    async def drop(path):
        raise asyncssh.ConnectionLost("connection reset")

    dropped_client.readdir = drop
    dropped = FakeConnection(dropped_client)
    fresh = FakeConnection(FakeSftpClient({"/inbound/b.835": b"ISA*"}))
    handler = owned_sftp_handler(monkeypatch, [dropped, fresh])

    with pytest.raises(TransportError, match="session lost"):
        await handler.handle("listFiles", None, RequestOptions())

    assert dropped.closed
    listed = await handler.handle("listFiles", None, RequestOptions())
    assert [entry["name"] for entry in listed.data] == ["b.835"]
