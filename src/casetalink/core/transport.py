"""Line-delimited JSON over TLS, as spoken by the bridge.

Each message is one JSON object terminated by ``\\r\\n``. Requests carry a
``Header.ClientTag``; the bridge echoes it on the matching response, which is
how responses are routed back to the waiting caller. Anything without a known
tag (status notifications, button-press events) goes to an inbound queue.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import ssl
import tempfile
import uuid
from collections.abc import Generator
from importlib import resources
from typing import Any

from casetalink.models import CredentialBundle

logger = logging.getLogger(__name__)

LAP_CERT_FILE = "lap-cert.pem"
LAP_KEY_FILE = "lap-key.pem"
LINE_TERMINATOR = b"\r\n"

Message = dict[str, Any]


@contextlib.contextmanager
def _pem_path(data: str) -> Generator[str, None, None]:
    """Yield a temporary file holding ``data``.

    ``SSLContext.load_cert_chain`` only accepts file paths.
    """
    with tempfile.NamedTemporaryFile("w", suffix=".pem") as handle:
        handle.write(data)
        handle.flush()
        yield handle.name


def pairing_ssl_context() -> ssl.SSLContext:
    """Context for the pairing endpoint, using the published LAP client cert."""
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    ctx.maximum_version = ssl.TLSVersion.TLSv1_2

    data = resources.files("casetalink").joinpath("data")
    with (
        resources.as_file(data.joinpath(LAP_CERT_FILE)) as cert_path,
        resources.as_file(data.joinpath(LAP_KEY_FILE)) as key_path,
    ):
        ctx.load_cert_chain(certfile=cert_path, keyfile=key_path)
    return ctx


def session_ssl_context(bundle: CredentialBundle) -> ssl.SSLContext:
    """Mutual-TLS context trusting only the bridge's own root certificate."""
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    # the bridge certificate is issued to its serial, not its address
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_REQUIRED
    ctx.load_verify_locations(cadata=bundle.root_certificate)

    with (
        _pem_path(bundle.client_certificate) as cert_path,
        _pem_path(bundle.private_key) as key_path,
    ):
        ctx.load_cert_chain(certfile=cert_path, keyfile=key_path)
    return ctx


class LeapConnection:
    """One TLS connection to the bridge with a single-slot correlation table."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        name: str = "bridge",
    ) -> None:
        self._reader = reader
        self._writer = writer
        self.name = name
        self._pending: dict[str, asyncio.Future[Message]] = {}
        self._inbound: asyncio.Queue[Message | None] = asyncio.Queue()
        self._reader_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(
                self._read_loop(), name=f"leap-reader-{self.name}"
            )

    async def _read_loop(self) -> None:
        try:
            while True:
                line = await self._reader.readline()
                if not line:
                    logger.debug("%s closed the connection", self.name)
                    break
                line = line.strip()
                if not line:
                    continue
                try:
                    message = json.loads(line)
                except json.JSONDecodeError as exc:
                    logger.warning(
                        "Dropping malformed message from %s: %s", self.name, exc
                    )
                    continue
                if not isinstance(message, dict):
                    logger.warning("Dropping non-object message from %s", self.name)
                    continue
                self._dispatch(message)
        except (OSError, ValueError) as exc:
            # ValueError covers readline() hitting the stream buffer limit
            logger.debug("Read from %s failed: %s", self.name, exc)
        finally:
            self._closed = True
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(
                        ConnectionError(f"connection to {self.name} closed")
                    )
            self._inbound.put_nowait(None)

    def _dispatch(self, message: Message) -> None:
        tag = (message.get("Header") or {}).get("ClientTag")
        future = self._pending.get(tag) if tag else None
        if future is not None and not future.done():
            future.set_result(message)
            return
        logger.debug("Inbound message from %s: %s", self.name, message)
        self._inbound.put_nowait(message)

    async def send(self, message: Message) -> None:
        if self._closed:
            raise ConnectionError(f"connection to {self.name} closed")
        payload = json.dumps(message).encode("utf-8") + LINE_TERMINATOR
        logger.debug("Sending to %s: %s", self.name, message)
        self._writer.write(payload)
        await self._writer.drain()

    async def request(self, message: Message, timeout: float) -> Message:
        """Send ``message`` and wait for the response carrying its ClientTag.

        Raises ``TimeoutError`` when nothing arrives within ``timeout``.
        """
        if self._pending:
            raise RuntimeError(f"a request to {self.name} is already pending")

        tag = str(uuid.uuid4())
        header = dict(message.get("Header") or {})
        header["ClientTag"] = tag
        message = {**message, "Header": header}

        future: asyncio.Future[Message] = asyncio.get_running_loop().create_future()
        self._pending[tag] = future
        try:
            await self.send(message)
            async with asyncio.timeout(timeout):
                return await future
        finally:
            self._pending.pop(tag, None)
            if not future.done():
                future.cancel()

    async def next_message(self) -> Message:
        """Wait for the next message that is not a response to a request."""
        message = await self._inbound.get()
        if message is None:
            # keep the marker so later callers see the closed state too
            self._inbound.put_nowait(None)
            raise ConnectionError(f"connection to {self.name} closed")
        return message

    async def close(self) -> None:
        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as exc:
            logger.debug("Error while closing %s: %s", self.name, exc)


async def open_connection(
    host: str, port: int, ssl_context: ssl.SSLContext, timeout: float
) -> LeapConnection:
    async with asyncio.timeout(timeout):
        reader, writer = await asyncio.open_connection(host, port, ssl=ssl_context)
    connection = LeapConnection(reader, writer, name=f"{host}:{port}")
    connection.start()
    return connection


async def open_pairing_connection(
    host: str, port: int, timeout: float
) -> LeapConnection:
    return await open_connection(host, port, pairing_ssl_context(), timeout)


async def open_session_connection(
    host: str, port: int, bundle: CredentialBundle, timeout: float
) -> LeapConnection:
    return await open_connection(host, port, session_ssl_context(bundle), timeout)
