"""Live server adapters over asyncio streams.

``MinecraftStatusPinger`` performs a server list ping and
``OfflineLoginConnector`` runs the login phase in offline mode far enough to
know whether the server accepts the announced protocol version. Both close the
socket before returning; the play state is not entered.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import re
import time
import uuid
from dataclasses import dataclass

from mc_miner.adapters.game_connection import (
    IncompatibleVersionError,
    JoinConnector,
    JoinRejectedError,
    JoinResult,
    ServerUnreachableError,
    StatusPinger,
)
from mc_miner.adapters.status import ServerStatus, flatten_text, parse_status
from mc_miner.adapters.wire import (
    NEXT_STATE_LOGIN,
    NEXT_STATE_STATUS,
    ProtocolError,
    build_packet,
    decode_string,
    decode_varint,
    encode_string,
    encode_varint,
    handshake_payload,
    read_packet,
)

DEFAULT_PORT = 25565

HANDSHAKE = 0x00
STATUS_REQUEST = 0x00
STATUS_RESPONSE = 0x00
LOGIN_START = 0x00
LOGIN_PLUGIN_RESPONSE = 0x02
LOGIN_ACKNOWLEDGED = 0x03
LOGIN_DISCONNECT = 0x00
LOGIN_ENCRYPTION_REQUEST = 0x01
LOGIN_SUCCESS = 0x02
LOGIN_SET_COMPRESSION = 0x03
LOGIN_PLUGIN_REQUEST = 0x04

_INCOMPATIBLE_RE = re.compile(
    r"outdated[ _](?:client|server)|incompatible[ _](?:client|version)|unsupported protocol",
    re.IGNORECASE,
)


def parse_address(address: str) -> tuple[str, int]:
    """Split ``host[:port]`` (IPv6 hosts in brackets) into host and port."""
    address = address.strip()
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port = rest.lstrip(":")
    elif address.count(":") == 1:
        host, port = address.split(":")
    else:
        host, port = address, ""
    if not host:
        raise ValueError(f"Invalid server address: {address!r}")
    return host, int(port) if port else DEFAULT_PORT


def offline_uuid(username: str) -> uuid.UUID:
    digest = hashlib.md5(f"OfflinePlayer:{username}".encode("utf-8")).digest()
    return uuid.UUID(bytes=digest, version=3)


def login_start_payload(username: str, protocol_version: int) -> bytes:
    name = encode_string(username)
    player_uuid = offline_uuid(username).bytes
    if protocol_version >= 764:
        return name + player_uuid
    if protocol_version >= 761:
        return name + b"\x01" + player_uuid
    if protocol_version >= 759:
        return name + b"\x00" + b"\x01" + player_uuid
    return name


def is_incompatible_reason(reason: str) -> bool:
    return bool(_INCOMPATIBLE_RE.search(reason))


def _reason_text(raw: str) -> str:
    try:
        return flatten_text(json.loads(raw))
    except ValueError:
        return raw


async def _open(host: str, port: int, timeout: float) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    try:
        return await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise ConnectionError(f"Timed out after {timeout}s connecting to {host}:{port}") from exc


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with contextlib.suppress(OSError):
        await writer.wait_closed()


@dataclass(slots=True)
class MinecraftStatusPinger(StatusPinger):
    """Server list ping (handshake with next state 1, then a status request)."""

    timeout_seconds: float = 5.0
    protocol_version: int = -1

    async def ping(self, address: str) -> ServerStatus:
        host, port = parse_address(address)
        started = time.monotonic()
        try:
            reader, writer = await _open(host, port, self.timeout_seconds)
        except OSError as exc:
            raise ServerUnreachableError(f"{address}: {exc}") from exc

        try:
            writer.write(build_packet(HANDSHAKE, handshake_payload(self.protocol_version, host, port, NEXT_STATE_STATUS)))
            writer.write(build_packet(STATUS_REQUEST))
            await writer.drain()
            packet_id, payload = await asyncio.wait_for(read_packet(reader), timeout=self.timeout_seconds)
            if packet_id != STATUS_RESPONSE:
                raise ProtocolError(f"Unexpected status packet 0x{packet_id:02x}")
            text, _ = decode_string(payload)
            latency_ms = (time.monotonic() - started) * 1000
            return parse_status(text, latency_ms=latency_ms)
        except (OSError, EOFError, asyncio.TimeoutError, ProtocolError) as exc:
            raise ServerUnreachableError(f"{address}: {type(exc).__name__}: {exc}") from exc
        finally:
            await _close(writer)


@dataclass(slots=True)
class OfflineLoginConnector(JoinConnector):
    """Offline-mode login probe; success means the server sent Login Success."""

    username: str
    connect_timeout_seconds: float = 3.0

    async def join(self, address: str, protocol_version: int) -> JoinResult:
        host, port = parse_address(address)
        reader, writer = await _open(host, port, self.connect_timeout_seconds)
        try:
            writer.write(build_packet(HANDSHAKE, handshake_payload(protocol_version, host, port, NEXT_STATE_LOGIN)))
            writer.write(build_packet(LOGIN_START, login_start_payload(self.username, protocol_version)))
            await writer.drain()
            return await self._await_login(reader, writer, protocol_version)
        except asyncio.IncompleteReadError as exc:
            raise ConnectionResetError("Server closed the connection during login") from exc
        finally:
            await _close(writer)

    async def _await_login(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        protocol_version: int,
    ) -> JoinResult:
        threshold: int | None = None
        while True:
            packet_id, payload = await read_packet(reader, threshold)
            if packet_id == LOGIN_DISCONNECT:
                raw, _ = decode_string(payload)
                reason = _reason_text(raw)
                if is_incompatible_reason(reason):
                    raise IncompatibleVersionError(reason)
                raise JoinRejectedError(reason)
            if packet_id == LOGIN_ENCRYPTION_REQUEST:
                raise JoinRejectedError("Server requires online-mode authentication")
            if packet_id == LOGIN_SET_COMPRESSION:
                threshold, _ = decode_varint(payload)
                continue
            if packet_id == LOGIN_PLUGIN_REQUEST:
                message_id, _ = decode_varint(payload)
                writer.write(build_packet(LOGIN_PLUGIN_RESPONSE, encode_varint(message_id) + b"\x00", threshold))
                await writer.drain()
                continue
            if packet_id == LOGIN_SUCCESS:
                if protocol_version >= 764:
                    writer.write(build_packet(LOGIN_ACKNOWLEDGED, b"", threshold))
                    await writer.drain()
                return JoinResult(
                    protocol_version=protocol_version,
                    username=self.username,
                    compression_threshold=threshold,
                )
            raise ProtocolError(f"Unexpected login packet 0x{packet_id:02x}")
