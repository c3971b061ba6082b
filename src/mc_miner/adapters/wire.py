"""Login-phase framing for the Minecraft Java protocol.

Only what the status ping and the login probe need: VarInt, strings,
length-prefixed packets with optional zlib compression, and block position
packing for outbound digging actions. Play-state packets are not decoded here.
"""

from __future__ import annotations

import asyncio
import struct
import zlib

from mc_miner.models import BlockPosition

POSITION_XZ_MASK = 0x3FFFFFF
POSITION_Y_MASK = 0xFFF
MAX_PACKET_LENGTH = 2_097_151

NEXT_STATE_STATUS = 1
NEXT_STATE_LOGIN = 2


class ProtocolError(RuntimeError):
    """Raised when the peer sends bytes that do not decode as a packet."""


def encode_varint(value: int) -> bytes:
    if not -(1 << 31) <= value < (1 << 31):
        raise ValueError(f"VarInt out of range: {value}")

    value &= 0xFFFFFFFF
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _finish_varint(result: int) -> int:
    if result & (1 << 31):
        result -= 1 << 32
    return result


def decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode a VarInt at ``offset`` and return ``(value, next_offset)``."""
    result = 0
    for shift in range(0, 35, 7):
        if offset >= len(data):
            raise ProtocolError("Truncated VarInt")
        byte = data[offset]
        offset += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return _finish_varint(result), offset
    raise ProtocolError("VarInt is longer than 5 bytes")


async def read_varint(reader: asyncio.StreamReader) -> int:
    result = 0
    for shift in range(0, 35, 7):
        byte = (await reader.readexactly(1))[0]
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return _finish_varint(result)
    raise ProtocolError("VarInt is longer than 5 bytes")


def encode_string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return encode_varint(len(raw)) + raw


def decode_string(data: bytes, offset: int = 0) -> tuple[str, int]:
    length, offset = decode_varint(data, offset)
    end = offset + length
    if length < 0 or end > len(data):
        raise ProtocolError("Truncated string")
    return data[offset:end].decode("utf-8", errors="replace"), end


def handshake_payload(protocol_version: int, host: str, port: int, next_state: int) -> bytes:
    return encode_varint(protocol_version) + encode_string(host) + struct.pack(">H", port) + encode_varint(next_state)


def build_packet(packet_id: int, payload: bytes = b"", compression_threshold: int | None = None) -> bytes:
    body = encode_varint(packet_id) + payload
    if compression_threshold is not None and compression_threshold >= 0:
        if len(body) >= compression_threshold:
            body = encode_varint(len(body)) + zlib.compress(body)
        else:
            body = encode_varint(0) + body
    return encode_varint(len(body)) + body


async def read_packet(reader: asyncio.StreamReader, compression_threshold: int | None = None) -> tuple[int, bytes]:
    """Read one framed packet and return ``(packet_id, payload)``."""
    length = await read_varint(reader)
    if length <= 0 or length > MAX_PACKET_LENGTH:
        raise ProtocolError(f"Invalid packet length: {length}")

    body = await reader.readexactly(length)
    if compression_threshold is not None and compression_threshold >= 0:
        data_length, offset = decode_varint(body)
        body = body[offset:]
        if data_length:
            try:
                body = zlib.decompress(body)
            except zlib.error as exc:
                raise ProtocolError(f"Invalid compressed packet: {exc}") from exc
            if len(body) != data_length:
                raise ProtocolError("Decompressed length does not match header")

    packet_id, offset = decode_varint(body)
    return packet_id, body[offset:]


def pack_position(position: BlockPosition) -> int:
    """Pack a block position as the protocol's signed 64-bit ``X<<38 | Z<<12 | Y``."""
    packed = (
        (position.x & POSITION_XZ_MASK) << 38
        | (position.z & POSITION_XZ_MASK) << 12
        | (position.y & POSITION_Y_MASK)
    )
    if packed >= 1 << 63:
        packed -= 1 << 64
    return packed
