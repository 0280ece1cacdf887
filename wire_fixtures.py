"""
Raw wire-format fragments for tests that need input protobuf refuses to
serialize: wrong wire types, overlong lengths, group framing, reserved
wire types. Well-formed profiles come from ``ProfileBuilder`` instead.
"""
from typing import Iterable

WIRE_VARINT      = 0
WIRE_FIXED64     = 1
WIRE_LEN         = 2
WIRE_START_GROUP = 3
WIRE_END_GROUP   = 4
WIRE_FIXED32     = 5

UINT64_MASK = (1 << 64) - 1


def encode_varint(value: int) -> bytes:
    # negative int64 values take the 10-byte two's-complement form
    value &= UINT64_MASK
    out = bytearray()
    while value > 0x7F:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)
    return bytes(out)


def encode_tag(field_number: int, wire_type: int) -> bytes:
    return encode_varint((field_number << 3) | wire_type)


def varint_field(field_number: int, value: int) -> bytes:
    return encode_tag(field_number, WIRE_VARINT) + encode_varint(value)


def len_field(field_number: int, payload: bytes) -> bytes:
    return encode_tag(field_number, WIRE_LEN) + encode_varint(len(payload)) + payload


def string_field(field_number: int, text: str) -> bytes:
    return len_field(field_number, text.encode("utf-8"))


def packed_field(field_number: int, values: Iterable[int]) -> bytes:
    return len_field(field_number, b"".join(encode_varint(v) for v in values))


def fixed64_field(field_number: int, value: int) -> bytes:
    return encode_tag(field_number, WIRE_FIXED64) + (value & UINT64_MASK).to_bytes(8, "little")


def fixed32_field(field_number: int, value: int) -> bytes:
    return encode_tag(field_number, WIRE_FIXED32) + (value & 0xFFFFFFFF).to_bytes(4, "little")
