# wire/reader.py
"""
Low-level cursor over protobuf wire-format bytes.

Only the four live wire types are produced as fields. Deprecated group
framing (3/4) is skipped, and wire types 6/7 are recovered from on a
best-effort basis and recorded on the reader instead of stopping the scan.
"""
import zlib
from typing import Iterator, List, NamedTuple, Tuple, Union

from .errors import (
    CorruptProfile,
    DecompressionFailed,
    MalformedPackedField,
    MalformedVarint,
    ProfileDecodeError,
    TruncatedInput,
    UnknownWireType,
)
from ..utils.logger import get_logger

log = get_logger("WireReader")

WIRE_VARINT      = 0
WIRE_FIXED64     = 1
WIRE_LEN         = 2
WIRE_START_GROUP = 3
WIRE_END_GROUP   = 4
WIRE_FIXED32     = 5

MAX_VARINT_BYTES = 10
MAX_GROUP_DEPTH = 64
UINT64_MASK = (1 << 64) - 1
_SIGN_BIT = 1 << 63

GZIP_MAGIC = b"\x1f\x8b"

Buffer = Union[bytes, bytearray, memoryview]


class WireField(NamedTuple):
    number: int
    wire_type: int
    value: Union[int, memoryview]   # int for numeric wire types, view for LEN
    offset: int                     # absolute offset of the tag
    payload_offset: int             # absolute offset of the value bytes


def to_signed64(value: int) -> int:
    """Reinterpret an unsigned 64-bit varint as two's-complement int64."""
    return value - (1 << 64) if value & _SIGN_BIT else value


def decode_varint(data: Buffer, pos: int, *, context: str = "", base_offset: int = 0) -> Tuple[int, int]:
    """Decode one varint at ``pos``; return ``(value, new_pos)``."""
    result = 0
    shift = 0
    start = pos
    end = len(data)
    for _ in range(MAX_VARINT_BYTES):
        if pos >= end:
            raise TruncatedInput("Varint runs past end of buffer",
                                 offset=base_offset + start, context=context)
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & UINT64_MASK, pos
        shift += 7
    raise MalformedVarint(f"Varint longer than {MAX_VARINT_BYTES} bytes",
                          offset=base_offset + start, context=context)


def unpack_varints(payload: Buffer, *, context: str = "", base_offset: int = 0) -> List[int]:
    """Decode a packed repeated varint payload, consuming it fully."""
    values = []
    pos = 0
    end = len(payload)
    try:
        while pos < end:
            value, pos = decode_varint(payload, pos, context=context, base_offset=base_offset)
            values.append(value)
    except (TruncatedInput, MalformedVarint) as e:
        raise MalformedPackedField(
            f"Packed varints do not fill {end}-byte payload: {e.__class__.__name__}",
            offset=e.offset, context=context,
        ) from e
    return values


def is_gzip(data: Buffer) -> bool:
    return len(data) >= 2 and data[0] == GZIP_MAGIC[0] and data[1] == GZIP_MAGIC[1]


def maybe_decompress(data: Buffer, *, max_bytes: int) -> Buffer:
    """Inflate gzip-framed input (possibly multi-member); pass raw bytes through."""
    if not is_gzip(data):
        return data

    out = bytearray()
    pending = bytes(data)
    member = 0
    while pending:
        inflater = zlib.decompressobj(wbits=16 + zlib.MAX_WBITS)
        try:
            out += inflater.decompress(pending, max_bytes - len(out) + 1)
        except zlib.error as e:
            raise DecompressionFailed(f"Gzip member {member} is corrupt: {e}",
                                      context="gzip") from e
        if len(out) > max_bytes or inflater.unconsumed_tail:
            raise DecompressionFailed(f"Decompressed size exceeds limit of {max_bytes} bytes",
                                      context="gzip")
        if not inflater.eof:
            raise DecompressionFailed(f"Gzip member {member} ends before its trailer",
                                      context="gzip")
        pending = inflater.unused_data
        member += 1
        if pending and not is_gzip(pending):
            if pending.strip(b"\x00"):
                raise DecompressionFailed(f"{len(pending)} trailing bytes after gzip data",
                                          context="gzip")
            break

    log.debug(f"Inflated {len(data)} gzip bytes into {len(out)} bytes ({member} member(s))")
    return bytes(out)


class WireReader:
    """Cursor over one message's bytes.

    ``base_offset`` is the position of ``data[0]`` inside the outermost
    buffer so that every error reports an absolute byte offset.
    """

    def __init__(self, data: Buffer, *, context: str = "message", base_offset: int = 0):
        self.data = data if isinstance(data, memoryview) else memoryview(data)
        self.pos = 0
        self.context = context
        self.base_offset = base_offset
        self.recovered: List[ProfileDecodeError] = []

    @property
    def offset(self) -> int:
        return self.base_offset + self.pos

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def read_varint(self) -> int:
        value, self.pos = decode_varint(self.data, self.pos, context=self.context,
                                        base_offset=self.base_offset)
        return value

    def read_tag(self) -> Tuple[int, int]:
        tag = self.read_varint()
        return tag >> 3, tag & 0x7

    def read_length_delimited(self) -> memoryview:
        start = self.offset
        length = self.read_varint()
        if length > self.remaining:
            raise TruncatedInput(
                f"Declared length {length} exceeds {self.remaining} remaining bytes",
                offset=start, context=self.context,
            )
        view = self.data[self.pos:self.pos + length]
        self.pos += length
        return view

    def _read_fixed(self, width: int) -> int:
        if width > self.remaining:
            raise TruncatedInput(f"Fixed{width * 8} value needs {width} bytes, {self.remaining} left",
                                 offset=self.offset, context=self.context)
        raw = self.data[self.pos:self.pos + width]
        self.pos += width
        return int.from_bytes(raw, "little")

    def read_fixed64(self) -> int:
        return self._read_fixed(8)

    def read_fixed32(self) -> int:
        return self._read_fixed(4)

    def skip_group(self, field_number: int, depth: int = 0) -> None:
        """Skip a START_GROUP payload up to its matching END_GROUP."""
        if depth > MAX_GROUP_DEPTH:
            raise CorruptProfile(f"Groups nested deeper than {MAX_GROUP_DEPTH}",
                                 offset=self.offset, context=self.context)
        while not self.at_end():
            number, wire_type = self.read_tag()
            if wire_type == WIRE_END_GROUP:
                if number == field_number:
                    return
                continue
            if wire_type == WIRE_START_GROUP:
                self.skip_group(number, depth + 1)
                continue
            try:
                self._read_value(wire_type, number)
            except UnknownWireType as e:
                self._recover_unknown(e)
        raise TruncatedInput(f"Group {field_number} has no END_GROUP",
                             offset=self.offset, context=self.context)

    def _read_value(self, wire_type: int, number: int):
        if wire_type == WIRE_VARINT:
            return self.read_varint()
        if wire_type == WIRE_FIXED64:
            return self.read_fixed64()
        if wire_type == WIRE_LEN:
            return self.read_length_delimited()
        if wire_type == WIRE_FIXED32:
            return self.read_fixed32()
        raise UnknownWireType(wire_type, offset=self.offset, context=f"{self.context}.{number}")

    def _recover_unknown(self, err: UnknownWireType) -> None:
        # Treat the payload as a varint if it parses as one, else step one byte.
        log.warning(f"{err}; attempting best-effort skip")
        self.recovered.append(err)
        try:
            self.read_varint()
        except ProfileDecodeError:
            self.pos += 1

    def fields(self) -> Iterator[WireField]:
        """Yield every field of the message in order."""
        while not self.at_end():
            start = self.offset
            number, wire_type = self.read_tag()
            if wire_type == WIRE_START_GROUP:
                log.warning(f"Skipping deprecated group field {number} in {self.context} at offset {start}")
                self.skip_group(number)
                continue
            if wire_type == WIRE_END_GROUP:
                log.warning(f"Ignoring stray END_GROUP for field {number} in {self.context} at offset {start}")
                continue
            try:
                value = self._read_value(wire_type, number)
            except UnknownWireType as e:
                self._recover_unknown(e)
                continue
            payload_start = self.offset - len(value) if wire_type == WIRE_LEN else start
            yield WireField(number, wire_type, value, start, payload_start)
