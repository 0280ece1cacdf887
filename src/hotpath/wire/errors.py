# wire/errors.py
from typing import Optional


class ProfileDecodeError(Exception):
    """Base class for every structured decode failure.

    Carries the byte offset (relative to the buffer being read) and a
    dotted field context such as ``profile.sample[3].location_id``.
    """
    code = "decode_error"

    def __init__(self, message: str, *, offset: Optional[int] = None, context: str = ""):
        self.offset = offset
        self.context = context
        super().__init__(message)

    def describe(self) -> dict:
        return {
            "code": self.code,
            "message": str(self),
            "offset": self.offset,
            "context": self.context,
        }

    def __str__(self) -> str:
        msg = super().__str__()
        where = []
        if self.context:
            where.append(self.context)
        if self.offset is not None:
            where.append(f"offset {self.offset}")
        return f"{msg} ({', '.join(where)})" if where else msg


class TruncatedInput(ProfileDecodeError):
    """A declared length or varint continuation runs past the buffer end."""
    code = "truncated_input"


class MalformedVarint(ProfileDecodeError):
    """Varint longer than 10 bytes."""
    code = "malformed_varint"


class MalformedPackedField(ProfileDecodeError):
    """Packed repeated payload does not decode cleanly to its declared length."""
    code = "malformed_packed_field"


class UnknownWireType(ProfileDecodeError):
    code = "unknown_wire_type"

    def __init__(self, wire_type: int, **kwargs):
        self.wire_type = wire_type
        super().__init__(f"Unknown wire type {wire_type}", **kwargs)


class DecompressionFailed(ProfileDecodeError):
    """Gzip magic present but the stream could not be inflated."""
    code = "decompression_failed"


class CorruptProfile(ProfileDecodeError):
    """Decode cannot make forward progress."""
    code = "corrupt_profile"


class UnresolvedReference(ProfileDecodeError):
    """A location or function id has no decoded record. Never fatal."""
    code = "unresolved_reference"

    def __init__(self, kind: str, ref_id: int, **kwargs):
        self.kind = kind
        self.ref_id = ref_id
        super().__init__(f"Unresolved {kind} id {ref_id}", **kwargs)
