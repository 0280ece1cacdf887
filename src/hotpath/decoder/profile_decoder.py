# decoder/profile_decoder.py
"""
Maps profile.proto field numbers onto the entity set in ``entities``.

Message layouts are table driven: each message type lists its known field
numbers, the attribute they fill, and how the value is interpreted. Unknown
numbers are skipped by wire type. Structural errors inside one top-level
sub-message drop that sub-message only; errors at the top level itself have
no safe resumption point and are raised.
"""
from typing import Dict, List, NamedTuple, Optional

from .entities import Function, Label, Line, Location, Mapping, Profile, Sample, ValueType
from ..wire.errors import CorruptProfile, MalformedPackedField, ProfileDecodeError
from ..wire.reader import (
    WIRE_LEN,
    WIRE_VARINT,
    Buffer,
    WireField,
    WireReader,
    maybe_decompress,
    to_signed64,
    unpack_varints,
)
from ..utils.config import get_settings
from ..utils.logger import get_logger

log = get_logger("ProfileDecoder")

# Value interpretations
U64    = "uint64"
I64    = "int64"
BOOL   = "bool"
STRING = "string"
MSG    = "message"


class FieldSpec(NamedTuple):
    name: str
    kind: str
    repeated: bool = False
    message: Optional[str] = None


MESSAGES: Dict[str, Dict[int, FieldSpec]] = {
    "ValueType": {
        1: FieldSpec("type", I64),
        2: FieldSpec("unit", I64),
    },
    "Label": {
        1: FieldSpec("key", I64),
        2: FieldSpec("str_index", I64),
        3: FieldSpec("num", I64),
        4: FieldSpec("num_unit", I64),
    },
    "Sample": {
        1: FieldSpec("location_ids", U64, repeated=True),
        2: FieldSpec("values", I64, repeated=True),
        3: FieldSpec("labels", MSG, repeated=True, message="Label"),
    },
    "Mapping": {
        1: FieldSpec("id", U64),
        2: FieldSpec("memory_start", U64),
        3: FieldSpec("memory_limit", U64),
        4: FieldSpec("file_offset", U64),
        5: FieldSpec("filename", I64),
        6: FieldSpec("build_id", I64),
        7: FieldSpec("has_functions", BOOL),
        8: FieldSpec("has_filenames", BOOL),
        9: FieldSpec("has_line_numbers", BOOL),
        10: FieldSpec("has_inline_frames", BOOL),
    },
    "Line": {
        1: FieldSpec("function_id", U64),
        2: FieldSpec("line", I64),
        3: FieldSpec("column", I64),
    },
    "Location": {
        1: FieldSpec("id", U64),
        2: FieldSpec("mapping_id", U64),
        3: FieldSpec("address", U64),
        4: FieldSpec("lines", MSG, repeated=True, message="Line"),
        5: FieldSpec("is_folded", BOOL),
    },
    "Function": {
        1: FieldSpec("id", U64),
        2: FieldSpec("name", I64),
        3: FieldSpec("system_name", I64),
        4: FieldSpec("filename", I64),
        5: FieldSpec("start_line", I64),
    },
    "Profile": {
        1: FieldSpec("sample_types", MSG, repeated=True, message="ValueType"),
        2: FieldSpec("samples", MSG, repeated=True, message="Sample"),
        3: FieldSpec("mappings", MSG, repeated=True, message="Mapping"),
        4: FieldSpec("locations", MSG, repeated=True, message="Location"),
        5: FieldSpec("functions", MSG, repeated=True, message="Function"),
        6: FieldSpec("string_table", STRING, repeated=True),
        7: FieldSpec("drop_frames", I64),
        8: FieldSpec("keep_frames", I64),
        9: FieldSpec("time_nanos", I64),
        10: FieldSpec("duration_nanos", I64),
        11: FieldSpec("period_type", MSG, message="ValueType"),
        12: FieldSpec("period", I64),
        13: FieldSpec("comments", I64, repeated=True),
        14: FieldSpec("default_sample_type", I64),
    },
}

ENTITIES = {
    "ValueType": ValueType,
    "Label": Label,
    "Sample": Sample,
    "Mapping": Mapping,
    "Line": Line,
    "Location": Location,
    "Function": Function,
}

_NUMERIC = (U64, I64, BOOL)


class ProfileDecoder:
    """Decodes one profile buffer. Use a fresh instance per decode."""

    def __init__(self, *, max_decompressed_bytes: Optional[int] = None):
        if max_decompressed_bytes is None:
            max_decompressed_bytes = get_settings().max_decompressed_mb * 1024 * 1024
        self.max_decompressed_bytes = max_decompressed_bytes
        self.skipped_fields = 0

    # ------------------------------------------------------------------ #
    # public
    # ------------------------------------------------------------------ #
    def decode(self, data: Buffer) -> Profile:
        self.skipped_fields = 0
        raw = maybe_decompress(data, max_bytes=self.max_decompressed_bytes)
        log.info(f"Decoding {len(raw)} bytes of profile data")

        reader = WireReader(raw, context="profile")
        values: Dict[str, object] = {}
        try:
            for f in reader.fields():
                spec = MESSAGES["Profile"].get(f.number)
                if spec is None:
                    log.debug(f"Skipping unknown profile field {f.number} at offset {f.offset}")
                    continue
                try:
                    self._apply(values, spec, f, "profile")
                except ProfileDecodeError as e:
                    self.skipped_fields += 1
                    log.warning(f"Dropping profile.{spec.name} entry at offset {f.offset}: {e}")
        except ProfileDecodeError as e:
            log.error(f"Profile decode aborted: {e}")
            raise
        self.skipped_fields += len(reader.recovered)

        strings = values.pop("string_table", None) or [""]
        if strings[0] != "":
            raise CorruptProfile(f"String table entry 0 must be empty, got {strings[0][:40]!r}",
                                 context="profile.string_table")
        values["string_table"] = strings

        profile = Profile(skipped_fields=self.skipped_fields, **self._freeze(values))
        log.info(
            f"Decoded profile: {len(profile.samples)} samples, {len(profile.locations)} locations, "
            f"{len(profile.functions)} functions, {len(profile.string_table)} strings, "
            f"{self.skipped_fields} skipped fields"
        )
        return profile

    # ------------------------------------------------------------------ #
    # message machinery
    # ------------------------------------------------------------------ #
    def _decode_message(self, payload: memoryview, type_name: str, *, base_offset: int, context: str):
        values: Dict[str, object] = {}
        reader = WireReader(payload, context=context, base_offset=base_offset)
        layout = MESSAGES[type_name]
        for f in reader.fields():
            spec = layout.get(f.number)
            if spec is None:
                continue
            self._apply(values, spec, f, context)
        self.skipped_fields += len(reader.recovered)
        return ENTITIES[type_name](**self._freeze(values))

    def _apply(self, values: Dict[str, object], spec: FieldSpec, f: WireField, context: str) -> None:
        ctx = f"{context}.{spec.name}"

        if spec.kind == MSG or spec.kind == STRING:
            if f.wire_type != WIRE_LEN:
                self._mismatch(spec, f, ctx)
                if spec.kind == STRING and spec.repeated:
                    # keep the slot so later string indices still line up
                    self._store(values, spec, [""])
                return
            if spec.kind == STRING:
                item = bytes(f.value).decode("utf-8", errors="replace")
            else:
                if spec.repeated:
                    ctx = f"{ctx}[{len(values.get(spec.name, ()))}]"
                item = self._decode_message(f.value, spec.message, base_offset=f.payload_offset, context=ctx)
            self._store(values, spec, [item])
            return

        # numeric
        if f.wire_type == WIRE_VARINT:
            items = [f.value]
        elif f.wire_type == WIRE_LEN and spec.repeated:
            try:
                items = unpack_varints(f.value, context=ctx, base_offset=f.payload_offset)
            except MalformedPackedField as e:
                self.skipped_fields += 1
                log.warning(f"Dropping packed field {ctx}: {e}")
                return
        else:
            self._mismatch(spec, f, ctx)
            return

        if spec.kind == I64:
            items = [to_signed64(v) for v in items]
        elif spec.kind == BOOL:
            items = [v != 0 for v in items]
        self._store(values, spec, items)

    def _store(self, values: Dict[str, object], spec: FieldSpec, items: List[object]) -> None:
        if spec.repeated:
            values.setdefault(spec.name, []).extend(items)
        else:
            values[spec.name] = items[-1]   # last one wins for singular fields

    def _mismatch(self, spec: FieldSpec, f: WireField, ctx: str) -> None:
        self.skipped_fields += 1
        log.warning(f"Skipping {ctx}: unexpected wire type {f.wire_type} at offset {f.offset}")

    @staticmethod
    def _freeze(values: Dict[str, object]) -> Dict[str, object]:
        return {k: tuple(v) if isinstance(v, list) else v for k, v in values.items()}


def decode_profile(data: Buffer) -> Profile:
    """Decode raw or gzip-compressed pprof bytes into a ``Profile``."""
    return ProfileDecoder().decode(data)
