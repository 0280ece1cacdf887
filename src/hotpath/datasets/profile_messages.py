"""
protobuf message classes for pprof's public ``profile.proto``
(package ``perftools.profiles``, github.com/google/pprof/proto/profile.proto).

The schema below is that file's message set, field for field. It is loaded
into a private descriptor pool so it never collides with another copy of
``perftools.profiles`` registered in the default pool. Only the synthetic
profile builder encodes with these classes; decoding goes through
``hotpath.decoder`` so malformed input keeps its offset and context.
"""
from functools import lru_cache
from types import SimpleNamespace

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

_FD = descriptor_pb2.FieldDescriptorProto

U64  = _FD.TYPE_UINT64
I64  = _FD.TYPE_INT64
BOOL = _FD.TYPE_BOOL
STR  = _FD.TYPE_STRING
MSG  = _FD.TYPE_MESSAGE

OPT = _FD.LABEL_OPTIONAL
REP = _FD.LABEL_REPEATED

PACKAGE = "perftools.profiles"

# message -> [(field, number, type, label, message type)], in field-number order
SCHEMA = {
    "Profile": [
        ("sample_type",         1,  MSG,  REP, "ValueType"),
        ("sample",              2,  MSG,  REP, "Sample"),
        ("mapping",             3,  MSG,  REP, "Mapping"),
        ("location",            4,  MSG,  REP, "Location"),
        ("function",            5,  MSG,  REP, "Function"),
        ("string_table",        6,  STR,  REP, None),
        ("drop_frames",         7,  I64,  OPT, None),
        ("keep_frames",         8,  I64,  OPT, None),
        ("time_nanos",          9,  I64,  OPT, None),
        ("duration_nanos",      10, I64,  OPT, None),
        ("period_type",         11, MSG,  OPT, "ValueType"),
        ("period",              12, I64,  OPT, None),
        ("comment",             13, I64,  REP, None),
        ("default_sample_type", 14, I64,  OPT, None),
    ],
    "ValueType": [
        ("type", 1, I64, OPT, None),
        ("unit", 2, I64, OPT, None),
    ],
    "Sample": [
        ("location_id", 1, U64, REP, None),
        ("value",       2, I64, REP, None),
        ("label",       3, MSG, REP, "Label"),
    ],
    "Label": [
        ("key",      1, I64, OPT, None),
        ("str",      2, I64, OPT, None),
        ("num",      3, I64, OPT, None),
        ("num_unit", 4, I64, OPT, None),
    ],
    "Mapping": [
        ("id",                1,  U64,  OPT, None),
        ("memory_start",      2,  U64,  OPT, None),
        ("memory_limit",      3,  U64,  OPT, None),
        ("file_offset",       4,  U64,  OPT, None),
        ("filename",          5,  I64,  OPT, None),
        ("build_id",          6,  I64,  OPT, None),
        ("has_functions",     7,  BOOL, OPT, None),
        ("has_filenames",     8,  BOOL, OPT, None),
        ("has_line_numbers",  9,  BOOL, OPT, None),
        ("has_inline_frames", 10, BOOL, OPT, None),
    ],
    "Location": [
        ("id",         1, U64,  OPT, None),
        ("mapping_id", 2, U64,  OPT, None),
        ("address",    3, U64,  OPT, None),
        ("line",       4, MSG,  REP, "Line"),
        ("is_folded",  5, BOOL, OPT, None),
    ],
    "Line": [
        ("function_id", 1, U64, OPT, None),
        ("line",        2, I64, OPT, None),
        ("column",      3, I64, OPT, None),
    ],
    "Function": [
        ("id",          1, U64, OPT, None),
        ("name",        2, I64, OPT, None),
        ("system_name", 3, I64, OPT, None),
        ("filename",    4, I64, OPT, None),
        ("start_line",  5, I64, OPT, None),
    ],
}


def _file_descriptor(packed: bool) -> descriptor_pb2.FileDescriptorProto:
    fdp = descriptor_pb2.FileDescriptorProto(name="profile.proto", package=PACKAGE, syntax="proto3")
    for message_name, fields in SCHEMA.items():
        message = fdp.message_type.add(name=message_name)
        for name, number, field_type, label, type_name in fields:
            field = message.field.add(name=name, number=number, type=field_type, label=label)
            if type_name:
                field.type_name = f".{PACKAGE}.{type_name}"
            elif label == REP and field_type != STR and not packed:
                field.options.packed = False
    return fdp


@lru_cache(maxsize=None)
def profile_messages(packed: bool = True) -> SimpleNamespace:
    """Message classes by name (``.Profile``, ``.Sample``, ...).

    proto3 packs repeated scalars; ``packed=False`` gives classes that write
    one tag per value instead, the other encoding a decoder must accept.
    """
    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(_file_descriptor(packed).SerializeToString())
    return SimpleNamespace(**{
        name: message_factory.GetMessageClass(pool.FindMessageTypeByName(f"{PACKAGE}.{name}"))
        for name in SCHEMA
    })
