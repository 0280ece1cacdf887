#!/usr/bin/env python3
"""
Tests for ProfileDecoder: entity decoding, packed/unpacked equivalence,
recovery inside sub-messages and fatal top-level truncation.
"""

import os
import sys
import pathlib

os.environ.setdefault("HOTPATH_LOG_TO_FILE", "false")

# Add src to path so we can import hotpath modules
sys.path.insert(0, str(pathlib.Path(__file__).parent / "src"))

try:
    from hotpath.datasets.mock_profile import ProfileBuilder
    from hotpath.decoder.profile_decoder import ProfileDecoder, decode_profile
    from hotpath.wire.errors import CorruptProfile, ProfileDecodeError, UnresolvedReference
    from hotpath.wire.reader import WIRE_LEN
    from wire_fixtures import encode_tag, encode_varint, len_field, string_field, varint_field
except ImportError as e:
    print(f"❌ Failed to import hotpath modules: {e}")
    print("Make sure you're running this from the project root directory.")
    sys.exit(1)


def _order_builder(packed=True):
    b = ProfileBuilder(sample_type="cpu", unit="nanoseconds", packed=packed)
    b.period = 10_000_000
    b.period_type = ("cpu", "nanoseconds")
    b.duration_nanos = 5 * 10**9
    b.time_nanos = 1_700_000_000 * 10**9
    b.comments.append("synthetic")
    fn = b.add_function("main.processOrder", "/app/order.go", 1094)
    loc = b.add_location([(fn, 1100)], address=0x401000)
    b.add_sample([loc], 20_000_000, 2)
    return b


def test_decodes_entities():
    print("🧪 Testing entity decoding...")

    profile = decode_profile(_order_builder().build())

    assert profile.string_table[0] == ""
    assert profile.string(profile.sample_types[0].type) == "cpu"
    assert profile.string(profile.sample_types[0].unit) == "nanoseconds"
    assert profile.period == 10_000_000
    assert profile.string(profile.period_type.unit) == "nanoseconds"
    assert profile.duration_nanos == 5 * 10**9
    assert profile.time_nanos == 1_700_000_000 * 10**9
    assert [profile.string(i) for i in profile.comments] == ["synthetic"]

    fn = profile.functions[0]
    assert profile.string(fn.name) == "main.processOrder"
    assert profile.string(fn.filename) == "/app/order.go"
    assert fn.start_line == 1094

    loc = profile.locations[0]
    assert loc.address == 0x401000
    assert loc.lines[0].line == 1100
    assert loc.lines[0].function_id == fn.id

    assert profile.samples[0].location_ids == (loc.id,)
    assert profile.samples[0].values == (20_000_000, 2)
    assert profile.skipped_fields == 0
    print("✅ Functions, locations, samples and metadata decode correctly")


def test_sample_line_distinct_from_declaration_line():
    print("🧪 Testing sample line vs declaration line...")

    profile = decode_profile(_order_builder().build())
    frames = profile.index().stack(profile.samples[0])

    assert len(frames) == 1
    assert frames[0].sample_line == 1100
    assert frames[0].start_line == 1094
    assert frames[0].sample_line != frames[0].start_line
    print("✅ Line.line and Function.start_line are kept apart")


def test_packed_and_unpacked_agree():
    print("🧪 Testing packed vs unpacked repeated fields...")

    packed_bytes = _order_builder(packed=True).build()
    unpacked_bytes = _order_builder(packed=False).build()
    assert packed_bytes != unpacked_bytes

    packed = decode_profile(packed_bytes)
    unpacked = decode_profile(unpacked_bytes)
    assert packed.samples == unpacked.samples
    assert packed.comments == unpacked.comments
    print("✅ Both encodings of repeated scalars decode identically")


def test_gzip_input():
    print("🧪 Testing gzip-compressed input...")

    b = _order_builder()
    assert decode_profile(b.build(compress=True)) == decode_profile(b.build())
    print("✅ Compressed and raw forms decode to the same profile")


def test_wide_and_negative_values():
    print("🧪 Testing 64-bit ids and signed values...")

    b = ProfileBuilder(sample_type="alloc_space", unit="bytes")
    fn = b.add_function("big", "/x.go", 2**40, function_id=2**63 + 5)
    loc = b.add_location([(fn, 2**35)], location_id=2**64 - 1)
    b.add_sample([loc], -7)
    profile = decode_profile(b.build())

    assert profile.functions[0].id == 2**63 + 5
    assert profile.functions[0].start_line == 2**40
    assert profile.locations[0].id == 2**64 - 1
    assert profile.locations[0].lines[0].line == 2**35
    assert profile.samples[0].values == (-7,)
    assert profile.index().frames(2**64 - 1)[0].function_name == "big"
    print("✅ uint64 ids and negative int64 values are preserved")


def test_unknown_fields_and_mismatched_wire_types_skipped():
    print("🧪 Testing unknown fields and wire-type mismatches...")

    b = _order_builder()
    parts = b.fields()
    extra = (
        varint_field(99, 12345)                              # unknown top-level field
        + len_field(5, string_field(1, "not-an-id"))         # Function.id as LEN
        + encode_tag(12, WIRE_LEN) + encode_varint(1) + b"\x01"  # period as LEN
    )
    profile = decode_profile(b"".join(parts) + extra)

    assert profile.period == 10_000_000
    assert len(profile.functions) == 2
    assert profile.skipped_fields == 2
    print("✅ Unknown numbers are ignored, mismatches are skipped and counted")


def test_corrupt_sub_message_is_dropped():
    print("🧪 Testing recovery from a corrupt sub-message...")

    b = _order_builder()
    bad_location = varint_field(1, 77) + encode_tag(4, WIRE_LEN) + encode_varint(50) + b"\x08\x01"
    data = b"".join(b.fields()) + len_field(4, bad_location) + varint_field(9, 42)
    profile = decode_profile(data)

    assert all(loc.id != 77 for loc in profile.locations)
    assert profile.skipped_fields == 1
    assert profile.time_nanos == 42, "decoding did not resume after the bad sub-message"
    print("✅ A bad location is dropped and decoding continues")


def test_unresolved_references_are_not_fatal():
    print("🧪 Testing unresolved location/function ids...")

    b = ProfileBuilder()
    fn = b.add_function("f", "/f.go", 1)
    good = b.add_location([(fn, 3)])
    orphan = b.add_location([(404, 3)])
    b.add_sample([good, orphan, 999], 10)
    profile = decode_profile(b.build())
    index = profile.index()

    frames = index.stack(profile.samples[0])
    assert [f.function_name for f in frames] == ["f"]
    assert index.unresolved_frames == 2

    try:
        index.location(999)
        assert False, "missing location resolved"
    except UnresolvedReference as e:
        assert e.kind == "location" and e.ref_id == 999
    print("✅ Missing ids drop their frame and are counted")


def test_string_table_must_start_empty():
    print("🧪 Testing string table validation...")

    data = string_field(6, "oops") + string_field(6, "cpu")
    try:
        decode_profile(data)
        assert False, "non-empty string_table[0] accepted"
    except CorruptProfile as e:
        assert e.context == "profile.string_table"
    print("✅ string_table[0] != '' is rejected")


def test_mistyped_string_entry_keeps_indices():
    print("🧪 Testing a string_table entry with the wrong wire type...")

    b = _order_builder()
    parts = b.fields()
    cpu = b.string("cpu")
    parts[parts.index(string_field(6, "cpu"))] = varint_field(6, 7)
    profile = decode_profile(b"".join(parts))

    assert len(profile.string_table) == len(b.profile.string_table)
    assert profile.string_table[cpu] == ""
    assert profile.string(profile.sample_types[0].unit) == "nanoseconds"
    assert profile.string(profile.functions[0].name) == "main.processOrder"
    assert profile.string(profile.functions[0].filename) == "/app/order.go"
    assert [profile.string(i) for i in profile.comments] == ["synthetic"]
    assert profile.skipped_fields == 1
    print("✅ The bad entry becomes '' and every later index still resolves")


def test_agrees_with_protobuf_parse():
    print("🧪 Testing decoder output against protobuf's own parser...")

    b = _order_builder()
    b.add_sample([1], 2**40, -3)
    raw = b.build()
    reference = b.pb.Profile.FromString(raw)
    profile = decode_profile(raw)

    assert profile.string_table == tuple(reference.string_table)
    assert [(s.location_ids, s.values) for s in profile.samples] == [
        (tuple(s.location_id), tuple(s.value)) for s in reference.sample
    ]
    assert [(f.id, f.name, f.filename, f.start_line) for f in profile.functions] == [
        (f.id, f.name, f.filename, f.start_line) for f in reference.function
    ]
    assert [(loc.id, loc.address, [(ln.function_id, ln.line) for ln in loc.lines]) for loc in profile.locations] == [
        (loc.id, loc.address, [(ln.function_id, ln.line) for ln in loc.line]) for loc in reference.location
    ]
    assert profile.period == reference.period
    assert profile.period_type.type == reference.period_type.type
    assert profile.comments == tuple(reference.comment)
    print("✅ Hand-rolled decoder and protobuf agree field for field")


def test_mappings_and_labels():
    print("🧪 Testing mappings and sample labels...")

    b = ProfileBuilder(sample_type="alloc_space", unit="bytes")
    mapping = b.add_mapping(0x400000, 0x500000, "/usr/bin/server", build_id="abc123")
    fn = b.add_function("alloc", "/a.go", 10)
    loc = b.add_location([(fn, 12)], address=0x401234, mapping_id=mapping)
    b.add_sample([loc], 4096, labels={"thread": "worker-1", "bytes": 4096})
    profile = decode_profile(b.build())

    m = profile.mappings[0]
    assert m.id == mapping
    assert (m.memory_start, m.memory_limit) == (0x400000, 0x500000)
    assert profile.string(m.filename) == "/usr/bin/server"
    assert profile.string(m.build_id) == "abc123"
    assert m.has_functions and m.has_line_numbers and not m.has_inline_frames
    assert profile.locations[0].mapping_id == mapping

    labels = {profile.string(lb.key): lb for lb in profile.samples[0].labels}
    assert profile.string(labels["thread"].str_index) == "worker-1"
    assert labels["bytes"].num == 4096 and labels["bytes"].str_index == 0
    print("✅ Mapping and Label messages decode")


def test_empty_buffer_decodes_to_empty_profile():
    print("🧪 Testing empty input...")

    profile = decode_profile(b"")
    assert profile.samples == ()
    assert profile.string_table == ("",)
    print("✅ Empty input yields an empty profile")


def test_every_mid_field_truncation_raises():
    print("🧪 Testing truncation at every interior byte...")

    b = _order_builder()
    b.add_sample([1], 2**40, 1)
    parts = b.fields()
    data = b"".join(parts)

    boundaries = set()
    pos = 0
    for part in parts:
        pos += len(part)
        boundaries.add(pos)

    cuts = 0
    for cut in range(1, len(data)):
        if cut in boundaries:
            continue
        cuts += 1
        try:
            ProfileDecoder().decode(data[:cut])
        except ProfileDecodeError:
            continue
        assert False, f"truncation at byte {cut} of {len(data)} decoded without error"

    assert cuts > 50
    print(f"✅ All {cuts} interior cuts raise ProfileDecodeError")


def test_decompressed_size_limit():
    print("🧪 Testing decompressed size limit...")

    data = _order_builder().build(compress=True)
    try:
        ProfileDecoder(max_decompressed_bytes=16).decode(data)
        assert False, "size limit ignored"
    except ProfileDecodeError as e:
        assert e.code == "decompression_failed"
    print("✅ Oversized gzip payloads are refused")


def main():
    print("🔬 Testing hotpath ProfileDecoder")
    print("=" * 55)

    tests = [
        ("Entity Decoding", test_decodes_entities),
        ("Sample vs Declaration Line", test_sample_line_distinct_from_declaration_line),
        ("Packed vs Unpacked", test_packed_and_unpacked_agree),
        ("Gzip Input", test_gzip_input),
        ("Wide Values", test_wide_and_negative_values),
        ("Unknown Fields", test_unknown_fields_and_mismatched_wire_types_skipped),
        ("Corrupt Sub-message", test_corrupt_sub_message_is_dropped),
        ("Unresolved References", test_unresolved_references_are_not_fatal),
        ("String Table", test_string_table_must_start_empty),
        ("Mistyped String Entry", test_mistyped_string_entry_keeps_indices),
        ("Protobuf Agreement", test_agrees_with_protobuf_parse),
        ("Mappings and Labels", test_mappings_and_labels),
        ("Empty Input", test_empty_buffer_decodes_to_empty_profile),
        ("Truncation", test_every_mid_field_truncation_raises),
        ("Size Limit", test_decompressed_size_limit),
    ]

    passed = 0
    for test_name, test_func in tests:
        try:
            test_func()
            print(f"   ✅ PASS: {test_name}")
            passed += 1
        except Exception as e:
            print(f"❌ {test_name} crashed: {e}")
            import traceback
            traceback.print_exc()

    print(f"\nResults: {passed}/{len(tests)} tests passed")
    return passed == len(tests)


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
