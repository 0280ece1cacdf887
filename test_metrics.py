#!/usr/bin/env python3
"""
Tests for MetricsAggregator: line heat-map metrics, value-unit scaling and
function-level self/total accounting.
"""

import os
import sys
import pathlib

os.environ.setdefault("HOTPATH_LOG_TO_FILE", "false")

# Add src to path so we can import hotpath modules
sys.path.insert(0, str(pathlib.Path(__file__).parent / "src"))

try:
    from hotpath.analysis.metrics import MetricsAggregator, ValueScale, classify_value_kind
    from hotpath.datasets.mock_profile import ProfileBuilder
    from hotpath.decoder.profile_decoder import decode_profile
    from hotpath.schemas import SampleValueKind
except ImportError as e:
    print(f"❌ Failed to import hotpath modules: {e}")
    print("Make sure you're running this from the project root directory.")
    sys.exit(1)


def _aggregate(builder):
    profile = decode_profile(builder.build())
    return MetricsAggregator(profile, default_period_ns=10_000_000).aggregate()


def test_count_profile_percentages_sum_to_100():
    """Single-frame stacks: every sample lands on exactly one line."""
    print("🧪 Testing count-mode percentages...")

    b = ProfileBuilder(sample_type="samples", unit="count")
    b.duration_nanos = 10 * 10**9
    hot = [("a", 10, 12, 3450), ("b", 20, 25, 1230), ("c", 30, 31, 1870), ("d", 40, 44, 980)]
    for name, decl, line, count in hot:
        fn = b.add_function(name, "/svc/main.go", decl)
        b.add_sample([b.add_location([(fn, line)])], count)

    result = _aggregate(b)
    total = sum(count for *_, count in hot)

    assert result.scale.kind is SampleValueKind.COUNT
    assert result.scale.total_samples == total
    assert result.scale.duration_ns == 10 * 10**9

    fm = result.file_metrics["/svc/main.go"]
    percent_sum = sum(m.total_percent for m in fm.line_metrics.values())
    assert abs(percent_sum - 100.0) < 1e-6, percent_sum
    assert abs(fm.total_percent - 100.0) < 1e-6
    assert abs(fm.total_time - 10 * 10**9) < 1.0

    m = fm.line_metrics[12]
    assert m.samples == 3450
    assert abs(m.total_percent - 3450 / total * 100) < 1e-9
    assert abs(m.self_time - 3450 * 10 * 10**9 / total) < 1e-3
    assert m.self_time == m.total_time
    print(f"✅ Line percentages sum to {percent_sum:.6f}%")


def test_count_profile_without_duration_uses_period():
    print("🧪 Testing count-mode duration fallback...")

    b = ProfileBuilder(sample_type="samples", unit="count")
    b.period = 1_000_000
    fn = b.add_function("f", "/f.go", 1)
    b.add_sample([b.add_location([(fn, 2)])], 40)
    result = _aggregate(b)

    assert result.scale.duration_ns == 40 * 1_000_000
    assert result.file_metrics["/f.go"].line_metrics[2].total_time == 40 * 1_000_000
    print("✅ Duration falls back to samples × period")


def test_nanosecond_profile():
    print("🧪 Testing nanosecond-valued profile...")

    b = ProfileBuilder(sample_type="cpu", unit="nanoseconds")
    b.period = 10_000_000
    f = b.add_function("f", "/f.go", 5)
    g = b.add_function("g", "/f.go", 50)
    b.add_sample([b.add_location([(f, 6)])], 30_000_000)
    b.add_sample([b.add_location([(g, 51)])], 10_000_000)
    result = _aggregate(b)

    assert result.scale.kind is SampleValueKind.NANOSECONDS
    assert result.scale.duration_ns == 40_000_000
    assert result.scale.total_samples == 2

    lines = result.file_metrics["/f.go"].line_metrics
    assert lines[6].total_time == 30_000_000
    assert lines[6].total_percent == 75.0
    assert lines[6].samples == 3
    assert lines[51].samples == 1
    assert list(lines) == [6, 51]
    print("✅ Nanosecond values are used directly as time")


def test_line_keyed_by_sample_line():
    print("🧪 Testing line key is the sample line...")

    b = ProfileBuilder()
    fn = b.add_function("processOrder", "/app/order.go", 1094)
    b.add_sample([b.add_location([(fn, 1100)])], 1)
    result = _aggregate(b)

    lines = result.file_metrics["/app/order.go"].line_metrics
    assert 1100 in lines and 1094 not in lines
    assert lines[1100].location.function_name == "processOrder"
    assert lines[1100].location.line == 1100
    print("✅ Line metrics land on Line.line, not the declaration")


def test_recursive_stack_counts_line_once():
    print("🧪 Testing per-sample line dedupe...")

    b = ProfileBuilder(sample_type="samples", unit="count")
    b.duration_nanos = 10**9
    fn = b.add_function("walk", "/t.go", 10)
    loc = b.add_location([(fn, 12)])
    b.add_sample([loc, loc, loc], 4)
    result = _aggregate(b)

    m = result.file_metrics["/t.go"].line_metrics[12]
    assert m.samples == 4
    assert abs(m.total_percent - 100.0) < 1e-9
    print("✅ A line repeated in one stack is counted once")


def test_function_self_and_total():
    print("🧪 Testing function-level self/total...")

    b = ProfileBuilder(sample_type="samples", unit="count")
    b.duration_nanos = 10**9
    inner = b.add_function("inner", "/a.go", 10)
    outer = b.add_function("outer", "/b.go", 20)
    inner_loc = b.add_location([(inner, 12)])
    outer_loc = b.add_location([(outer, 22)])
    b.add_sample([inner_loc, outer_loc], 5)
    b.add_sample([outer_loc], 5)
    result = _aggregate(b)

    by_name = {fn.name: fn for fn in result.top_functions}
    assert by_name["inner"].self_percent == 50.0
    assert by_name["inner"].total_percent == 50.0
    assert by_name["outer"].self_percent == 50.0
    assert by_name["outer"].total_percent == 100.0
    assert by_name["outer"].start_line == 20
    assert result.top_functions[0].name == "outer"

    assert [fn.name for fn in result.file_metrics["/a.go"].top_functions] == ["inner"]
    assert list(result.file_metrics) == ["/b.go", "/a.go"]
    print("✅ Self is innermost-frame only, total counts each stack once")


def test_indirect_recursion_counts_function_once():
    """a -> b -> a: a appears twice on the stack but its total takes the value once."""
    print("🧪 Testing indirect recursion in function totals...")

    b = ProfileBuilder(sample_type="samples", unit="count")
    b.duration_nanos = 10**9
    fa = b.add_function("a", "/r.go", 10)
    fb = b.add_function("b", "/r.go", 20)
    inner_a = b.add_location([(fa, 12)])
    call_b = b.add_location([(fb, 22)])
    outer_a = b.add_location([(fa, 14)])
    b.add_sample([inner_a, call_b, outer_a], 4)
    b.add_sample([call_b, outer_a], 1)
    result = _aggregate(b)

    by_name = {fn.name: fn for fn in result.top_functions}
    assert by_name["a"].total_percent == 100.0
    assert by_name["a"].samples == 5
    assert abs(by_name["a"].self_percent - 80.0) < 1e-9
    assert by_name["b"].total_percent == 100.0
    assert abs(by_name["b"].self_percent - 20.0) < 1e-9
    print("✅ A function re-entered through a callee counts once per sample")


def test_inlined_frames_expand():
    print("🧪 Testing inlined frames within one location...")

    b = ProfileBuilder(sample_type="samples", unit="count")
    b.duration_nanos = 10**9
    callee = b.add_function("callee", "/x.go", 100)
    caller = b.add_function("caller", "/x.go", 200)
    loc = b.add_location([(callee, 101), (caller, 205)])
    b.add_sample([loc], 3)
    result = _aggregate(b)

    lines = result.file_metrics["/x.go"].line_metrics
    assert set(lines) == {101, 205}
    by_name = {fn.name: fn for fn in result.top_functions}
    assert by_name["callee"].self_percent == 100.0
    assert by_name["caller"].self_percent == 0.0
    print("✅ Each Line of a location becomes its own frame")


def test_empty_profile():
    print("🧪 Testing empty profile...")

    result = _aggregate(ProfileBuilder(sample_type="", unit=""))
    assert result.file_metrics == {}
    assert result.top_functions == []
    assert result.sample_type == "samples"
    assert result.sample_unit == "count"
    assert result.scale.percent(0) == 0.0
    assert result.scale.time(0) == 0.0
    print("✅ No samples means no metrics and no division by zero")


def test_value_kind_classification():
    print("🧪 Testing unit classification...")

    assert classify_value_kind("nanoseconds") is SampleValueKind.NANOSECONDS
    assert classify_value_kind("Nanoseconds") is SampleValueKind.NANOSECONDS
    assert classify_value_kind("count") is SampleValueKind.COUNT
    assert classify_value_kind("bytes") is SampleValueKind.COUNT

    scale = ValueScale(SampleValueKind.COUNT, total_value=10, duration_ns=10**9, total_samples=10, period=10**8)
    assert scale.time(5) == 5e8
    assert scale.percent(5) == 50.0
    print("✅ Units map to the right value kind")


def main():
    print("🔬 Testing hotpath MetricsAggregator")
    print("=" * 55)

    tests = [
        ("Count Percentages", test_count_profile_percentages_sum_to_100),
        ("Duration Fallback", test_count_profile_without_duration_uses_period),
        ("Nanosecond Profile", test_nanosecond_profile),
        ("Sample Line Key", test_line_keyed_by_sample_line),
        ("Line Dedupe", test_recursive_stack_counts_line_once),
        ("Function Self/Total", test_function_self_and_total),
        ("Indirect Recursion", test_indirect_recursion_counts_function_once),
        ("Inlined Frames", test_inlined_frames_expand),
        ("Empty Profile", test_empty_profile),
        ("Value Kind", test_value_kind_classification),
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
