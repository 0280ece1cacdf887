# analysis/metrics.py
"""
Per-line and per-function aggregation for heat maps.

Line metrics are keyed by ``(file, Line.line)``, the sampled line, never by
the function's declaration line. At line granularity self time equals total
time; the self/total split is the call tree's job.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..decoder.entities import Profile, ProfileIndex
from ..schemas import FileMetrics, FunctionMetrics, LocationMetrics, SampleValueKind, SourceLocation
from ..utils.config import get_settings
from ..utils.logger import get_logger

log = get_logger("MetricsAggregator")


def classify_value_kind(unit: str) -> SampleValueKind:
    return SampleValueKind.NANOSECONDS if "nanosecond" in unit.lower() else SampleValueKind.COUNT


def sample_value(sample) -> int:
    return sample.values[0] if sample.values else 0


@dataclass(frozen=True)
class ValueScale:
    """Converts raw ``Sample.value[0]`` sums into nanoseconds and percent."""
    kind: SampleValueKind
    total_value: int          # sum of value[0] over all samples
    duration_ns: int
    total_samples: int
    period: int               # effective period used for count estimates

    @classmethod
    def from_profile(cls, profile: Profile, *, default_period_ns: int) -> "ValueScale":
        unit = profile.string(profile.sample_types[0].unit) if profile.sample_types else ""
        kind = classify_value_kind(unit or "count")
        total_value = sum(sample_value(s) for s in profile.samples)
        period = profile.period if profile.period > 0 else default_period_ns

        if kind is SampleValueKind.NANOSECONDS:
            duration_ns = total_value
            total_samples = len(profile.samples)
        else:
            total_samples = total_value
            if profile.duration_nanos > 0:
                duration_ns = profile.duration_nanos
            else:
                duration_ns = total_value * period
        return cls(kind, total_value, duration_ns, total_samples, period)

    def time(self, raw: int) -> float:
        if self.kind is SampleValueKind.NANOSECONDS:
            return raw
        if self.total_samples == 0:
            return 0.0
        return raw * self.duration_ns / self.total_samples

    def percent(self, raw: int) -> float:
        denominator = self.duration_ns if self.kind is SampleValueKind.NANOSECONDS else self.total_samples
        if not denominator:
            return 0.0
        return raw / denominator * 100

    def sample_count(self, raw: int) -> int:
        if self.kind is SampleValueKind.COUNT:
            return raw
        return round(raw / self.period)


@dataclass
class _LineAcc:
    function_name: str
    raw: int = 0


@dataclass
class _FunctionAcc:
    self_raw: int = 0
    total_raw: int = 0


@dataclass
class MetricsResult:
    scale: ValueScale
    sample_type: str
    sample_unit: str
    file_metrics: Dict[str, FileMetrics] = field(default_factory=dict)
    top_functions: List[FunctionMetrics] = field(default_factory=list)


class MetricsAggregator:
    """Single pass over samples producing ``FileMetrics`` and ``FunctionMetrics``."""

    def __init__(self, profile: Profile, index: Optional[ProfileIndex] = None,
                 *, default_period_ns: Optional[int] = None):
        self.profile = profile
        self.index = index or profile.index()
        if default_period_ns is None:
            default_period_ns = get_settings().default_period_ns
        self.scale = ValueScale.from_profile(profile, default_period_ns=default_period_ns)

    def aggregate(self) -> MetricsResult:
        profile = self.profile
        sample_type = profile.string(profile.sample_types[0].type) if profile.sample_types else ""
        sample_unit = profile.string(profile.sample_types[0].unit) if profile.sample_types else ""
        sample_type = sample_type or "samples"
        sample_unit = sample_unit or "count"
        log.info(f"Sample type: {sample_type}, unit: {sample_unit}, values are {self.scale.kind.value}")

        lines: Dict[Tuple[str, int], _LineAcc] = {}
        functions: Dict[Tuple[str, str, int], _FunctionAcc] = {}

        for sample in profile.samples:
            value = sample_value(sample)
            stack = self.index.stack(sample)

            seen_lines = set()
            seen_functions = set()
            for depth, frame in enumerate(stack):
                line_key = (frame.file_name, frame.sample_line)
                if line_key not in seen_lines:
                    seen_lines.add(line_key)
                    acc = lines.get(line_key)
                    if acc is None:
                        acc = lines[line_key] = _LineAcc(frame.function_name)
                    acc.raw += value

                fn_key = (frame.file_name, frame.function_name, frame.start_line)
                fn_acc = functions.get(fn_key)
                if fn_acc is None:
                    fn_acc = functions[fn_key] = _FunctionAcc()
                if depth == 0:
                    fn_acc.self_raw += value
                if fn_key not in seen_functions:
                    seen_functions.add(fn_key)
                    fn_acc.total_raw += value

        top_functions = [self._function_metrics(key, acc) for key, acc in functions.items()]
        top_functions.sort(key=lambda m: m.total_time, reverse=True)

        result = MetricsResult(
            scale=self.scale,
            sample_type=sample_type,
            sample_unit=sample_unit,
            file_metrics=self._group_by_file(lines, top_functions),
            top_functions=top_functions,
        )
        log.info(
            f"Aggregated {len(lines)} lines across {len(result.file_metrics)} files, "
            f"{len(top_functions)} functions; duration {self.scale.duration_ns / 1e9:.2f}s"
        )
        return result

    def _function_metrics(self, key: Tuple[str, str, int], acc: _FunctionAcc) -> FunctionMetrics:
        file_name, name, start_line = key
        return FunctionMetrics(
            name=name,
            file_name=file_name,
            start_line=start_line,
            self_time=self.scale.time(acc.self_raw),
            total_time=self.scale.time(acc.total_raw),
            self_percent=self.scale.percent(acc.self_raw),
            total_percent=self.scale.percent(acc.total_raw),
            samples=self.scale.sample_count(acc.total_raw),
        )

    def _group_by_file(self, lines: Dict[Tuple[str, int], _LineAcc],
                       top_functions: List[FunctionMetrics]) -> Dict[str, FileMetrics]:
        per_file: Dict[str, Dict[int, LocationMetrics]] = {}
        for (file_name, line), acc in lines.items():
            time = self.scale.time(acc.raw)
            percent = self.scale.percent(acc.raw)
            per_file.setdefault(file_name, {})[line] = LocationMetrics(
                location=SourceLocation(file_name=file_name, function_name=acc.function_name, line=line),
                self_time=time,
                total_time=time,
                self_percent=percent,
                total_percent=percent,
                samples=self.scale.sample_count(acc.raw),
            )

        functions_by_file: Dict[str, List[FunctionMetrics]] = {}
        for fn in top_functions:
            functions_by_file.setdefault(fn.file_name, []).append(fn)

        files = []
        for file_name, line_map in per_file.items():
            ordered = dict(sorted(line_map.items()))
            files.append(FileMetrics(
                file_name=file_name,
                total_time=sum(m.total_time for m in ordered.values()),
                total_percent=sum(m.total_percent for m in ordered.values()),
                line_metrics=ordered,
                top_functions=functions_by_file.get(file_name, []),
            ))
        files.sort(key=lambda f: f.total_time, reverse=True)
        return {f.file_name: f for f in files}
