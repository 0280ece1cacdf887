"""
Mock Profile Generator

Builds pprof profiles from Python calls, for tests and demos. The profile is
assembled as ``profile.proto`` messages and serialized by protobuf itself, so
decoder tests run against bytes from an independent encoder. Strings are
interned into the string table (index 0 is always "").
"""

import gzip
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .profile_messages import MSG, REP, SCHEMA, STR, profile_messages
from ..utils.logger import get_logger

log = get_logger("MockProfile")


class ProfileBuilder:
    """Incremental pprof encoder.

    ``packed=False`` writes repeated scalars one tag per value, the
    older encoding some producers still emit.
    """

    def __init__(self, sample_type: str = "cpu", unit: str = "nanoseconds", *, packed: bool = True):
        self.pb = profile_messages(packed)
        self.packed = packed
        self.profile = self.pb.Profile()
        self._string_index: Dict[str, int] = {}
        self.string("")
        self.add_sample_type(sample_type, unit)
        self._next_function_id = 1
        self._next_location_id = 1
        self._next_mapping_id = 1
        self.duration_nanos = 0
        self.time_nanos = 0
        self.period = 0
        self.period_type: Optional[Tuple[str, str]] = None
        self.comments: List[str] = []

    def string(self, s: str) -> int:
        i = self._string_index.get(s)
        if i is None:
            i = len(self.profile.string_table)
            self._string_index[s] = i
            self.profile.string_table.append(s)
        return i

    def add_sample_type(self, sample_type: str, unit: str) -> None:
        self.profile.sample_type.append(self.pb.ValueType(type=self.string(sample_type), unit=self.string(unit)))

    def add_mapping(self, memory_start: int, memory_limit: int, filename: str,
                    build_id: str = "", has_functions: bool = True) -> int:
        mapping_id = self._next_mapping_id
        self._next_mapping_id += 1
        self.profile.mapping.append(self.pb.Mapping(
            id=mapping_id,
            memory_start=memory_start,
            memory_limit=memory_limit,
            filename=self.string(filename),
            build_id=self.string(build_id),
            has_functions=has_functions,
            has_filenames=has_functions,
            has_line_numbers=has_functions,
        ))
        return mapping_id

    def add_function(self, name: str, filename: str, start_line: int,
                     system_name: Optional[str] = None, function_id: Optional[int] = None) -> int:
        if function_id is None:
            function_id = self._next_function_id
        self._next_function_id = max(self._next_function_id, function_id + 1)
        self.profile.function.append(self.pb.Function(
            id=function_id,
            name=self.string(name),
            system_name=self.string(system_name or name),
            filename=self.string(filename),
            start_line=start_line,
        ))
        return function_id

    def add_location(self, lines: Sequence[Tuple[int, int]], address: int = 0,
                     location_id: Optional[int] = None, mapping_id: int = 0) -> int:
        """``lines`` is ``[(function_id, line), ...]``, inlined callee first."""
        if location_id is None:
            location_id = self._next_location_id
        self._next_location_id = max(self._next_location_id, location_id + 1)
        self.profile.location.append(self.pb.Location(
            id=location_id,
            mapping_id=mapping_id,
            address=address,
            line=[self.pb.Line(function_id=f, line=line) for f, line in lines],
        ))
        return location_id

    def add_sample(self, location_ids: Sequence[int], *values: int,
                   labels: Optional[Mapping[str, Union[str, int]]] = None) -> None:
        """``location_ids`` innermost first. String labels go to ``str``, ints to ``num``."""
        sample = self.pb.Sample(location_id=location_ids, value=values)
        for key, value in (labels or {}).items():
            if isinstance(value, str):
                sample.label.add(key=self.string(key), str=self.string(value))
            else:
                sample.label.add(key=self.string(key), num=value)
        self.profile.sample.append(sample)

    def message(self):
        """The complete ``Profile`` message, trailing scalars applied."""
        # intern trailing strings before copying so the table is complete
        period_type = tuple(self.string(s) for s in self.period_type) if self.period_type else None
        comments = [self.string(c) for c in self.comments]

        msg = self.pb.Profile()
        msg.CopyFrom(self.profile)
        msg.time_nanos = self.time_nanos
        msg.duration_nanos = self.duration_nanos
        msg.period = self.period
        if period_type:
            msg.period_type.CopyFrom(self.pb.ValueType(type=period_type[0], unit=period_type[1]))
        msg.comment.extend(comments)
        return msg

    def fields(self) -> List[bytes]:
        """Serialized top-level fields in wire order, one entry per tag-delimited unit.

        Joining the list gives ``build()``; every boundary between entries is a
        point where a truncated profile is still well formed.
        """
        msg = self.message()
        parts = []
        for name, _number, field_type, label, _message in SCHEMA["Profile"]:
            value = getattr(msg, name)
            if label == REP:
                if field_type in (MSG, STR) or not self.packed:
                    items = [[item] for item in value]
                else:
                    items = [list(value)] if value else []
                for chunk in items:
                    part = self.pb.Profile()
                    getattr(part, name).extend(chunk)
                    parts.append(part.SerializeToString())
            elif field_type == MSG:
                if msg.HasField(name):
                    part = self.pb.Profile()
                    getattr(part, name).CopyFrom(value)
                    parts.append(part.SerializeToString())
            elif value:
                parts.append(self.pb.Profile(**{name: value}).SerializeToString())
        return parts

    def build(self, *, compress: bool = False) -> bytes:
        raw = self.message().SerializeToString()
        return gzip.compress(raw) if compress else raw


def create_sample_profile(output_path: Path) -> Path:
    """
    Write a small count-valued CPU profile to ``output_path`` (gzip).

    Mirrors a typical checkout service: eight functions in one file with a
    skewed sample distribution, 10s duration at 100Hz.
    """
    builder = ProfileBuilder(sample_type="samples", unit="count")
    builder.duration_nanos = 10 * 10**9
    builder.period = 10_000_000
    builder.period_type = ("cpu", "nanoseconds")

    hot_spots = [
        ("processOrder", 45, 3450),
        ("validateInput", 67, 1230),
        ("calculateTotal", 89, 1870),
        ("fetchData", 123, 980),
        ("parseJSON", 156, 710),
        ("writeLog", 178, 450),
        ("formatOutput", 201, 320),
        ("cleanup", 234, 150),
    ]
    for name, line, count in hot_spots:
        fn = builder.add_function(name, "/path/to/sample.go", line)
        loc = builder.add_location([(fn, line)])
        builder.add_sample([loc], count)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(builder.build(compress=True))
    log.info(f"Created {output_path} ({output_path.stat().st_size} bytes)")
    return output_path
