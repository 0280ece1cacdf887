# decoder/entities.py
"""
Decoded pprof entity set.

Ids are unsigned 64-bit, line numbers and sample values are signed 64-bit.
Python ints carry both without narrowing; the only narrowing conversion in
the package is ``resolver.source_resolver.editor_line``.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..wire.errors import UnresolvedReference
from ..utils.logger import get_logger

log = get_logger("ProfileDecoder")


@dataclass(frozen=True)
class ValueType:
    type: int = 0   # string index, e.g. "cpu"
    unit: int = 0   # string index, e.g. "nanoseconds"


@dataclass(frozen=True)
class Label:
    key: int = 0
    str_index: int = 0
    num: int = 0
    num_unit: int = 0


@dataclass(frozen=True)
class Sample:
    location_ids: Tuple[int, ...] = ()   # innermost frame first
    values: Tuple[int, ...] = ()
    labels: Tuple[Label, ...] = ()


@dataclass(frozen=True)
class Mapping:
    id: int = 0
    memory_start: int = 0
    memory_limit: int = 0
    file_offset: int = 0
    filename: int = 0
    build_id: int = 0
    has_functions: bool = False
    has_filenames: bool = False
    has_line_numbers: bool = False
    has_inline_frames: bool = False


@dataclass(frozen=True)
class Line:
    function_id: int = 0
    line: int = 0      # sample line
    column: int = 0


@dataclass(frozen=True)
class Location:
    id: int = 0
    mapping_id: int = 0
    address: int = 0
    lines: Tuple[Line, ...] = ()   # inlined callees first, caller last
    is_folded: bool = False


@dataclass(frozen=True)
class Function:
    id: int = 0
    name: int = 0
    system_name: int = 0
    filename: int = 0
    start_line: int = 0   # declaration line


@dataclass(frozen=True)
class Profile:
    sample_types: Tuple[ValueType, ...] = ()
    samples: Tuple[Sample, ...] = ()
    mappings: Tuple[Mapping, ...] = ()
    locations: Tuple[Location, ...] = ()
    functions: Tuple[Function, ...] = ()
    string_table: Tuple[str, ...] = ("",)
    drop_frames: int = 0
    keep_frames: int = 0
    time_nanos: int = 0
    duration_nanos: int = 0
    period_type: Optional[ValueType] = None
    period: int = 0
    comments: Tuple[int, ...] = ()
    default_sample_type: int = 0
    skipped_fields: int = 0

    def string(self, index: int, default: str = "") -> str:
        if 0 <= index < len(self.string_table):
            return self.string_table[index]
        return default

    def index(self) -> "ProfileIndex":
        return ProfileIndex(self)


@dataclass(frozen=True)
class Frame:
    """One resolved stack frame (one ``Line`` of one ``Location``)."""
    file_name: str
    function_name: str
    sample_line: int
    start_line: int
    function_id: int


@dataclass
class ProfileIndex:
    """Id lookups and resolved frames for one decode invocation.

    Created per analysis pass and dropped with it; nothing here outlives the
    output model it helps build.
    """
    profile: Profile
    unresolved_frames: int = 0
    _locations: Dict[int, Location] = field(default_factory=dict, repr=False)
    _functions: Dict[int, Function] = field(default_factory=dict, repr=False)
    _frames: Dict[int, Tuple[Frame, ...]] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        for loc in self.profile.locations:
            self._locations[loc.id] = loc
        for fn in self.profile.functions:
            self._functions[fn.id] = fn

    def location(self, location_id: int) -> Location:
        try:
            return self._locations[location_id]
        except KeyError:
            raise UnresolvedReference("location", location_id, context="profile.location") from None

    def function(self, function_id: int) -> Function:
        try:
            return self._functions[function_id]
        except KeyError:
            raise UnresolvedReference("function", function_id, context="profile.function") from None

    def frames(self, location_id: int) -> Tuple[Frame, ...]:
        """Resolved frames for a location, innermost first; unresolvable lines dropped."""
        cached = self._frames.get(location_id)
        if cached is not None:
            return cached

        frames: List[Frame] = []
        try:
            loc = self.location(location_id)
        except UnresolvedReference as e:
            log.debug(f"Dropping frame: {e}")
            self.unresolved_frames += 1
        else:
            for line in loc.lines:
                try:
                    fn = self.function(line.function_id)
                except UnresolvedReference as e:
                    log.debug(f"Dropping inlined frame of location {location_id}: {e}")
                    self.unresolved_frames += 1
                    continue
                frames.append(Frame(
                    file_name=self.profile.string(fn.filename) or "unknown",
                    function_name=self.profile.string(fn.name) or "unknown",
                    sample_line=line.line,
                    start_line=fn.start_line,
                    function_id=fn.id,
                ))

        result = tuple(frames)
        self._frames[location_id] = result
        return result

    def stack(self, sample: Sample) -> List[Frame]:
        """All resolved frames of a sample, innermost first."""
        out: List[Frame] = []
        for location_id in sample.location_ids:
            out.extend(self.frames(location_id))
        return out
