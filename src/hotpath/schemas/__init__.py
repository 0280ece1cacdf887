"""
hotpath.schemas  •  Pydantic-v2 output contracts
------------------------------------------------
These classes are the model handed to every consumer of a decoded profile
(HTTP layer, CLI, report tables, editor integrations).  Field names are part
of the JSON contract; bump `SCHEMA_VERSION` when changing them.

Times are nanoseconds, percentages are 0-100 of the profile duration, and
line numbers are full-width Python ints (1-based, as recorded in the profile).
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

SCHEMA_VERSION = "2.0.0"


# --------------------------------------------------------------------------- #
# 🔸 Enumerations
# --------------------------------------------------------------------------- #
class SampleValueKind(str, Enum):
    """What ``Sample.value[0]`` measures, decided once per profile."""
    COUNT       = "count"
    NANOSECONDS = "nanoseconds"


# --------------------------------------------------------------------------- #
# 🔸 Heat-map metrics (keyed by sample line)
# --------------------------------------------------------------------------- #
class _Frozen(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class SourceLocation(_Frozen):
    file_name: str
    function_name: str
    line: int                                 = Field(..., description="Sample line (Line.line)")


class LocationMetrics(_Frozen):
    location: SourceLocation
    self_time: float
    total_time: float
    self_percent: float
    total_percent: float
    samples: int


class FunctionMetrics(_Frozen):
    name: str
    file_name: str
    start_line: int                           = Field(..., description="Declaration line (Function.start_line)")
    self_time: float
    total_time: float
    self_percent: float
    total_percent: float
    samples: int


class FileMetrics(_Frozen):
    file_name: str
    total_time: float
    total_percent: float
    line_metrics: Dict[int, LocationMetrics]  = Field(default_factory=dict, description="Ordered by line")
    top_functions: List[FunctionMetrics]      = Field(default_factory=list)


# --------------------------------------------------------------------------- #
# 🔸 Call tree (keyed by declaration line)
# --------------------------------------------------------------------------- #
class CallTreeNode(_Frozen):
    id: int                                   = Field(..., ge=0, description="Index into CallTree.nodes")
    parent_id: Optional[int]                  = None
    function_name: str
    file_name: str
    line: int                                 = Field(..., description="Declaration line (Function.start_line)")
    self_time: float
    total_time: float
    self_percent: float
    total_percent: float
    samples: int
    invocations: int
    children: List[int]                       = Field(default_factory=list, description="Child ids, descending total time")


class CallTree(_Frozen):
    """Flat node arena. ``nodes[i].id == i``; edges are ids, so depth never nests the JSON."""
    nodes: List[CallTreeNode]                 = Field(default_factory=list)
    roots: List[int]                          = Field(default_factory=list, description="Root ids, descending total time")

    def node(self, node_id: int) -> CallTreeNode:
        return self.nodes[node_id]

    def root_nodes(self) -> List[CallTreeNode]:
        return [self.nodes[i] for i in self.roots]

    def children_of(self, node: CallTreeNode) -> List[CallTreeNode]:
        return [self.nodes[i] for i in node.children]


# --------------------------------------------------------------------------- #
# 🔸 Top-level output model
# --------------------------------------------------------------------------- #
class Diagnostics(_Frozen):
    skipped_fields: int                       = 0
    unresolved_frames: int                    = 0
    truncated_stacks: int                     = 0


class ProfileData(_Frozen):
    schema_version: Literal["2.0.0"]          = Field(default=SCHEMA_VERSION)
    total_samples: int
    duration_ns: int
    period: int                               = Field(..., description="Sampling period as recorded")
    sample_rate_hz: float
    sample_type: str                          = Field(..., examples=["cpu"])
    sample_unit: str                          = Field(..., examples=["nanoseconds"])
    value_kind: SampleValueKind
    time_nanos: int                           = 0
    comments: List[str]                       = Field(default_factory=list)
    file_metrics: Dict[str, FileMetrics]      = Field(default_factory=dict)
    top_functions: List[FunctionMetrics]      = Field(default_factory=list)
    call_tree: CallTree                       = Field(default_factory=CallTree)
    diagnostics: Diagnostics                  = Field(default_factory=Diagnostics)


# --------------------------------------------------------------------------- #
# 🔸 Source resolution payloads
# --------------------------------------------------------------------------- #
class ResolveRequest(BaseModel):
    """Inbound object for /sources/resolve."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    profiled_path: str                        = Field(..., examples=["/usr/src/app/src/checkoutservice/main.go"])
    function_name: Optional[str]              = Field(None, examples=["main.(*checkoutService).PlaceOrder"])
    candidates: List[str]                     = Field(default_factory=list)
    sibling_functions: List[str]              = Field(
        default_factory=list,
        description="Other function names recorded for the same profiled file",
    )


class SourceMatch(BaseModel):
    """Outbound object returned by /sources/resolve."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    path: str
    score: int
    hints: List[str]                          = Field(default_factory=list)


