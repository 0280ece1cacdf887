# analysis/call_tree.py
"""
Call-path-sensitive call tree.

Nodes live in a flat arena (``self.nodes``) and refer to each other by index:
children are index lists, the parent is a plain index. Identity for lookup is
``(file, Function.start_line, function name)`` under a given parent, so the
same function reached through two different callers yields two nodes. The
output model (``CallTree``) keeps the arena shape.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from .metrics import ValueScale
from ..decoder.entities import Frame
from ..schemas import CallTree, CallTreeNode
from ..utils.config import get_settings
from ..utils.logger import get_logger

log = get_logger("CallTreeBuilder")

NodeKey = Tuple[str, int, str]   # (file, declaration line, function name)


@dataclass
class _Node:
    key: NodeKey
    parent: Optional[int]
    self_raw: int = 0
    total_raw: int = 0
    samples: int = 0
    invocations: int = 0
    children: List[int] = field(default_factory=list)


def frame_key(frame: Frame) -> NodeKey:
    return (frame.file_name, frame.start_line, frame.function_name)


class CallTreeBuilder:

    def __init__(self, *, max_stack_depth: Optional[int] = None):
        self.nodes: List[_Node] = []
        self.roots: List[int] = []
        self._index: Dict[Tuple[Optional[int], NodeKey], int] = {}
        self.max_stack_depth = max_stack_depth or get_settings().max_stack_depth
        self.truncated_stacks = 0

    def _child(self, parent: Optional[int], key: NodeKey) -> int:
        node_id = self._index.get((parent, key))
        if node_id is None:
            node_id = len(self.nodes)
            self.nodes.append(_Node(key=key, parent=parent))
            self._index[(parent, key)] = node_id
            if parent is None:
                self.roots.append(node_id)
            else:
                self.nodes[parent].children.append(node_id)
        return node_id

    def parent(self, node_id: int) -> Optional[int]:
        return self.nodes[node_id].parent

    def add_stack(self, frames: Sequence[Frame], value: int) -> None:
        """Add one sample's resolved frames (innermost first) carrying ``value``.

        A stack deeper than ``max_stack_depth`` keeps its outermost frames. Its
        innermost frame is gone, so no kept node receives self time for it.
        """
        if not frames:
            return
        top_down = list(reversed(frames))
        truncated = len(top_down) > self.max_stack_depth
        if truncated:
            self.truncated_stacks += 1
            top_down = top_down[:self.max_stack_depth]

        current: Optional[int] = None
        for frame in top_down:
            key = frame_key(frame)
            if current is not None and self.nodes[current].key == key:
                continue   # direct recursion folds into the node already on the path
            node_id = self._child(current, key)
            node = self.nodes[node_id]
            node.total_raw += value
            node.samples += 1
            if current is not None:
                node.invocations += 1
            current = node_id

        if not truncated:
            self.nodes[current].self_raw += value

    def finalize(self, scale: ValueScale) -> CallTree:
        """Percentages, descending total-time ordering, and the flat output model."""
        if self.truncated_stacks:
            log.warning(f"{self.truncated_stacks} stacks deeper than {self.max_stack_depth} frames were truncated")

        def by_total(node_id: int) -> int:
            return -self.nodes[node_id].total_raw

        for node in self.nodes:
            node.children.sort(key=by_total)
        self.roots.sort(key=by_total)

        nodes = []
        for node_id, node in enumerate(self.nodes):
            file_name, line, function_name = node.key
            nodes.append(CallTreeNode(
                id=node_id,
                parent_id=node.parent,
                function_name=function_name,
                file_name=file_name,
                line=line,
                self_time=scale.time(node.self_raw),
                total_time=scale.time(node.total_raw),
                self_percent=scale.percent(node.self_raw),
                total_percent=scale.percent(node.total_raw),
                samples=node.samples,
                invocations=node.invocations,
                children=list(node.children),
            ))

        log.info(f"Built call tree with {len(nodes)} nodes and {len(self.roots)} roots")
        return CallTree(nodes=nodes, roots=list(self.roots))


def walk(tree: CallTree) -> Iterator[Tuple[int, CallTreeNode]]:
    """Depth-first ``(depth, node)`` pairs in presentation order."""
    stack = [(0, node_id) for node_id in reversed(tree.roots)]
    while stack:
        depth, node_id = stack.pop()
        node = tree.nodes[node_id]
        yield depth, node
        stack.extend((depth + 1, child) for child in reversed(node.children))
