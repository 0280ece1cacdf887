# resolver/source_resolver.py
"""
Go-to-source support: picks the local file that best matches a profiled
path, and a few pure helpers used when navigating into it. File discovery is
left to the caller; everything here works on strings already in hand.
"""
import posixpath
import re
from typing import Dict, Iterable, List, Optional, Sequence

from ..schemas import FileMetrics, LocationMetrics, ProfileData, SourceMatch
from ..utils.logger import get_logger

log = get_logger("SourceResolver")

GENERIC_SEGMENTS = {"usr", "src", "app", "go", "code", "workspace"}
CONTAINER_PREFIXES = ["/usr/src/app", "/app", "/go/src", "/src", "/code", "/workspace"]

_RX_RECEIVER = re.compile(r"\(\*?(\w+)\)\.")
_RX_METHOD = re.compile(r"\([^)]+\)\.(\w+)")

EDITOR_LINE_MAX = 2**31 - 1

HINT_SEGMENT_SCORE = 100
HINT_SUBSTRING_SCORE = 50
TRAILING_SEGMENT_SCORE = 10
SHARED_SEGMENT_SCORE = 5


def _segments(path: str) -> List[str]:
    return [p for p in path.replace("\\", "/").split("/") if p]


def _basename(path: str) -> str:
    parts = _segments(path)
    return parts[-1] if parts else ""


def _add_hint(hints: List[str], hint: str, source: str) -> None:
    if hint and hint not in hints:
        hints.append(hint)
        log.debug(f"Extracted {source} hint: {hint!r}")


def extract_hints(profiled_path: str, function_name: Optional[str] = None,
                  sibling_functions: Iterable[str] = ()) -> List[str]:
    """Service/package name hints, in priority order, lowercased."""
    hints: List[str] = []

    parts = _segments(profiled_path)
    for i, part in enumerate(parts[:-1]):
        if part.lower() in GENERIC_SEGMENTS:
            continue
        if "service" in part.lower() or i == len(parts) - 2:
            _add_hint(hints, part.lower(), "path")

    if function_name:
        m = _RX_RECEIVER.search(function_name)
        if m:
            _add_hint(hints, m.group(1).lower(), "receiver")
        elif "/" in function_name:
            package = function_name.rsplit("/", 1)[-1].split(".")[0].lower()
            if package != "main":
                _add_hint(hints, package, "package")

    if not hints:
        for name in sibling_functions:
            m = _RX_RECEIVER.search(name)
            if m:
                _add_hint(hints, m.group(1).lower(), f"sibling function {name}")

    return hints


def score_candidate(profiled_path: str, candidate: str, hints: Sequence[str]) -> int:
    score = 0
    lowered = candidate.replace("\\", "/").lower()

    hint_score = 0
    for hint in hints:
        if f"/{hint}/" in lowered:
            hint_score = HINT_SEGMENT_SCORE
            break
        if hint in lowered:
            hint_score = HINT_SUBSTRING_SCORE
    score += hint_score

    profile_parts = _segments(profiled_path)
    candidate_parts = _segments(candidate)
    trailing = 0
    for a, b in zip(reversed(profile_parts), reversed(candidate_parts)):
        if a != b:
            break
        trailing += 1
    score += trailing * TRAILING_SEGMENT_SCORE

    candidate_set = set(candidate_parts)
    score += SHARED_SEGMENT_SCORE * sum(1 for part in profile_parts if part in candidate_set)
    return score


def score(profiled_path: str, function_name: Optional[str], candidates: Sequence[str],
          sibling_functions: Iterable[str] = ()) -> Optional[SourceMatch]:
    """Best-scoring candidate sharing the profiled basename, or None.

    Ties keep the earlier candidate.
    """
    basename = _basename(profiled_path)
    pool = [c for c in candidates if _basename(c) == basename]
    if not pool:
        log.info(f"No candidates named {basename!r} for {profiled_path}")
        return None

    hints = extract_hints(profiled_path, function_name, sibling_functions)
    log.info(f"{len(pool)} candidates for {basename}; hints: {hints}")

    best: Optional[str] = None
    best_score = 0
    for candidate in pool:
        s = score_candidate(profiled_path, candidate, hints)
        log.debug(f"  {candidate}: score={s}")
        if s > best_score:
            best, best_score = candidate, s

    if best is None:
        return None
    log.info(f"Best match: {best} (score: {best_score})")
    return SourceMatch(path=best, score=best_score, hints=hints)


def sibling_function_names(profile: ProfileData, profiled_path: str) -> List[str]:
    return [fn.name for fn in profile.top_functions if fn.file_name == profiled_path]


# --------------------------------------------------------------------------- #
# Profile lookups by local path
# --------------------------------------------------------------------------- #
def match_file_metrics(profile: ProfileData, local_path: str) -> Optional[FileMetrics]:
    """FileMetrics for a local path: exact key, else same basename scored by directory overlap."""
    exact = profile.file_metrics.get(local_path)
    if exact is not None:
        return exact

    basename = _basename(local_path)
    local_parts = _segments(local_path)
    local_parent = local_parts[-2].lower() if len(local_parts) > 1 else None

    best: Optional[FileMetrics] = None
    best_score = 0
    for key, metrics in profile.file_metrics.items():
        if _basename(key) != basename:
            continue
        key_parts = _segments(key)
        s = 10 + SHARED_SEGMENT_SCORE * sum(1 for part in local_parts if part in key_parts)
        key_parent = key_parts[-2].lower() if len(key_parts) > 1 else None
        if local_parent and key_parent and local_parent == key_parent:
            s += 50
        if s > best_score:
            best, best_score = metrics, s

    if best is not None:
        log.info(f"Matched {local_path} to profile file {best.file_name} (score: {best_score})")
    return best


def line_metrics_for(profile: ProfileData, local_path: str, line: int) -> Optional[LocationMetrics]:
    metrics = match_file_metrics(profile, local_path)
    return metrics.line_metrics.get(line) if metrics else None


# --------------------------------------------------------------------------- #
# Navigation helpers
# --------------------------------------------------------------------------- #
def editor_line(line: int) -> int:
    """Narrow a 1-based profile line to a 0-based editor line.

    This is the one place a 64-bit line number becomes a display-sized int;
    call it only when handing a position to an editor.
    """
    return min(max(line - 1, 0), EDITOR_LINE_MAX)


def simple_function_name(function_name: str) -> str:
    """``main.(*checkoutService).PlaceOrder`` -> ``PlaceOrder``; ``pkg.Func`` -> ``Func``."""
    m = _RX_METHOD.search(function_name)
    if m:
        return m.group(1)
    return function_name.rsplit(".", 1)[-1]


def find_function_line(source_text: str, function_name: str) -> Optional[int]:
    """1-based line of a Go function declaration in ``source_text``, if found."""
    name = re.escape(simple_function_name(function_name))
    patterns = [
        rf"func\s+\([^)]+\)\s+{name}\s*\(",
        rf"func\s+{name}\s*\(",
        rf"\b{name}\s*=\s*func\s*\(",
        rf"\b{name}\b.*func",
    ]
    for pattern in patterns:
        m = re.search(pattern, source_text, re.M)
        if m:
            return source_text.count("\n", 0, m.start()) + 1
    log.warning(f"Could not find function {function_name!r} in source")
    return None


def suggest_path_mappings(profile_paths: Iterable[str], workspace_root: str) -> Dict[str, str]:
    """Map recognised container prefixes found in profile paths onto ``workspace_root``."""
    mappings: Dict[str, str] = {}
    for path in profile_paths:
        for prefix in CONTAINER_PREFIXES:
            if path == prefix or path.startswith(prefix + "/"):
                mappings[prefix] = workspace_root
                break
    return mappings


def apply_path_mapping(path: str, mappings: Dict[str, str]) -> str:
    """Rewrite ``path`` with the longest matching prefix mapping."""
    for prefix in sorted(mappings, key=len, reverse=True):
        if path == prefix or path.startswith(prefix + "/"):
            return posixpath.join(mappings[prefix], path[len(prefix):].lstrip("/"))
    return path
