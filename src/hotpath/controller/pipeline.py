# controller/pipeline.py
import asyncio
import pathlib
from typing import Union

from ..analysis.call_tree import CallTreeBuilder
from ..analysis.metrics import MetricsAggregator, sample_value
from ..decoder.entities import Profile
from ..decoder.profile_decoder import ProfileDecoder
from ..schemas import Diagnostics, ProfileData, SampleValueKind
from ..utils.config import get_settings
from ..utils.logger import get_logger
from ..wire.errors import CorruptProfile, ProfileDecodeError
from ..wire.reader import Buffer

log = get_logger("Pipeline")


def analyze(profile: Profile) -> ProfileData:
    """Run the metrics pass and the call-tree pass over one decoded profile."""
    settings = get_settings()
    index = profile.index()

    log.info("--- Aggregating line metrics ---")
    metrics = MetricsAggregator(profile, index, default_period_ns=settings.default_period_ns).aggregate()

    log.info("--- Building call tree ---")
    builder = CallTreeBuilder(max_stack_depth=settings.max_stack_depth)
    for sample in profile.samples:
        builder.add_stack(index.stack(sample), sample_value(sample))
    call_tree = builder.finalize(metrics.scale)

    top_functions = metrics.top_functions
    if settings.top_functions_limit:
        top_functions = top_functions[:settings.top_functions_limit]

    scale = metrics.scale
    period_unit = profile.string(profile.period_type.unit) if profile.period_type else ""
    if profile.period > 0 and (scale.kind is SampleValueKind.NANOSECONDS or "nanosecond" in period_unit.lower()):
        sample_rate_hz = 1e9 / profile.period
    else:
        sample_rate_hz = 1e9 / settings.default_period_ns

    return ProfileData(
        total_samples=scale.total_samples,
        duration_ns=scale.duration_ns,
        period=profile.period,
        sample_rate_hz=sample_rate_hz,
        sample_type=metrics.sample_type,
        sample_unit=metrics.sample_unit,
        value_kind=scale.kind,
        time_nanos=profile.time_nanos,
        comments=[profile.string(i) for i in profile.comments],
        file_metrics=metrics.file_metrics,
        top_functions=top_functions,
        call_tree=call_tree,
        diagnostics=Diagnostics(
            skipped_fields=profile.skipped_fields,
            unresolved_frames=index.unresolved_frames,
            truncated_stacks=builder.truncated_stacks,
        ),
    )


def decode(buffer: Buffer) -> ProfileData:
    """decode(buffer) -> output model. Raises ``ProfileDecodeError`` on fatal input."""
    log.info(f"=== Decoding profile buffer ({len(buffer)} bytes) ===")
    try:
        profile = ProfileDecoder().decode(buffer)
    except ProfileDecodeError as e:
        log.error(f"Decode failed [{e.code}]: {e}")
        raise
    except (ValueError, OverflowError, RecursionError) as e:
        log.error(f"Decode failed with {type(e).__name__}: {e}")
        raise CorruptProfile(f"Unrecoverable profile structure: {e}") from e

    data = analyze(profile)
    log.info(
        f"=== Decode complete: {data.total_samples} samples, {len(data.file_metrics)} files, "
        f"{len(data.call_tree.nodes)} call-tree nodes ==="
    )
    return data


def decode_file(path: Union[str, pathlib.Path]) -> ProfileData:
    return decode(pathlib.Path(path).read_bytes())


async def decode_async(buffer: Buffer) -> ProfileData:
    """Awaitable decode on a worker thread; cancelling the awaiting task drops the result."""
    return await asyncio.to_thread(decode, buffer)


async def load_profile(path: Union[str, pathlib.Path]) -> ProfileData:
    data = await asyncio.to_thread(pathlib.Path(path).read_bytes)
    return await decode_async(data)
