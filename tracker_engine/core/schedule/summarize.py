from __future__ import annotations

from typing import Iterable

from tracker_engine.core.model import BlockPlacement, ScheduledBlock, ScheduleSummary, ScheduleWindow
from tracker_engine.core.schedule.interval_math import derive_end


EMPTY_SUMMARY = ScheduleSummary(count=0, total_minutes=0, start=None, end=None)


def summarize_blocks(blocks: Iterable[ScheduledBlock]) -> dict[str, ScheduleSummary]:
    """Fold blocks into one summary per item.

    start/end are the outer envelope over all of an item's blocks, so separate
    sessions count as one busy span for dependency timing.
    """
    placements: dict[str, list[BlockPlacement]] = {}
    for block in blocks:
        end = derive_end(block.start_at, block.duration_minutes)
        assert end is not None
        placements.setdefault(block.item_id, []).append(
            BlockPlacement(
                block_id=block.id,
                item_id=block.item_id,
                start_at=block.start_at,
                duration_minutes=block.duration_minutes,
                end_at=end,
            )
        )

    out: dict[str, ScheduleSummary] = {}
    for item_id, item_blocks in placements.items():
        ordered = sorted(item_blocks, key=lambda b: (b.start_at, b.block_id))
        out[item_id] = ScheduleSummary(
            count=len(ordered),
            total_minutes=sum(b.duration_minutes for b in ordered),
            start=min(b.start_at for b in ordered),
            end=max(b.end_at for b in ordered),
            blocks=ordered,
        )
    return out


def summary_for(summaries: dict[str, ScheduleSummary], item_id: str) -> ScheduleSummary:
    return summaries.get(item_id, EMPTY_SUMMARY)


def windows_from(summaries: dict[str, ScheduleSummary]) -> dict[str, ScheduleWindow]:
    return {item_id: s.window for item_id, s in summaries.items()}
