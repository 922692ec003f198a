from datetime import datetime, timedelta, timezone

from tracker_engine.core.model import ScheduledBlock
from tracker_engine.core.schedule.summarize import EMPTY_SUMMARY, summarize_blocks, summary_for, windows_from

T0 = datetime(2026, 3, 2, tzinfo=timezone.utc)


def at(minutes):
    return T0 + timedelta(minutes=minutes)


def test_summary_is_outer_envelope_over_blocks():
    blocks = [
        ScheduledBlock(id="b2", item_id="A", start_at=at(300), duration_minutes=30),
        ScheduledBlock(id="b1", item_id="A", start_at=at(0), duration_minutes=60),
        ScheduledBlock(id="b3", item_id="B", start_at=at(10), duration_minutes=5),
    ]
    summaries = summarize_blocks(blocks)

    a = summaries["A"]
    assert a.count == 2
    assert a.total_minutes == 90
    assert a.start == at(0)
    assert a.end == at(330)
    assert [b.block_id for b in a.blocks] == ["b1", "b2"]
    assert a.blocks[0].end_at == at(60)

    assert summaries["B"].window.start == at(10)
    assert summaries["B"].window.end == at(15)


def test_blocks_with_same_start_order_by_id():
    blocks = [
        ScheduledBlock(id="z", item_id="A", start_at=at(0), duration_minutes=10),
        ScheduledBlock(id="a", item_id="A", start_at=at(0), duration_minutes=20),
    ]
    assert [b.block_id for b in summarize_blocks(blocks)["A"].blocks] == ["a", "z"]


def test_item_without_blocks_has_empty_summary():
    summaries = summarize_blocks([])
    s = summary_for(summaries, "missing")
    assert s is EMPTY_SUMMARY
    assert s.count == 0
    assert s.start is None and s.end is None
    assert windows_from(summaries) == {}
