"""
Tests for block counting, segment interleaving and pre-start block swaps.
"""
import pytest

from services.block_store import Block
from services.flow_assembler import (
    BODY_SCAN_MIN_MINUTES,
    actual_duration_seconds,
    assemble_segments,
    body_scan_seconds,
    compute_block_count,
    swap_block,
    timeline_duration,
)
from services.polyvagal import assign_sections
from services.segments import Section, SegmentType


class TestComputeBlockCount:
    def test_ten_minutes_both_scans(self):
        # floor((600 - 120) / 80)
        assert compute_block_count(10, True, True) == 6

    def test_five_minutes_no_scans(self):
        assert compute_block_count(5, False, False) == 3

    def test_scans_ignored_below_eight_minutes(self):
        assert compute_block_count(7, True, True) == compute_block_count(7, False, False) == 5
        assert body_scan_seconds(7, True, True) == 0

    def test_scans_enabled_at_threshold(self):
        assert body_scan_seconds(BODY_SCAN_MIN_MINUTES, True, False) == 60
        assert compute_block_count(BODY_SCAN_MIN_MINUTES, True, False) == 5

    def test_minimum_one_block(self):
        assert compute_block_count(1, False, False) == 1

    def test_sixty_minutes(self):
        assert compute_block_count(60, True, True) == 43

    def test_actual_duration(self):
        assert actual_duration_seconds(120, 6) == 600
        assert actual_duration_seconds(0, 3) == 240


class TestAssembleSegments:
    def _sectioned(self, block_pool, n):
        return assign_sections(block_pool[:n])

    def test_interleave_with_both_scans(self, block_pool):
        segments = assemble_segments(self._sectioned(block_pool, 3), True, True)
        assert [s.type for s in segments] == [
            SegmentType.BODY_SCAN,
            SegmentType.MICRO_INTEGRATION, SegmentType.SOMI_BLOCK,
            SegmentType.MICRO_INTEGRATION, SegmentType.SOMI_BLOCK,
            SegmentType.MICRO_INTEGRATION, SegmentType.SOMI_BLOCK,
            SegmentType.BODY_SCAN,
        ]
        assert segments[0].section == Section.WARM_UP
        assert segments[-1].section == Section.INTEGRATION

    @pytest.mark.parametrize("n", [1, 2, 3, 7])
    @pytest.mark.parametrize("scan_start,scan_end", [(False, False), (True, False), (False, True), (True, True)])
    def test_block_always_preceded_by_matching_pause(self, block_pool, n, scan_start, scan_end):
        segments = assemble_segments(self._sectioned(block_pool, n), scan_start, scan_end)
        for i, segment in enumerate(segments):
            if segment.is_block:
                assert i > 0
                assert segments[i - 1].type == SegmentType.MICRO_INTEGRATION
                assert segments[i - 1].section == segment.section
            if segment.type == SegmentType.BODY_SCAN:
                assert i in (0, len(segments) - 1)

    def test_block_segments_carry_block_copy(self, block_pool):
        segments = assemble_segments(self._sectioned(block_pool, 1), False, False)
        block = segments[1]
        assert block.somi_block_id == block_pool[0].id
        assert block.canonical_name == block_pool[0].canonical_name
        assert block.duration_seconds == 60
        assert segments[0].duration_seconds == 20

    def test_duration_matches_formula(self, block_pool):
        segments = assemble_segments(self._sectioned(block_pool, 6), True, True)
        assert timeline_duration(segments) == actual_duration_seconds(120, 6)

    def test_empty_selection(self):
        assert assemble_segments([], False, False) == []

    def test_non_block_segments_serialise_without_block_fields(self, block_pool):
        segments = assemble_segments(self._sectioned(block_pool, 1), True, False)
        assert segments[0].to_dict() == {"type": "body_scan", "section": "warm_up", "duration_seconds": 60}
        assert segments[2].to_dict()["somi_block_id"] == block_pool[0].id


class TestSwapBlock:
    def test_swap_keeps_section(self, block_pool):
        segments = assemble_segments(assign_sections(block_pool[:3]), False, False)
        replacement = Block(id=99, canonical_name="humming_long", name="Long Humming")
        swapped = swap_block(segments, 1, replacement)

        assert swapped[1].somi_block_id == 99
        assert swapped[1].section == Section.WARM_UP
        assert segments[1].somi_block_id == block_pool[0].id
        assert swapped[2:] == segments[2:]

    def test_cannot_swap_pause(self, block_pool):
        segments = assemble_segments(assign_sections(block_pool[:3]), False, False)
        with pytest.raises(ValueError):
            swap_block(segments, 0, block_pool[4])

    def test_index_out_of_range(self, block_pool):
        segments = assemble_segments(assign_sections(block_pool[:1]), False, False)
        with pytest.raises(ValueError):
            swap_block(segments, 5, block_pool[4])
