"""
Tests for the templated flow rationale.
"""
from services.flow_assembler import assemble_segments
from services.flow_explainer import STATE_INTROS, generate_explanation
from services.polyvagal import TargetState, assign_sections


def test_wired_three_blocks(block_pool):
    segments = assemble_segments(assign_sections(block_pool[:3]), True, True)
    text = generate_explanation(TargetState.WIRED, segments)

    assert text.startswith(STATE_INTROS[TargetState.WIRED])
    assert "We're starting with Vagus Reset to gently orient your attention inward." in text
    assert "Building through 1 exercise chosen to help your system settle and ground." in text
    assert text.endswith("Closing with Self Havening to help your system settle.")


def test_plural_main(block_pool):
    segments = assemble_segments(assign_sections(block_pool[:6]), False, False)
    assert "Building through 4 exercises" in generate_explanation("glowing", segments)


def test_single_block_has_no_warm_up_or_closing(block_pool):
    segments = assemble_segments(assign_sections(block_pool[:1]), False, False)
    text = generate_explanation(TargetState.SHUTDOWN, segments)
    assert "starting with" not in text
    assert "Closing with" not in text
    assert "slowly build upward arousal" in text


def test_unknown_state_reads_as_steady(block_pool):
    segments = assemble_segments(assign_sections(block_pool[:3]), False, False)
    assert generate_explanation("mystery", segments) == generate_explanation(TargetState.STEADY, segments)
