"""
Tests for the generation state machine.
"""

import pytest

from ticketforge.orchestration.state_machine import (
    GenerationRun,
    GenerationState,
    StateMachine,
    StateTransitionError,
    create_generation_state_machine,
)


class TestStateMachine:
    """Tests for the generic StateMachine."""

    def test_invalid_initial_state(self):
        with pytest.raises(ValueError):
            StateMachine(states=["a"], initial_state="b", final_states=["a"], transitions={})

    def test_invalid_final_state(self):
        with pytest.raises(ValueError):
            StateMachine(states=["a"], initial_state="a", final_states=["z"], transitions={})

    def test_generation_transitions(self):
        machine = create_generation_state_machine()

        assert machine.initial_state == "cache_check"
        assert machine.can_transition("cache_check", "returned")
        assert machine.can_transition("ai_reasoning", "direct_render")
        assert not machine.can_transition("returned", "cache_check")
        assert not machine.can_transition("cache_check", "render")
        assert machine.get_next_states("cache_store") == ["returned"]
        assert machine.is_final("returned")


class TestGenerationRun:
    """Tests for GenerationRun."""

    def test_ai_path_trace(self):
        run = GenerationRun(machine=create_generation_state_machine(), cache_key="k")

        for state in (
            GenerationState.STRATEGY_SELECT,
            GenerationState.AI_REASONING,
            GenerationState.RENDER,
            GenerationState.CACHE_STORE,
            GenerationState.RETURNED,
        ):
            run.advance(state)

        assert run.finished
        assert run.trace == [
            "cache_check",
            "strategy_select",
            "ai_reasoning",
            "render",
            "cache_store",
            "returned",
        ]

    def test_illegal_move_raises(self):
        run = GenerationRun(machine=create_generation_state_machine(), cache_key="k")

        with pytest.raises(StateTransitionError):
            run.advance(GenerationState.CACHE_STORE)
        assert run.current_state == "cache_check"

    def test_fail_records_error_on_current_state(self):
        run = GenerationRun(machine=create_generation_state_machine(), cache_key="k")
        run.advance(GenerationState.STRATEGY_SELECT, strategy="ai")
        run.advance(GenerationState.AI_REASONING)

        run.fail("timeout")

        assert run.history[-1].error == "timeout"
        assert run.history[1].data == {"strategy": "ai"}
        assert not run.finished
