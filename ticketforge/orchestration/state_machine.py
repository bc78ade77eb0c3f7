"""
State machine for ticket generation runs.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from ticketforge.core.logging import get_logger

logger = get_logger(__name__)


class StateTransitionError(Exception):
    """Invalid state transition."""
    pass


class GenerationState(str, Enum):
    """Steps of one generation run."""

    CACHE_CHECK = "cache_check"
    STRATEGY_SELECT = "strategy_select"
    AI_REASONING = "ai_reasoning"
    RENDER = "render"
    DIRECT_RENDER = "direct_render"
    CACHE_STORE = "cache_store"
    EMERGENCY_FALLBACK = "emergency_fallback"
    RETURNED = "returned"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StateData:
    """One visited state."""

    state: str
    entered_at: datetime = field(default_factory=_now)
    data: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class StateMachine:
    """
    Generic state machine: a set of states and the allowed moves between them.
    """

    def __init__(
        self,
        states: list[str],
        initial_state: str,
        final_states: list[str],
        transitions: dict[str, list[str]],
    ) -> None:
        """
        Initialize the state machine.

        Args:
            states: List of valid states
            initial_state: Starting state
            final_states: Terminal states
            transitions: Valid transitions {from_state: [to_states]}
        """
        self.states = set(states)
        self.initial_state = initial_state
        self.final_states = set(final_states)
        self.transitions = transitions

        if initial_state not in self.states:
            raise ValueError(f"Initial state '{initial_state}' not in states")
        for final in final_states:
            if final not in self.states:
                raise ValueError(f"Final state '{final}' not in states")

    def can_transition(self, from_state: str, to_state: str) -> bool:
        """Check if transition is valid."""
        return to_state in self.transitions.get(from_state, [])

    def get_next_states(self, current_state: str) -> list[str]:
        """Get valid next states from current state."""
        return self.transitions.get(current_state, [])

    def is_final(self, state: str) -> bool:
        """Check if state is a final state."""
        return state in self.final_states


@dataclass
class GenerationRun:
    """
    Progress of one generation through its state machine.
    """

    machine: StateMachine
    cache_key: str
    current_state: str = ""
    history: list[StateData] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.current_state:
            self.current_state = self.machine.initial_state
        self.history.append(StateData(state=self.current_state))

    def advance(self, state: GenerationState, **data: Any) -> None:
        """
        Move to the next state.

        Raises:
            StateTransitionError: If the machine does not allow the move
        """
        target = state.value
        if not self.machine.can_transition(self.current_state, target):
            raise StateTransitionError(f"Cannot move from '{self.current_state}' to '{target}'")
        self.current_state = target
        self.history.append(StateData(state=target, data=data))

    def fail(self, error: str) -> None:
        """Record an error against the current state."""
        self.history[-1].error = error
        logger.debug("Generation step failed", state=self.current_state, error=error)

    @property
    def trace(self) -> list[str]:
        return [entry.state for entry in self.history]

    @property
    def finished(self) -> bool:
        return self.machine.is_final(self.current_state)


GENERATION_STATES = [state.value for state in GenerationState]

_E = GenerationState.EMERGENCY_FALLBACK.value

GENERATION_TRANSITIONS = {
    "cache_check": ["strategy_select", "returned", _E],
    "strategy_select": ["ai_reasoning", "direct_render", _E],
    "ai_reasoning": ["render", "direct_render", _E],
    "render": ["cache_store", "direct_render", _E],
    "direct_render": ["cache_store", _E],
    "cache_store": ["returned"],
    "emergency_fallback": ["returned"],
    "returned": [],
}


def create_generation_state_machine() -> StateMachine:
    """Create state machine for ticket generation."""
    return StateMachine(
        states=GENERATION_STATES,
        initial_state=GenerationState.CACHE_CHECK.value,
        final_states=[GenerationState.RETURNED.value],
        transitions=GENERATION_TRANSITIONS,
    )
