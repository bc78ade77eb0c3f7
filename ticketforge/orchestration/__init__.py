"""
Orchestration module for generation runs.
"""

from ticketforge.orchestration.state_machine import (
    GenerationRun,
    GenerationState,
    StateData,
    StateMachine,
    StateTransitionError,
    create_generation_state_machine,
)

__all__ = [
    "StateMachine",
    "StateData",
    "StateTransitionError",
    "GenerationState",
    "GenerationRun",
    "create_generation_state_machine",
]
