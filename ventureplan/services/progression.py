"""
Step progression state machine for a guided module.

A module's position is either "on step i" (0 <= i < step_count) or DONE.
Transitions are pure functions returning ``(new_state, outcome)``:

    next:      step i   -> step i+1          outcome "advanced"
               last     -> DONE              outcome "completed"
               DONE     -> ValidationError
    previous:  step i   -> step i-1          outcome "moved_back"
               step 0   -> step 0            outcome "leave_module"
               DONE     -> last step         outcome "moved_back"

module_service applies the resulting state to the database row.
"""

from __future__ import annotations

from dataclasses import dataclass

from ventureplan.core.exceptions import ValidationError

ADVANCED = "advanced"
COMPLETED = "completed"
UPDATED = "updated"
MOVED_BACK = "moved_back"
LEAVE_MODULE = "leave_module"
ENTERED = "entered"


@dataclass(frozen=True)
class ProgressState:
    index: int = 0
    completed: bool = False

    @classmethod
    def done(cls) -> "ProgressState":
        return cls(index=-1, completed=True)

    @classmethod
    def at(cls, index: int) -> "ProgressState":
        if index < 0:
            raise ValidationError(f"Step index must be >= 0, got {index}")
        return cls(index=index, completed=False)


def next_state(state: ProgressState, step_count: int) -> tuple[ProgressState, str]:
    if step_count < 1:
        raise ValidationError("Module has no configured steps")
    if state.completed:
        raise ValidationError("Module is already past its last step")
    if state.index >= step_count - 1:
        return ProgressState.done(), COMPLETED
    return ProgressState.at(state.index + 1), ADVANCED


def previous_state(state: ProgressState, step_count: int) -> tuple[ProgressState, str]:
    if step_count < 1:
        raise ValidationError("Module has no configured steps")
    if state.completed:
        return ProgressState.at(step_count - 1), MOVED_BACK
    if state.index == 0:
        return state, LEAVE_MODULE
    return ProgressState.at(min(state.index, step_count) - 1), MOVED_BACK


def state_for(module, step_ids: list[str]) -> ProgressState:
    """Derive the position of ``module`` given its ordered step ids.

    A current_step_id that is not among ``step_ids`` is treated as "no
    current step": DONE for a completed module, the first step otherwise.
    """
    current = module.current_step_id
    if current and current in step_ids:
        return ProgressState.at(step_ids.index(current))
    if module.status == "completed":
        return ProgressState.done()
    return ProgressState.at(0)
