"""
Venture Plan Workbench
Tests — module catalog and progression state machine.

Covers:
    - Static step configuration per module type
    - Unknown module / step types raise ConfigurationError
    - Module ordering (next / previous module)
    - next_state / previous_state / state_for transitions
"""

import pytest

from ventureplan.core.exceptions import ConfigurationError, ValidationError
from ventureplan.module_catalog import (
    MODULES_CONFIG,
    ModuleType,
    get_module_config,
    get_next_module,
    get_previous_module,
    get_step_config,
    list_module_types,
    parse_module_type,
)
from ventureplan.services import progression
from ventureplan.services.progression import ProgressState, next_state, previous_state, state_for


# ═════════════════════════════════════════════════════════════════════════════
# CATALOG
# ═════════════════════════════════════════════════════════════════════════════

class TestCatalog:
    def test_every_module_type_is_configured(self):
        assert set(MODULES_CONFIG) == set(ModuleType)
        for definition in MODULES_CONFIG.values():
            assert definition.steps, definition.module_type

    def test_vision_problem_steps_in_order(self):
        cfg = get_module_config("vision-problem")
        assert cfg.step_types == ["vision", "problem", "solution"]

    def test_accepts_enum_or_string(self):
        assert get_module_config(ModuleType.PITCH_DECK) is get_module_config("pitch-deck")

    def test_step_types_unique_within_module(self):
        for definition in list_module_types():
            assert len(set(definition.step_types)) == len(definition.step_types)

    def test_unknown_module_type_raises(self):
        with pytest.raises(ConfigurationError):
            get_module_config("unknown-module")
        with pytest.raises(ConfigurationError):
            parse_module_type("")

    def test_get_step_config(self):
        step = get_step_config("market-analysis", "market-size")
        assert step.title == "Market Size"
        with pytest.raises(ConfigurationError):
            get_step_config("market-analysis", "vision")

    def test_module_order(self):
        ordered = [d.module_type for d in list_module_types()]
        assert ordered[0] == ModuleType.VISION_PROBLEM
        assert ordered[-1] == ModuleType.PITCH_DECK
        assert get_next_module("vision-problem").module_type == ModuleType.MARKET_ANALYSIS
        assert get_previous_module("vision-problem") is None
        assert get_next_module("pitch-deck") is None
        assert get_previous_module("market-analysis").module_type == ModuleType.VISION_PROBLEM

    def test_to_dict_shape(self):
        d = get_module_config("vision-problem").to_dict()
        assert d["module_type"] == "vision-problem"
        assert [s["step_type"] for s in d["steps"]] == ["vision", "problem", "solution"]
        assert isinstance(d["steps"][0]["expert_tips"], list)


# ═════════════════════════════════════════════════════════════════════════════
# PROGRESSION
# ═════════════════════════════════════════════════════════════════════════════

class _FakeModule:
    def __init__(self, current_step_id=None, status="draft"):
        self.current_step_id = current_step_id
        self.status = status


class TestProgression:
    def test_next_advances_until_last_step(self):
        state = ProgressState.at(0)
        state, outcome = next_state(state, 3)
        assert (state.index, outcome) == (1, progression.ADVANCED)
        state, outcome = next_state(state, 3)
        assert (state.index, outcome) == (2, progression.ADVANCED)
        state, outcome = next_state(state, 3)
        assert state.completed
        assert outcome == progression.COMPLETED

    def test_next_on_completed_state_is_rejected(self):
        with pytest.raises(ValidationError):
            next_state(ProgressState.done(), 3)

    def test_next_without_steps_is_rejected(self):
        with pytest.raises(ValidationError):
            next_state(ProgressState.at(0), 0)

    def test_previous_from_first_step_leaves_module(self):
        state = ProgressState.at(0)
        new_state, outcome = previous_state(state, 3)
        assert new_state == state
        assert outcome == progression.LEAVE_MODULE

    def test_previous_moves_back(self):
        new_state, outcome = previous_state(ProgressState.at(2), 3)
        assert (new_state.index, outcome) == (1, progression.MOVED_BACK)

    def test_previous_from_completed_returns_to_last_step(self):
        new_state, outcome = previous_state(ProgressState.done(), 3)
        assert new_state.index == 2
        assert not new_state.completed
        assert outcome == progression.MOVED_BACK

    def test_state_for_uses_current_step(self):
        module = _FakeModule(current_step_id="b", status="in_progress")
        assert state_for(module, ["a", "b", "c"]).index == 1

    def test_state_for_stale_step_falls_back_to_first(self):
        module = _FakeModule(current_step_id="gone", status="in_progress")
        assert state_for(module, ["a", "b", "c"]).index == 0

    def test_state_for_completed_module(self):
        module = _FakeModule(current_step_id=None, status="completed")
        assert state_for(module, ["a", "b", "c"]).completed
