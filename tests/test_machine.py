"""Unit tests for machine.py module."""

import dataclasses
import math

import numpy as np
import pytest

from maybenot_defenses.config import U64_MAX
from maybenot_defenses.machine import Dist, DistType, Event, Machine, State


class TestDist:
    """Test Dist construction and validation."""

    def test_default_is_unset(self):
        dist = Dist()
        assert dist.kind is DistType.NONE
        assert not dist.is_set

    def test_fixed(self):
        dist = Dist.fixed(512.0)
        assert dist.kind is DistType.UNIFORM
        assert dist.param1 == dist.param2 == 512.0
        assert dist.is_set

    def test_normal_with_cap(self):
        dist = Dist.normal(10.0, 2.0, cap=20.0)
        assert dist.kind is DistType.NORMAL
        assert (dist.param1, dist.param2, dist.start, dist.max) == (10.0, 2.0, 0.0, 20.0)

    def test_infinite_parameters_allowed(self):
        dist = Dist.fixed(math.inf)
        assert dist.param1 == math.inf

    def test_nan_rejected(self):
        with pytest.raises(ValueError, match="NaN"):
            Dist.uniform(math.nan, 1.0)

    def test_negative_stdev_rejected(self):
        with pytest.raises(ValueError, match="non-negative standard deviation"):
            Dist.normal(1.0, -0.5)

    def test_parameters_stored_as_float(self):
        dist = Dist.uniform(1, 3)
        assert isinstance(dist.param1, float)
        assert isinstance(dist.param2, float)


class TestStateValidation:
    """Test State transition validation."""

    def test_valid_state(self):
        state = State(transitions={Event.PADDING_SENT: {1: 1.0}, Event.LIMIT_REACHED: {2: 1.0}})
        assert state.targets(Event.PADDING_SENT) == {1: 1.0}
        assert state.targets(Event.BLOCKING_END) == {}
        assert state.max_target == 2

    def test_probabilities_may_sum_below_one(self):
        state = State(transitions={Event.NON_PADDING_SENT: {0: 0.25}})
        assert state.targets(Event.NON_PADDING_SENT) == {0: 0.25}

    def test_probabilities_summing_above_one(self):
        with pytest.raises(ValueError, match="must not exceed 1.0"):
            State(transitions={Event.PADDING_RECV: {1: 0.6, 2: 0.5}})

    def test_probability_out_of_range(self):
        with pytest.raises(ValueError, match="must lie in \\[0, 1\\]"):
            State(transitions={Event.PADDING_RECV: {1: 1.5}})

    def test_negative_target(self):
        with pytest.raises(ValueError, match="non-negative index"):
            State(transitions={Event.PADDING_RECV: {-1: 1.0}})

    def test_non_event_key(self):
        with pytest.raises(TypeError, match="Event members"):
            State(transitions={"PaddingSent": {1: 1.0}})

    def test_transitions_are_copied(self):
        row = {1: 1.0}
        transitions = {Event.PADDING_SENT: row}
        state = State(transitions=transitions)
        row[2] = 0.5
        transitions[Event.LIMIT_REACHED] = {3: 1.0}
        assert state.transitions == {Event.PADDING_SENT: {1: 1.0}}

    def test_empty_state_has_no_targets(self):
        assert State().max_target == -1

    def test_state_is_frozen(self):
        state = State()
        with pytest.raises(dataclasses.FrozenInstanceError):
            state.bypass = True


class TestMachine:
    """Test Machine validation and derived views."""

    def _two_state_machine(self, **budgets):
        states = (
            State(transitions={Event.NON_PADDING_SENT: {1: 1.0}}),
            State(transitions={Event.PADDING_SENT: {1: 1.0}, Event.LIMIT_REACHED: {2: 1.0}}),
        )
        return Machine(states=states, **budgets)

    def test_end_index_is_state_count(self):
        machine = self._two_state_machine()
        assert len(machine) == 2
        assert machine.num_states == 2
        assert machine.end_index == 2

    def test_default_budgets(self):
        machine = self._two_state_machine()
        assert machine.allowed_padding_bytes == U64_MAX
        assert machine.max_padding_frac == 0.0
        assert machine.allowed_blocked_microsec == 0
        assert machine.max_blocking_frac == 0.0
        assert machine.include_small_packets is False

    def test_states_become_tuple(self):
        machine = Machine(states=[State()])
        assert isinstance(machine.states, tuple)

    def test_empty_machine(self):
        with pytest.raises(ValueError, match="at least one state"):
            Machine(states=())

    def test_target_past_end(self):
        with pytest.raises(ValueError, match="references index 3"):
            Machine(states=(State(transitions={Event.LIMIT_REACHED: {3: 1.0}}), State()))

    def test_self_loops_and_backward_references(self):
        states = (
            State(transitions={Event.NON_PADDING_SENT: {1: 1.0}}),
            State(transitions={Event.PADDING_SENT: {1: 1.0}, Event.NON_PADDING_SENT: {0: 0.5}}),
        )
        machine = Machine(states=states)
        assert machine.states[1].targets(Event.NON_PADDING_SENT) == {0: 0.5}

    def test_budget_out_of_range(self):
        with pytest.raises(ValueError, match="unsigned 64-bit"):
            self._two_state_machine(allowed_padding_bytes=U64_MAX + 1)
        with pytest.raises(ValueError, match="max_blocking_frac must lie in"):
            self._two_state_machine(max_blocking_frac=1.5)

    def test_transition_matrix(self):
        machine = self._two_state_machine()
        matrix = machine.transition_matrix(Event.LIMIT_REACHED)
        assert matrix.shape == (2, 3)
        expected = np.zeros((2, 3))
        expected[1, 2] = 1.0
        np.testing.assert_array_equal(matrix, expected)

    def test_transition_matrix_rows_bounded(self):
        machine = self._two_state_machine()
        for event in Event:
            assert np.all(machine.transition_matrix(event).sum(axis=1) <= 1.0)

    def test_machine_is_frozen(self):
        machine = self._two_state_machine()
        with pytest.raises(dataclasses.FrozenInstanceError):
            machine.states = ()
