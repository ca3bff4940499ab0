"""Unit tests for regulator.py module."""

import pytest

from maybenot_defenses.config import U64_MAX, SynthesisConfig
from maybenot_defenses.fitting import decay_partition
from maybenot_defenses.machine import Event
from maybenot_defenses.regulator import (
    client_counter_probabilities,
    generate_client_machine,
    generate_regulator_machines,
    generate_relay_machine,
)

R, D, T, U, PPS = 277.0, 0.94, 3.55, 3.95, 10.0
FIRST_SEND = 11


class TestRelayMachine:
    """Test the relay-side RegulaTor layout."""

    @pytest.fixture(scope="class")
    def relay(self):
        return generate_relay_machine(PPS, R, D, T)

    def test_state_count(self, relay):
        assert relay.num_states == FIRST_SEND + len(decay_partition(PPS, R, D))
        assert SynthesisConfig().relay_send_offset == FIRST_SEND

    def test_start_and_block(self, relay):
        assert relay.states[0].transitions == {Event.NON_PADDING_SENT: {1: 1.0}}
        assert relay.states[1].transitions == {Event.BLOCKING_BEGIN: {2: 1.0}}
        assert relay.states[1].action_is_block

    def test_boot_states(self, relay):
        for index in range(2, FIRST_SEND):
            state = relay.states[index]
            assert state.targets(Event.PADDING_SENT) == {index: 1.0}
            assert state.targets(Event.NON_PADDING_SENT) == {index + 1: 1.0}
            assert state.timeout.param1 == 100000.0

    def test_first_send_state(self, relay):
        state = relay.states[FIRST_SEND]
        assert Event.NON_PADDING_SENT not in state.transitions
        assert state.targets(Event.LIMIT_REACHED) == {FIRST_SEND + 1: 1.0}
        assert state.limit.param1 == PPS

    def test_surge_reset(self, relay):
        for state in relay.states[FIRST_SEND + 1:]:
            rate = 1.0e6 / state.timeout.param1
            reset = state.targets(Event.NON_PADDING_SENT)
            assert list(reset) == [FIRST_SEND]
            assert reset[FIRST_SEND] == pytest.approx(min(1.0, 2.0 / (T * rate)))

    def test_send_timeouts_grow_as_rate_decays(self, relay):
        timeouts = [state.timeout.param1 for state in relay.states[FIRST_SEND:]]
        assert timeouts == sorted(timeouts)
        assert timeouts[0] > 1.0e6 / R

    def test_last_send_state(self, relay):
        last = relay.states[-1]
        assert last.targets(Event.LIMIT_REACHED) == {relay.end_index: 1.0}
        assert last.timeout.param1 == pytest.approx(1.0e6)

    def test_budgets(self, relay):
        assert relay.allowed_padding_bytes == U64_MAX
        assert relay.allowed_blocked_microsec == U64_MAX

    def test_slower_decay_needs_more_send_states(self):
        counts = [generate_relay_machine(PPS, R, decay, T).num_states for decay in (0.9, D, 0.98)]
        assert counts[0] < counts[1] < counts[2]

    def test_unreachable_first_interval(self):
        """A curve that never carries one state's packets yields a single SEND state."""
        relay = generate_relay_machine(100.0, 10.0, 0.5, T)
        assert relay.num_states == FIRST_SEND + 1
        last = relay.states[-1]
        assert Event.NON_PADDING_SENT not in last.transitions
        assert last.targets(Event.LIMIT_REACHED) == {relay.end_index: 1.0}
        assert last.timeout.param1 == pytest.approx(1.0e6)

    def test_invalid_arguments(self):
        with pytest.raises(ValueError, match="packets_per_state"):
            generate_relay_machine(0.0, R, D, T)
        with pytest.raises(ValueError, match="threshold"):
            generate_relay_machine(PPS, R, D, -1.0)
        with pytest.raises(ValueError, match="decay must lie in"):
            generate_relay_machine(PPS, R, 1.0, T)


class TestClientMachine:
    """Test the client-side RegulaTor counters."""

    def test_counter_probabilities(self):
        assert client_counter_probabilities(2.5) == [1.0, 1.0, 0.5]
        assert client_counter_probabilities(3.0) == [1.0, 1.0, 1.0]
        assert client_counter_probabilities(0.5) == [0.5]
        probabilities = client_counter_probabilities(U)
        assert len(probabilities) == 4
        assert probabilities[-1] == pytest.approx(0.05)

    def test_fractional_ratio(self):
        client = generate_client_machine(2.5)
        assert client.num_states == 4
        assert client.states[0].targets(Event.NON_PADDING_RECV) == {1: 1.0}
        assert client.states[1].targets(Event.PADDING_RECV) == {2: 1.0}
        assert client.states[2].targets(Event.PADDING_RECV) == {3: 0.5, 2: 0.5}
        assert client.states[2].targets(Event.LIMIT_REACHED) == {3: 1.0}
        assert client.states[3].transitions == {Event.PADDING_SENT: {0: 1.0}}

    def test_integer_ratio(self):
        client = generate_client_machine(2.0)
        assert client.num_states == 3
        for state in client.states[:2]:
            assert Event.LIMIT_REACHED not in state.transitions
        assert client.states[1].targets(Event.NON_PADDING_RECV) == {2: 1.0}

    def test_ratio_below_one(self):
        client = generate_client_machine(0.5)
        assert client.num_states == 2
        assert client.states[0].targets(Event.NON_PADDING_RECV) == {1: 0.5, 0: 0.5}

    def test_counters_block(self):
        client = generate_client_machine(U)
        for state in client.states[:-1]:
            assert state.action_is_block
            assert state.limit.param1 == 2.0
        assert not client.states[-1].action_is_block
        assert client.allowed_blocked_microsec == U64_MAX

    def test_invalid_ratio(self):
        with pytest.raises(ValueError, match="upload_ratio"):
            generate_client_machine(0.0)


class TestRegulatorPair:
    """Test the combined generator."""

    def test_order_is_relay_then_client(self):
        relay, client = generate_regulator_machines(R, D, T, U, PPS)
        assert relay.states[0].transitions == {Event.NON_PADDING_SENT: {1: 1.0}}
        assert client.num_states == 5
        assert relay.num_states > FIRST_SEND
