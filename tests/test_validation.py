"""Command validation and per-option cost accounting."""

import pytest

from coordinator import MAX_VOTE_WEIGHT, CommandLimits, CostMode, StateLeaf, validate_command
from coordinator.validation import (
    INSUFFICIENT_BALANCE,
    NONCE_ERROR,
    SIGNATURE_ERROR,
    STATE_INDEX_OVERFLOW,
    VOTE_OPTION_OVERFLOW,
    VOTE_WEIGHT_OVERFLOW,
)
from zk import MerkleTree

from conftest import make_command

LINEAR = CommandLimits(num_sign_ups=4, max_vote_options=5, max_state_leaves=25)
QUADRATIC = CommandLimits(num_sign_ups=4, max_vote_options=5, cost_mode=CostMode.QUADRATIC,
                          max_state_leaves=25)


@pytest.fixture
def leaf(voters):
    return StateLeaf(pub_key=voters[0].pub_key, balance=100, vo_tree=MerkleTree(1))


class TestCostMode:

    def test_costs(self):
        assert CostMode.LINEAR.cost(7) == 7
        assert CostMode.QUADRATIC.cost(7) == 49

    def test_from_flag(self):
        assert CostMode.from_flag(True) is CostMode.QUADRATIC
        assert CostMode.from_flag(False) is CostMode.LINEAR


class TestValidateCommand:

    def test_valid_command(self, voters, leaf):
        result = validate_command(make_command(voters[0], 0, 1, 10, 1), leaf, 0, LINEAR)
        assert result.is_valid
        assert result.reason is None
        assert result.new_balance == 90

    def test_state_index_overflow(self, voters, leaf):
        result = validate_command(make_command(voters[0], 5, 1, 1, 1), leaf, 0, LINEAR)
        assert result.reason == STATE_INDEX_OVERFLOW

    def test_state_index_equal_to_sign_ups_passes_range_check(self, voters, leaf):
        result = validate_command(make_command(voters[0], 4, 1, 1, 1), leaf, 0, LINEAR)
        assert result.is_valid

    def test_state_index_beyond_capacity(self, voters, leaf):
        limits = CommandLimits(num_sign_ups=25, max_vote_options=5, max_state_leaves=25)
        result = validate_command(make_command(voters[0], 25, 1, 1, 1), leaf, 0, limits)
        assert result.reason == STATE_INDEX_OVERFLOW

    def test_vote_option_overflow(self, voters, leaf):
        result = validate_command(make_command(voters[0], 0, 5, 1, 1), leaf, 0, LINEAR)
        assert result.reason == VOTE_OPTION_OVERFLOW

    def test_nonce_error(self, voters, leaf):
        result = validate_command(make_command(voters[0], 0, 1, 10, 2), leaf, 0, LINEAR)
        assert result.reason == NONCE_ERROR
        # The candidate balance is still reported
        assert result.new_balance == 90

    def test_signature_error(self, voters, leaf):
        result = validate_command(make_command(voters[1], 0, 1, 1, 1), leaf, 0, LINEAR)
        assert result.reason == SIGNATURE_ERROR

    def test_vote_weight_overflow(self, voters, leaf):
        command = make_command(voters[0], 0, 1, MAX_VOTE_WEIGHT, 1)
        assert validate_command(command, leaf, 0, LINEAR).reason == VOTE_WEIGHT_OVERFLOW

    def test_insufficient_balance(self, voters, leaf):
        result = validate_command(make_command(voters[0], 0, 1, 101, 1), leaf, 0, LINEAR)
        assert result.reason == INSUFFICIENT_BALANCE
        assert result.new_balance == -1

    def test_exact_balance_is_enough(self, voters, leaf):
        assert validate_command(make_command(voters[0], 0, 1, 100, 1), leaf, 0, LINEAR).is_valid

    def test_first_failure_wins(self, voters, leaf):
        command = make_command(voters[1], 9, 7, 500, 3)
        assert validate_command(command, leaf, 0, LINEAR).reason == STATE_INDEX_OVERFLOW

    def test_quadratic_refund(self, voters):
        # Weight 16 already on the option; its 256 credits come back before 625 are charged
        leaf = StateLeaf(pub_key=voters[0].pub_key, balance=1000, vo_tree=MerkleTree(1))
        leaf.vo_tree.update(0, 16)
        result = validate_command(make_command(voters[0], 0, 0, 25, 1), leaf, 16, QUADRATIC)
        assert result.is_valid
        assert result.new_balance == 631

    def test_quadratic_insufficient(self, voters):
        leaf = StateLeaf(pub_key=voters[0].pub_key, balance=99, vo_tree=MerkleTree(1))
        result = validate_command(make_command(voters[0], 0, 0, 10, 1), leaf, 0, QUADRATIC)
        assert result.reason == INSUFFICIENT_BALANCE
