"""Single-command state transitions."""

import pytest

from babyjub import encrypt_odevity
from coordinator import CommandLimits, StateLeaf, apply_command
from coordinator.state import STATE_TREE_ZERO
from coordinator.validation import (
    DEACTIVATED,
    EMPTY_COMMAND,
    INACTIVE,
    NONCE_ERROR,
    VOTE_OPTION_OVERFLOW,
)
from zk import MerkleTree

from conftest import make_command

LIMITS = CommandLimits(num_sign_ups=4, max_vote_options=5, max_state_leaves=25)


@pytest.fixture
def leaf(voters):
    return StateLeaf(pub_key=voters[0].pub_key, balance=100, vo_tree=MerkleTree(1))


@pytest.fixture
def deactivated_leaf(voters, coordinator):
    flag = encrypt_odevity(True, coordinator.pub_key, 1234)
    return StateLeaf(pub_key=voters[0].pub_key, balance=100, vo_tree=MerkleTree(1),
                     d1=flag.c1, d2=flag.c2)


class TestStateLeaf:

    def test_empty_leaf_hash_is_tree_zero(self):
        assert StateLeaf.empty(1).hash() == STATE_TREE_ZERO

    def test_vote_root_committed_after_first_vote(self, leaf):
        assert leaf.as_circuit_leaf()[3] == 0
        leaf.voted = True
        assert leaf.as_circuit_leaf()[3] == leaf.vo_tree.root

    def test_dict_round_trip(self, leaf):
        leaf.vo_tree.update(2, 9)
        leaf.voted = True
        restored = StateLeaf.from_dict(leaf.to_dict(), 1)
        assert restored.hash() == leaf.hash()
        assert restored.vo_tree.leaves() == leaf.vo_tree.leaves()
        assert restored.pub_key == leaf.pub_key


class TestApplyCommand:

    def test_accepted(self, voters, coordinator, leaf):
        new_key = voters[1].pub_key
        command = make_command(voters[0], 0, 2, 30, 1, new_pub_key=new_key)
        result = apply_command(leaf, command, 0, coordinator.formatted_priv_key, LIMITS)

        assert result.accepted
        assert result.reason is None
        assert result.leaf.pub_key == new_key
        assert result.leaf.balance == 70
        assert result.leaf.nonce == 1
        assert result.leaf.voted
        assert result.leaf.vo_tree.leaf(2) == 30
        assert (result.leaf.d1, result.leaf.d2) == (leaf.d1, leaf.d2)

        # The input leaf is left alone
        assert leaf.vo_tree.leaf(2) == 0
        assert leaf.nonce == 0

    def test_rejected_leaf_is_identical_copy(self, voters, coordinator, leaf):
        command = make_command(voters[0], 0, 2, 30, 5)
        result = apply_command(leaf, command, 0, coordinator.formatted_priv_key, LIMITS)

        assert not result.accepted
        assert result.reason == NONCE_ERROR
        assert result.leaf == leaf
        assert result.leaf is not leaf
        assert result.leaf.hash() == leaf.hash()

    def test_empty_command(self, coordinator, leaf):
        result = apply_command(leaf, None, 0, coordinator.formatted_priv_key, LIMITS)
        assert result.reason == EMPTY_COMMAND
        assert result.leaf == leaf

    def test_inactive_account(self, voters, coordinator, leaf):
        command = make_command(voters[0], 0, 2, 30, 1)
        result = apply_command(leaf, command, 3, coordinator.formatted_priv_key, LIMITS)
        assert not result.accepted
        assert result.reason == INACTIVE

    def test_deactivated_flag(self, voters, coordinator, deactivated_leaf):
        command = make_command(voters[0], 0, 2, 30, 1)
        result = apply_command(deactivated_leaf, command, 0, coordinator.formatted_priv_key, LIMITS)
        assert result.reason == DEACTIVATED

    def test_even_flag_is_live(self, voters, coordinator):
        flag = encrypt_odevity(False, coordinator.pub_key, 1234)
        leaf = StateLeaf(pub_key=voters[0].pub_key, balance=100, vo_tree=MerkleTree(1),
                         d1=flag.c1, d2=flag.c2)
        command = make_command(voters[0], 0, 2, 30, 1)
        assert apply_command(leaf, command, 0, coordinator.formatted_priv_key, LIMITS).accepted

    def test_index_error_reported_before_inactive(self, voters, coordinator, leaf):
        command = make_command(voters[0], 0, 5, 30, 1)
        result = apply_command(leaf, command, 1, coordinator.formatted_priv_key, LIMITS)
        assert result.reason == VOTE_OPTION_OVERFLOW

    def test_inactive_reported_before_deactivated(self, voters, coordinator, deactivated_leaf):
        command = make_command(voters[0], 0, 2, 30, 1)
        result = apply_command(deactivated_leaf, command, 1, coordinator.formatted_priv_key, LIMITS)
        assert result.reason == INACTIVE

    def test_deactivated_reported_before_nonce(self, voters, coordinator, deactivated_leaf):
        command = make_command(voters[0], 0, 2, 30, 9)
        result = apply_command(deactivated_leaf, command, 0, coordinator.formatted_priv_key, LIMITS)
        assert result.reason == DEACTIVATED

    def test_vote_option_beyond_tree_capacity(self, voters, coordinator, leaf):
        command = make_command(voters[0], 0, 40, 1, 1)
        result = apply_command(leaf, command, 0, coordinator.formatted_priv_key, LIMITS)
        assert result.reason == VOTE_OPTION_OVERFLOW
