"""Key rotation for deactivated accounts."""

import pytest

from babyjub import ElGamalCiphertext, Keypair, decrypt_parity
from coordinator import (
    DeactivateLeafNotFoundError,
    DeactivateProcessor,
    KeyRotationService,
    MerkleInclusionError,
    MessageBatchProcessor,
    NullifierReusedError,
    PeriodError,
    RoundState,
    build_add_key_input,
    build_deactivate_payload,
    compute_nullifier,
)
from coordinator.key_rotation import NULLIFIER_DOMAIN
from coordinator.validation import INACTIVE
from config import CircuitConfig, RoundConfig
from zk import TreeFullError, compute_input_hash, poseidon

from conftest import publish, publish_deactivate, vote_message


def deactivate(state, coordinator, voter, state_idx):
    publish_deactivate(state, build_deactivate_payload(state_idx, voter, coordinator.pub_key))
    return DeactivateProcessor(state, coordinator).process()


@pytest.fixture
def deactivated_state(signed_up_state, coordinator, voters):
    deactivate(signed_up_state, coordinator, voters[0], 0)
    return signed_up_state


class TestKeyRotation:

    def test_rotation_allocates_fresh_leaf(self, deactivated_state, coordinator, voters):
        new_keypair = Keypair.generate(8080)
        result = KeyRotationService(deactivated_state).rotate_key(voters[0], new_keypair.pub_key)

        assert result.state_idx == 4
        assert deactivated_state.num_sign_ups == 5
        leaf = deactivated_state.leaf(4)
        assert leaf.pub_key == new_keypair.pub_key
        assert leaf.balance == 100
        assert leaf.nonce == 0
        assert list(leaf.d1) + list(leaf.d2) == result.d

        # The inherited flag is rerandomized but still even
        record = deactivated_state.deactivate_records[0]
        assert list(leaf.d1) != record[:2]
        flag = ElGamalCiphertext(leaf.d1, leaf.d2)
        assert decrypt_parity(coordinator.formatted_priv_key, flag) is False

    def test_nullifier(self, deactivated_state, voters):
        result = KeyRotationService(deactivated_state).rotate_key(voters[0], Keypair.generate(1).pub_key)
        expected = poseidon([voters[0].formatted_priv_key, NULLIFIER_DOMAIN])
        assert result.nullifier == expected == compute_nullifier(voters[0])
        assert expected in deactivated_state.nullifiers

    def test_nullifier_reuse_rejected(self, deactivated_state, voters):
        service = KeyRotationService(deactivated_state)
        service.rotate_key(voters[0], Keypair.generate(1).pub_key)
        with pytest.raises(NullifierReusedError):
            service.rotate_key(voters[0], Keypair.generate(2).pub_key)
        assert deactivated_state.num_sign_ups == 5

    def test_foreign_record_rejected(self, deactivated_state, coordinator, voters):
        deactivate(deactivated_state, coordinator, voters[1], 1)
        service = KeyRotationService(deactivated_state)

        with pytest.raises(MerkleInclusionError):
            service.rotate_key(voters[0], Keypair.generate(1).pub_key, deactivate_idx=1)
        assert deactivated_state.num_sign_ups == 4
        assert not deactivated_state.nullifiers

    def test_key_without_record(self, deactivated_state, voters):
        with pytest.raises(DeactivateLeafNotFoundError):
            KeyRotationService(deactivated_state).rotate_key(voters[2], Keypair.generate(1).pub_key)

    def test_missing_record_index(self, deactivated_state, voters):
        with pytest.raises(MerkleInclusionError):
            KeyRotationService(deactivated_state).rotate_key(
                voters[0], Keypair.generate(1).pub_key, deactivate_idx=7)

    def test_only_during_filling(self, deactivated_state, voters):
        deactivated_state.end_vote_period()
        with pytest.raises(PeriodError):
            KeyRotationService(deactivated_state).rotate_key(voters[0], Keypair.generate(1).pub_key)

    def test_full_state_tree(self, coordinator):
        params = RoundConfig(circuit=CircuitConfig(state_tree_depth=1))
        state = RoundState(params, coordinator.pub_key)
        owners = [Keypair.generate(500 + i) for i in range(5)]
        for owner in owners:
            state.sign_up(owner.pub_key)
        deactivate(state, coordinator, owners[0], 0)

        with pytest.raises(TreeFullError):
            KeyRotationService(state).rotate_key(owners[0], Keypair.generate(1).pub_key)

    def test_rotated_key_can_vote(self, deactivated_state, coordinator, voters):
        new_keypair = Keypair.generate(8080)
        result = KeyRotationService(deactivated_state).rotate_key(voters[0], new_keypair.pub_key)
        publish(deactivated_state, vote_message(new_keypair, coordinator.pub_key,
                                                result.state_idx, 1, 2, 9))
        publish(deactivated_state, vote_message(voters[0], coordinator.pub_key, 0, 1, 1, 9))
        deactivated_state.end_vote_period()

        witness = MessageBatchProcessor(deactivated_state, coordinator).process()
        assert witness.diagnostics[:2] == [None, INACTIVE]
        assert deactivated_state.leaf(result.state_idx).vo_tree.leaf(2) == 9


class TestAddKeyInput:

    def test_inputs_match_round_tree(self, deactivated_state, coordinator, voters):
        depth = deactivated_state.params.circuit.deactivate_tree_depth
        inputs = build_add_key_input(voters[0], coordinator.pub_key,
                                     deactivated_state.deactivate_record_list(), depth,
                                     random_val=12345)

        assert inputs['deactivateRoot'] == deactivated_state.deactivate_tree.root
        assert inputs['deactivateIndex'] == 0
        assert inputs['deactivateLeaf'] == deactivated_state.deactivate_tree.leaf(0)
        assert inputs['nullifier'] == compute_nullifier(voters[0])
        assert inputs['oldPrivateKey'] == voters[0].formatted_priv_key
        assert inputs['inputHash'] == compute_input_hash([
            inputs['deactivateRoot'],
            poseidon(list(coordinator.pub_key)),
            inputs['nullifier'],
            *inputs['d1'],
            *inputs['d2'],
        ])

    def test_same_randomness_same_inputs(self, deactivated_state, coordinator, voters):
        depth = deactivated_state.params.circuit.deactivate_tree_depth
        records = deactivated_state.deactivate_record_list()
        first = build_add_key_input(voters[0], coordinator.pub_key, records, depth, random_val=7)
        second = build_add_key_input(voters[0], coordinator.pub_key, records, depth, random_val=7)
        assert first == second

    def test_no_record_for_key(self, deactivated_state, coordinator, voters):
        with pytest.raises(DeactivateLeafNotFoundError):
            build_add_key_input(voters[3], coordinator.pub_key,
                                deactivated_state.deactivate_record_list(), 4)


class TestPreRotation:

    def test_published_records(self, deactivated_state, coordinator, voters):
        records = deactivated_state.deactivate_record_list()
        root = deactivated_state.deactivate_tree.root

        result = KeyRotationService(deactivated_state).pre_rotate_key(
            voters[0], Keypair.generate(1).pub_key, records, root, random_val=3)
        assert result.inputs['deactivateRoot'] == root
        assert result.state_idx == 4

    def test_root_mismatch(self, deactivated_state, voters):
        records = deactivated_state.deactivate_record_list()
        with pytest.raises(MerkleInclusionError):
            KeyRotationService(deactivated_state).pre_rotate_key(
                voters[0], Keypair.generate(1).pub_key, records, 12345)
