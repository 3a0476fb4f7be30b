"""
Vote message batches.

Batches are taken from the end of the message log towards its start, and
messages inside a batch are applied from the last slot to the first. Each
step is checked for inclusion against the root left by the step before it,
so the circuit can verify the batch one message at a time.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from babyjub import Keypair, derive_public_key, gen_random_babyjub_value
from zk import MerkleTree, compute_input_hash, hash_left_right

from .errors import (
    CommitmentMismatchError,
    CoordinatorKeyMismatchError,
    MerkleInclusionError,
    NoPendingMessagesError,
)
from .messages import message_to_command, verify_hash_chain
from .models import BatchWitness, Message, Period
from .state import RoundState
from .transition import apply_command
from .validation import CommandLimits, CostMode

logger = logging.getLogger(__name__)

COORD_KEY_BITS = 253


def verify_coordinator_key(coordinator: Keypair, coord_pub_key) -> None:
    if derive_public_key(coordinator.priv_key) != tuple(coord_pub_key):
        raise CoordinatorKeyMismatchError("Coordinator private key does not match the round public key")
    if coordinator.formatted_priv_key >= 1 << COORD_KEY_BITS:
        raise CoordinatorKeyMismatchError(
            f"Formatted coordinator key does not fit in {COORD_KEY_BITS} bits")


def pad_batch(messages: List[Message], batch_size: int) -> List[Message]:
    padded = list(messages)
    while len(padded) < batch_size:
        padded.append(Message.empty())
    return padded


class MessageBatchProcessor:
    """Applies vote batches to a round in PROCESSING"""

    def __init__(self, state: RoundState, coordinator: Keypair):
        self.state = state
        self.coordinator = coordinator
        self.batch_size = state.params.circuit.message_batch_size

    @property
    def limits(self) -> CommandLimits:
        params = self.state.params
        return CommandLimits(
            num_sign_ups=self.state.num_sign_ups,
            max_vote_options=params.max_vote_options,
            cost_mode=CostMode.from_flag(params.is_quadratic_cost),
            max_state_leaves=self.state.max_state_leaves,
        )

    @property
    def packed_vals(self) -> int:
        params = self.state.params
        return (params.max_vote_options
                + (self.state.num_sign_ups << 32)
                + ((1 << 64) if params.is_quadratic_cost else 0))

    def has_unprocessed_messages(self) -> bool:
        return self.state.period == Period.PROCESSING and self.state.msg_end_idx > 0

    def next_batch_range(self) -> Tuple[int, int]:
        msg_end = self.state.msg_end_idx
        if msg_end <= 0:
            raise NoPendingMessagesError("All vote messages have been processed")
        batch_start = (msg_end - 1) // self.batch_size * self.batch_size
        return batch_start, min(batch_start + self.batch_size, msg_end)

    def process(self, new_state_salt: Optional[int] = None,
                expected_new_commitment: Optional[int] = None,
                batch_start_hash: Optional[int] = None,
                batch_end_hash: Optional[int] = None) -> BatchWitness:
        """
        Process the next batch and return its witness.

        batch_start_hash and batch_end_hash are the chain endpoints published
        on-chain for this batch; when omitted they are read from the local log.
        Hash chain, coordinator key, current commitment and message shape are
        checked before any tree is touched. A failure after that point rolls
        the round back to its pre-batch state before propagating.
        """
        state = self.state
        state.require_period(Period.PROCESSING)
        verify_coordinator_key(self.coordinator, state.coord_pub_key)

        batch_start, batch_end = self.next_batch_range()
        logger.info(f"Processing messages [{batch_start}, {batch_end})")

        if batch_start_hash is None:
            batch_start_hash = state.messages[batch_start].prev_hash
        if batch_end_hash is None:
            batch_end_hash = state.messages[batch_end - 1].hash
        messages = pad_batch(state.messages[batch_start:batch_end], self.batch_size)
        verify_hash_chain(messages, batch_start_hash, batch_end_hash)

        if hash_left_right(state.state_tree.root, state.state_salt) != state.state_commitment:
            raise CommitmentMismatchError("Current state commitment does not match the state root")

        commands = [message_to_command(m, self.coordinator) for m in messages]
        if new_state_salt is None:
            new_state_salt = gen_random_babyjub_value()

        snapshot = state.snapshot()
        try:
            witness = self._apply(messages, commands, batch_start, batch_end,
                                  batch_start_hash, batch_end_hash, new_state_salt)
            if (expected_new_commitment is not None
                    and witness.inputs['newStateCommitment'] != expected_new_commitment):
                raise CommitmentMismatchError(
                    f"New state commitment {witness.inputs['newStateCommitment']} "
                    f"does not match declared {expected_new_commitment}")
        except Exception:
            state.restore(snapshot)
            raise

        state.msg_end_idx = batch_start
        state.state_commitment = witness.inputs['newStateCommitment']
        state.state_salt = new_state_salt
        logger.info(f"New state root {state.state_tree.root}, "
                    f"{witness.accepted_count}/{batch_end - batch_start} commands accepted")

        if batch_start == 0:
            state.end_processing_period()
        return witness

    def _apply(self, messages, commands, batch_start: int, batch_end: int,
               batch_start_hash: int, batch_end_hash: int, new_state_salt: int) -> BatchWitness:
        state = self.state
        limits = self.limits
        size = self.batch_size

        current_state_root = state.state_tree.root
        current_state_leaves: List[Any] = [None] * size
        current_state_leaves_path_elements: List[Any] = [None] * size
        current_vote_weights: List[Any] = [None] * size
        current_vote_weights_path_elements: List[Any] = [None] * size
        active_state_leaves: List[Any] = [None] * size
        active_state_leaves_path_elements: List[Any] = [None] * size
        diagnostics: List[Optional[str]] = [None] * size

        root = current_state_root
        for i in range(size - 1, -1, -1):
            command = commands[i]
            target_idx = state.dummy_state_index
            if command is not None and limits.state_index_in_range(command.state_idx):
                target_idx = command.state_idx

            result = apply_command(
                state.leaf(target_idx),
                command,
                state.active_state_tree.leaf(target_idx),
                self.coordinator.formatted_priv_key,
                limits,
            )
            diagnostics[i] = result.reason

            state_idx, vo_idx = state.dummy_state_index, 0
            if result.accepted:
                state_idx, vo_idx = command.state_idx, command.vo_idx

            leaf = state.leaf(state_idx)
            path_elements, path_indices = state.state_tree.path_of(state_idx)
            if not MerkleTree.verify_path(leaf.hash(), path_elements, path_indices, root):
                raise MerkleInclusionError(f"State leaf {state_idx} is not included under root {root}")

            current_state_leaves[i] = leaf.as_circuit_leaf()
            current_state_leaves_path_elements[i] = path_elements
            current_vote_weights[i] = leaf.vo_tree.leaf(vo_idx)
            current_vote_weights_path_elements[i] = leaf.vo_tree.path_element_of(vo_idx)
            active_state_leaves[i] = state.active_state_tree.leaf(state_idx)
            active_state_leaves_path_elements[i] = state.active_state_tree.path_element_of(state_idx)

            if result.accepted:
                state.set_leaf(state_idx, result.leaf)
                root = state.state_tree.root
                logger.debug(f"Message <{batch_start + i}> accepted for state leaf {state_idx}")
            else:
                logger.debug(f"Message <{batch_start + i}> rejected: {result.reason}")

        new_state_commitment = hash_left_right(root, new_state_salt)
        deactivate_commitment = state.deactivate_commitment
        packed_vals = self.packed_vals

        input_hash = compute_input_hash([
            packed_vals,
            state.coord_pub_key_hash,
            batch_start_hash,
            batch_end_hash,
            state.state_commitment,
            new_state_commitment,
            deactivate_commitment,
        ])

        inputs: Dict[str, Any] = {
            'inputHash': input_hash,
            'packedVals': packed_vals,
            'batchStartHash': batch_start_hash,
            'batchEndHash': batch_end_hash,
            'msgs': [m.ciphertext for m in messages],
            'coordPrivKey': self.coordinator.formatted_priv_key,
            'coordPubKey': list(state.coord_pub_key),
            'encPubKeys': [list(m.enc_pub_key) for m in messages],
            'currentStateRoot': current_state_root,
            'currentStateLeaves': current_state_leaves,
            'currentStateLeavesPathElements': current_state_leaves_path_elements,
            'currentStateCommitment': state.state_commitment,
            'currentStateSalt': state.state_salt,
            'newStateCommitment': new_state_commitment,
            'newStateSalt': new_state_salt,
            'currentVoteWeights': current_vote_weights,
            'currentVoteWeightsPathElements': current_vote_weights_path_elements,
            'activeStateRoot': state.active_state_tree.root,
            'deactivateRoot': state.deactivate_tree.root,
            'deactivateCommitment': deactivate_commitment,
            'activeStateLeaves': active_state_leaves,
            'activeStateLeavesPathElements': active_state_leaves_path_elements,
        }
        return BatchWitness(circuit='process_messages', inputs=inputs,
                            batch_start=batch_start, batch_end=batch_end, diagnostics=diagnostics)
