"""
Deactivate request batches.

Requests are processed forward from the last processed position against
the State Tree truncated to the sign-ups it covered. Every non-empty
request leaves a record (c1, c2, hash(sharedKey)) in the Deactivate Tree;
accepted requests also mark the account inactive in the Active-State Tree.
The ElGamal randomness for slot i is poseidon([coordPriv, salt, seq]) so a
batch can be regenerated exactly.
"""

import logging
from typing import Any, Dict, List, Optional

from babyjub import Keypair, encrypt_odevity, verify_signature
from zk import compute_input_hash, poseidon

from .batch import pad_batch, verify_coordinator_key
from .errors import NoPendingMessagesError
from .messages import message_to_command, verify_hash_chain
from .models import BatchWitness, Command, Period
from .state import RoundState
from .transition import is_leaf_deactivated
from .validation import DEACTIVATED, EMPTY_COMMAND, SIGNATURE_ERROR, STATE_INDEX_OVERFLOW

logger = logging.getLogger(__name__)

DEACTIVATE_RANDOM_SALT = 20040


def deactivate_random_key(coord_priv_key: int, sequence_number: int) -> int:
    return poseidon([coord_priv_key, DEACTIVATE_RANDOM_SALT, sequence_number])


class DeactivateProcessor:
    """Applies deactivate-request batches to a round"""

    def __init__(self, state: RoundState, coordinator: Keypair):
        self.state = state
        self.coordinator = coordinator
        self.batch_size = state.params.circuit.deactivate_batch_size

    def pending_count(self) -> int:
        return len(self.state.deactivate_messages) - self.state.processed_deactivate_count

    def check_command(self, command: Optional[Command], sub_state_tree_length: int) -> Optional[str]:
        if command is None:
            return EMPTY_COMMAND
        if command.state_idx >= sub_state_tree_length:
            return STATE_INDEX_OVERFLOW

        leaf = self.state.leaf(command.state_idx)
        if is_leaf_deactivated(leaf, self.coordinator.formatted_priv_key):
            return DEACTIVATED
        if not verify_signature(command.msg_hash, command.signature, leaf.pub_key):
            return SIGNATURE_ERROR
        return None

    def process(self, input_size: Optional[int] = None,
                sub_state_tree_length: Optional[int] = None,
                batch_start_hash: Optional[int] = None,
                batch_end_hash: Optional[int] = None) -> BatchWitness:
        """
        Process up to input_size pending requests (at most one batch).

        sub_state_tree_length defaults to the current number of sign-ups.
        The chain endpoints default to the ones recorded in the local log.
        """
        state = self.state
        state.require_period(Period.FILLING, Period.PROCESSING)
        verify_coordinator_key(self.coordinator, state.coord_pub_key)

        if input_size is None:
            input_size = self.batch_size
        if sub_state_tree_length is None:
            sub_state_tree_length = max(state.num_sign_ups, 1)

        batch_start = state.processed_deactivate_count
        size = min(input_size, self.batch_size, self.pending_count())
        if size <= 0:
            raise NoPendingMessagesError("No deactivate messages left to process")
        batch_end = batch_start + size
        logger.info(f"Processing deactivate messages [{batch_start}, {batch_end})")

        if batch_start_hash is None:
            batch_start_hash = state.deactivate_messages[batch_start].prev_hash
        if batch_end_hash is None:
            batch_end_hash = state.deactivate_messages[batch_end - 1].hash
        messages = pad_batch(state.deactivate_messages[batch_start:batch_end], self.batch_size)
        verify_hash_chain(messages, batch_start_hash, batch_end_hash)
        commands = [message_to_command(m, self.coordinator) for m in messages]

        snapshot = state.snapshot()
        try:
            witness = self._apply(messages, commands, sub_state_tree_length,
                                  batch_start, batch_end, batch_start_hash, batch_end_hash)
        except Exception:
            state.restore(snapshot)
            raise

        state.processed_deactivate_count = batch_end
        logger.info(f"New deactivate root {state.deactivate_tree.root}, "
                    f"{witness.accepted_count}/{size} requests accepted")
        return witness

    def _apply(self, messages, commands, sub_state_tree_length: int, batch_start: int,
               batch_end: int, batch_start_hash: int, batch_end_hash: int) -> BatchWitness:
        state = self.state
        size = self.batch_size
        coord = self.coordinator

        sub_state_tree = state.state_tree.sub_tree(sub_state_tree_length)
        deactivate_index0 = state.processed_deactivate_count
        current_active_state_root = state.active_state_tree.root
        current_deactivate_root = state.deactivate_tree.root
        current_deactivate_commitment = state.deactivate_commitment

        new_active_state = [batch_start + i + 1 for i in range(size)]
        current_active_state: List[Any] = [None] * size
        current_state_leaves: List[Any] = [None] * size
        current_state_leaves_path_elements: List[Any] = [None] * size
        active_state_leaves_path_elements: List[Any] = [None] * size
        deactivate_leaves_path_elements: List[Any] = [None] * size
        c1: List[Any] = []
        c2: List[Any] = []
        diagnostics: List[Optional[str]] = [None] * size
        new_records: Dict[int, List[int]] = {}

        for i in range(size):
            command = commands[i]
            error = self.check_command(command, sub_state_tree_length)
            diagnostics[i] = error

            state_idx = state.dummy_state_index if error else command.state_idx
            leaf = state.leaf(state_idx)

            current_state_leaves[i] = leaf.as_circuit_leaf()
            current_state_leaves_path_elements[i] = sub_state_tree.path_element_of(state_idx)
            active_state_leaves_path_elements[i] = state.active_state_tree.path_element_of(state_idx)
            deactivate_leaves_path_elements[i] = state.deactivate_tree.path_element_of(deactivate_index0 + i)
            current_active_state[i] = state.active_state_tree.leaf(state_idx)

            shared_key = coord.shared_key(leaf.pub_key)
            flag = encrypt_odevity(error is not None, coord.pub_key,
                                   deactivate_random_key(coord.priv_key, new_active_state[i]))
            record = flag.to_list() + [poseidon(list(shared_key))]
            c1.append(list(flag.c1))
            c2.append(list(flag.c2))

            if error is None:
                state.active_state_tree.update(state_idx, new_active_state[i])
            if error is None or messages[i].ciphertext[0] != 0:
                state.deactivate_tree.update(deactivate_index0 + i, poseidon(record))
                new_records[deactivate_index0 + i] = record

            logger.debug(f"Deactivate message <{batch_start + i}> {error or 'accepted'}")

        state.deactivate_records.update(new_records)

        new_deactivate_root = state.deactivate_tree.root
        new_deactivate_commitment = state.deactivate_commitment

        input_hash = compute_input_hash([
            new_deactivate_root,
            state.coord_pub_key_hash,
            batch_start_hash,
            batch_end_hash,
            current_deactivate_commitment,
            new_deactivate_commitment,
            sub_state_tree.root,
        ])

        inputs: Dict[str, Any] = {
            'inputHash': input_hash,
            'currentActiveStateRoot': current_active_state_root,
            'currentDeactivateRoot': current_deactivate_root,
            'batchStartHash': batch_start_hash,
            'batchEndHash': batch_end_hash,
            'msgs': [m.ciphertext for m in messages],
            'coordPrivKey': coord.formatted_priv_key,
            'coordPubKey': list(coord.pub_key),
            'encPubKeys': [list(m.enc_pub_key) for m in messages],
            'c1': c1,
            'c2': c2,
            'currentActiveState': current_active_state,
            'newActiveState': new_active_state,
            'deactivateIndex0': deactivate_index0,
            'currentStateRoot': sub_state_tree.root,
            'currentStateLeaves': current_state_leaves,
            'currentStateLeavesPathElements': current_state_leaves_path_elements,
            'activeStateLeavesPathElements': active_state_leaves_path_elements,
            'deactivateLeavesPathElements': deactivate_leaves_path_elements,
            'currentDeactivateCommitment': current_deactivate_commitment,
            'newDeactivateRoot': new_deactivate_root,
            'newDeactivateCommitment': new_deactivate_commitment,
        }
        return BatchWitness(circuit='process_deactivate', inputs=inputs,
                            batch_start=batch_start, batch_end=batch_end, diagnostics=diagnostics,
                            records=[new_records[k] for k in sorted(new_records)])
