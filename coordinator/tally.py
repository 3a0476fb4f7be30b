"""Tally batches over the final State Tree."""

import logging
from typing import Any, Dict, List, Optional, Tuple

from babyjub import gen_random_babyjub_value
from zk import compute_input_hash, hash_left_right

from .errors import CommitmentMismatchError
from .models import BatchWitness, Period
from .state import RoundState

logger = logging.getLogger(__name__)

# Per-option results hold the vote count above this radix and its square below it
MAX_VOTES = 10 ** 24


def decode_tally_result(result: int) -> Tuple[int, int]:
    """(votes, voice credits spent) for one option"""
    return result // MAX_VOTES, result % MAX_VOTES


class TallyProcessor:
    """Folds state leaves, one intermediate subtree at a time, into the results tree"""

    def __init__(self, state: RoundState):
        self.state = state
        self.int_state_tree_depth = state.params.circuit.int_state_tree_depth
        self.batch_size = state.params.circuit.tally_batch_size

    def process(self, tally_salt: Optional[int] = None) -> BatchWitness:
        state = self.state
        state.require_period(Period.TALLYING)

        if hash_left_right(state.state_tree.root, state.state_salt) != state.state_commitment:
            raise CommitmentMismatchError("State commitment does not match the final state root")
        if tally_salt is None:
            tally_salt = gen_random_babyjub_value()

        batch_start = state.batch_num * self.batch_size
        batch_end = batch_start + self.batch_size
        logger.info(f"Processing tally [{batch_start}, {batch_end})")

        state_path_elements = state.state_tree.path_element_of(batch_start)[self.int_state_tree_depth:]
        current_results = state.tally_results.leaves()
        state_leaf: List[Any] = []
        votes: List[Any] = []

        for state_idx in range(batch_start, batch_end):
            leaf = state.leaf(state_idx)
            state_leaf.append(leaf.as_circuit_leaf())
            votes.append(leaf.vo_tree.leaves())
            if not leaf.voted:
                continue

            for j in range(leaf.vo_tree.capacity):
                v = leaf.vo_tree.leaf(j)
                state.tally_results.update(j, state.tally_results.leaf(j) + v * (v + MAX_VOTES))

        new_tally_commitment = hash_left_right(state.tally_results.root, tally_salt)
        packed_vals = state.batch_num + (state.num_sign_ups << 32)

        input_hash = compute_input_hash([
            packed_vals,
            state.state_commitment,
            state.tally_commitment,
            new_tally_commitment,
        ])

        inputs: Dict[str, Any] = {
            'stateRoot': state.state_tree.root,
            'stateSalt': state.state_salt,
            'packedVals': packed_vals,
            'stateCommitment': state.state_commitment,
            'currentTallyCommitment': state.tally_commitment,
            'newTallyCommitment': new_tally_commitment,
            'inputHash': input_hash,
            'stateLeaf': state_leaf,
            'statePathElements': state_path_elements,
            'votes': votes,
            'currentResults': current_results,
            'currentResultsRootSalt': state.tally_salt,
            'newResultsRootSalt': tally_salt,
        }

        state.batch_num += 1
        state.tally_commitment = new_tally_commitment
        state.tally_salt = tally_salt
        logger.info(f"New tally commitment {new_tally_commitment}")

        if batch_end >= state.num_sign_ups:
            state.period = Period.ENDED
            logger.info("Tallying finished")

        return BatchWitness(circuit='tally_votes', inputs=inputs,
                            batch_start=batch_start, batch_end=batch_end)
