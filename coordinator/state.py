"""
Round state owned by the coordinator: the four trees, the per-voter state
leaves, both message logs and the counters and commitments that tie
successive batches together.
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Sequence, Set

from babyjub import Point, in_curve
from config import RoundConfig
from zk import MerkleTree, TreeFullError, hash10, poseidon

from .errors import MalformedMessageError, PeriodError
from .messages import hash_message, validate_message
from .models import Message, Period, StateLeaf

logger = logging.getLogger(__name__)

STATE_TREE_ZERO = hash10([0] * 10)


class RoundState:
    """Mutable state of one voting round"""

    def __init__(self, params: RoundConfig, coord_pub_key: Point):
        if not in_curve(coord_pub_key):
            raise ValueError(f"Coordinator public key {coord_pub_key} is not on the curve")

        self.params = params
        self.coord_pub_key = coord_pub_key
        self.coord_pub_key_hash = poseidon(list(coord_pub_key))

        circuit = params.circuit
        self.state_tree = MerkleTree(circuit.state_tree_depth, STATE_TREE_ZERO)
        self.active_state_tree = MerkleTree(circuit.state_tree_depth)
        self.deactivate_tree = MerkleTree(circuit.deactivate_tree_depth)
        self.leaves: Dict[int, StateLeaf] = {}
        self.num_sign_ups = 0

        self.messages: List[Message] = []
        self.deactivate_messages: List[Message] = []
        self.deactivate_records: Dict[int, List[int]] = {}
        self.nullifiers: Set[int] = set()

        self.period = Period.FILLING
        self.msg_end_idx = 0
        self.processed_deactivate_count = 0
        self.state_salt = 0
        self.state_commitment = 0

        self.tally_results = MerkleTree(circuit.vote_option_tree_depth)
        self.tally_salt = 0
        self.tally_commitment = 0
        self.batch_num = 0

    # Accessors

    @property
    def vote_option_tree_depth(self) -> int:
        return self.params.circuit.vote_option_tree_depth

    @property
    def max_state_leaves(self) -> int:
        return self.state_tree.capacity

    @property
    def dummy_state_index(self) -> int:
        """Leaf read for the witness of a rejected command"""
        return self.state_tree.capacity - 1

    @property
    def deactivate_commitment(self) -> int:
        return poseidon([self.active_state_tree.root, self.deactivate_tree.root])

    def leaf(self, state_idx: int) -> StateLeaf:
        existing = self.leaves.get(state_idx)
        if existing is not None:
            return existing
        return StateLeaf.empty(self.vote_option_tree_depth)

    def set_leaf(self, state_idx: int, leaf: StateLeaf):
        self.leaves[state_idx] = leaf
        self.state_tree.update(state_idx, leaf.hash())

    def require_period(self, *periods: Period):
        if self.period not in periods:
            expected = ", ".join(p.value for p in periods)
            raise PeriodError(f"Round is {self.period.value}, operation requires {expected}")

    # Sign-up and message ingestion

    def sign_up(self, pub_key: Point, balance: Optional[int] = None,
                c: Optional[Sequence[int]] = None) -> int:
        """Allocate the next state index; c is the ElGamal flag (c1.x, c1.y, c2.x, c2.y)"""
        self.require_period(Period.FILLING)
        if self.num_sign_ups >= self.max_state_leaves:
            raise TreeFullError(f"State tree is full ({self.max_state_leaves} leaves)")
        if not in_curve(pub_key):
            raise ValueError(f"Public key {pub_key} is not on the curve")

        if balance is None:
            balance = self.params.voice_credit_amount
        if c is None:
            c = (0, 0, 0, 0)

        state_idx = self.num_sign_ups
        leaf = StateLeaf(
            pub_key=tuple(pub_key),
            balance=int(balance),
            vo_tree=MerkleTree(self.vote_option_tree_depth),
            d1=(int(c[0]), int(c[1])),
            d2=(int(c[2]), int(c[3])),
        )
        self.set_leaf(state_idx, leaf)
        self.num_sign_ups += 1

        logger.info(f"Signed up state leaf {state_idx}, state root {self.state_tree.root}")
        return state_idx

    def _append(self, log: List[Message], ciphertext: Sequence[int], enc_pub_key: Point) -> Message:
        self.require_period(Period.FILLING)
        validate_message(ciphertext, enc_pub_key)

        prev_hash = log[-1].hash if log else 0
        ciphertext = [int(c) for c in ciphertext]
        enc_pub_key = (int(enc_pub_key[0]), int(enc_pub_key[1]))
        message = Message(
            ciphertext=ciphertext,
            enc_pub_key=enc_pub_key,
            prev_hash=prev_hash,
            hash=hash_message(ciphertext, enc_pub_key, prev_hash),
        )
        log.append(message)
        return message

    def push_message(self, ciphertext: Sequence[int], enc_pub_key: Point) -> Message:
        message = self._append(self.messages, ciphertext, enc_pub_key)
        logger.debug(f"Pushed message {len(self.messages) - 1}, hash {message.hash}")
        return message

    def push_deactivate_message(self, ciphertext: Sequence[int], enc_pub_key: Point) -> Message:
        message = self._append(self.deactivate_messages, ciphertext, enc_pub_key)
        logger.debug(f"Pushed deactivate message {len(self.deactivate_messages) - 1}, "
                     f"hash {message.hash}")
        return message

    # Period transitions

    def end_vote_period(self):
        self.require_period(Period.FILLING)
        self.period = Period.PROCESSING
        self.msg_end_idx = len(self.messages)
        self.state_salt = 0
        self.state_commitment = poseidon([self.state_tree.root, 0])
        logger.info(f"Vote period ended with {len(self.messages)} messages")

        if self.msg_end_idx == 0:
            self.end_processing_period()

    def end_processing_period(self):
        self.require_period(Period.PROCESSING)
        self.period = Period.TALLYING
        self.batch_num = 0
        self.tally_salt = 0
        self.tally_commitment = 0
        self.tally_results = MerkleTree(self.vote_option_tree_depth)
        logger.info("Processing period ended")

    # Batch atomicity

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self.__dict__)

    def restore(self, snapshot: Dict[str, Any]):
        self.__dict__.clear()
        self.__dict__.update(snapshot)

    # Published records

    def deactivate_record_list(self) -> List[List[int]]:
        """Deactivate records in tree order, as a chain observer sees them"""
        return [self.deactivate_records[i] for i in sorted(self.deactivate_records)]

    def get_tally_results(self) -> List[int]:
        return self.tally_results.leaves()[:self.params.max_vote_options]
