"""
Round data model: periods, hash-chained messages, decrypted commands and
state leaves.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from babyjub import Point, Signature
from zk import MerkleTree, hash10

MESSAGE_LENGTH = 7
STATE_LEAF_LENGTH = 10


class Period(Enum):
    FILLING = "filling"
    PROCESSING = "processing"
    TALLYING = "tallying"
    ENDED = "ended"


@dataclass
class Message:
    """Encrypted command plus the ephemeral key it was encrypted under"""
    ciphertext: List[int]
    enc_pub_key: Point
    prev_hash: int = 0
    hash: int = 0

    @classmethod
    def empty(cls) -> 'Message':
        return cls(ciphertext=[0] * MESSAGE_LENGTH, enc_pub_key=(0, 0))

    @property
    def is_empty(self) -> bool:
        return self.enc_pub_key[0] == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ciphertext': [str(c) for c in self.ciphertext],
            'enc_pub_key': [str(c) for c in self.enc_pub_key],
            'prev_hash': str(self.prev_hash),
            'hash': str(self.hash),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        return cls(
            ciphertext=[int(c) for c in data['ciphertext']],
            enc_pub_key=(int(data['enc_pub_key'][0]), int(data['enc_pub_key'][1])),
            prev_hash=int(data['prev_hash']),
            hash=int(data['hash']),
        )


@dataclass
class Command:
    """Decrypted ballot; only exists while a batch is being processed"""
    nonce: int
    state_idx: int
    vo_idx: int
    new_votes: int
    new_pub_key: Point
    signature: Signature
    msg_hash: int


@dataclass
class StateLeaf:
    pub_key: Point
    balance: int
    vo_tree: MerkleTree
    nonce: int = 0
    voted: bool = False
    d1: Point = (0, 0)
    d2: Point = (0, 0)

    @classmethod
    def empty(cls, vote_option_tree_depth: int) -> 'StateLeaf':
        return cls(pub_key=(0, 0), balance=0, vo_tree=MerkleTree(vote_option_tree_depth))

    @property
    def vote_option_root(self) -> int:
        """Vote tree root as committed in the leaf, 0 before the first accepted vote"""
        return self.vo_tree.root if self.voted else 0

    def as_circuit_leaf(self) -> List[int]:
        return [
            self.pub_key[0], self.pub_key[1], self.balance, self.vote_option_root, self.nonce,
            self.d1[0], self.d1[1], self.d2[0], self.d2[1], 0,
        ]

    def hash(self) -> int:
        leaf = self.as_circuit_leaf()
        return hash10(leaf)

    def copy(self) -> 'StateLeaf':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pub_key': [str(self.pub_key[0]), str(self.pub_key[1])],
            'balance': str(self.balance),
            'vote_option_leaves': [str(v) for v in self.vo_tree.leaves()],
            'nonce': str(self.nonce),
            'voted': self.voted,
            'd1': [str(self.d1[0]), str(self.d1[1])],
            'd2': [str(self.d2[0]), str(self.d2[1])],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], vote_option_tree_depth: int) -> 'StateLeaf':
        vo_tree = MerkleTree.from_leaves(
            vote_option_tree_depth, [int(v) for v in data['vote_option_leaves']])
        return cls(
            pub_key=(int(data['pub_key'][0]), int(data['pub_key'][1])),
            balance=int(data['balance']),
            vo_tree=vo_tree,
            nonce=int(data['nonce']),
            voted=bool(data['voted']),
            d1=(int(data['d1'][0]), int(data['d1'][1])),
            d2=(int(data['d2'][0]), int(data['d2'][1])),
        )


@dataclass
class BatchWitness:
    """Circuit inputs for one processed batch together with bookkeeping"""
    circuit: str
    inputs: Dict[str, Any]
    batch_start: int
    batch_end: int
    diagnostics: List[Optional[str]] = field(default_factory=list)
    records: List[List[int]] = field(default_factory=list)

    @property
    def input_hash(self) -> int:
        return self.inputs['inputHash']

    @property
    def accepted_count(self) -> int:
        return sum(1 for d in self.diagnostics if d is None)
