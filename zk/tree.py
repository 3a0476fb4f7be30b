"""
Fixed-depth, fixed-arity Poseidon Merkle tree.

Nodes live in one flat list, root first: the children of node n start at
n * degree + 1 and the leaves start at (degree**depth - 1) / (degree - 1).
Path elements are emitted bottom-up with the node itself skipped, which is
the layout the quinary-tree circuits consume.
"""

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Sequence, Tuple

from .errors import IndexOutOfBoundsError, TreeFullError
from .poseidon import SNARK_FIELD_SIZE, poseidon

logger = logging.getLogger(__name__)

TREE_ARITY = 5


@lru_cache(maxsize=None)
def _zero_hashes(degree: int, max_depth: int, zero: int) -> Tuple[int, ...]:
    zeros = [zero]
    for _ in range(max_depth):
        zeros.append(poseidon([zeros[-1]] * degree))
    return tuple(zeros)


def compute_zero_hashes(degree: int, max_depth: int, zero: int) -> List[int]:
    """zero_hashes[i] is the root of an all-empty subtree of depth i"""
    return list(_zero_hashes(degree, max_depth, zero))


@dataclass
class MerkleTree:
    """Incremental quinary Merkle tree with precomputed empty subtrees"""
    depth: int
    zero: int = 0
    degree: int = TREE_ARITY
    nodes: List[int] = field(default_factory=list)
    next_index: int = 0

    def __post_init__(self):
        if self.depth < 1:
            raise ValueError(f"Tree depth must be positive, got {self.depth}")
        self.zeros = compute_zero_hashes(self.degree, self.depth, self.zero)
        if not self.nodes:
            self.nodes = self._empty_nodes()
        elif len(self.nodes) != self.node_count:
            raise ValueError(
                f"Expected {self.node_count} nodes for depth {self.depth}, got {len(self.nodes)}")

    @property
    def capacity(self) -> int:
        return self.degree ** self.depth

    @property
    def leaves_idx0(self) -> int:
        return (self.degree ** self.depth - 1) // (self.degree - 1)

    @property
    def node_count(self) -> int:
        return (self.degree ** (self.depth + 1) - 1) // (self.degree - 1)

    @property
    def root(self) -> int:
        return self.nodes[0]

    def _empty_nodes(self) -> List[int]:
        nodes = [0] * self.node_count
        for d in range(self.depth, -1, -1):
            idx0 = (self.degree ** d - 1) // (self.degree - 1)
            zero = self.zeros[self.depth - d]
            for i in range(self.degree ** d):
                nodes[idx0 + i] = zero
        return nodes

    def _check_index(self, leaf_idx: int):
        if leaf_idx < 0 or leaf_idx >= self.capacity:
            raise IndexOutOfBoundsError(
                f"Leaf index {leaf_idx} out of bounds for depth {self.depth} (capacity {self.capacity})")

    def leaf(self, leaf_idx: int) -> int:
        self._check_index(leaf_idx)
        return self.nodes[self.leaves_idx0 + leaf_idx]

    def leaves(self) -> List[int]:
        return self.nodes[self.leaves_idx0:]

    def update(self, leaf_idx: int, value: int):
        """Set a leaf and recompute every ancestor up to the root"""
        self._check_index(leaf_idx)
        if value < 0 or value >= SNARK_FIELD_SIZE:
            raise ValueError(f"Value {value} outside field bounds")

        node_idx = self.leaves_idx0 + leaf_idx
        self.nodes[node_idx] = value
        self._update(node_idx)
        self.next_index = max(self.next_index, leaf_idx + 1)

    def insert(self, value: int) -> int:
        """Write the next free leaf and return its index"""
        if self.next_index >= self.capacity:
            raise TreeFullError(f"Tree of depth {self.depth} is full ({self.capacity} leaves)")
        index = self.next_index
        self.update(index, value)
        return index

    def init_leaves(self, leaves: Sequence[int]):
        """Bulk-load leaves from index 0 and rebuild all internal nodes"""
        if len(leaves) > self.capacity:
            raise TreeFullError(f"{len(leaves)} leaves exceed capacity {self.capacity}")

        for i, value in enumerate(leaves):
            self.nodes[self.leaves_idx0 + i] = int(value)

        for d in range(self.depth - 1, -1, -1):
            idx0 = (self.degree ** d - 1) // (self.degree - 1)
            for i in range(self.degree ** d):
                start = (idx0 + i) * self.degree + 1
                self.nodes[idx0 + i] = poseidon(self.nodes[start:start + self.degree])
        self.next_index = max(self.next_index, len(leaves))

    def verify_nodes(self) -> bool:
        """Recompute every internal node from the leaves and compare"""
        rebuilt = MerkleTree(self.depth, self.zero, self.degree)
        rebuilt.init_leaves(self.leaves())
        return rebuilt.nodes == self.nodes

    def _update(self, node_idx: int):
        idx = node_idx
        while idx > 0:
            parent_idx = (idx - 1) // self.degree
            children_idx0 = parent_idx * self.degree + 1
            self.nodes[parent_idx] = poseidon(
                self.nodes[children_idx0:children_idx0 + self.degree])
            idx = parent_idx

    def path_element_of(self, leaf_idx: int) -> List[List[int]]:
        """Per level, the degree-1 siblings of the node in left-to-right order"""
        self._check_index(leaf_idx)
        idx = self.leaves_idx0 + leaf_idx
        path = []
        for _ in range(self.depth):
            parent_idx = (idx - 1) // self.degree
            children_idx0 = parent_idx * self.degree + 1
            path.append([
                self.nodes[i]
                for i in range(children_idx0, children_idx0 + self.degree)
                if i != idx
            ])
            idx = parent_idx
        return path

    def path_idx_of(self, leaf_idx: int) -> List[int]:
        """Per level, the 0-based position of the node among its siblings"""
        self._check_index(leaf_idx)
        idx = self.leaves_idx0 + leaf_idx
        indices = []
        for _ in range(self.depth):
            parent_idx = (idx - 1) // self.degree
            indices.append(idx - (parent_idx * self.degree + 1))
            idx = parent_idx
        return indices

    def path_of(self, leaf_idx: int) -> Tuple[List[List[int]], List[int]]:
        return self.path_element_of(leaf_idx), self.path_idx_of(leaf_idx)

    def sub_tree(self, length: int) -> 'MerkleTree':
        """Copy of this tree with every leaf from `length` onward reset to zero"""
        if length < 1 or length > self.capacity:
            raise IndexOutOfBoundsError(f"Sub-tree length {length} out of range 1..{self.capacity}")

        nodes = list(self.nodes)
        tail = length
        for d in range(self.depth, -1, -1):
            idx0 = (self.degree ** d - 1) // (self.degree - 1)
            zero = self.zeros[self.depth - d]
            for i in range(tail, self.degree ** d):
                nodes[idx0 + i] = zero
            tail = -(-tail // self.degree)

        sub = MerkleTree(self.depth, self.zero, self.degree, nodes, min(self.next_index, length))
        sub._update(self.leaves_idx0 + length - 1)
        return sub

    def copy(self) -> 'MerkleTree':
        return MerkleTree(self.depth, self.zero, self.degree, list(self.nodes), self.next_index)

    @staticmethod
    def compute_root(leaf: int, path_elements: Sequence[Sequence[int]],
                     path_indices: Sequence[int]) -> int:
        """Fold a leaf up its path to a root"""
        current = leaf
        for siblings, position in zip(path_elements, path_indices):
            children = list(siblings[:position]) + [current] + list(siblings[position:])
            current = poseidon(children)
        return current

    @staticmethod
    def verify_path(leaf: int, path_elements: Sequence[Sequence[int]],
                    path_indices: Sequence[int], root: int) -> bool:
        return MerkleTree.compute_root(leaf, path_elements, path_indices) == root

    def to_dict(self) -> Dict[str, object]:
        return {
            'depth': self.depth,
            'zero': str(self.zero),
            'degree': self.degree,
            'next_index': self.next_index,
            'nodes': [str(n) for n in self.nodes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> 'MerkleTree':
        return cls(
            depth=int(data['depth']),
            zero=int(data['zero']),
            degree=int(data.get('degree', TREE_ARITY)),
            nodes=[int(n) for n in data['nodes']],
            next_index=int(data.get('next_index', 0)),
        )

    @classmethod
    def from_leaves(cls, depth: int, leaves: Sequence[int], zero: int = 0,
                    degree: int = TREE_ARITY) -> 'MerkleTree':
        tree = cls(depth, zero, degree)
        if leaves:
            tree.init_leaves(leaves)
        return tree

