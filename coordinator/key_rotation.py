"""
Key rotation for deactivated accounts.

The owner of a deactivate record proves knowledge of the key whose ECDH
with the coordinator hashes to the record's fifth element. The record's
ElGamal flag is rerandomized into a brand new state leaf, so the new
account inherits the parity without being linkable to the old one. A
nullifier derived from the old key makes every record usable once.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from babyjub import ElGamalCiphertext, Keypair, Point, gen_random_babyjub_value, rerandomize
from zk import MerkleTree, TreeFullError, compute_input_hash, poseidon

from .errors import DeactivateLeafNotFoundError, MerkleInclusionError, NullifierReusedError
from .models import Period
from .state import RoundState

logger = logging.getLogger(__name__)

NULLIFIER_DOMAIN = 1444992409218394441042


def compute_nullifier(old_keypair: Keypair) -> int:
    return poseidon([old_keypair.formatted_priv_key, NULLIFIER_DOMAIN])


def shared_key_hash(keypair: Keypair, coord_pub_key: Point) -> int:
    return poseidon(list(keypair.shared_key(coord_pub_key)))


def find_deactivate_index(records: Sequence[Sequence[int]], key_hash: int) -> int:
    for idx, record in enumerate(records):
        if int(record[4]) == key_hash:
            return idx
    raise DeactivateLeafNotFoundError("No deactivate record is bound to this key")


def build_add_key_input(old_keypair: Keypair, coord_pub_key: Point,
                        deactivates: Sequence[Sequence[int]], tree_depth: int,
                        random_val: Optional[int] = None) -> Dict[str, Any]:
    """Witness for the add-new-key circuit built from the published deactivate records"""
    records = [[int(v) for v in record] for record in deactivates]
    deactivate_idx = find_deactivate_index(records, shared_key_hash(old_keypair, coord_pub_key))

    tree = MerkleTree.from_leaves(tree_depth, [poseidon(r) for r in records])
    return _add_key_inputs(old_keypair, coord_pub_key, records[deactivate_idx], deactivate_idx,
                           tree, random_val)


def _add_key_inputs(old_keypair: Keypair, coord_pub_key: Point, record: Sequence[int],
                    deactivate_idx: int, tree: MerkleTree,
                    random_val: Optional[int]) -> Dict[str, Any]:
    if random_val is None:
        random_val = gen_random_babyjub_value()

    ciphertext = ElGamalCiphertext.from_list(record[:4])
    rerandomized = rerandomize(coord_pub_key, ciphertext, random_val)
    nullifier = compute_nullifier(old_keypair)
    d1, d2 = rerandomized.c1, rerandomized.c2

    input_hash = compute_input_hash([
        tree.root,
        poseidon(list(coord_pub_key)),
        nullifier,
        d1[0],
        d1[1],
        d2[0],
        d2[1],
    ])
    return {
        'inputHash': input_hash,
        'coordPubKey': list(coord_pub_key),
        'deactivateRoot': tree.root,
        'deactivateIndex': deactivate_idx,
        'deactivateLeaf': poseidon(list(record)),
        'c1': list(ciphertext.c1),
        'c2': list(ciphertext.c2),
        'randomVal': random_val,
        'd1': list(d1),
        'd2': list(d2),
        'deactivateLeafPathElements': tree.path_element_of(deactivate_idx),
        'nullifier': nullifier,
        'oldPrivateKey': old_keypair.formatted_priv_key,
    }


@dataclass
class KeyRotationResult:
    state_idx: int
    nullifier: int
    inputs: Dict[str, Any]

    @property
    def d(self):
        return self.inputs['d1'] + self.inputs['d2']


class KeyRotationService:
    """Validates add-new-key requests and allocates the replacement state leaves"""

    def __init__(self, state: RoundState):
        self.state = state

    def _check_preconditions(self, old_keypair: Keypair) -> int:
        state = self.state
        state.require_period(Period.FILLING)

        nullifier = compute_nullifier(old_keypair)
        if nullifier in state.nullifiers:
            raise NullifierReusedError(f"Nullifier {nullifier} has already been used")
        if state.num_sign_ups >= state.max_state_leaves:
            raise TreeFullError(f"State tree is full ({state.max_state_leaves} leaves)")
        return nullifier

    def _verify_inclusion(self, old_keypair: Keypair, record: Sequence[int], deactivate_idx: int,
                          tree: MerkleTree, root: int):
        """
        Rebuild the record with the caller's own shared key hash and require
        it to sit at deactivate_idx under root. Someone else's record fails here.
        """
        bound = list(record[:4]) + [shared_key_hash(old_keypair, self.state.coord_pub_key)]
        path_elements, path_indices = tree.path_of(deactivate_idx)
        if not MerkleTree.verify_path(poseidon(bound), path_elements, path_indices, root):
            raise MerkleInclusionError(
                f"Deactivate record {deactivate_idx} is not bound to the presented key")

    def _allocate(self, new_pub_key: Point, nullifier: int, inputs: Dict[str, Any]) -> KeyRotationResult:
        state = self.state
        state_idx = state.sign_up(new_pub_key, state.params.voice_credit_amount,
                                  inputs['d1'] + inputs['d2'])
        state.nullifiers.add(nullifier)
        logger.info(f"Rotated key into state leaf {state_idx}")
        return KeyRotationResult(state_idx=state_idx, nullifier=nullifier, inputs=inputs)

    def rotate_key(self, old_keypair: Keypair, new_pub_key: Point,
                   deactivate_idx: Optional[int] = None,
                   random_val: Optional[int] = None) -> KeyRotationResult:
        """Rotate against the round's own Deactivate Tree"""
        state = self.state
        nullifier = self._check_preconditions(old_keypair)

        if deactivate_idx is None:
            key_hash = shared_key_hash(old_keypair, state.coord_pub_key)
            matches = [i for i, r in state.deactivate_records.items() if r[4] == key_hash]
            if not matches:
                raise DeactivateLeafNotFoundError("No deactivate record is bound to this key")
            deactivate_idx = matches[0]

        record = state.deactivate_records.get(deactivate_idx)
        if record is None:
            raise MerkleInclusionError(f"No deactivate record at index {deactivate_idx}")

        tree = state.deactivate_tree
        self._verify_inclusion(old_keypair, record, deactivate_idx, tree, tree.root)
        inputs = _add_key_inputs(old_keypair, state.coord_pub_key, record, deactivate_idx,
                                 tree, random_val)
        return self._allocate(new_pub_key, nullifier, inputs)

    def pre_rotate_key(self, old_keypair: Keypair, new_pub_key: Point,
                       deactivates: Sequence[Sequence[int]], deactivate_root: int,
                       random_val: Optional[int] = None) -> KeyRotationResult:
        """Rotate against a deactivate set and root published ahead of the round"""
        state = self.state
        nullifier = self._check_preconditions(old_keypair)

        records = [[int(v) for v in record] for record in deactivates]
        tree = MerkleTree.from_leaves(state.params.circuit.deactivate_tree_depth,
                                      [poseidon(r) for r in records])
        if tree.root != deactivate_root:
            raise MerkleInclusionError("Deactivate records do not hash to the published root")

        deactivate_idx = find_deactivate_index(
            records, shared_key_hash(old_keypair, state.coord_pub_key))
        self._verify_inclusion(old_keypair, records[deactivate_idx], deactivate_idx,
                               tree, deactivate_root)
        inputs = _add_key_inputs(old_keypair, state.coord_pub_key, records[deactivate_idx],
                                 deactivate_idx, tree, random_val)
        return self._allocate(new_pub_key, nullifier, inputs)
