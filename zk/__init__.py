"""
Zero-Knowledge primitives for the coordinator engine
Circom-compatible Poseidon, Poseidon encryption, quinary Merkle trees and
the snarkjs proving adapter
"""

from .errors import (
    ZKError,
    FieldElementError,
    TreeError,
    IndexOutOfBoundsError,
    TreeFullError,
    CipherError,
    ProofGenerationError,
)
from .poseidon import (
    SNARK_FIELD_SIZE,
    CircomPoseidon,
    poseidon,
    poseidon_perm,
    hash10,
    hash_left_right,
    compute_input_hash,
)
from .cipher import poseidon_encrypt, poseidon_decrypt_without_check
from .tree import MerkleTree, TREE_ARITY, compute_zero_hashes
from .prover import ProofArtifact, SnarkjsProver, stringize

__version__ = "1.0.0"

__all__ = [
    # Hashing
    'SNARK_FIELD_SIZE',
    'CircomPoseidon',
    'poseidon',
    'poseidon_perm',
    'hash10',
    'hash_left_right',
    'compute_input_hash',

    # Cipher
    'poseidon_encrypt',
    'poseidon_decrypt_without_check',

    # Trees
    'MerkleTree',
    'TREE_ARITY',
    'compute_zero_hashes',

    # Proving
    'ProofArtifact',
    'SnarkjsProver',
    'stringize',

    # Exceptions
    'ZKError',
    'FieldElementError',
    'TreeError',
    'IndexOutOfBoundsError',
    'TreeFullError',
    'CipherError',
    'ProofGenerationError',
]
