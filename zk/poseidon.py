"""
Circom-compatible Poseidon hash over the BN254 scalar field.

Round constants and MDS matrices are not shipped as tables: they are
regenerated from the Grain LFSR exactly the way the reference parameter
script does it (field=1, sbox=0, n=254), once per state width.
"""

import hashlib
import logging
from collections import deque
from functools import lru_cache
from typing import Iterator, List, Sequence, Tuple

import galois
import numpy as np

from .errors import FieldElementError

logger = logging.getLogger(__name__)

# BN254 scalar field prime
SNARK_FIELD_SIZE = 21888242871839275222246405745257275088548364400416034343698204186575808495617

FIELD_BITS = 254
FULL_ROUNDS = 8
# Partial rounds indexed by t - 2
PARTIAL_ROUNDS = (56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68)

UINT256 = 1 << 256


# ============================================================================
# PARAMETER GENERATION
# ============================================================================


@lru_cache(maxsize=1)
def scalar_field():
    """galois field class for the BN254 scalar field.

    5 is the multiplicative generator of the field; passing it skips the
    factorisation galois would otherwise run on p - 1.
    """
    return galois.GF(SNARK_FIELD_SIZE, primitive_element=5, verify=False)


def _grain_bits(t: int, full_rounds: int, partial_rounds: int) -> Iterator[int]:
    """Self-shrinking Grain LFSR output bits"""
    state = deque()
    for value, width in ((1, 2), (0, 4), (FIELD_BITS, 12), (t, 12),
                         (full_rounds, 10), (partial_rounds, 10)):
        state.extend(int(bit) for bit in format(value, f"0{width}b"))
    state.extend([1] * 30)

    def clock() -> int:
        bit = state[62] ^ state[51] ^ state[38] ^ state[23] ^ state[13] ^ state[0]
        state.popleft()
        state.append(bit)
        return bit

    for _ in range(160):
        clock()

    while True:
        first = clock()
        while first == 0:
            clock()
            first = clock()
        yield clock()


def _random_int(bits: Iterator[int], width: int = FIELD_BITS) -> int:
    value = 0
    for _ in range(width):
        value = (value << 1) | next(bits)
    return value


def _cauchy_matrix(bits: Iterator[int], t: int) -> List[List[int]]:
    """Draw distinct x/y vectors and build M[i][j] = 1 / (x_i + y_j)"""
    GF = scalar_field()
    while True:
        values = [_random_int(bits) % SNARK_FIELD_SIZE for _ in range(2 * t)]
        while len(set(values)) != len(values):
            values = [_random_int(bits) % SNARK_FIELD_SIZE for _ in range(2 * t)]

        xs = GF(values[:t])
        ys = GF(values[t:])
        sums = xs[:, np.newaxis] + ys[np.newaxis, :]
        if np.any(sums == 0):
            continue

        matrix = np.reciprocal(sums)
        return [[int(entry) for entry in row] for row in matrix]


@lru_cache(maxsize=None)
def load_poseidon_constants(t: int) -> Tuple[Tuple[int, ...], Tuple[Tuple[int, ...], ...]]:
    """Round constants and MDS matrix for state width t"""
    if t < 2 or t - 2 >= len(PARTIAL_ROUNDS):
        raise FieldElementError(f"Unsupported Poseidon width t={t}")

    partial_rounds = PARTIAL_ROUNDS[t - 2]
    bits = _grain_bits(t, FULL_ROUNDS, partial_rounds)

    constants = []
    for _ in range((FULL_ROUNDS + partial_rounds) * t):
        value = _random_int(bits)
        while value >= SNARK_FIELD_SIZE:
            value = _random_int(bits)
        constants.append(value)

    mds = _cauchy_matrix(bits, t)
    logger.debug(f"Generated Poseidon parameters for t={t}")
    return tuple(constants), tuple(tuple(row) for row in mds)


# ============================================================================
# PERMUTATION AND HASH
# ============================================================================


class CircomPoseidon:
    """Circom-compatible Poseidon permutation for widths 2..17"""

    PRIME = SNARK_FIELD_SIZE
    FULL_ROUNDS = FULL_ROUNDS
    MAX_INPUTS = len(PARTIAL_ROUNDS)

    @staticmethod
    def ark(state: List[int], constants: Sequence[int], constant_idx: int) -> List[int]:
        """Add round constants"""
        return [(x + constants[constant_idx + i]) % SNARK_FIELD_SIZE for i, x in enumerate(state)]

    @staticmethod
    def sbox(state: List[int], full_round: bool) -> List[int]:
        """Apply S-box (x^5 mod p)"""
        if full_round:
            return [pow(x, 5, SNARK_FIELD_SIZE) for x in state]
        return [pow(state[0], 5, SNARK_FIELD_SIZE)] + state[1:]

    @staticmethod
    def mix(state: List[int], mds: Sequence[Sequence[int]]) -> List[int]:
        """Apply MDS matrix multiplication"""
        return [sum(m * x for m, x in zip(row, state)) % SNARK_FIELD_SIZE for row in mds]

    @staticmethod
    def permute(inputs: Sequence[int]) -> List[int]:
        """Full Poseidon permutation; the state width is len(inputs)"""
        t = len(inputs)
        constants, mds = load_poseidon_constants(t)
        partial_rounds = PARTIAL_ROUNDS[t - 2]
        half = FULL_ROUNDS // 2

        state = [int(x) % SNARK_FIELD_SIZE for x in inputs]
        for r in range(FULL_ROUNDS + partial_rounds):
            state = CircomPoseidon.ark(state, constants, r * t)
            state = CircomPoseidon.sbox(state, r < half or r >= half + partial_rounds)
            state = CircomPoseidon.mix(state, mds)
        return state

    @staticmethod
    def hash(inputs: Sequence[int]) -> int:
        """Poseidon hash matching circomlib"""
        if not 0 < len(inputs) <= CircomPoseidon.MAX_INPUTS:
            raise FieldElementError(
                f"Poseidon accepts 1 to {CircomPoseidon.MAX_INPUTS} inputs, got {len(inputs)}")
        return CircomPoseidon.permute([0, *inputs])[0]


poseidon = CircomPoseidon.hash
poseidon_perm = CircomPoseidon.permute


def hash_n(num_elements: int, elements: Sequence[int]) -> int:
    """Hash up to num_elements values, zero-padded to exactly num_elements"""
    if len(elements) > num_elements:
        raise FieldElementError(
            f"the length of the elements array should be at most {num_elements}; got {len(elements)}")
    return poseidon(list(elements) + [0] * (num_elements - len(elements)))


def hash2(elements: Sequence[int]) -> int:
    return hash_n(2, elements)


def hash3(elements: Sequence[int]) -> int:
    return hash_n(3, elements)


def hash4(elements: Sequence[int]) -> int:
    return hash_n(4, elements)


def hash5(elements: Sequence[int]) -> int:
    return hash_n(5, elements)


def hash10(elements: Sequence[int]) -> int:
    """hash2(hash5(first five), hash5(last five)) over a zero-padded 10-vector"""
    if len(elements) > 10:
        raise FieldElementError(
            f"the length of the elements array should be at most 10; got {len(elements)}")
    padded = list(elements) + [0] * (10 - len(elements))
    return poseidon([poseidon(padded[0:5]), poseidon(padded[5:10])])


def hash12(elements: Sequence[int]) -> int:
    if len(elements) > 12:
        raise FieldElementError(
            f"the length of the elements array should be at most 12; got {len(elements)}")
    padded = list(elements) + [0] * (12 - len(elements))
    return poseidon([poseidon(padded[0:5]), poseidon(padded[5:10]), padded[10], padded[11]])


def hash_left_right(left: int, right: int) -> int:
    return poseidon([left, right])


def compute_input_hash(values: Sequence[int]) -> int:
    """
    Packed public-input hash shared with the circuits.

    Each value is encoded as a 32-byte big-endian uint256 (EVM packed
    encoding), the concatenation is hashed with SHA-256 and the digest is
    reduced into the scalar field.
    """
    words = []
    for value in values:
        value = int(value)
        if value < 0 or value >= UINT256:
            raise FieldElementError(f"Value {value} does not fit in a uint256 word")
        words.append(value.to_bytes(32, "big"))

    digest = hashlib.sha256(b"".join(words)).digest()
    return int.from_bytes(digest, "big") % SNARK_FIELD_SIZE
