"""
Baby Jubjub twisted Edwards curve over the BN254 scalar field.

Affine arithmetic only; inverses use Python's modular pow. The identity is
(0, 1). Points are plain (x, y) tuples so they serialize and compare cheaply.
"""

import logging
from typing import Tuple

import numpy as np

from zk.poseidon import SNARK_FIELD_SIZE, scalar_field

logger = logging.getLogger(__name__)

Point = Tuple[int, int]

A = 168700
D = 168696

BASE8: Point = (
    5299619240641551281634865583518297030282874472190772894086521144482721001553,
    16950150798460657717958625567821834550301663161624707787222815936182638968203,
)

# Order of the prime subgroup generated by BASE8
SUBGROUP_ORDER = 2736030358979909402780800718157159386076813972158567259200215660948447373041

IDENTITY: Point = (0, 1)


class CurveError(Exception):
    """Base exception for curve operations"""
    pass


class InvalidPointError(CurveError):
    """Encoded point does not decode to a curve point"""
    pass


def _inv(value: int) -> int:
    return pow(value, -1, SNARK_FIELD_SIZE)


def add_point(p1: Point, p2: Point) -> Point:
    """Twisted Edwards addition (unified, so it also doubles)"""
    p = SNARK_FIELD_SIZE
    x1, y1 = p1
    x2, y2 = p2

    beta = x1 * y2 % p
    gamma = y1 * x2 % p
    delta = (-A * x1 + y1) * (x2 + y2) % p
    tau = beta * gamma % p

    x3 = (beta + gamma) * _inv((1 + D * tau) % p) % p
    y3 = (delta + A * beta - gamma) * _inv((1 - D * tau) % p) % p
    return x3, y3


def mul_point_escalar(base: Point, scalar: int) -> Point:
    """Double-and-add from the identity; the scalar is not reduced"""
    if scalar < 0:
        raise CurveError("Scalar must be non-negative")

    result = IDENTITY
    exp = base
    remaining = scalar
    while remaining:
        if remaining & 1:
            result = add_point(result, exp)
        exp = add_point(exp, exp)
        remaining >>= 1
    return result


def in_curve(point: Point) -> bool:
    p = SNARK_FIELD_SIZE
    x2 = point[0] * point[0] % p
    y2 = point[1] * point[1] % p
    return (A * x2 + y2) % p == (1 + D * x2 * y2) % p


def negate_x(point: Point) -> Point:
    """(-x, y), the inverse of a point on a twisted Edwards curve"""
    return (-point[0]) % SNARK_FIELD_SIZE, point[1]


def pack_point(point: Point) -> int:
    """Little-endian y with bit 255 set when x is in the upper half of the field"""
    packed = point[1]
    if point[0] > SNARK_FIELD_SIZE // 2:
        packed |= 1 << 255
    return packed


def unpack_point(packed: int) -> Point:
    """Inverse of pack_point; raises InvalidPointError for non-curve encodings"""
    sign = bool(packed >> 255 & 1)
    y = packed & ((1 << 255) - 1)
    if y >= SNARK_FIELD_SIZE:
        raise InvalidPointError("y coordinate outside the field")

    # galois square roots need at least a 1-d array
    GF = scalar_field()
    y2 = GF([y]) ** 2
    x2 = (GF([1]) - y2) / (GF([A]) - GF([D]) * y2)
    if not x2.is_square()[0]:
        raise InvalidPointError(f"No curve point with y={y}")

    x = int(np.sqrt(x2)[0])
    x = min(x, SNARK_FIELD_SIZE - x) if x else 0
    if sign:
        x = (-x) % SNARK_FIELD_SIZE
    return x, y
