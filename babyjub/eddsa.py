"""
EdDSA-Poseidon keys and signatures on Baby Jubjub, plus ECDH.

Private keys are arbitrary integers. They are hashed with BLAKE-512; the
pruned low half gives the secret scalar s and the high half seeds the
per-message nonce. The formatted key is (s >> 3) mod the subgroup order.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import List, Optional

from zk.poseidon import SNARK_FIELD_SIZE, poseidon

from .blake import blake512
from .curve import BASE8, SUBGROUP_ORDER, Point, add_point, in_curve, mul_point_escalar

logger = logging.getLogger(__name__)

# Lower bound that keeps rejection sampling unbiased modulo the field
_RANDOM_VALUE_MIN = 6350874878119819312338956282401532410528162663560392320966563075034087161851


@dataclass(frozen=True)
class Signature:
    """EdDSA signature (R8, S)"""
    r8: Point
    s: int

    def to_list(self) -> List[int]:
        return [self.r8[0], self.r8[1], self.s]


def private_key_to_bytes(priv_key: int) -> bytes:
    """Big-endian bytes of the key's hex form, odd-length hex left-padded"""
    if priv_key < 0:
        raise ValueError("Private key must be non-negative")
    hex_value = format(priv_key, 'x')
    if len(hex_value) % 2:
        hex_value = '0' + hex_value
    return bytes.fromhex(hex_value)


def _prune(buffer: bytes) -> bytes:
    pruned = bytearray(buffer)
    pruned[0] &= 0xF8
    pruned[31] &= 0x7F
    pruned[31] |= 0x40
    return bytes(pruned)


def _secret_scalar(priv_key: int) -> int:
    """Pruned secret scalar s (a multiple of 8)"""
    digest = blake512(private_key_to_bytes(priv_key))
    return int.from_bytes(_prune(digest[:32]), 'little')


def derive_secret_scalar(priv_key: int) -> int:
    """The formatted private key, used for ECDH, ElGamal and in circuits"""
    return (_secret_scalar(priv_key) >> 3) % SUBGROUP_ORDER


def derive_public_key(priv_key: int) -> Point:
    return mul_point_escalar(BASE8, derive_secret_scalar(priv_key))


def sign_message(priv_key: int, message: int) -> Signature:
    digest = blake512(private_key_to_bytes(priv_key))
    s = int.from_bytes(_prune(digest[:32]), 'little')
    pub_key = mul_point_escalar(BASE8, s >> 3)

    message = message % SNARK_FIELD_SIZE
    nonce_digest = blake512(digest[32:64] + message.to_bytes(32, 'little'))
    r = int.from_bytes(nonce_digest, 'little') % SUBGROUP_ORDER

    r8 = mul_point_escalar(BASE8, r)
    hm = poseidon([r8[0], r8[1], pub_key[0], pub_key[1], message])
    return Signature(r8=r8, s=(r + hm * s) % SUBGROUP_ORDER)


def verify_signature(message: int, signature: Signature, pub_key: Point) -> bool:
    """Returns False, never raises, for off-curve keys or malformed signatures"""
    if not in_curve(signature.r8) or not in_curve(pub_key):
        return False
    if signature.s >= SUBGROUP_ORDER:
        return False

    hm = poseidon([signature.r8[0], signature.r8[1], pub_key[0], pub_key[1], message])
    left = mul_point_escalar(BASE8, signature.s)
    right = add_point(signature.r8, mul_point_escalar(pub_key, 8 * hm))
    return left == right


def gen_ecdh_shared_key(priv_key: int, pub_key: Point) -> Point:
    """Symmetric: gen(a, B) == gen(b, A)"""
    return mul_point_escalar(pub_key, derive_secret_scalar(priv_key))


def gen_priv_key() -> int:
    """Random 256-bit private key seed"""
    return int.from_bytes(secrets.token_bytes(32), 'big')


def gen_random_babyjub_value() -> int:
    """Uniform random field element, used for salts and ElGamal randomness"""
    while True:
        rand = int.from_bytes(secrets.token_bytes(32), 'big')
        if rand >= _RANDOM_VALUE_MIN:
            return rand % SNARK_FIELD_SIZE


@dataclass(frozen=True)
class Keypair:
    """Private key together with its public key and formatted secret"""
    priv_key: int
    pub_key: Point
    formatted_priv_key: int

    @classmethod
    def generate(cls, priv_key: Optional[int] = None) -> 'Keypair':
        """Derive a keypair; a supplied seed is reduced into the field"""
        if priv_key is None:
            priv_key = gen_priv_key()
        else:
            priv_key = priv_key % SNARK_FIELD_SIZE
        return cls(
            priv_key=priv_key,
            pub_key=derive_public_key(priv_key),
            formatted_priv_key=derive_secret_scalar(priv_key),
        )

    def sign(self, message: int) -> Signature:
        return sign_message(self.priv_key, message)

    def shared_key(self, pub_key: Point) -> Point:
        return mul_point_escalar(pub_key, self.formatted_priv_key)

    @property
    def pub_key_hash(self) -> int:
        return poseidon(list(self.pub_key))
