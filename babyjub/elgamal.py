"""
ElGamal over Baby Jubjub carrying a single bit in the x-coordinate parity.

A state leaf stores (c1, c2) under the coordinator's key: an even plaintext
means the account is live, odd means it has been deactivated. There is no
on-curve check on decryption, so the all-zero ciphertext of a fresh
sign-up decrypts to 0 (live).
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from zk.poseidon import SNARK_FIELD_SIZE

from .curve import BASE8, Point, add_point, mul_point_escalar, negate_x
from .eddsa import Keypair, gen_random_babyjub_value

logger = logging.getLogger(__name__)

# Value the message point is offset from; only its parity is ever read back
ODEVITY_PLAINTEXT = 123


@dataclass(frozen=True)
class ElGamalCiphertext:
    c1: Point
    c2: Point
    x_increment: int = 0

    @classmethod
    def zero(cls) -> 'ElGamalCiphertext':
        return cls(c1=(0, 0), c2=(0, 0))

    @classmethod
    def from_list(cls, values: List[int]) -> 'ElGamalCiphertext':
        return cls(c1=(int(values[0]), int(values[1])), c2=(int(values[2]), int(values[3])))

    def to_list(self) -> List[int]:
        return [self.c1[0], self.c1[1], self.c2[0], self.c2[1]]


def encrypt_odevity(is_odd: bool, pub_key: Point,
                    random_val: Optional[int] = None) -> ElGamalCiphertext:
    """
    Encrypt one bit. Message points are the public keys of keypairs seeded
    with random_val, random_val + 1, ... until one has the wanted x parity,
    so the result is deterministic in random_val.
    """
    if random_val is None:
        random_val = gen_random_babyjub_value()

    i = 0
    point = Keypair.generate(random_val + i).pub_key
    while (point[0] % 2 == 1) != is_odd:
        i += 1
        point = Keypair.generate(random_val + i).pub_key

    c1 = mul_point_escalar(BASE8, random_val)
    c2 = add_point(point, mul_point_escalar(pub_key, random_val))
    x_increment = (point[0] - ODEVITY_PLAINTEXT) % SNARK_FIELD_SIZE
    logger.debug(f"Encrypted parity {int(is_odd)} after {i + 1} candidate(s)")
    return ElGamalCiphertext(c1=c1, c2=c2, x_increment=x_increment)


def decrypt(formatted_priv_key: int, ciphertext: ElGamalCiphertext) -> int:
    """x(c2 - sk * c1) minus the stored x increment"""
    shared = mul_point_escalar(ciphertext.c1, formatted_priv_key)
    decrypted = add_point(negate_x(shared), ciphertext.c2)
    return (decrypted[0] - ciphertext.x_increment) % SNARK_FIELD_SIZE


def decrypt_parity(formatted_priv_key: int, ciphertext: ElGamalCiphertext) -> bool:
    """True when the encrypted bit is odd (deactivated)"""
    return decrypt(formatted_priv_key, ElGamalCiphertext(ciphertext.c1, ciphertext.c2)) % 2 == 1


def rerandomize(pub_key: Point, ciphertext: ElGamalCiphertext,
                random_val: Optional[int] = None) -> ElGamalCiphertext:
    """Fresh encryption of the same plaintext: (c1 + r*G, c2 + r*pk)"""
    if random_val is None:
        random_val = gen_random_babyjub_value()

    d1 = add_point(mul_point_escalar(BASE8, random_val), ciphertext.c1)
    d2 = add_point(mul_point_escalar(pub_key, random_val), ciphertext.c2)
    return ElGamalCiphertext(c1=d1, c2=d2)
