"""Baby Jubjub keys, EdDSA-Poseidon signatures, ECDH and parity ElGamal."""

from .blake import blake512
from .curve import (
    A,
    D,
    BASE8,
    SUBGROUP_ORDER,
    IDENTITY,
    Point,
    add_point,
    mul_point_escalar,
    in_curve,
    negate_x,
    pack_point,
    unpack_point,
    CurveError,
    InvalidPointError,
)
from .eddsa import (
    Keypair,
    Signature,
    derive_public_key,
    derive_secret_scalar,
    sign_message,
    verify_signature,
    gen_ecdh_shared_key,
    gen_priv_key,
    gen_random_babyjub_value,
)
from .elgamal import ElGamalCiphertext, encrypt_odevity, decrypt, decrypt_parity, rerandomize

__all__ = [
    # Hashing
    'blake512',

    # Curve
    'A',
    'D',
    'BASE8',
    'SUBGROUP_ORDER',
    'IDENTITY',
    'Point',
    'add_point',
    'mul_point_escalar',
    'in_curve',
    'negate_x',
    'pack_point',
    'unpack_point',

    # Keys and signatures
    'Keypair',
    'Signature',
    'derive_public_key',
    'derive_secret_scalar',
    'sign_message',
    'verify_signature',
    'gen_ecdh_shared_key',
    'gen_priv_key',
    'gen_random_babyjub_value',

    # ElGamal
    'ElGamalCiphertext',
    'encrypt_odevity',
    'decrypt',
    'decrypt_parity',
    'rerandomize',

    # Exceptions
    'CurveError',
    'InvalidPointError',
]
