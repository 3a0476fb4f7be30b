"""Poseidon duplex-sponge encryption keyed by an ECDH shared point."""

from typing import List, Sequence, Tuple

from .errors import CipherError, FieldElementError
from .poseidon import SNARK_FIELD_SIZE, poseidon_perm

TWO_128 = 1 << 128


def _validate_nonce(nonce: int):
    if nonce < 0 or nonce >= TWO_128:
        raise FieldElementError("The nonce must be less than 2 ** 128")


def _initial_state(key: Tuple[int, int], nonce: int, length: int) -> List[int]:
    return [
        0,
        key[0] % SNARK_FIELD_SIZE,
        key[1] % SNARK_FIELD_SIZE,
        (nonce + length * TWO_128) % SNARK_FIELD_SIZE,
    ]


def poseidon_encrypt(message: Sequence[int], key: Tuple[int, int], nonce: int = 0) -> List[int]:
    """Encrypt field elements; the ciphertext has ceil(len/3)*3 + 1 elements"""
    _validate_nonce(nonce)

    padded = [int(m) % SNARK_FIELD_SIZE for m in message]
    while len(padded) % 3 > 0:
        padded.append(0)

    state = _initial_state(key, nonce, len(message))
    ciphertext = []
    for i in range(0, len(padded), 3):
        state = poseidon_perm(state)
        for j in range(3):
            state[j + 1] = (state[j + 1] + padded[i + j]) % SNARK_FIELD_SIZE
            ciphertext.append(state[j + 1])

    state = poseidon_perm(state)
    ciphertext.append(state[1])
    return ciphertext


def _decrypt(ciphertext: Sequence[int], key: Tuple[int, int], nonce: int,
             length: int) -> Tuple[List[int], List[int]]:
    _validate_nonce(nonce)

    state = _initial_state(key, nonce, length)
    message = []
    for i in range(len(ciphertext) // 3):
        state = poseidon_perm(state)
        for j in range(3):
            word = int(ciphertext[i * 3 + j]) % SNARK_FIELD_SIZE
            message.append((word - state[j + 1]) % SNARK_FIELD_SIZE)
            state[j + 1] = word
    return message, state


def poseidon_decrypt_without_check(ciphertext: Sequence[int], key: Tuple[int, int],
                                   nonce: int, length: int) -> List[int]:
    """
    Decrypt without authenticating. A wrong key returns garbage rather than
    raising; the result keeps its zero padding.
    """
    message, _ = _decrypt(ciphertext, key, nonce, length)
    return message


def poseidon_decrypt(ciphertext: Sequence[int], key: Tuple[int, int],
                     nonce: int, length: int) -> List[int]:
    """Authenticated decryption; raises CipherError on tampering or wrong key"""
    message, state = _decrypt(ciphertext, key, nonce, length)

    if length % 3 > 0:
        for padding in message[length:]:
            if padding != 0:
                raise CipherError("The message padding must be zero")

    state = poseidon_perm(state)
    if int(ciphertext[-1]) % SNARK_FIELD_SIZE != state[1]:
        raise CipherError(
            "The last ciphertext element must match the second item of the permuted state")

    return message[:length]
