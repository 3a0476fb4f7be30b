"""Poseidon duplex encryption under an ECDH shared key."""

import pytest

from babyjub import Keypair
from zk import (
    CipherError,
    FieldElementError,
    poseidon_decrypt_without_check,
    poseidon_encrypt,
)
from zk.cipher import poseidon_decrypt


@pytest.fixture(scope="module")
def shared_key():
    alice = Keypair.generate(11)
    bob = Keypair.generate(22)
    return alice.shared_key(bob.pub_key)


@pytest.fixture(scope="module")
def other_key():
    return Keypair.generate(33).shared_key(Keypair.generate(44).pub_key)


class TestPoseidonCipher:

    @pytest.mark.parametrize("length", [1, 3, 4, 6, 7])
    def test_round_trip(self, shared_key, length):
        message = [1000 + i for i in range(length)]
        ciphertext = poseidon_encrypt(message, shared_key, 0)
        assert len(ciphertext) == -(-length // 3) * 3 + 1
        assert poseidon_decrypt(ciphertext, shared_key, 0, length) == message

    def test_command_sized_message(self, shared_key):
        ciphertext = poseidon_encrypt([5, 6, 7, 8, 9, 10], shared_key, 0)
        assert len(ciphertext) == 7

    def test_nonce_is_part_of_the_key(self, shared_key):
        message = [1, 2, 3]
        assert poseidon_encrypt(message, shared_key, 0) != poseidon_encrypt(message, shared_key, 1)
        with pytest.raises(CipherError):
            poseidon_decrypt(poseidon_encrypt(message, shared_key, 0), shared_key, 1, 3)

    def test_wrong_key_rejected(self, shared_key, other_key):
        ciphertext = poseidon_encrypt([1, 2, 3, 4, 5, 6], shared_key, 0)
        with pytest.raises(CipherError):
            poseidon_decrypt(ciphertext, other_key, 0, 6)

    def test_unchecked_decrypt_returns_garbage(self, shared_key, other_key):
        message = [1, 2, 3, 4, 5, 6]
        ciphertext = poseidon_encrypt(message, shared_key, 0)
        garbage = poseidon_decrypt_without_check(ciphertext, other_key, 0, 6)
        assert len(garbage) == 6
        assert garbage != message

    def test_tampered_ciphertext_rejected(self, shared_key):
        ciphertext = poseidon_encrypt([1, 2, 3], shared_key, 0)
        ciphertext[0] += 1
        with pytest.raises(CipherError):
            poseidon_decrypt(ciphertext, shared_key, 0, 3)

    def test_nonce_bound(self, shared_key):
        with pytest.raises(FieldElementError):
            poseidon_encrypt([1], shared_key, 2 ** 128)
        with pytest.raises(FieldElementError):
            poseidon_decrypt([0, 0, 0, 0], shared_key, -1, 1)
