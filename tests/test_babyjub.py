"""Baby Jubjub arithmetic, EdDSA-Poseidon and ECDH."""

import pytest

from babyjub import (
    BASE8,
    IDENTITY,
    SUBGROUP_ORDER,
    CurveError,
    InvalidPointError,
    Keypair,
    Signature,
    add_point,
    blake512,
    derive_public_key,
    derive_secret_scalar,
    gen_ecdh_shared_key,
    gen_random_babyjub_value,
    in_curve,
    mul_point_escalar,
    negate_x,
    pack_point,
    unpack_point,
    verify_signature,
)
from zk import SNARK_FIELD_SIZE


class TestCurve:

    def test_base_point_on_curve(self):
        assert in_curve(BASE8)
        assert in_curve(IDENTITY)
        assert not in_curve((1, 1))

    def test_identity_is_neutral(self):
        assert add_point(BASE8, IDENTITY) == BASE8
        assert mul_point_escalar(BASE8, 0) == IDENTITY

    def test_subgroup_order(self):
        assert mul_point_escalar(BASE8, SUBGROUP_ORDER) == IDENTITY

    def test_scalar_multiplication_distributes(self):
        p3 = mul_point_escalar(BASE8, 3)
        assert add_point(BASE8, mul_point_escalar(BASE8, 2)) == p3
        assert in_curve(p3)

    def test_negative_scalar(self):
        with pytest.raises(CurveError):
            mul_point_escalar(BASE8, -1)

    def test_pack_round_trip(self):
        for seed in (1, 2, 3):
            point = Keypair.generate(seed).pub_key
            assert unpack_point(pack_point(point)) == point

    def test_pack_keeps_sign_of_x(self):
        point = negate_x(Keypair.generate(5).pub_key)
        assert unpack_point(pack_point(point)) == point

    def test_unpack_rejects_out_of_field(self):
        with pytest.raises(InvalidPointError):
            unpack_point(SNARK_FIELD_SIZE)


class TestBlake512:

    def test_empty_input(self):
        assert blake512(b"").hex() == (
            "a8cfbbd73726062df0c6864dda65defe58ef0cc52a5625090fa17601e1eecd1b"
            "628e94f396ae402a00acc9eab77b4d4c2e852aaaa25a636d80af3fc7913ef5b8")

    def test_single_zero_byte(self):
        assert blake512(b"\x00").hex() == (
            "97961587f6d970faba6d2478045de6d1fabd09b61ae50932054d52bc29d31be4"
            "ff9102b9f69e2bbdb83be13d4b9c06091e5fa0b48bd081b634058be0ec49beb3")

    def test_two_blocks(self):
        assert blake512(bytes(144)).hex() == (
            "313717d608e9cf758dcb1eb0f0c3cf9fc150b2d500fb33f51c52afc99d358a2f"
            "1374b8a38bba7974e7f6ef79cab16f22ce1e649d6e01ad9589c213045d545dde")


class TestKeys:

    def test_secret_scalar_reference_value(self):
        assert derive_secret_scalar(111111) == (
            2295754007515522394258511581246354452955624238787687789994300932264762345941)

    def test_formatted_key_reduced_into_subgroup(self):
        for seed in (1, 111111, 2 ** 200):
            assert derive_secret_scalar(seed) < SUBGROUP_ORDER

    def test_generate_is_deterministic(self):
        assert Keypair.generate(42) == Keypair.generate(42)
        assert Keypair.generate(42).pub_key != Keypair.generate(43).pub_key

    def test_public_key_from_formatted_key(self):
        keypair = Keypair.generate(7)
        assert keypair.formatted_priv_key == derive_secret_scalar(7)
        assert keypair.pub_key == mul_point_escalar(BASE8, keypair.formatted_priv_key)
        assert keypair.pub_key == derive_public_key(7)
        assert in_curve(keypair.pub_key)

    def test_formatted_key_fits_circuit_width(self):
        for seed in (1, 2 ** 200, SNARK_FIELD_SIZE - 1):
            assert derive_secret_scalar(seed) < 2 ** 253

    def test_random_keys_differ(self):
        assert Keypair.generate().priv_key != Keypair.generate().priv_key

    def test_random_value_in_field(self):
        for _ in range(5):
            assert 0 <= gen_random_babyjub_value() < SNARK_FIELD_SIZE


class TestSignatures:

    def test_sign_and_verify(self):
        keypair = Keypair.generate(5)
        signature = keypair.sign(123456)
        assert verify_signature(123456, signature, keypair.pub_key)

    def test_signing_is_deterministic(self):
        keypair = Keypair.generate(5)
        assert keypair.sign(99) == keypair.sign(99)

    def test_wrong_message_or_key(self):
        keypair = Keypair.generate(5)
        signature = keypair.sign(123456)
        assert not verify_signature(123457, signature, keypair.pub_key)
        assert not verify_signature(123456, signature, Keypair.generate(6).pub_key)

    def test_malformed_signature_does_not_raise(self):
        keypair = Keypair.generate(5)
        signature = keypair.sign(1)
        too_large = Signature(r8=signature.r8, s=SUBGROUP_ORDER)
        off_curve = Signature(r8=(1, 1), s=signature.s)
        assert not verify_signature(1, too_large, keypair.pub_key)
        assert not verify_signature(1, off_curve, keypair.pub_key)
        assert not verify_signature(1, signature, (0, 0))

    def test_signature_list_layout(self):
        signature = Keypair.generate(5).sign(1)
        assert signature.to_list() == [signature.r8[0], signature.r8[1], signature.s]


class TestECDH:

    def test_shared_key_is_symmetric(self):
        alice = Keypair.generate(100)
        bob = Keypair.generate(200)
        assert alice.shared_key(bob.pub_key) == bob.shared_key(alice.pub_key)
        assert gen_ecdh_shared_key(alice.priv_key, bob.pub_key) == alice.shared_key(bob.pub_key)

    def test_shared_key_depends_on_peer(self):
        alice = Keypair.generate(100)
        assert alice.shared_key(Keypair.generate(200).pub_key) != \
            alice.shared_key(Keypair.generate(300).pub_key)
