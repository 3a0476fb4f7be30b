"""
Command packing, message encryption and the message hash chain.

A command is six field elements: the packed word, the new public key and
the EdDSA signature over poseidon([packed, newPubKey]). It is encrypted
with the Poseidon duplex under ECDH(ephemeral, coordinator), giving the
seven-word ciphertext carried in a message.
"""

import logging
import secrets
from typing import List, Optional, Sequence, Tuple

from babyjub import Keypair, Point, Signature, gen_ecdh_shared_key, in_curve
from zk import poseidon, poseidon_encrypt, poseidon_decrypt_without_check

from .errors import HashChainMismatchError, MalformedMessageError
from .models import MESSAGE_LENGTH, Command, Message

logger = logging.getLogger(__name__)

UINT32 = 1 << 32
UINT96 = 1 << 96
COMMAND_LENGTH = 6


def pack_element(nonce: int, state_idx: int, vo_idx: int, new_votes: int,
                 salt: Optional[int] = None) -> int:
    if salt is None:
        salt = secrets.randbits(56)
    return nonce + (state_idx << 32) + (vo_idx << 64) + (new_votes << 96) + (salt << 192)


def unpack_element(packed: int) -> Tuple[int, int, int, int]:
    """(nonce, state_idx, vo_idx, new_votes); the salt is discarded"""
    nonce = packed % UINT32
    state_idx = (packed >> 32) % UINT32
    vo_idx = (packed >> 64) % UINT32
    new_votes = (packed >> 96) % UINT96
    return nonce, state_idx, vo_idx, new_votes


def hash_message(ciphertext: Sequence[int], enc_pub_key: Point, prev_hash: int) -> int:
    return poseidon([
        poseidon(ciphertext[:5]),
        poseidon([ciphertext[5], ciphertext[6], enc_pub_key[0], enc_pub_key[1], prev_hash]),
    ])


def validate_message(ciphertext: Sequence[int], enc_pub_key: Point):
    if len(ciphertext) != MESSAGE_LENGTH:
        raise MalformedMessageError(
            f"Ciphertext must have {MESSAGE_LENGTH} elements, got {len(ciphertext)}")
    if len(enc_pub_key) != 2 or enc_pub_key[0] == 0 or not in_curve(tuple(enc_pub_key)):
        raise MalformedMessageError(f"Invalid ephemeral public key {enc_pub_key}")


def verify_hash_chain(messages: Sequence[Message], start_hash: int, end_hash: int) -> int:
    """
    Fold the batch into the running hash, skipping padding messages, and
    require it to land on end_hash.
    """
    running = start_hash
    for idx, message in enumerate(messages):
        if message.is_empty:
            continue
        running = hash_message(message.ciphertext, message.enc_pub_key, running)
        if message.hash and running != message.hash:
            raise HashChainMismatchError(
                f"Message {idx} hash {message.hash} does not follow from its predecessor")

    if running != end_hash:
        raise HashChainMismatchError(f"Hash chain ends at {running}, expected {end_hash}")
    return running


def message_to_command(message: Message, coordinator: Keypair) -> Optional[Command]:
    """
    Decrypt without the padding check, the same as the circuit does. A
    wrong key yields a garbage command that fails validation downstream.
    Padding messages decrypt to None.
    """
    if len(message.ciphertext) != MESSAGE_LENGTH:
        raise MalformedMessageError(
            f"Ciphertext must have {MESSAGE_LENGTH} elements, got {len(message.ciphertext)}")
    if message.is_empty:
        return None

    shared_key = coordinator.shared_key(message.enc_pub_key)
    plaintext = poseidon_decrypt_without_check(message.ciphertext, shared_key, 0, COMMAND_LENGTH)

    nonce, state_idx, vo_idx, new_votes = unpack_element(plaintext[0])
    return Command(
        nonce=nonce,
        state_idx=state_idx,
        vo_idx=vo_idx,
        new_votes=new_votes,
        new_pub_key=(plaintext[1], plaintext[2]),
        signature=Signature(r8=(plaintext[3], plaintext[4]), s=plaintext[5]),
        msg_hash=poseidon(plaintext[:3]),
    )


def gen_message(signer: Keypair, enc_priv_key: int, coord_pub_key: Point, state_idx: int,
                nonce: int, vo_idx: int, new_votes: int, is_last_cmd: bool,
                salt: Optional[int] = None) -> List[int]:
    packed = pack_element(nonce, state_idx, vo_idx, new_votes, salt)

    new_pub_key = (0, 0) if is_last_cmd else signer.pub_key
    signature = signer.sign(poseidon([packed, new_pub_key[0], new_pub_key[1]]))

    command = [packed, new_pub_key[0], new_pub_key[1]] + signature.to_list()
    return poseidon_encrypt(command, gen_ecdh_shared_key(enc_priv_key, coord_pub_key), 0)


def batch_gen_message(state_idx: int, signer: Keypair, coord_pub_key: Point,
                      plan: Sequence[Tuple[int, int]]) -> List[Message]:
    """
    Messages for a vote plan, newest first. Plan entry i carries nonce
    i + 1 and the last entry resets the public key to (0, 0).
    """
    payload = []
    for i in range(len(plan) - 1, -1, -1):
        vo_idx, new_votes = plan[i]
        enc_keypair = Keypair.generate()
        ciphertext = gen_message(signer, enc_keypair.priv_key, coord_pub_key, state_idx,
                                 i + 1, vo_idx, new_votes, i == len(plan) - 1)
        payload.append(Message(ciphertext=ciphertext, enc_pub_key=enc_keypair.pub_key))
    return payload


def build_vote_payload(state_idx: int, signer: Keypair, coord_pub_key: Point,
                       options: Sequence[Tuple[int, int]]) -> List[Message]:
    """options are (vote option index, vote weight) pairs"""
    seen = set()
    for idx, _ in options:
        if idx in seen:
            raise ValueError(f"Duplicate option index ({idx}) is not allowed")
        seen.add(idx)

    plan = sorted([(idx, vc) for idx, vc in options if vc], key=lambda o: o[0])
    logger.debug(f"Vote plan for state index {state_idx}: {plan}")
    return batch_gen_message(state_idx, signer, coord_pub_key, plan)


def build_deactivate_payload(state_idx: int, signer: Keypair, coord_pub_key: Point) -> Message:
    return batch_gen_message(state_idx, signer, coord_pub_key, [(0, 0)])[0]
