"""
Shared fixtures: a small round with a depth-2 state tree, a single level of
vote options and batches of five.
"""

import sys
from pathlib import Path
from typing import Optional

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from babyjub import Keypair, Point  # noqa: E402
from config import RoundConfig  # noqa: E402
from coordinator import Command, Message, RoundState, gen_message, pack_element  # noqa: E402
from zk import poseidon, poseidon_encrypt  # noqa: E402

COORDINATOR_SEED = 0xC00D1
VOTER_SEEDS = (1001, 1002, 1003, 1004)


def make_command(signer: Keypair, state_idx: int, vo_idx: int, new_votes: int, nonce: int,
                 new_pub_key: Optional[Point] = None, salt: int = 0) -> Command:
    """A decrypted, signed command as the batch processor would see it"""
    packed = pack_element(nonce, state_idx, vo_idx, new_votes, salt)
    if new_pub_key is None:
        new_pub_key = signer.pub_key
    msg_hash = poseidon([packed, new_pub_key[0], new_pub_key[1]])
    return Command(
        nonce=nonce,
        state_idx=state_idx,
        vo_idx=vo_idx,
        new_votes=new_votes,
        new_pub_key=tuple(new_pub_key),
        signature=signer.sign(msg_hash),
        msg_hash=msg_hash,
    )


def vote_message(signer: Keypair, coord_pub_key: Point, state_idx: int, nonce: int,
                 vo_idx: int, new_votes: int, is_last_cmd: bool = False) -> Message:
    """Encrypted vote under a fresh ephemeral key"""
    enc_keypair = Keypair.generate()
    ciphertext = gen_message(signer, enc_keypair.priv_key, coord_pub_key, state_idx,
                             nonce, vo_idx, new_votes, is_last_cmd)
    return Message(ciphertext=ciphertext, enc_pub_key=enc_keypair.pub_key)


def key_change_message(signer: Keypair, new_pub_key: Point, coord_pub_key: Point, state_idx: int,
                       nonce: int, vo_idx: int, new_votes: int) -> Message:
    """Encrypted vote that also installs new_pub_key on the leaf"""
    enc_keypair = Keypair.generate()
    packed = pack_element(nonce, state_idx, vo_idx, new_votes)
    signature = signer.sign(poseidon([packed, new_pub_key[0], new_pub_key[1]]))
    command = [packed, new_pub_key[0], new_pub_key[1]] + signature.to_list()
    ciphertext = poseidon_encrypt(command, enc_keypair.shared_key(coord_pub_key), 0)
    return Message(ciphertext=ciphertext, enc_pub_key=enc_keypair.pub_key)


def publish(state: RoundState, message: Message) -> Message:
    return state.push_message(message.ciphertext, message.enc_pub_key)


def publish_deactivate(state: RoundState, message: Message) -> Message:
    return state.push_deactivate_message(message.ciphertext, message.enc_pub_key)


@pytest.fixture(scope="session")
def coordinator() -> Keypair:
    return Keypair.generate(COORDINATOR_SEED)


@pytest.fixture(scope="session")
def voters():
    return [Keypair.generate(seed) for seed in VOTER_SEEDS]


@pytest.fixture
def round_config() -> RoundConfig:
    return RoundConfig()


@pytest.fixture
def quadratic_config() -> RoundConfig:
    return RoundConfig(voice_credit_amount=1000, is_quadratic_cost=True)


@pytest.fixture
def round_state(round_config, coordinator) -> RoundState:
    return RoundState(round_config, coordinator.pub_key)


@pytest.fixture
def signed_up_state(round_state, voters) -> RoundState:
    for voter in voters:
        round_state.sign_up(voter.pub_key)
    return round_state
