"""
JSON export and import of round state.

Large integers are written as decimal strings. The coordinator private key
is never part of the document; the importing process supplies its own
keypair and it must match the exported public key.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict

from babyjub import Keypair
from config import CircuitConfig, ConfigurationError, RoundConfig, round_config_to_dict
from zk import MerkleTree, poseidon

from .batch import verify_coordinator_key
from .errors import CoordinatorKeyMismatchError, StateImportError
from .messages import hash_message
from .models import Message, Period, StateLeaf
from .state import RoundState

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def export_state(state: RoundState) -> Dict[str, Any]:
    return {
        'version': FORMAT_VERSION,
        'params': round_config_to_dict(state.params),
        'coord_pub_key': [str(state.coord_pub_key[0]), str(state.coord_pub_key[1])],
        'period': state.period.value,
        'num_sign_ups': state.num_sign_ups,
        'state_tree': state.state_tree.to_dict(),
        'active_state_tree': state.active_state_tree.to_dict(),
        'deactivate_tree': state.deactivate_tree.to_dict(),
        'leaves': {str(idx): leaf.to_dict() for idx, leaf in sorted(state.leaves.items())},
        'messages': [m.to_dict() for m in state.messages],
        'deactivate_messages': [m.to_dict() for m in state.deactivate_messages],
        'deactivate_records': {
            str(idx): [str(v) for v in record]
            for idx, record in sorted(state.deactivate_records.items())
        },
        'nullifiers': sorted(str(n) for n in state.nullifiers),
        'msg_end_idx': state.msg_end_idx,
        'processed_deactivate_count': state.processed_deactivate_count,
        'state_salt': str(state.state_salt),
        'state_commitment': str(state.state_commitment),
        'tally_results': state.tally_results.to_dict(),
        'tally_salt': str(state.tally_salt),
        'tally_commitment': str(state.tally_commitment),
        'batch_num': state.batch_num,
    }


def import_state(data: Dict[str, Any], coordinator: Keypair) -> RoundState:
    """Rebuild a round and check it is internally consistent"""
    if data.get('version') != FORMAT_VERSION:
        raise StateImportError(f"Unsupported state format version {data.get('version')!r}")

    try:
        params_data = dict(data['params'])
        circuit = CircuitConfig(**params_data.pop('circuit'))
        params = RoundConfig(circuit=circuit, **params_data)
        coord_pub_key = (int(data['coord_pub_key'][0]), int(data['coord_pub_key'][1]))

        try:
            verify_coordinator_key(coordinator, coord_pub_key)
        except CoordinatorKeyMismatchError as e:
            raise StateImportError(f"Coordinator keypair does not match exported state: {e}") from e

        state = RoundState(params, coord_pub_key)
        state.period = Period(data['period'])
        state.num_sign_ups = int(data['num_sign_ups'])
        state.state_tree = MerkleTree.from_dict(data['state_tree'])
        state.active_state_tree = MerkleTree.from_dict(data['active_state_tree'])
        state.deactivate_tree = MerkleTree.from_dict(data['deactivate_tree'])
        state.leaves = {
            int(idx): StateLeaf.from_dict(leaf, circuit.vote_option_tree_depth)
            for idx, leaf in data['leaves'].items()
        }
        state.messages = [Message.from_dict(m) for m in data['messages']]
        state.deactivate_messages = [Message.from_dict(m) for m in data['deactivate_messages']]
        state.deactivate_records = {
            int(idx): [int(v) for v in record]
            for idx, record in data['deactivate_records'].items()
        }
        state.nullifiers = {int(n) for n in data['nullifiers']}
        state.msg_end_idx = int(data['msg_end_idx'])
        state.processed_deactivate_count = int(data['processed_deactivate_count'])
        state.state_salt = int(data['state_salt'])
        state.state_commitment = int(data['state_commitment'])
        state.tally_results = MerkleTree.from_dict(data['tally_results'])
        state.tally_salt = int(data['tally_salt'])
        state.tally_commitment = int(data['tally_commitment'])
        state.batch_num = int(data['batch_num'])
    except (KeyError, TypeError, ValueError, ConfigurationError) as e:
        raise StateImportError(f"Malformed state document: {e}") from e

    _check_consistency(state)
    logger.info(f"Imported round state: {state.num_sign_ups} sign-ups, period {state.period.value}")
    return state


def _check_consistency(state: RoundState):
    circuit = state.params.circuit
    trees = (
        ('state', state.state_tree),
        ('active state', state.active_state_tree),
        ('deactivate', state.deactivate_tree),
        ('tally result', state.tally_results),
    )
    for name, tree in trees:
        if not tree.verify_nodes():
            raise StateImportError(f"The {name} tree nodes are not consistent with its leaves")

    if state.state_tree.depth != circuit.state_tree_depth:
        raise StateImportError("State tree depth does not match the round parameters")
    if state.deactivate_tree.depth != circuit.deactivate_tree_depth:
        raise StateImportError("Deactivate tree depth does not match the round parameters")

    for idx, leaf in state.leaves.items():
        if state.state_tree.leaf(idx) != leaf.hash():
            raise StateImportError(f"State leaf {idx} does not match the state tree")

    for idx, record in state.deactivate_records.items():
        if state.deactivate_tree.leaf(idx) != poseidon(record):
            raise StateImportError(f"Deactivate record {idx} does not match the deactivate tree")

    for label, log in (('Message', state.messages), ('Deactivate message', state.deactivate_messages)):
        prev_hash = 0
        for idx, message in enumerate(log):
            if (message.prev_hash != prev_hash
                    or hash_message(message.ciphertext, message.enc_pub_key, prev_hash) != message.hash):
                raise StateImportError(f"{label} {idx} breaks the hash chain")
            prev_hash = message.hash


def save_state(state: RoundState, filepath: Path):
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, 'w') as f:
        json.dump(export_state(state), f, indent=2)
    logger.info(f"Round state saved to {filepath}")


def load_state(filepath: Path, coordinator: Keypair) -> RoundState:
    try:
        with open(filepath, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise StateImportError(f"Could not parse state file {filepath}: {e}") from e
    return import_state(data, coordinator)
