"""
Coordinator engine: round state, message and deactivate batch processing,
key rotation and tallying.
"""

from .errors import (
    CoordinatorError,
    PeriodError,
    HashChainMismatchError,
    CommitmentMismatchError,
    CoordinatorKeyMismatchError,
    MalformedMessageError,
    MerkleInclusionError,
    NullifierReusedError,
    DeactivateLeafNotFoundError,
    NoPendingMessagesError,
    StateImportError,
)
from .models import Period, Message, Command, StateLeaf, BatchWitness
from .messages import (
    pack_element,
    unpack_element,
    hash_message,
    verify_hash_chain,
    message_to_command,
    gen_message,
    batch_gen_message,
    build_vote_payload,
    build_deactivate_payload,
)
from .validation import MAX_VOTE_WEIGHT, CostMode, CommandLimits, ValidationResult, validate_command
from .transition import TransitionResult, apply_command
from .state import RoundState
from .batch import MessageBatchProcessor, verify_coordinator_key
from .deactivate import DeactivateProcessor
from .key_rotation import KeyRotationService, KeyRotationResult, build_add_key_input, compute_nullifier
from .tally import TallyProcessor, decode_tally_result
from .persistence import export_state, import_state, save_state, load_state

__all__ = [
    # Model
    'Period',
    'Message',
    'Command',
    'StateLeaf',
    'BatchWitness',
    'RoundState',

    # Messages
    'pack_element',
    'unpack_element',
    'hash_message',
    'verify_hash_chain',
    'message_to_command',
    'gen_message',
    'batch_gen_message',
    'build_vote_payload',
    'build_deactivate_payload',

    # Validation and transition
    'MAX_VOTE_WEIGHT',
    'CostMode',
    'CommandLimits',
    'ValidationResult',
    'validate_command',
    'TransitionResult',
    'apply_command',

    # Processing
    'MessageBatchProcessor',
    'verify_coordinator_key',
    'DeactivateProcessor',
    'KeyRotationService',
    'KeyRotationResult',
    'build_add_key_input',
    'compute_nullifier',
    'TallyProcessor',
    'decode_tally_result',

    # Persistence
    'export_state',
    'import_state',
    'save_state',
    'load_state',

    # Exceptions
    'CoordinatorError',
    'PeriodError',
    'HashChainMismatchError',
    'CommitmentMismatchError',
    'CoordinatorKeyMismatchError',
    'MalformedMessageError',
    'MerkleInclusionError',
    'NullifierReusedError',
    'DeactivateLeafNotFoundError',
    'NoPendingMessagesError',
    'StateImportError',
]
