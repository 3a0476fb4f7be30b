"""Ballot validation against the voter's current state leaf."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from babyjub import verify_signature

from .models import Command, StateLeaf

# Largest vote weight whose square still fits in the field
MAX_VOTE_WEIGHT = 147946756881789319005730692170996259609

EMPTY_COMMAND = "empty command"
STATE_INDEX_OVERFLOW = "state leaf index overflow"
VOTE_OPTION_OVERFLOW = "vote option index overflow"
INACTIVE = "inactive"
DEACTIVATED = "deactivated"
NONCE_ERROR = "nonce error"
SIGNATURE_ERROR = "signature error"
VOTE_WEIGHT_OVERFLOW = "vote weight overflow"
INSUFFICIENT_BALANCE = "insufficient balance"

INDEX_ERRORS = (STATE_INDEX_OVERFLOW, VOTE_OPTION_OVERFLOW)


class CostMode(Enum):
    LINEAR = "linear"
    QUADRATIC = "quadratic"

    @classmethod
    def from_flag(cls, is_quadratic: bool) -> 'CostMode':
        return cls.QUADRATIC if is_quadratic else cls.LINEAR

    def cost(self, weight: int) -> int:
        return weight * weight if self is CostMode.QUADRATIC else weight


@dataclass(frozen=True)
class CommandLimits:
    num_sign_ups: int
    max_vote_options: int
    cost_mode: CostMode = CostMode.LINEAR
    max_state_leaves: Optional[int] = None

    def state_index_in_range(self, state_idx: int) -> bool:
        if state_idx > self.num_sign_ups:
            return False
        return self.max_state_leaves is None or state_idx < self.max_state_leaves


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    new_balance: int
    reason: Optional[str] = None


def validate_command(command: Command, state_leaf: StateLeaf, current_vote_weight: int,
                     limits: CommandLimits) -> ValidationResult:
    """
    Check a decrypted command against the leaf it targets.

    The returned balance is computed whether or not the command is valid
    and must be discarded by the caller when it is not. Cost is charged per
    option, refunding whatever weight the option held before.
    """
    cost_mode = limits.cost_mode
    new_balance = (state_leaf.balance + cost_mode.cost(current_vote_weight)
                   - cost_mode.cost(command.new_votes))

    reason = None
    if not limits.state_index_in_range(command.state_idx):
        reason = STATE_INDEX_OVERFLOW
    elif command.vo_idx >= limits.max_vote_options:
        reason = VOTE_OPTION_OVERFLOW
    elif command.nonce != state_leaf.nonce + 1:
        reason = NONCE_ERROR
    elif not verify_signature(command.msg_hash, command.signature, state_leaf.pub_key):
        reason = SIGNATURE_ERROR
    elif command.new_votes >= MAX_VOTE_WEIGHT:
        reason = VOTE_WEIGHT_OVERFLOW
    elif new_balance < 0:
        reason = INSUFFICIENT_BALANCE

    return ValidationResult(is_valid=reason is None, new_balance=new_balance, reason=reason)
