"""
Single-command state transition.

A command is accepted only when the ballot validates, the leaf's ElGamal
flag decrypts even and the account's active-state entry is still 0. Both
deactivation checks are evaluated independently. On rejection the caller
gets an identical copy of the input leaf; nothing is raised.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from babyjub import ElGamalCiphertext, decrypt_parity

from .models import Command, StateLeaf
from .validation import (
    DEACTIVATED,
    EMPTY_COMMAND,
    INACTIVE,
    INDEX_ERRORS,
    CommandLimits,
    validate_command,
)

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    leaf: StateLeaf
    accepted: bool
    reason: Optional[str] = None


def is_leaf_deactivated(leaf: StateLeaf, coord_formatted_priv_key: int) -> bool:
    return decrypt_parity(coord_formatted_priv_key, ElGamalCiphertext(leaf.d1, leaf.d2))


def apply_command(leaf: StateLeaf, command: Optional[Command], active_state_entry: int,
                  coord_formatted_priv_key: int, limits: CommandLimits) -> TransitionResult:
    if command is None:
        return TransitionResult(leaf=leaf.copy(), accepted=False, reason=EMPTY_COMMAND)

    current_vote_weight = 0
    if command.vo_idx < leaf.vo_tree.capacity:
        current_vote_weight = leaf.vo_tree.leaf(command.vo_idx)

    validation = validate_command(command, leaf, current_vote_weight, limits)
    is_inactive = active_state_entry != 0
    is_deactivated = is_leaf_deactivated(leaf, coord_formatted_priv_key)

    accepted = validation.is_valid and not is_deactivated and not is_inactive
    if not accepted:
        if validation.reason in INDEX_ERRORS:
            reason = validation.reason
        elif is_inactive:
            reason = INACTIVE
        elif is_deactivated:
            reason = DEACTIVATED
        else:
            reason = validation.reason
        return TransitionResult(leaf=leaf.copy(), accepted=False, reason=reason)

    vo_tree = leaf.vo_tree.copy()
    vo_tree.update(command.vo_idx, command.new_votes)
    new_leaf = StateLeaf(
        pub_key=command.new_pub_key,
        balance=validation.new_balance,
        vo_tree=vo_tree,
        nonce=command.nonce,
        voted=True,
        d1=leaf.d1,
        d2=leaf.d2,
    )
    return TransitionResult(leaf=new_leaf, accepted=True)
