"""Structural and integrity failures raised by the coordinator engine.

Rejected votes and deactivate requests are not errors; they leave state
untouched and are only visible through the per-message diagnostics.
"""


class CoordinatorError(Exception):
    """Base exception for coordinator operations"""
    pass


class PeriodError(CoordinatorError):
    """Operation not allowed in the current round period"""
    pass


class HashChainMismatchError(CoordinatorError):
    """Message log does not reproduce the expected batch hashes"""
    pass


class CommitmentMismatchError(CoordinatorError):
    """Recomputed commitment differs from the declared one"""
    pass


class CoordinatorKeyMismatchError(CoordinatorError):
    """Coordinator private key does not derive the configured public key"""
    pass


class MalformedMessageError(CoordinatorError):
    """Ciphertext or ephemeral key has the wrong shape"""
    pass


class MerkleInclusionError(CoordinatorError):
    """Leaf is not included under the claimed root"""
    pass


class NullifierReusedError(CoordinatorError):
    """Key rotation nullifier has already been consumed"""
    pass


class DeactivateLeafNotFoundError(CoordinatorError):
    """No deactivate record is bound to the given key"""
    pass


class NoPendingMessagesError(CoordinatorError):
    """Nothing left to process in the requested log"""
    pass


class StateImportError(CoordinatorError):
    """Persisted round state is inconsistent or incompatible"""
    pass
