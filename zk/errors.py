"""Exceptions raised by the field, hashing, tree and proving primitives."""


class ZKError(Exception):
    """Base exception for ZK primitive operations"""
    pass


class FieldElementError(ZKError):
    """Value cannot be represented as a field element or word"""
    pass


class TreeError(ZKError):
    """Merkle tree operation failed"""
    pass


class IndexOutOfBoundsError(TreeError):
    """Leaf index outside the tree's capacity"""
    pass


class TreeFullError(TreeError):
    """No free leaf left for an insertion"""
    pass


class CipherError(ZKError):
    """Authenticated decryption rejected the ciphertext"""
    pass


class ProofGenerationError(ZKError):
    """Proof generation failed"""
    pass
