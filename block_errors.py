"""
Error types shared by the block-triangular engines.

All errors derive from BlockTriangularError and from the builtin exception a
caller of plain SymPy code would already expect (ValueError for bad input,
RuntimeError for faults that should never happen).
"""

from typing import Any, Optional, Tuple


class BlockTriangularError(Exception):
    """Base class for all block-triangular errors."""


class InvalidInput(BlockTriangularError, ValueError):
    """
    Raised when an input matrix or labeling is malformed, or when a matrix
    that must be block triangular has a nonzero entry below its block diagonal.

    Attributes:
    -----------
    entry : Optional[Tuple[int, int]]
        The (row, col) of the offending entry, if the failure is entry-specific
    """

    def __init__(self, message: str, entry: Optional[Tuple[int, int]] = None):
        super().__init__(message)
        self.entry = entry


class EmptyDomain(BlockTriangularError, ValueError):
    """Raised when the extreme label of an empty label set is requested."""


class Singular(BlockTriangularError, ValueError):
    """
    Raised when a block that must be invertible has zero determinant.

    Attributes:
    -----------
    det : Any
        The determinant that was found to vanish
    """

    def __init__(self, message: str, det: Any = 0):
        super().__init__(message)
        self.det = det


class InternalInconsistency(BlockTriangularError, RuntimeError):
    """
    Raised when the inversion engine reaches a state its preconditions rule
    out, e.g. a singular diagonal block after the full determinant was found
    to be nonzero.
    """
