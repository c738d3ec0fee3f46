"""
Block-triangular predicate and closure properties.

A square matrix M is block triangular with respect to a labeling b when

    b(j) < b(i)  implies  M[i, j] = 0

for all indices i, j, i.e. an entry may be nonzero only when its column label
is at least its row label. With b the identity labeling this is ordinary upper
triangularity; with the dual (order-reversed) labeling it is lower
triangularity.

The constructors below build matrices that are block triangular by
construction; the binary operations optionally validate their inputs and
return a result that is block triangular for the same labeling.
"""

from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

import sympy as sp

from block_errors import InvalidInput
from block_view import combine, extract_indices
from label_partition import Labeling, as_labeling, to_dual
from scalar_block_kernel import is_zero

LabelingLike = Union[Sequence[Any], Labeling]


def as_square_matrix(M: Any) -> sp.Matrix:
    """
    Convert M to a sp.Matrix and check that it is square.

    Raises:
        InvalidInput: if M is not square
    """
    if not isinstance(M, sp.MatrixBase):
        try:
            M = sp.Matrix(M)
        except (TypeError, ValueError, sp.SympifyError) as e:
            raise InvalidInput(f"Cannot interpret {type(M).__name__} as a matrix: {e}") from e
    if M.rows != M.cols:
        raise InvalidInput(
            f"Matrix must be square. Got {M.rows} rows and {M.cols} columns."
        )
    return sp.Matrix(M)


def find_violation(M: sp.Matrix, b: LabelingLike) -> Optional[Tuple[int, int]]:
    """
    First entry (i, j) in row-major order with b(j) < b(i) and M[i, j] != 0,
    or None when M is block triangular with respect to b.
    """
    M = as_square_matrix(M)
    b = as_labeling(b, M.rows)
    labels = [b(i) for i in range(M.rows)]
    for i in range(M.rows):
        for j in range(M.cols):
            if labels[j] < labels[i] and not is_zero(M[i, j]):
                return (i, j)
    return None


def is_block_triangular(M: sp.Matrix, b: LabelingLike) -> bool:
    return find_violation(M, b) is None


def validate_block_triangular(M: sp.Matrix, b: LabelingLike) -> None:
    """
    Defensive O(n^2) check of the block-triangular precondition.

    Raises:
        InvalidInput: naming the first violating entry
    """
    M = as_square_matrix(M)
    b = as_labeling(b, M.rows)
    entry = find_violation(M, b)
    if entry is not None:
        i, j = entry
        raise InvalidInput(
            f"Matrix is not block triangular: M[{i}, {j}] = {M[i, j]} is nonzero "
            f"but column label {b(j)!r} < row label {b(i)!r}.",
            entry=entry,
        )


def identity_labeling(i: int) -> int:
    return i


def is_upper_triangular(M: sp.Matrix) -> bool:
    return is_block_triangular(M, identity_labeling)


def is_lower_triangular(M: sp.Matrix) -> bool:
    return is_block_triangular(M, to_dual(identity_labeling))


# Constructors that are block triangular for any labeling

def zero(n: int) -> sp.Matrix:
    return sp.zeros(n, n)


def identity(n: int) -> sp.Matrix:
    return sp.eye(n)


def diagonal(entries: Sequence[Any]) -> sp.Matrix:
    """Diagonal matrix; block triangular with respect to every labeling."""
    entries = list(entries)
    if not entries:
        return sp.zeros(0, 0)
    return sp.diag(*entries)


def block_diagonal(blocks: Sequence[sp.Matrix]) -> Tuple[sp.Matrix, List[int]]:
    """
    Block-diagonal matrix from square blocks.

    Returns:
        (M, labels) where labels[i] is the number of the block containing i
    """
    blocks = [as_square_matrix(block) for block in blocks]
    labels = []
    for k, block in enumerate(blocks):
        labels.extend([k] * block.rows)
    if not blocks:
        return sp.zeros(0, 0), labels
    return sp.diag(*blocks), labels


def two_block_labels(n_top: int, n_bottom: int) -> List[int]:
    """Labeling of the upper two-block matrix: 0 on the top block, 1 below."""
    return [0] * n_top + [1] * n_bottom


def from_blocks(A: sp.Matrix, B: sp.Matrix, D: sp.Matrix) -> Tuple[sp.Matrix, List[int]]:
    """
    Upper two-block matrix [[A, B], [0, D]].

    Returns:
        (M, labels) with labels = two_block_labels(A.rows, D.rows)
    """
    A = as_square_matrix(A)
    D = as_square_matrix(D)
    M = combine(A, B, sp.zeros(D.rows, A.cols), D)
    return M, two_block_labels(A.rows, D.rows)


# Operations preserving block triangularity for a common labeling

def _check_pair(M: sp.Matrix, N: sp.Matrix, b: LabelingLike, validate: bool) -> Tuple[sp.Matrix, sp.Matrix]:
    M = as_square_matrix(M)
    N = as_square_matrix(N)
    if M.shape != N.shape:
        raise InvalidInput(f"Shape mismatch: {M.shape} vs {N.shape}")
    if validate:
        validate_block_triangular(M, b)
        validate_block_triangular(N, b)
    return M, N


def add(M: sp.Matrix, N: sp.Matrix, b: LabelingLike, validate: bool = True) -> sp.Matrix:
    M, N = _check_pair(M, N, b, validate)
    return M + N


def sub(M: sp.Matrix, N: sp.Matrix, b: LabelingLike, validate: bool = True) -> sp.Matrix:
    M, N = _check_pair(M, N, b, validate)
    return M - N


def mul(M: sp.Matrix, N: sp.Matrix, b: LabelingLike, validate: bool = True) -> sp.Matrix:
    """
    Product of two matrices block triangular for b.

    (MN)[i, j] collects M[i, l] N[l, j] over l with b(i) <= b(l) <= b(j), so
    the product vanishes whenever b(j) < b(i).
    """
    M, N = _check_pair(M, N, b, validate)
    return M * N


def neg(M: sp.Matrix) -> sp.Matrix:
    return -as_square_matrix(M)


def scale(c: Any, M: sp.Matrix) -> sp.Matrix:
    return sp.sympify(c) * as_square_matrix(M)


def map_entries(M: sp.Matrix, f: Callable[[Any], Any]) -> sp.Matrix:
    """
    Apply f entrywise. f must send 0 to 0 (as a ring homomorphism does) for
    the result to stay block triangular.

    Raises:
        InvalidInput: if f(0) != 0
    """
    if not is_zero(f(sp.Integer(0))):
        raise InvalidInput("map_entries requires f(0) == 0 to preserve block triangularity")
    return as_square_matrix(M).applyfunc(f)


def transpose(M: sp.Matrix, b: LabelingLike) -> Tuple[sp.Matrix, Labeling]:
    """
    Transpose of M together with the dual labeling it is block triangular for.
    """
    M = as_square_matrix(M)
    return M.T, to_dual(as_labeling(b, M.rows))


def submatrix(M: sp.Matrix, b: LabelingLike, f: Sequence[int]) -> Tuple[sp.Matrix, Labeling]:
    """
    Reindex rows and columns along f: N[s, t] = M[f[s], f[t]].

    N is block triangular for b composed with f whenever M is block triangular
    for b; f need not be injective.
    """
    M = as_square_matrix(M)
    b = as_labeling(b, M.rows)
    f = list(f)
    for s in f:
        if not 0 <= s < M.rows:
            raise InvalidInput(f"Index {s} out of range [0, {M.rows - 1}]")
    return extract_indices(M, f, f), (lambda s: b(f[s]))


def reindex_labeling(b: LabelingLike, perm: Sequence[int]) -> Labeling:
    """
    Labeling of the reindexed matrix: reindex(M, perm) is block triangular for
    reindex_labeling(b, perm) exactly when M is block triangular for b.
    """
    perm = list(perm)
    b = as_labeling(b, len(perm))
    return lambda i: b(perm[i])
