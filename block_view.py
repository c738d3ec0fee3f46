"""
Block View

Slicing and assembly helpers for square SymPy matrices. A block is selected
by a row predicate and a column predicate over original indices; the selected
indices are kept in ascending order, which is the bijection between the
predicate's index subset and range(len(subset)).

Nothing here mutates its arguments; every function returns a new matrix.
"""

from typing import Callable, List, Sequence

import sympy as sp

from block_errors import InvalidInput

Predicate = Callable[[int], bool]


def select_indices(n: int, pred: Predicate) -> List[int]:
    """Ascending list of indices in range(n) satisfying pred."""
    return [i for i in range(n) if pred(i)]


def extract(M: sp.Matrix, row_pred: Predicate, col_pred: Predicate) -> sp.Matrix:
    """
    Submatrix of M on rows satisfying row_pred and columns satisfying col_pred.

    Returns:
        A new (possibly empty) sp.Matrix
    """
    rows = select_indices(M.rows, row_pred)
    cols = select_indices(M.cols, col_pred)
    return extract_indices(M, rows, cols)


def extract_indices(M: sp.Matrix, rows: Sequence[int], cols: Sequence[int]) -> sp.Matrix:
    """Submatrix of M on explicit row and column index lists."""
    rows, cols = list(rows), list(cols)
    if not rows or not cols:
        return sp.zeros(len(rows), len(cols))
    return M.extract(rows, cols)


# Name used when stating closure properties of a block
to_block = extract


def principal_block(M: sp.Matrix, pred: Predicate) -> sp.Matrix:
    """Principal submatrix of M on the indices satisfying pred."""
    return extract(M, pred, pred)


def combine(
    top_left: sp.Matrix,
    top_right: sp.Matrix,
    bottom_left: sp.Matrix,
    bottom_right: sp.Matrix,
) -> sp.Matrix:
    """
    Assemble [[top_left, top_right], [bottom_left, bottom_right]].

    Empty blocks are allowed as long as the row/column counts line up.

    Raises:
        InvalidInput: if the block shapes are incompatible
    """
    if top_left.rows != top_right.rows or bottom_left.rows != bottom_right.rows:
        raise InvalidInput(
            f"Row counts do not match: top {top_left.rows}/{top_right.rows}, "
            f"bottom {bottom_left.rows}/{bottom_right.rows}"
        )
    if top_left.cols != bottom_left.cols or top_right.cols != bottom_right.cols:
        raise InvalidInput(
            f"Column counts do not match: left {top_left.cols}/{bottom_left.cols}, "
            f"right {top_right.cols}/{bottom_right.cols}"
        )
    top = top_left.row_join(top_right)
    bottom = bottom_left.row_join(bottom_right)
    return top.col_join(bottom)


def _check_permutation(perm: Sequence[int], n: int) -> List[int]:
    perm = list(perm)
    if sorted(perm) != list(range(n)):
        raise InvalidInput(f"reindexing map {perm} is not a permutation of range({n})")
    return perm


def reindex(M: sp.Matrix, perm: Sequence[int]) -> sp.Matrix:
    """
    Reindex a square matrix along a bijection: N[i, j] = M[perm[i], perm[j]].

    Raises:
        InvalidInput: if perm is not a permutation of range(M.rows)
    """
    perm = _check_permutation(perm, M.rows)
    return extract_indices(M, perm, perm)


def scatter(block: sp.Matrix, rows: Sequence[int], cols: Sequence[int], n: int) -> sp.Matrix:
    """Embed block into an n x n zero matrix at original indices rows x cols."""
    rows, cols = list(rows), list(cols)
    if block.shape != (len(rows), len(cols)):
        raise InvalidInput(
            f"Block has shape {block.shape}, expected ({len(rows)}, {len(cols)})"
        )
    result = sp.zeros(n, n)
    for a, i in enumerate(rows):
        for c, j in enumerate(cols):
            result[i, j] = block[a, c]
    return result
