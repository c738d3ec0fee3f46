"""
Block-Triangular Determinant Engine

Computes the determinant of a matrix that is block triangular with respect to
a labeling b as the product of the determinants of its diagonal blocks:

    det(M) = prod_{a in image(b)} det(M restricted to {i | b(i) = a})

The engine peels off one extreme label per step. With the maximal label k
removed, the rows labeled k are zero outside the columns labeled k, so after
reordering M = [[A, B], [0, D]] with D the block at k, and
det(M) = det(D) * det(A). With the minimal label removed the columns labeled
k are zero outside the rows labeled k and the same factorization applies with
the roles of the blocks swapped. Each step works on a strictly smaller label
set, so the loop terminates after |image(b)| steps.

Usage Example:
--------------
    import sympy as sp
    from block_determinant import block_triangular_det

    M = sp.Matrix([[2, 1, 7], [0, 3, 4], [0, 0, 5]])
    block_triangular_det(M, [1, 2, 3])   # 30
"""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import sympy as sp

from block_errors import InvalidInput
from block_triangular import (
    LabelingLike,
    as_square_matrix,
    is_lower_triangular,
    is_upper_triangular,
    validate_block_triangular,
)
from block_view import extract_indices, principal_block, select_indices
from label_partition import (
    as_labeling,
    indices_at,
    label_set,
    max_label,
    min_label,
    restrict_labeling,
)
from scalar_block_kernel import ScalarBlockKernel, print_timing_report

logger = logging.getLogger(__name__)

ORDERS = ('max', 'min')


class BlockTriangularDeterminant:
    """
    Determinant engine for block-triangular matrices.

    Parameters:
    -----------
    kernel : ScalarBlockKernel, optional
        Dense kernel used for each diagonal block (default: Berkowitz kernel)
    validate : bool
        If True, check the block-triangular precondition once, upfront,
        raising InvalidInput on failure. If False the caller guarantees it and
        a violating input gives an unspecified result.

    Attributes:
    -----------
    last_trace : List[Tuple[Any, int, sp.Expr]]
        (label, block size, block determinant) for each step of the most
        recent det() call, in the order the labels were removed
    """

    def __init__(self, kernel: Optional[ScalarBlockKernel] = None, validate: bool = True):
        self.kernel = kernel if kernel is not None else ScalarBlockKernel()
        self.validate = validate
        self.last_trace: List[Tuple[Any, int, sp.Expr]] = []

        self._timing_stats = {'det': 0.0}
        self._timing_counts = {'det': 0}

    def _prepare(self, M, b: LabelingLike):
        M = as_square_matrix(M)
        b = as_labeling(b, M.rows)
        if self.validate:
            validate_block_triangular(M, b)
        return M, b

    def det(self, M: sp.Matrix, b: LabelingLike, order: str = 'max') -> sp.Expr:
        """
        Determinant of a block-triangular matrix by peeling extreme labels.

        Parameters:
        -----------
        M : sp.Matrix
            Square matrix, block triangular with respect to b
        b : sequence or callable
            Labeling of the indices of M
        order : str
            'max' removes the maximal remaining label each step, 'min' the
            minimal one. Both give the same result.

        Returns:
        --------
        sp.Expr
            The determinant; 1 for the empty matrix

        Raises:
        -------
        InvalidInput
            If M is not square, b has the wrong length, order is unknown, or
            (with validate=True) M is not block triangular for b
        """
        if order not in ORDERS:
            raise InvalidInput(f"order must be one of {ORDERS}, got {order!r}")
        M, b = self._prepare(M, b)
        start = time.time()

        self.last_trace = []
        result = sp.Integer(1)
        labels = label_set(b, M.rows)
        while labels:
            k = max_label(labels) if order == 'max' else min_label(labels)
            at_k = indices_at(b, k)
            rest = select_indices(M.rows, lambda i: not at_k(i))

            block_k = principal_block(M, at_k)
            det_k = self.kernel.det(block_k)
            self.last_trace.append((k, block_k.rows, det_k))
            logger.debug("label %r: %dx%d diagonal block, det=%s", k, block_k.rows, block_k.cols, det_k)

            result = result * det_k
            # The remainder keeps every label except k
            M = extract_indices(M, rest, rest)
            b = restrict_labeling(b, rest)
            labels = [a for a in labels if a != k]

        self._timing_stats['det'] += time.time() - start
        self._timing_counts['det'] += 1
        return result

    def diagonal_blocks(self, M: sp.Matrix, b: LabelingLike) -> Dict[Any, sp.Matrix]:
        """Map each realized label (ascending) to its diagonal block."""
        M = as_square_matrix(M)
        b = as_labeling(b, M.rows)
        return {a: principal_block(M, indices_at(b, a)) for a in label_set(b, M.rows)}

    def det_product(
        self,
        M: sp.Matrix,
        b: LabelingLike,
        label_order: Optional[Sequence[Any]] = None,
    ) -> sp.Expr:
        """
        Closed form prod_{a in image(b)} det(diagonal block at a), taken in
        label_order when given (it must list every realized label once).
        """
        M, b = self._prepare(M, b)
        blocks = self.diagonal_blocks(M, b)
        if label_order is None:
            label_order = list(blocks)
        else:
            label_order = list(label_order)
            if len(label_order) != len(blocks) or set(label_order) != set(blocks):
                raise InvalidInput(
                    f"label_order {label_order} must list each realized label "
                    f"{list(blocks)} exactly once"
                )
        result = sp.Integer(1)
        for a in label_order:
            result = result * self.kernel.det(blocks[a])
        return result

    def two_block_det(self, A: sp.Matrix, B: sp.Matrix, D: sp.Matrix) -> sp.Expr:
        """det [[A, B], [0, D]] = det(A) * det(D); B is only shape-checked."""
        A = as_square_matrix(A)
        D = as_square_matrix(D)
        if B.shape != (A.rows, D.cols):
            raise InvalidInput(f"Upper-right block has shape {B.shape}, expected ({A.rows}, {D.cols})")
        return self.kernel.det(A) * self.kernel.det(D)

    def two_block_det_lower(self, A: sp.Matrix, C: sp.Matrix, D: sp.Matrix) -> sp.Expr:
        """det [[A, 0], [C, D]] = det(A) * det(D); C is only shape-checked."""
        A = as_square_matrix(A)
        D = as_square_matrix(D)
        if C.shape != (D.rows, A.cols):
            raise InvalidInput(f"Lower-left block has shape {C.shape}, expected ({D.rows}, {A.cols})")
        return self.kernel.det(A) * self.kernel.det(D)

    def upper_triangular_det(self, M: sp.Matrix) -> sp.Expr:
        """Product of the diagonal of an upper triangular matrix."""
        M = as_square_matrix(M)
        if not is_upper_triangular(M):
            raise InvalidInput("Matrix is not upper triangular")
        return sp.Mul(*[M[i, i] for i in range(M.rows)])

    def lower_triangular_det(self, M: sp.Matrix) -> sp.Expr:
        """Product of the diagonal of a lower triangular matrix."""
        M = as_square_matrix(M)
        if not is_lower_triangular(M):
            raise InvalidInput("Matrix is not lower triangular")
        return sp.Mul(*[M[i, i] for i in range(M.rows)])

    def get_timing_statistics(self) -> Dict[str, Dict[str, float]]:
        """Timing statistics of the engine merged with those of its kernel."""
        stats = {}
        for key in self._timing_stats.keys():
            total_time = self._timing_stats[key]
            count = self._timing_counts[key]
            stats[f'engine.{key}'] = {
                'total_time': total_time,
                'call_count': count,
                'avg_time': total_time / count if count > 0 else 0.0,
            }
        for key, value in self.kernel.get_timing_statistics().items():
            stats[f'kernel.{key}'] = value
        return stats

    def reset_timing_statistics(self):
        """Reset the engine's timing statistics and those of its kernel."""
        for key in self._timing_stats.keys():
            self._timing_stats[key] = 0.0
            self._timing_counts[key] = 0
        self.kernel.reset_timing_statistics()

    def print_performance_report(self):
        """Print engine and kernel timings as one table."""
        print_timing_report(self.get_timing_statistics())


_default_engine = BlockTriangularDeterminant()


def block_triangular_det(M: sp.Matrix, b: LabelingLike, order: str = 'max', validate: bool = True) -> sp.Expr:
    """One-shot determinant of a block-triangular matrix (see BlockTriangularDeterminant.det)."""
    if validate:
        return _default_engine.det(M, b, order=order)
    return BlockTriangularDeterminant(kernel=_default_engine.kernel, validate=False).det(M, b, order=order)


def diagonal_blocks(M: sp.Matrix, b: LabelingLike) -> Dict[Any, sp.Matrix]:
    return _default_engine.diagonal_blocks(M, b)


def det_product(M: sp.Matrix, b: LabelingLike, label_order: Optional[Sequence[Any]] = None) -> sp.Expr:
    return _default_engine.det_product(M, b, label_order=label_order)


def two_block_det(A: sp.Matrix, B: sp.Matrix, D: sp.Matrix) -> sp.Expr:
    return _default_engine.two_block_det(A, B, D)


def two_block_det_lower(A: sp.Matrix, C: sp.Matrix, D: sp.Matrix) -> sp.Expr:
    return _default_engine.two_block_det_lower(A, C, D)


def upper_triangular_det(M: sp.Matrix) -> sp.Expr:
    return _default_engine.upper_triangular_det(M)


def lower_triangular_det(M: sp.Matrix) -> sp.Expr:
    return _default_engine.lower_triangular_det(M)


def get_timing_statistics() -> Dict[str, Dict[str, float]]:
    """Timing statistics accumulated by the module-level functions."""
    return _default_engine.get_timing_statistics()


def reset_timing_statistics():
    _default_engine.reset_timing_statistics()
