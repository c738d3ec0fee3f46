"""
Block-Triangular Inversion Engine

Inverts a matrix that is block triangular with respect to a labeling b and
returns an inverse that is block triangular for the same b.

For the labels k in ascending order let P_k = {i | b(i) < k}. With
A = M[P_k, P_k] (already inverted), D = M[b=k, b=k] and B = M[P_k, b=k], the
cross block M[b=k, P_k] is zero because every row labeled k only reaches
columns with label >= k. Hence

    M[P_k + {b=k}]^-1 = [[A^-1, -A^-1 B D^-1],
                         [0,     D^-1       ]]

which is block forward substitution. Unrolled from the smallest label upward
this is the same induction as removing the maximal label and recursing on
the rest; the intermediate prefix inverses come out as a by-product and are
exactly the restrictions of M^-1 to P_k x P_k.

Before the substitution starts the full determinant is computed by the
determinant engine; a zero determinant raises Singular. A singular diagonal
block found afterwards cannot happen for valid input and is reported as
InternalInconsistency.
"""

import logging
import time
from typing import Any, Dict, List, Optional, Tuple

import sympy as sp

from block_determinant import BlockTriangularDeterminant
from block_errors import InternalInconsistency, Singular
from block_triangular import (
    LabelingLike,
    as_square_matrix,
    find_violation,
    validate_block_triangular,
)
from block_view import combine, extract_indices, principal_block, reindex, scatter, select_indices
from label_partition import (
    as_labeling,
    indices_at,
    label_set,
    prefix_indices,
    restrict_labeling,
)
from scalar_block_kernel import ScalarBlockKernel, is_zero, print_timing_report

logger = logging.getLogger(__name__)


def _in_index_order(inv: sp.Matrix, idx: List[int]) -> sp.Matrix:
    """Reorder a matrix built in label order back to ascending index order."""
    perm = sorted(range(len(idx)), key=idx.__getitem__)
    return reindex(inv, perm)


class BlockTriangularInverse:
    """
    Inversion engine for block-triangular matrices.

    Parameters:
    -----------
    kernel : ScalarBlockKernel, optional
        Dense kernel for the diagonal blocks (default: Berkowitz kernel)
    validate : bool
        If True, check that the input is block triangular before inverting
        (InvalidInput on failure) and that the assembled inverse is block
        triangular for the same labeling (InternalInconsistency on failure)
    """

    def __init__(self, kernel: Optional[ScalarBlockKernel] = None, validate: bool = True):
        self.kernel = kernel if kernel is not None else ScalarBlockKernel()
        self.validate = validate
        self._det_engine = BlockTriangularDeterminant(kernel=self.kernel, validate=False)

        self._timing_stats = {'invert': 0.0}
        self._timing_counts = {'invert': 0}

    def _prepare(self, M, b: LabelingLike):
        M = as_square_matrix(M)
        b = as_labeling(b, M.rows)
        if self.validate:
            validate_block_triangular(M, b)
        return M, b

    def _substitute(self, M: sp.Matrix, b) -> Tuple[sp.Matrix, Dict[Any, sp.Matrix]]:
        """
        Block forward substitution over the ascending labels of b.

        Returns:
            (M^-1, {k: inverse of M[b<k, b<k] in ascending index order})
        """
        n = M.rows
        # Ascending removal order lines the trace up with label_set(b, n)
        det = self._det_engine.det(M, b, order='min')
        if is_zero(det):
            raise Singular(f"{n}x{n} block-triangular matrix is singular (det=0).", det=det)

        prefix: List[int] = []
        prefix_inv = sp.zeros(0, 0)
        prefix_inverses: Dict[Any, sp.Matrix] = {}

        block_dets = [det_k for _, _, det_k in self._det_engine.last_trace]
        for k, det_k in zip(label_set(b, n), block_dets):
            prefix_inverses[k] = _in_index_order(prefix_inv, prefix)

            at_k = select_indices(n, indices_at(b, k))
            D = extract_indices(M, at_k, at_k)
            B = extract_indices(M, prefix, at_k)
            try:
                D_inv = self.kernel.inverse(D, det=det_k)
            except Singular as e:
                raise InternalInconsistency(
                    f"Diagonal block at label {k!r} is singular although det(M) = {det} is nonzero"
                ) from e

            top_right = -(prefix_inv * B * D_inv)
            if self.kernel.simplify:
                top_right = top_right.applyfunc(sp.cancel)
            prefix_inv = combine(prefix_inv, top_right, sp.zeros(len(at_k), len(prefix)), D_inv)
            prefix = prefix + at_k
            logger.debug("label %r: extended prefix inverse to %d indices", k, len(prefix))

        return scatter(prefix_inv, prefix, prefix, n), prefix_inverses

    def invert(self, M: sp.Matrix, b: LabelingLike) -> sp.Matrix:
        """
        Inverse of an invertible block-triangular matrix.

        Returns:
        --------
        sp.Matrix
            M^-1, block triangular with respect to the same labeling b

        Raises:
        -------
        InvalidInput
            If M is not square or (with validate=True) not block triangular
        Singular
            If det(M) is zero
        InternalInconsistency
            If a diagonal block is singular despite det(M) != 0, or the
            assembled inverse violates the block structure
        """
        M, b = self._prepare(M, b)
        start = time.time()
        inv, _ = self._substitute(M, b)
        if self.validate:
            entry = find_violation(inv, b)
            if entry is not None:
                raise InternalInconsistency(
                    f"Assembled inverse is not block triangular at entry {entry}"
                )
        self._timing_stats['invert'] += time.time() - start
        self._timing_counts['invert'] += 1
        return inv

    def prefix_inverses(self, M: sp.Matrix, b: LabelingLike) -> Dict[Any, sp.Matrix]:
        """
        Inverse of the principal block on {b < k} for every realized label k.

        Each entry equals the restriction of invert(M, b) to {b < k}; for the
        smallest label it is the empty matrix.
        """
        M, b = self._prepare(M, b)
        _, prefixes = self._substitute(M, b)
        return prefixes

    def prefix_inverse(self, M: sp.Matrix, b: LabelingLike, k: Any) -> sp.Matrix:
        """
        Inverse of the principal block of M on {b < k}, for any label k
        (not necessarily realized by b).

        Raises:
        -------
        Singular
            If that principal block is singular (impossible when M is invertible)
        """
        M, b = self._prepare(M, b)
        idx = select_indices(M.rows, prefix_indices(b, k))
        A = extract_indices(M, idx, idx)
        inv, _ = self._substitute(A, restrict_labeling(b, idx))
        return inv

    def diagonal_inverse_blocks(self, M: sp.Matrix, b: LabelingLike) -> Dict[Any, sp.Matrix]:
        """
        Inverse of each diagonal block, keyed by label. These are the diagonal
        blocks of M^-1.
        """
        M, b = self._prepare(M, b)
        return {
            a: self.kernel.inverse(principal_block(M, indices_at(b, a)))
            for a in label_set(b, M.rows)
        }

    def inverse_mul_block_identity(self, M: sp.Matrix, b: LabelingLike, k: Any) -> bool:
        """Check (M^-1)[b<k, b<k] * M[b<k, b<k] == 1."""
        M, b = self._prepare(M, b)
        inv, _ = self._substitute(M, b)
        p = prefix_indices(b, k)
        product = principal_block(inv, p) * principal_block(M, p)
        difference = product - sp.eye(product.rows)
        return all(is_zero(entry) for entry in difference)

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


_default_engine = BlockTriangularInverse()


def invert_block_triangular(M: sp.Matrix, b: LabelingLike, validate: bool = True) -> sp.Matrix:
    """One-shot inverse of a block-triangular matrix (see BlockTriangularInverse.invert)."""
    if validate:
        return _default_engine.invert(M, b)
    return BlockTriangularInverse(kernel=_default_engine.kernel, validate=False).invert(M, b)


def prefix_inverse(M: sp.Matrix, b: LabelingLike, k: Any) -> sp.Matrix:
    return _default_engine.prefix_inverse(M, b, k)


def prefix_inverses(M: sp.Matrix, b: LabelingLike) -> Dict[Any, sp.Matrix]:
    return _default_engine.prefix_inverses(M, b)


def get_timing_statistics() -> Dict[str, Dict[str, float]]:
    """Timing statistics accumulated by the module-level functions."""
    return _default_engine.get_timing_statistics()


def reset_timing_statistics():
    _default_engine.reset_timing_statistics()
