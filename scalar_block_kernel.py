"""
Scalar Block Kernel

Dense determinant and inverse for a single block with no known block
structure. Entries are exact SymPy values; the default determinant method is
Berkowitz, which is division-free and therefore valid over any commutative
ring (integers, rationals, polynomial expressions in symbols).

The inverse is formed as adj(A) / det(A), so it exists exactly when det(A)
is nonzero in the fraction field of the entries.
"""

import time
from typing import Any, Dict, Optional

import sympy as sp

from block_errors import InvalidInput, Singular


def is_zero(expr: Any) -> bool:
    """
    Exact zero test for a matrix entry or determinant.

    Numbers are compared directly; symbolic expressions are simplified first
    so that e.g. x*(x + 1) - x**2 - x is recognized as zero.
    """
    expr = sp.sympify(expr)
    if expr == 0:
        return True
    if expr.is_Number:
        return False
    return sp.simplify(expr) == 0


class ScalarBlockKernel:
    """
    Determinant and inverse of one dense square block.

    Parameters:
    -----------
    det_method : str
        Method passed to sp.Matrix.det / adjugate (default 'berkowitz')
    simplify : bool
        If True, apply sp.cancel to every entry of a computed inverse
    """

    def __init__(self, det_method: str = 'berkowitz', simplify: bool = True):
        self.det_method = det_method
        self.simplify = simplify

        self._timing_stats = {
            'det': 0.0,
            'inverse': 0.0,
        }
        self._timing_counts = {key: 0 for key in self._timing_stats.keys()}

    @staticmethod
    def _check_square(block: sp.Matrix) -> None:
        if block.rows != block.cols:
            raise InvalidInput(
                f"Block must be square. Got {block.rows} rows and {block.cols} columns."
            )

    def det(self, block: sp.Matrix) -> sp.Expr:
        """Determinant of a square block; the empty block has determinant 1."""
        self._check_square(block)
        if block.rows == 0:
            return sp.Integer(1)
        start = time.time()
        result = block.det(method=self.det_method)
        self._timing_stats['det'] += time.time() - start
        self._timing_counts['det'] += 1
        return result

    def inverse(self, block: sp.Matrix, det: Optional[sp.Expr] = None) -> sp.Matrix:
        """
        Inverse of a square block.

        Parameters:
        -----------
        block : sp.Matrix
            Square block to invert
        det : sp.Expr, optional
            Determinant of block when the caller already has it

        Raises:
        -------
        Singular
            If the block's determinant is zero
        """
        self._check_square(block)
        if block.rows == 0:
            return sp.zeros(0, 0)
        if det is None:
            det = self.det(block)
        if is_zero(det):
            raise Singular(
                f"{block.rows}x{block.cols} block is singular (det=0).", det=det
            )
        start = time.time()
        if block.rows == 1:
            inv = sp.Matrix([[sp.Integer(1) / det]])
        else:
            inv = block.adjugate(method=self.det_method) / det
        if self.simplify:
            inv = inv.applyfunc(sp.cancel)
        self._timing_stats['inverse'] += time.time() - start
        self._timing_counts['inverse'] += 1
        return inv

    def get_timing_statistics(self) -> Dict[str, Dict[str, float]]:
        """
        Get performance timing statistics.

        Returns:
            Dictionary keyed by operation with total_time, call_count, avg_time
        """
        stats = {}
        for key in self._timing_stats.keys():
            total_time = self._timing_stats[key]
            count = self._timing_counts[key]
            avg_time = total_time / count if count > 0 else 0.0
            stats[key] = {
                'total_time': total_time,
                'call_count': count,
                'avg_time': avg_time
            }
        return stats

    def reset_timing_statistics(self):
        """Reset all performance timing statistics to zero."""
        for key in self._timing_stats.keys():
            self._timing_stats[key] = 0.0
            self._timing_counts[key] = 0

    def print_performance_report(self):
        """Print a formatted timing report for the kernel operations."""
        print_timing_report(self.get_timing_statistics())


def print_timing_report(timing_stats: Dict[str, Dict[str, float]]) -> None:
    """Print timing statistics as a table, slowest operation first."""
    print("\n" + "=" * 60)
    print("PERFORMANCE REPORT")
    print("=" * 60)
    print(f"{'Operation':<30} {'Calls':<10} {'Total (s)':<12} {'Avg (s)':<12}")
    print("-" * 60)
    for op, stats in sorted(timing_stats.items(), key=lambda x: x[1]['total_time'], reverse=True):
        if stats['call_count'] > 0:
            print(f"{op:<30} {stats['call_count']:<10} {stats['total_time']:<12.4f} {stats['avg_time']:<12.6f}")
    print("=" * 60 + "\n")
