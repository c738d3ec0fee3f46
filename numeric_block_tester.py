"""
Numeric Block Tester Module

This module provides a standalone floating-point implementation of the
block-triangular determinant and inversion algorithms. It is designed to
cross-check the exact SymPy engines using numpy arrays instead of symbolic
expressions.

The primary use case is testing: by substituting numeric values into a
symbolic matrix and comparing the exact result against this direct numeric
implementation, we can verify the block decomposition independently of
symbolic complexity.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import sympy as sp


class NumericBlockTester:
    """
    Numerical implementation of the block-triangular determinant and inverse.

    Key algorithm:
    1. Group indices by label (ascending)
    2. det(M) = ∏_k det(M[b=k, b=k]) via np.linalg.det
    3. Inverse by block forward substitution over the labels:
       [[A, B], [0, D]]^-1 = [[A^-1, -A^-1 B D^-1], [0, D^-1]]

    Attributes
    ----------
    matrix : np.ndarray
        Square float matrix of shape (n, n)
    labels : List
        One label per index
    blocks : Dict[Any, List[int]]
        Ascending index lists keyed by label, labels in ascending order
    tolerance : float
        Numerical tolerance for zero checks and comparisons
    """

    def __init__(
        self,
        matrix: np.ndarray,
        labels: Sequence[Any],
        tolerance: float = 1e-10
    ):
        """
        Initialize the tester.

        Parameters
        ----------
        matrix : np.ndarray
            Square matrix of shape (n, n)
        labels : Sequence
            Label of each index; length n
        tolerance : float, optional
            Numerical tolerance for zero checks and comparisons
        """
        self.matrix = np.asarray(matrix, dtype=float)
        self.labels = list(labels)
        self.tolerance = tolerance

        self._validate_inputs()

        self.blocks: Dict[Any, List[int]] = {}
        for k in sorted(set(self.labels)):
            self.blocks[k] = [i for i, a in enumerate(self.labels) if a == k]

    def _validate_inputs(self) -> None:
        """Validate matrix shape and label count."""
        if self.matrix.ndim != 2 or self.matrix.shape[0] != self.matrix.shape[1]:
            raise ValueError(f"matrix must be square, got shape {self.matrix.shape}")
        if len(self.labels) != self.matrix.shape[0]:
            raise ValueError(
                f"labels has {len(self.labels)} entries, expected {self.matrix.shape[0]}"
            )

    def max_violation(self) -> float:
        """Largest |M[i, j]| over entries with label(j) < label(i); 0.0 if none."""
        worst = 0.0
        n = self.matrix.shape[0]
        for i in range(n):
            for j in range(n):
                if self.labels[j] < self.labels[i]:
                    worst = max(worst, abs(self.matrix[i, j]))
        return worst

    def is_block_triangular(self) -> bool:
        return self.max_violation() < self.tolerance

    def diagonal_block_dets(self) -> Dict[Any, float]:
        """Determinant of each diagonal block, keyed by label."""
        return {
            k: float(np.linalg.det(self.matrix[np.ix_(idx, idx)]))
            for k, idx in self.blocks.items()
        }

    def block_det(self) -> float:
        """Product of the diagonal block determinants (1.0 for the empty matrix)."""
        result = 1.0
        for d in self.diagonal_block_dets().values():
            result *= d
        return result

    def block_inverse(self) -> np.ndarray:
        """
        Inverse by block forward substitution over ascending labels.

        Raises
        ------
        ValueError
            If a diagonal block is singular within tolerance
        """
        n = self.matrix.shape[0]
        prefix: List[int] = []
        prefix_inv = np.zeros((0, 0))
        for k, idx in self.blocks.items():
            D = self.matrix[np.ix_(idx, idx)]
            det_D = np.linalg.det(D)
            if np.abs(det_D) < self.tolerance:
                raise ValueError(
                    f"Diagonal block at label {k!r} is singular (det = {det_D:.2e})."
                )
            D_inv = np.linalg.inv(D)
            B = self.matrix[np.ix_(prefix, idx)]
            top_right = -prefix_inv @ B @ D_inv
            bottom_left = np.zeros((len(idx), len(prefix)))
            prefix_inv = np.block([[prefix_inv, top_right], [bottom_left, D_inv]])
            prefix = prefix + idx

        inv = np.zeros((n, n))
        if prefix:
            inv[np.ix_(prefix, prefix)] = prefix_inv
        return inv

    def verify_inverse(self, inv: np.ndarray) -> Dict[str, Union[bool, float, np.ndarray]]:
        """
        Verify that inv is a two-sided inverse of the matrix.

        Returns
        -------
        dict
            Contains:
            - 'is_valid': bool, True if the residual is below tolerance
            - 'residual_norm': float, max of ||M inv - I|| and ||inv M - I||
            - 'residual': np.ndarray, M @ inv - I
        """
        n = self.matrix.shape[0]
        residual = self.matrix @ inv - np.eye(n)
        residual_left = inv @ self.matrix - np.eye(n)
        residual_norm = max(
            float(np.linalg.norm(residual)) if n else 0.0,
            float(np.linalg.norm(residual_left)) if n else 0.0,
        )
        return {
            'is_valid': residual_norm < self.tolerance,
            'residual_norm': residual_norm,
            'residual': residual
        }


def numeric_matrix_from_symbolic(
    M: sp.Matrix,
    symbol_values: Optional[Dict[sp.Symbol, float]] = None,
    random_seed: int = 42,
    return_symbol_values: bool = False
) -> Union[np.ndarray, Tuple[np.ndarray, Dict[sp.Symbol, float]]]:
    """
    Evaluate a symbolic matrix numerically.

    If symbol_values is not provided, random values in [1, 2) are generated
    for all free symbols of the matrix.

    Parameters
    ----------
    M : sp.Matrix
        Symbolic matrix
    symbol_values : Dict[sp.Symbol, float], optional
        Mapping from SymPy symbols to numeric values
    random_seed : int, optional
        Random seed for generating symbol values if symbol_values is None
    return_symbol_values : bool, optional
        If True, return tuple of (array, symbol_values)

    Returns
    -------
    np.ndarray or tuple
    """
    if symbol_values is None:
        rng = np.random.default_rng(random_seed)
        all_symbols = sorted(M.free_symbols, key=str)
        symbol_values = {sym: 1.0 + rng.random() for sym in all_symbols}

    A = np.zeros(M.shape, dtype=float)
    for i in range(M.rows):
        for j in range(M.cols):
            A[i, j] = float(sp.sympify(M[i, j]).subs(symbol_values))

    if return_symbol_values:
        return A, symbol_values
    return A
