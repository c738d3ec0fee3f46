"""
Tests for the block-triangular determinant engine.

The engine result is cross-checked against SymPy's dense determinant of the
whole matrix, and the closed-form product over diagonal blocks.
"""

import random

import pytest
import sympy as sp

from block_determinant import (
    BlockTriangularDeterminant,
    block_triangular_det,
    det_product,
    diagonal_blocks,
    get_timing_statistics,
    lower_triangular_det,
    reset_timing_statistics,
    two_block_det,
    two_block_det_lower,
    upper_triangular_det,
)
from block_errors import InvalidInput
from block_triangular import from_blocks, transpose


def random_block_triangular(labels, seed, low=-5, high=5):
    """Random integer matrix with every entry below the block diagonal zeroed."""
    rng = random.Random(seed)
    n = len(labels)
    M = sp.zeros(n, n)
    for i in range(n):
        for j in range(n):
            if not labels[j] < labels[i]:
                M[i, j] = rng.randint(low, high)
    return M


class TestDeterminantBasics:
    """Concrete scenarios"""

    def test_identity_labeling_upper_triangular(self):
        """Test the (2, 3, 5) upper triangular scenario"""
        M = sp.Matrix([[2, 1, 7], [0, 3, 4], [0, 0, 5]])
        assert block_triangular_det(M, [1, 2, 3]) == 30

    def test_empty_matrix(self):
        """Test that the empty matrix has determinant 1"""
        assert block_triangular_det(sp.zeros(0, 0), []) == 1

    def test_single_label_is_dense_det(self):
        """Test that a constant labeling gives the dense determinant"""
        M = sp.Matrix([[1, 2, 3], [4, 5, 6], [7, 8, 10]])
        assert block_triangular_det(M, [0, 0, 0]) == M.det()

    def test_two_labels(self):
        """Test two labels with a dense upper-right block"""
        M = sp.Matrix([
            [1, 2, 5, 6],
            [3, 4, 7, 8],
            [0, 0, 2, 1],
            [0, 0, 1, 1],
        ])
        assert block_triangular_det(M, [0, 0, 1, 1]) == -2

    def test_interleaved_labels(self):
        """Test labels that are not contiguous in index order"""
        M = sp.Matrix([
            [2, 0, 1, 0],
            [5, 3, 7, 1],
            [4, 0, 3, 0],
            [6, 1, 2, 1],
        ])
        assert block_triangular_det(M, [1, 0, 1, 0]) == M.det() == 4

    def test_symbolic_entries(self):
        """Test a determinant with symbolic entries"""
        x, y = sp.symbols('x y')
        M = sp.Matrix([[x, 1, y], [0, y, x], [0, 0, x + y]])
        det = block_triangular_det(M, [0, 1, 1])
        assert sp.simplify(det - M.det()) == 0
        assert sp.simplify(det - x * y * (x + y)) == 0

    def test_string_labels(self):
        """Test that string labels are ordered lexicographically"""
        M = sp.Matrix([[3, 1], [0, 4]])
        assert block_triangular_det(M, ["a", "b"]) == 12

    def test_callable_labeling(self):
        """Test a labeling given as a callable"""
        M = sp.Matrix([[3, 1, 1], [0, 4, 1], [0, 0, 5]])
        assert block_triangular_det(M, lambda i: i // 2) == 60

    def test_unhashable_labels(self):
        """Test that unhashable list labels are accepted"""
        M = sp.Matrix([[3, 1, 1], [0, 4, 1], [0, 0, 5]])
        assert block_triangular_det(M, lambda i: [i // 2]) == 60
        assert block_triangular_det(M, lambda i: [i // 2], order='min') == 60


class TestDeterminantProperties:
    """Agreement with the dense determinant and order independence"""

    @pytest.mark.parametrize("seed", range(6))
    def test_matches_dense_det(self, seed):
        """Test agreement with the dense determinant on random inputs"""
        rng = random.Random(seed)
        labels = [rng.randint(0, 3) for _ in range(6)]
        M = random_block_triangular(labels, seed)
        assert block_triangular_det(M, labels) == M.det()

    @pytest.mark.parametrize("seed", range(4))
    def test_min_and_max_order_agree(self, seed):
        """Test that both removal orders give the same determinant"""
        labels = [2, 0, 1, 2, 0, 1, 1]
        M = random_block_triangular(labels, seed)
        assert block_triangular_det(M, labels, order='min') == block_triangular_det(M, labels, order='max')

    def test_shuffled_label_order(self):
        """Test that det_product does not depend on the order of the factors"""
        labels = [3, 1, 0, 2, 1, 3, 0]
        M = random_block_triangular(labels, 11)
        expected = M.det()
        order = [0, 1, 2, 3]
        for seed in range(5):
            random.Random(seed).shuffle(order)
            assert det_product(M, labels, label_order=order) == expected

    def test_transpose_with_dual_labeling(self):
        """Test that the transpose under the dual labeling has the same determinant"""
        labels = [0, 1, 1, 2]
        M = random_block_triangular(labels, 3)
        Mt, dual = transpose(M, labels)
        assert block_triangular_det(Mt, dual) == block_triangular_det(M, labels)

    def test_diagonal_blocks(self):
        """Test the diagonal blocks keyed by ascending label"""
        labels = [1, 0, 1]
        M = random_block_triangular(labels, 5)
        blocks = diagonal_blocks(M, labels)
        assert list(blocks) == [0, 1]
        assert blocks[0] == sp.Matrix([[M[1, 1]]])
        assert blocks[1] == M.extract([0, 2], [0, 2])


class TestDeterminantValidation:
    """Input validation and error handling"""

    def test_not_block_triangular(self):
        """Test that a violating matrix raises InvalidInput with the entry"""
        M = sp.Matrix([[1, 0], [1, 1]])
        with pytest.raises(InvalidInput, match="not block triangular") as excinfo:
            block_triangular_det(M, [0, 1])
        assert excinfo.value.entry == (1, 0)

    def test_validation_can_be_skipped(self):
        """Test that validate=False returns the block product without checking"""
        # Precondition broken: the result is the block product, not det(M)
        M = sp.Matrix([[1, 2], [3, 4]])
        assert block_triangular_det(M, [0, 1], validate=False) == 4

    def test_non_square(self):
        """Test that a non-square matrix raises InvalidInput"""
        with pytest.raises(InvalidInput, match="must be square"):
            block_triangular_det(sp.zeros(2, 3), [0, 1])

    def test_wrong_label_count(self):
        """Test that a labeling of the wrong length raises InvalidInput"""
        with pytest.raises(InvalidInput, match="labeling has 1 entries"):
            block_triangular_det(sp.eye(2), [0])

    def test_unknown_order(self):
        """Test that an unknown removal order raises InvalidInput"""
        with pytest.raises(InvalidInput, match="order must be one of"):
            block_triangular_det(sp.eye(2), [0, 1], order='middle')

    def test_bad_label_order(self):
        """Test that label_order must list each label exactly once"""
        with pytest.raises(InvalidInput, match="exactly once"):
            det_product(sp.eye(2), [0, 1], label_order=[0, 0])


class TestTwoBlockAndTriangular:
    """Two-block factorization and triangular special cases"""

    def test_two_block_det(self):
        """Test det([[A, B], [0, D]]) = det(A) * det(D)"""
        A = sp.Matrix([[1, 2], [3, 4]])
        B = sp.Matrix([[9], [9]])
        D = sp.Matrix([[5]])
        M, labels = from_blocks(A, B, D)
        assert two_block_det(A, B, D) == M.det() == -10
        assert block_triangular_det(M, labels) == -10

    def test_two_block_det_lower(self):
        """Test det([[A, 0], [C, D]]) = det(A) * det(D)"""
        A = sp.Matrix([[2]])
        C = sp.Matrix([[7], [1]])
        D = sp.Matrix([[1, 1], [0, 3]])
        assert two_block_det_lower(A, C, D) == 6

    def test_two_block_shape_check(self):
        """Test that a misshapen off-diagonal block is rejected"""
        with pytest.raises(InvalidInput, match="Upper-right block"):
            two_block_det(sp.eye(2), sp.zeros(1, 1), sp.eye(1))

    def test_upper_triangular_det(self):
        """Test the product of the diagonal of an upper triangular matrix"""
        M = sp.Matrix([[2, 1, 7], [0, 3, 4], [0, 0, 5]])
        assert upper_triangular_det(M) == 30
        with pytest.raises(InvalidInput, match="not upper triangular"):
            upper_triangular_det(M.T)

    def test_lower_triangular_det(self):
        """Test the product of the diagonal of a lower triangular matrix"""
        M = sp.Matrix([[2, 0], [9, 3]])
        assert lower_triangular_det(M) == 6
        with pytest.raises(InvalidInput, match="not lower triangular"):
            lower_triangular_det(M.T)


class TestDeterminantEngine:
    """Engine configuration, trace and timing statistics"""

    def test_trace_follows_removal_order(self):
        """Test that last_trace lists the labels in removal order"""
        M = sp.Matrix([[2, 1, 7], [0, 3, 4], [0, 0, 5]])
        engine = BlockTriangularDeterminant()
        engine.det(M, [1, 2, 3])
        assert [(k, size, d) for k, size, d in engine.last_trace] == [(3, 1, 5), (2, 1, 3), (1, 1, 2)]
        engine.det(M, [1, 2, 3], order='min')
        assert [k for k, _, _ in engine.last_trace] == [1, 2, 3]

    def test_timing_statistics(self):
        """Test engine and kernel call counts after one determinant"""
        engine = BlockTriangularDeterminant()
        engine.det(sp.eye(3), [0, 1, 1])
        stats = engine.get_timing_statistics()
        assert stats['engine.det']['call_count'] == 1
        assert stats['kernel.det']['call_count'] == 2

    def test_reset_and_report(self, capsys):
        """Test that reset clears engine and kernel counters and the report lists both"""
        engine = BlockTriangularDeterminant()
        engine.det(sp.eye(3), [0, 1, 1])
        engine.print_performance_report()
        out = capsys.readouterr().out
        assert "PERFORMANCE REPORT" in out
        assert "engine.det" in out
        assert "kernel.det" in out
        engine.reset_timing_statistics()
        stats = engine.get_timing_statistics()
        assert stats['engine.det']['call_count'] == 0
        assert stats['kernel.det']['call_count'] == 0

    def test_module_level_statistics(self):
        """Test that one-shot determinants accumulate on the shared engine until reset"""
        reset_timing_statistics()
        block_triangular_det(sp.eye(2), [0, 1])
        block_triangular_det(sp.eye(2), [0, 1])
        assert get_timing_statistics()['engine.det']['call_count'] == 2
        reset_timing_statistics()
        assert get_timing_statistics()['engine.det']['call_count'] == 0
