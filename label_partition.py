"""
Label Partition

A labeling assigns every index of a square matrix a label from a linearly
ordered set. This module computes the labels that actually occur and exposes
the index sets "label < k", "label = k", "label <= k" and "label > k" as
predicates that the block view can slice with.

Labelings may be passed either as a sequence (one label per index) or as a
callable taking an index; as_labeling() normalizes both forms.
"""

from functools import total_ordering
from typing import Any, Callable, List, Sequence, Union

from block_errors import EmptyDomain, InvalidInput

Label = Any
Labeling = Callable[[int], Label]
Predicate = Callable[[int], bool]


def as_labeling(b: Union[Sequence[Label], Labeling], n: int) -> Labeling:
    """
    Normalize a labeling into a callable over range(n).

    Args:
        b: sequence of n labels, or a callable index -> label
        n: number of indices

    Returns:
        Callable mapping each index in range(n) to its label

    Raises:
        InvalidInput: if a sequence labeling does not have exactly n entries
    """
    if callable(b):
        return b
    if isinstance(b, (str, bytes)):
        raise InvalidInput(f"labeling must be a sequence of labels or a callable, got {type(b).__name__}")
    labels = tuple(b)
    if len(labels) != n:
        raise InvalidInput(
            f"labeling has {len(labels)} entries but the matrix has {n} indices"
        )
    return labels.__getitem__


def label_set(b: Union[Sequence[Label], Labeling], n: int) -> List[Label]:
    """Return the sorted list of distinct labels realized by some index."""
    b = as_labeling(b, n)
    try:
        ordered = sorted(b(i) for i in range(n))
    except TypeError as e:
        raise InvalidInput(f"labels must be mutually comparable: {e}") from e
    # Equal labels are adjacent once sorted
    labels: List[Label] = []
    for label in ordered:
        if not labels or labels[-1] != label:
            labels.append(label)
    return labels


def max_label(labels: Sequence[Label]) -> Label:
    if not labels:
        raise EmptyDomain("max_label of an empty label set (the index set is empty)")
    return max(labels)


def min_label(labels: Sequence[Label]) -> Label:
    if not labels:
        raise EmptyDomain("min_label of an empty label set (the index set is empty)")
    return min(labels)


def prefix_indices(b: Labeling, k: Label) -> Predicate:
    """Predicate for {i | b(i) < k}."""
    return lambda i: b(i) < k


def indices_at(b: Labeling, k: Label) -> Predicate:
    """Predicate for {i | b(i) = k}."""
    return lambda i: b(i) == k


def indices_upto(b: Labeling, k: Label) -> Predicate:
    """Predicate for {i | b(i) <= k}."""
    return lambda i: b(i) <= k


def suffix_indices(b: Labeling, k: Label) -> Predicate:
    """Predicate for {i | b(i) > k}."""
    return lambda i: k < b(i)


def restrict_labeling(b: Labeling, indices: Sequence[int]) -> Labeling:
    """
    Induced labeling on a sub-index list: position t gets the label of
    indices[t]. Used when recursing into an extracted block.
    """
    return tuple(b(i) for i in indices).__getitem__


def block_sizes(b: Union[Sequence[Label], Labeling], n: int) -> dict:
    """Map each realized label to the number of indices carrying it."""
    b = as_labeling(b, n)
    sizes = {}
    for i in range(n):
        k = b(i)
        sizes[k] = sizes.get(k, 0) + 1
    return {k: sizes[k] for k in sorted(sizes)}


@total_ordering
class DualLabel:
    """
    Order-reversing wrapper around a label.

    DualLabel(a) < DualLabel(c) exactly when c < a. Transposing a block
    triangular matrix keeps it block triangular for the dual labeling.
    """

    __slots__ = ("label",)

    def __init__(self, label: Any):
        self.label = label

    def __eq__(self, other):
        if not isinstance(other, DualLabel):
            return NotImplemented
        return self.label == other.label

    def __lt__(self, other):
        if not isinstance(other, DualLabel):
            return NotImplemented
        return other.label < self.label

    def __hash__(self):
        return hash(("dual", self.label))

    def __repr__(self):
        return f"DualLabel({self.label!r})"


def to_dual(b: Labeling) -> Labeling:
    """Compose a labeling with the order-reversing DualLabel wrapper."""
    return lambda i: DualLabel(b(i))
