"""
Batch runner for block-triangular determinants and inverses (exact, SymPy).

Usage example (local):
  python block_cli.py \
    --matrix "2,1,7;0,3,4;0,0,5" \
    --labels "1,2,3" \
    --out-prefix results/run1 \
    --inverse --latex

Outputs:
- <prefix>.det.txt:              str(det)
- <prefix>.det.tex:              LaTeX (optional with --latex)
- <prefix>.inverse.txt:          str(inverse) (optional with --inverse)
- <prefix>.prefix_inverses.txt:  one inverse per label (optional with --prefix-inverses)
- <prefix>.meta.json:            metadata (size, labels, block sizes, timings)

Matrix entries are anything sp.sympify accepts ("x", "1/2", "a*b - 1").
Labels are integers where possible, otherwise strings.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, List

import sympy as sp

from block_determinant import BlockTriangularDeterminant
from block_errors import BlockTriangularError
from block_inverse import BlockTriangularInverse
from label_partition import block_sizes
from scalar_block_kernel import ScalarBlockKernel, print_timing_report

logger = logging.getLogger(__name__)


def _parse_matrix(s: str) -> sp.Matrix:
    """Parse a matrix from semicolon-separated rows of comma-separated entries.

    Args:
        s: String like "2,1;0,3". An empty string gives the 0x0 matrix.

    Returns:
        sp.Matrix

    Raises:
        ValueError: If the input format is invalid or rows have unequal length.
    """
    rows: List[List[Any]] = []
    for part in s.split(';'):
        part = part.strip()
        if not part:
            continue
        elements = part.split(',')
        if any(not e.strip() for e in elements):
            raise ValueError(f"Empty entry in row: '{part}'")
        try:
            rows.append([sp.sympify(e.strip()) for e in elements])
        except sp.SympifyError as e:
            raise ValueError(f"Cannot parse entry in row '{part}': {e}") from e
    if not rows:
        return sp.zeros(0, 0)
    width = len(rows[0])
    if any(len(r) != width for r in rows):
        raise ValueError(f"Rows have unequal lengths: {[len(r) for r in rows]}")
    return sp.Matrix(rows)


def _parse_labels(s: str) -> List[Any]:
    """Parse comma-separated labels; integers where possible, otherwise strings."""
    labels: List[Any] = []
    for e in s.split(','):
        e = e.strip()
        if not e:
            continue
        try:
            labels.append(int(e))
        except ValueError:
            labels.append(e)
    if len({type(a) for a in labels}) > 1:
        raise ValueError("Labels must be all integers or all strings")
    return labels


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Determinant and inverse of a block-triangular matrix (exact).")
    ap.add_argument("--matrix", required=True, help='e.g. "2,1,7;0,3,4;0,0,5"')
    ap.add_argument("--labels", required=True, help='e.g. "1,2,3"')
    ap.add_argument("--out-prefix", default="block_out")
    ap.add_argument("--order", choices=("max", "min"), default="max", help="label removed first in the determinant recursion")
    ap.add_argument("--inverse", action="store_true", help="also compute and write the inverse")
    ap.add_argument("--prefix-inverses", action="store_true", help="also write the inverse of every prefix block")
    ap.add_argument("--latex", action="store_true", help="also write LaTeX (det.tex)")
    ap.add_argument("--no-validate", action="store_true", help="skip the block-triangular precondition check")
    ap.add_argument("--no-simplify", action="store_true", help="do not cancel entries of computed inverses")
    ap.add_argument("--verbose", action="store_true", help="log the recursion at DEBUG level")
    ap.add_argument("--report", action="store_true", help="print a timing report to stdout")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s %(levelname)s: %(message)s",
    )

    try:
        M = _parse_matrix(args.matrix)
    except ValueError as e:
        ap.error(f"Error parsing --matrix: {e}")
    try:
        labels = _parse_labels(args.labels)
    except ValueError as e:
        ap.error(f"Error parsing --labels: {e}")

    kernel = ScalarBlockKernel(simplify=not args.no_simplify)
    validate = not args.no_validate
    det_engine = BlockTriangularDeterminant(kernel=kernel, validate=validate)
    inv_engine = BlockTriangularInverse(kernel=kernel, validate=validate)

    try:
        det = det_engine.det(M, labels, order=args.order)
        inverse = inv_engine.invert(M, labels) if args.inverse else None
        prefixes = inv_engine.prefix_inverses(M, labels) if args.prefix_inverses else None
    except BlockTriangularError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    meta = {
        "size": M.rows,
        "labels": labels,
        "block_sizes": {str(k): v for k, v in block_sizes(labels, M.rows).items()},
        "block_dets": [[str(k), size, str(d)] for k, size, d in det_engine.last_trace],
        "order": args.order,
        "det_len": len(str(det)),
        "det_free_symbols": sorted(str(sym) for sym in getattr(det, 'free_symbols', [])),
        "timings": det_engine.get_timing_statistics(),
    }

    # Ensure output directory exists
    out_dir = os.path.dirname(args.out_prefix)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)

    with open(f"{args.out_prefix}.det.txt", "w", encoding="utf-8") as f:
        f.write(str(det))
    if args.latex:
        with open(f"{args.out_prefix}.det.tex", "w", encoding="utf-8") as f:
            f.write(sp.latex(det))
    if inverse is not None:
        with open(f"{args.out_prefix}.inverse.txt", "w", encoding="utf-8") as f:
            f.write(str(inverse.tolist()))
        meta["inverse_shape"] = list(inverse.shape)
    if prefixes is not None:
        with open(f"{args.out_prefix}.prefix_inverses.txt", "w", encoding="utf-8") as f:
            for k, inv_k in prefixes.items():
                f.write(f"{k}: {inv_k.tolist()}\n")
    with open(f"{args.out_prefix}.meta.json", "w", encoding="utf-8") as f:
        json.dump(meta, f, indent=2)

    if args.report:
        print_timing_report({**det_engine.get_timing_statistics(), **inv_engine.get_timing_statistics()})

    logger.info("wrote outputs with prefix %s", args.out_prefix)
    return 0


if __name__ == "__main__":
    sys.exit(main())
