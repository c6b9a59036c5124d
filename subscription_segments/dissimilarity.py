# Gower dissimilarity for mixed nominal / ordered / numeric attributes
import numpy as np
import pandas as pd
from typing import List, Optional, Tuple

try:
    from .config import GOWER_CHUNK_ROWS
    from .exceptions import DegenerateDissimilarityError
    from .schema import Attribute, AttributeKind, RecordSet
except ImportError:
    from config import GOWER_CHUNK_ROWS
    from exceptions import DegenerateDissimilarityError
    from schema import Attribute, AttributeKind, RecordSet

# (attribute, values, missing mask, observed range; None for nominal)
_Part = Tuple[Attribute, np.ndarray, np.ndarray, Optional[float]]


def _prepare_attributes(records: RecordSet) -> List[_Part]:
    """Encode each attribute once: nominal tokens as integer codes, ranges for the rest."""
    parts = []
    for attr in records.schema:
        col = records.columns[attr.name]
        miss = records.missing_mask(attr.name)
        if attr.kind is AttributeKind.NOMINAL:
            codes, _ = pd.factorize(col)
            parts.append((attr, codes, miss, None))
        else:
            present = col[~miss]
            rng = float(present.max() - present.min()) if present.size else 0.0
            parts.append((attr, col, miss, rng))
    return parts


def _gower_block(parts: List[_Part], start: int, stop: int) -> np.ndarray:
    """Rows start..stop of the Gower matrix against every record."""
    n = parts[0][1].shape[0]
    num = np.zeros((stop - start, n))
    den = np.zeros((stop - start, n))

    for attr, values, miss, rng in parts:
        if attr.weight == 0:
            continue
        w = attr.weight * ~(miss[start:stop, None] | miss[None, :])
        if attr.kind is AttributeKind.NOMINAL:
            partial = (values[start:stop, None] != values[None, :]).astype(float)
        elif rng > 0:
            with np.errstate(invalid="ignore"):
                partial = np.abs(values[start:stop, None] - values[None, :]) / rng
            # NaN where either side is missing; those cells carry zero weight
            partial = np.where(w > 0, partial, 0.0)
        else:
            # constant attribute
            partial = np.zeros_like(w)
        num += w * partial
        den += w

    zero = den == 0
    zero[np.arange(stop - start), np.arange(start, stop)] = False
    if zero.any():
        i, j = np.argwhere(zero)[0]
        a, b = sorted((int(start + i), int(j)))
        raise DegenerateDissimilarityError(a, b)

    with np.errstate(invalid="ignore", divide="ignore"):
        block = np.where(den > 0, num / den, 0.0)
    return np.clip(block, 0.0, 1.0)


def gower_matrix(records: RecordSet, chunk_size: int = GOWER_CHUNK_ROWS, verbose: bool = True) -> np.ndarray:
    """
    Pairwise Gower (1971) dissimilarity between all records.

    Nominal attributes contribute 0 on a match and 1 otherwise; ordered ranks
    and numeric values contribute |x_i - x_j| / range, and a constant attribute
    contributes 0. A pair-attribute where either side is missing is left out of
    both the numerator and the denominator of the weighted average.

    The matrix is filled in blocks of ``chunk_size`` rows; every cell is
    computed independently, so the result does not depend on the block size.

    Args:
        records: Normalized records
        chunk_size: Rows per block
        verbose: Print progress

    Returns:
        np.ndarray: Symmetric N x N matrix in [0, 1] with a zero diagonal

    Raises:
        DegenerateDissimilarityError: a pair of distinct records has no attribute
            observed on both sides
    """
    n = len(records)
    if n == 0:
        return np.zeros((0, 0))
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")

    parts = _prepare_attributes(records)
    D = np.empty((n, n))
    n_blocks = (n + chunk_size - 1) // chunk_size
    for b, start in enumerate(range(0, n, chunk_size), start=1):
        stop = min(start + chunk_size, n)
        D[start:stop] = _gower_block(parts, start, stop)
        if verbose and n_blocks > 1:
            print(f"[gower] block {b}/{n_blocks} (rows {start}-{stop - 1})")

    np.fill_diagonal(D, 0.0)
    if verbose:
        off = D[np.triu_indices(n, k=1)]
        if off.size:
            print(f"[gower] {n:,} x {n:,} matrix; mean={off.mean():.4f} min={off.min():.4f} max={off.max():.4f}")
    return D


def validate_dissimilarity(D: np.ndarray, atol: float = 1e-9) -> np.ndarray:
    """Check the dissimilarity-matrix invariants and return D as a float array."""
    D = np.asarray(D, dtype=float)
    if D.ndim != 2 or D.shape[0] != D.shape[1]:
        raise ValueError(f"dissimilarity matrix must be square, got shape {D.shape}")
    if not np.all(np.isfinite(D)):
        raise ValueError("dissimilarity matrix contains non-finite values")
    if not np.allclose(D, D.T, atol=atol):
        raise ValueError("dissimilarity matrix is not symmetric")
    if np.any(np.abs(np.diag(D)) > atol):
        raise ValueError("dissimilarity matrix has a non-zero diagonal")
    if D.size and (D.min() < -atol or D.max() > 1 + atol):
        raise ValueError("dissimilarity values must lie in [0, 1]")
    return D
