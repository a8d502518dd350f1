"""
Alignment paths.

An alignment path maps each row index to a boolean array that is True in
every column where the row has a residue. All rows of one path have the same
number of columns.
"""

import numpy as np

from ..constants import GAP_CHARS
from ..errors import InvariantError, invariant

AlignPath = dict[int, np.ndarray]


def align_path_columns(path: AlignPath) -> int:
    """Number of columns in a path (0 for an empty path)."""
    lengths = {len(row_path) for row_path in path.values()}
    invariant(len(lengths) <= 1, "Alignment path rows have different lengths: %s", sorted(lengths))
    return lengths.pop() if lengths else 0


def residue_count(path: AlignPath, row: int) -> int:
    return int(np.count_nonzero(path[row]))


def path_from_gapped(rows: list[str]) -> AlignPath:
    """Build a path from gapped row strings; row indices follow list order."""
    return {
        r: np.array([c not in GAP_CHARS for c in row], dtype=bool)
        for r, row in enumerate(rows)
    }


def _merge_pair(left: AlignPath, right: AlignPath) -> AlignPath:
    """
    Union of two paths that share at least one row.

    Columns that hold a residue in a shared row are aligned to each other;
    the remaining columns of each path are emitted in order, those of the
    left path first.
    """
    shared = sorted(set(left) & set(right))
    rows = sorted(set(left) | set(right))
    n_left = align_path_columns(left)
    n_right = align_path_columns(right)

    for r in shared:
        invariant(
            residue_count(left, r) == residue_count(right, r),
            "Paths disagree on the residue count of row %d", r,
        )

    left_sync = np.any([left[r] for r in shared], axis=0)
    right_sync = np.any([right[r] for r in shared], axis=0)

    columns = []
    i = j = 0
    while i < n_left or j < n_right:
        if i < n_left and not left_sync[i]:
            columns.append((i, None))
            i += 1
        elif j < n_right and not right_sync[j]:
            columns.append((None, j))
            j += 1
        else:
            if i >= n_left or j >= n_right:
                raise InvariantError("Paths cannot be merged: shared rows run out of columns")
            for r in shared:
                invariant(
                    left[r][i] == right[r][j],
                    "Paths disagree on row %d at columns %d and %d", r, i, j,
                )
            columns.append((i, j))
            i += 1
            j += 1

    merged = {}
    for r in rows:
        row_path = np.zeros(len(columns), dtype=bool)
        for c, (i, j) in enumerate(columns):
            if r in left:
                row_path[c] = i is not None and left[r][i]
            else:
                row_path[c] = j is not None and right[r][j]
        merged[r] = row_path
    return merged


def merge_align_paths(paths: list[AlignPath]) -> AlignPath:
    """
    Merge paths over overlapping row sets into one path covering every row.

    Paths are folded into the first one in list order, each time picking the
    earliest remaining path that shares a row with the merged result.

    Raises
    ------
    InvariantError
        If the paths disagree on a shared row or cannot be connected
    """
    if not paths:
        return {}
    merged = dict(paths[0])
    pending = list(paths[1:])
    while pending:
        for k, path in enumerate(pending):
            if set(path) & set(merged):
                merged = _merge_pair(merged, path)
                del pending[k]
                break
        else:
            raise InvariantError(
                f"Cannot merge paths: rows {sorted(set().union(*pending))} "
                f"share no row with {sorted(merged)}"
            )
    return merged
