"""Longest Common Subsequence matching over block keys.

Two callers rely on it.  The anchor resolver matches a merged sequence
against the baseline by signature to find which merged blocks are
attributable to the baseline.  The classifier matches baseline identity
order against the effective order to find blocks moved by a reorder.
"""

from __future__ import annotations

from collections.abc import Hashable, Sequence


def lcs_match(
    left: Sequence[Hashable],
    right: Sequence[Hashable],
) -> list[tuple[int, int]]:
    """Compute LCS matched index pairs between two key sequences.

    Parameters
    ----------
    left:
        Keys of the reference sequence (usually the baseline).
    right:
        Keys of the sequence being attributed.

    Returns
    -------
    list[tuple[int, int]]
        ``(left_idx, right_idx)`` pairs in order.  Unmatched indices on
        the right are blocks not attributable to the left sequence.
        Ties are broken towards the earliest right-hand match, so the
        result is deterministic.
    """
    m = len(left)
    n = len(right)

    if m == 0 or n == 0:
        return []

    # dp[i][j] is the length of the LCS of left[i:] and right[j:].
    dp: list[list[int]] = [[0] * (n + 1) for _ in range(m + 1)]

    for i in range(m - 1, -1, -1):
        for j in range(n - 1, -1, -1):
            if left[i] == right[j]:
                dp[i][j] = dp[i + 1][j + 1] + 1
            else:
                dp[i][j] = max(dp[i + 1][j], dp[i][j + 1])

    # Walk forward to recover the matched pairs.
    pairs: list[tuple[int, int]] = []
    i, j = 0, 0
    while i < m and j < n:
        if left[i] == right[j]:
            pairs.append((i, j))
            i += 1
            j += 1
        elif dp[i + 1][j] >= dp[i][j + 1]:
            i += 1
        else:
            j += 1

    return pairs
