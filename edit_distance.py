"""
edit_distance.py
----------------
Levenshtein distance and a derived 0-100 similarity percentage.

Used only as the last-resort typo fallback for single-word keywords
("evnts" vs "events"). Callers skip tokens shorter than 3 characters.
"""


def levenshtein(a: str, b: str) -> int:
    """
    Classic dynamic-programming edit distance (unit cost insert / delete /
    substitute) over a ``(len(b)+1) x (len(a)+1)`` table.
    """
    rows = len(b) + 1
    cols = len(a) + 1
    table = [[0] * cols for _ in range(rows)]

    for j in range(cols):
        table[0][j] = j
    for i in range(rows):
        table[i][0] = i

    for i in range(1, rows):
        for j in range(1, cols):
            cost = 0 if b[i - 1] == a[j - 1] else 1
            table[i][j] = min(
                table[i - 1][j] + 1,         # deletion
                table[i][j - 1] + 1,         # insertion
                table[i - 1][j - 1] + cost,  # substitution
            )

    return table[rows - 1][cols - 1]


def similarity(a: str, b: str) -> float:
    """
    Return ``100 * (maxLen - distance) / maxLen``.
    Two empty strings are 100% similar.
    """
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 100.0
    return 100.0 * (max_len - levenshtein(a, b)) / max_len
