from rapidfuzz.distance import Levenshtein


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit cost for insert, delete and substitute."""
    return Levenshtein.distance(a, b)


def string_similarity(a: str, b: str) -> float:
    """
    Case-insensitive similarity in [0, 1].
    Two empty strings are identical.
    """
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    distance = levenshtein_distance(a.lower(), b.lower())
    return (max_len - distance) / max_len
