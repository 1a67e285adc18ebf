"""Recherche de motifs d'octets dans un buffer brut.

Le motif est toujours une séquence d'octets littérale (jamais une regex):
un boundary contenant `.` ou `*` doit être trouvé tel quel.
"""

from __future__ import annotations

from typing import Optional


def find(haystack: bytes, needle: bytes, start: int = 0) -> Optional[int]:
    """Index de la première occurrence exacte de `needle` à partir de `start`.

    Args:
        haystack: Buffer dans lequel chercher
        needle: Motif littéral
        start: Index de départ (inclus)

    Returns:
        L'index le plus à gauche, ou None si absent (motif vide ou start négatif
        inclus).
    """
    if not needle or start < 0 or start > len(haystack):
        return None
    # bytes.find compare octet par octet, sans syntaxe de motif.
    index = haystack.find(needle, start)
    return index if index >= 0 else None