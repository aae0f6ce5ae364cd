"""
Utility functions for the application
"""
import unicodedata


def normalize_name(name: str) -> str:
    """
    Normalize a player name for search matching

    Args:
        name: Player name as entered or stored

    Returns:
        Normalized name (lowercase, accents stripped, surrounding whitespace removed)
    """
    decomposed = unicodedata.normalize("NFD", name.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))
