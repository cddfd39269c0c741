import re

# Underscores and dashes separate words in exported ids ("black_tassel", "hu-tao")
_SEPARATORS = re.compile(r"[_\-‐-―]+")
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_item_name(name: str | None) -> str:
    """Turn an item name into the key used for storage and duplicate checks.

    ``"Black Tassel"``, ``"black_tassel"`` and ``"BLACK-TASSEL!!"`` all become
    ``"black tassel"``, while ``"Sharpshooter's Oath"`` becomes ``"sharpshooters oath"``.
    Letters outside ASCII are kept.
    """
    if not name:
        return ""

    normalized = name.lower()
    normalized = _SEPARATORS.sub(" ", normalized)
    normalized = _PUNCTUATION.sub("", normalized)
    normalized = _WHITESPACE.sub(" ", normalized)
    return normalized.strip()
