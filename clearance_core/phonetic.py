"""
Phonetic encoders used for "sounds like" matching of marks.

Soundex gives a coarse 4-character code; Double Metaphone (via the
``metaphone`` package) is the secondary encoding. Two marks sound alike when
either encoding agrees.
"""

import re

from metaphone import doublemetaphone

SOUNDEX_LENGTH = 4

# Vowels and H/W/Y are absent: they never emit a digit
SOUNDEX_CODES = {
    "B": "1", "F": "1", "P": "1", "V": "1",
    "C": "2", "G": "2", "J": "2", "K": "2", "Q": "2", "S": "2", "X": "2", "Z": "2",
    "D": "3", "T": "3",
    "L": "4",
    "M": "5", "N": "5",
    "R": "6",
}

_NON_LETTERS = re.compile(r"[^A-Z]")


def soundex(name: str) -> str:
    """
    Encode a name with Soundex.

    The first letter is kept as-is, remaining letters are mapped to digit
    groups, a digit equal to the previously emitted digit is suppressed, and
    the code is right-padded with '0' (or truncated) to four characters.

    Args:
        name: Mark text in any case; non-letters are ignored.

    Returns:
        str: The 4-character code, or an empty string if ``name`` has no letters.
    """
    letters = _NON_LETTERS.sub("", name.upper())
    if not letters:
        return ""

    digits = []
    last_emitted = ""
    for letter in letters[1:]:
        code = SOUNDEX_CODES.get(letter)
        if code is None or code == last_emitted:
            continue
        digits.append(code)
        last_emitted = code

    return (letters[0] + "".join(digits) + "0" * SOUNDEX_LENGTH)[:SOUNDEX_LENGTH]


def metaphone_code(name: str) -> str:
    """
    Primary Double Metaphone code of a name.

    Falls back to the first four characters, upper-cased, when the encoder
    produces nothing (digits, punctuation, empty input).
    """
    primary, _ = doublemetaphone(name.strip().lower())
    return primary or name[:4].upper()


def sounds_alike(name1: str, name2: str) -> bool:
    """True when the Soundex codes OR the Metaphone codes of two names are equal."""
    if soundex(name1) == soundex(name2):
        return True
    return metaphone_code(name1) == metaphone_code(name2)
