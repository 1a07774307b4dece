"""Numbered-tone to diacritic pinyin conversion.

``normalize("ni3hao3")`` gives ``"nǐhǎo"``. Anything that does not look like a
letter run followed by a tone digit is left alone, so the function never fails
on user input.
"""

import re
import unicodedata

TONE_MARKS = {
    "a": "āáǎàa",
    "e": "ēéěèe",
    "i": "īíǐìi",
    "o": "ōóǒòo",
    "u": "ūúǔùu",
    "ü": "ǖǘǚǜü",
    "A": "ĀÁǍÀA",
    "E": "ĒÉĚÈE",
    "I": "ĪÍǏÌI",
    "O": "ŌÓǑÒO",
    "U": "ŪÚǓÙU",
    "Ü": "ǕǗǙǛÜ",
}

# Digits after the tone digit are dropped so the output never ends in a digit.
SYLLABLE_RE = re.compile(r"([a-zA-ZüÜ]+)([1-5])[0-9]*")


def _tone_index(letters: str) -> int:
    lower = letters.lower()
    for vowel in ("a", "o", "e"):
        if vowel in lower:
            return lower.index(vowel)
    if "iu" in lower:
        return lower.index("iu") + 1
    for vowel in ("i", "u", "ü"):
        if vowel in lower:
            return lower.index(vowel)
    return -1


def mark_syllable(letters: str, tone: int) -> str:
    """Apply ``tone`` (1-5) to a single run of letters."""
    letters = letters.replace("v", "ü").replace("V", "Ü")
    index = _tone_index(letters)
    if index == -1:
        return letters
    vowel = letters[index]
    return letters[:index] + TONE_MARKS[vowel][tone - 1] + letters[index + 1 :]


def _convert_token(token: str) -> str:
    return SYLLABLE_RE.sub(lambda m: mark_syllable(m.group(1), int(m.group(2))), token)


def has_tone_numbers(text: str) -> bool:
    return SYLLABLE_RE.search(text or "") is not None


def normalize(text: str) -> str:
    if not text:
        return text
    text = unicodedata.normalize("NFC", text)
    if not has_tone_numbers(text):
        return text
    return " ".join(_convert_token(token) for token in text.split())
