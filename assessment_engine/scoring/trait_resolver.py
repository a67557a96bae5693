"""
DISC Trait Resolution
assessment_engine/scoring/trait_resolver.py

Deterministic mapping from raw answer values to DISC trait letters.

Resolution table:
    choice keys      a -> D, b -> I, c -> S, d -> C
    direct letters   D / I / S / C
    binary phrases   people -> I,S   tasks -> D,C
                     initiator -> D,I   executor -> S,C
                     fast -> D,I   thoughtful -> S,C
                     (plus their Russian forms)
"""

import re
from typing import Any, Dict, List, Optional

from assessment_engine.models.enumerations import DiscTrait

DISC_LETTERS = ("D", "I", "S", "C")

CHOICE_KEY_TO_TRAIT: Dict[str, str] = {
    "a": "D",
    "b": "I",
    "c": "S",
    "d": "C",
}

PHRASE_TO_TRAITS: Dict[str, List[str]] = {
    # people vs tasks
    "люди": ["I", "S"],
    "работа с людьми": ["I", "S"],
    "с людьми": ["I", "S"],
    "people": ["I", "S"],
    "задачи": ["D", "C"],
    "работа с задачами": ["D", "C"],
    "с задачами": ["D", "C"],
    "tasks": ["D", "C"],
    # initiator vs executor
    "инициатор": ["D", "I"],
    "активный инициатор": ["D", "I"],
    "initiator": ["D", "I"],
    "исполнитель": ["S", "C"],
    "вдумчивый исполнитель": ["S", "C"],
    "executor": ["S", "C"],
    # fast vs thoughtful
    "быстро": ["D", "I"],
    "fast": ["D", "I"],
    "обдумываю": ["S", "C"],
    "обдуманно": ["S", "C"],
    "thoughtful": ["S", "C"],
}

# Cyrillic capitals that render identically to DISC letters
LOOKALIKE_LETTERS: Dict[str, str] = {
    "С": "C",
}

_STRIP_CHARS = re.compile(r"[\"'«».,!?()]")
_WHITESPACE = re.compile(r"\s+")
_LETTER_ANYWHERE = re.compile(r"[DISCС]")


def normalize_value(raw: str) -> str:
    """Lowercase, drop quotes/punctuation, collapse whitespace."""
    text = _STRIP_CHARS.sub("", raw.lower())
    return _WHITESPACE.sub(" ", text).strip()


def _canonical_letter(char: str) -> Optional[str]:
    upper = char.upper()
    upper = LOOKALIKE_LETTERS.get(upper, upper)
    return upper if upper in DISC_LETTERS else None


def resolve_single_trait(raw_value: Any) -> Optional[str]:
    """Resolve a choice key or a direct letter; lists yield their first hit."""
    if raw_value is None:
        return None
    if isinstance(raw_value, list):
        for item in raw_value:
            trait = resolve_single_trait(item)
            if trait:
                return trait
        return None

    text = str(raw_value).strip()
    if not text:
        return None

    # Upper-case letters are direct codes; lower-case a-d are choice keys
    if text in DISC_LETTERS:
        return text

    lower = text.lower()
    if lower in CHOICE_KEY_TO_TRAIT:
        return CHOICE_KEY_TO_TRAIT[lower]

    upper = text.upper()
    if upper in DISC_LETTERS:
        return upper
    return None


def resolve_traits(raw_value: Any) -> List[str]:
    """
    Resolve every trait a value votes for, in first-seen order.

    Multi-select values collect the union of their items' traits.
    """
    if raw_value is None or isinstance(raw_value, bool):
        return []

    if isinstance(raw_value, list):
        traits: List[str] = []
        for item in raw_value:
            for trait in resolve_traits(item):
                if trait not in traits:
                    traits.append(trait)
        return traits

    if isinstance(raw_value, (int, float)):
        return []

    stripped = str(raw_value).strip()
    if stripped in DISC_LETTERS:
        return [stripped]

    normalized = normalize_value(stripped)
    if not normalized:
        return []

    phrase_traits = PHRASE_TO_TRAITS.get(normalized)
    if phrase_traits:
        return list(phrase_traits)

    single = resolve_single_trait(normalized)
    return [single] if single else []


def parse_classifier_label(text: Optional[str]) -> Optional[str]:
    """
    Normalize a classifier reply to one DISC letter.

    First character wins; otherwise the first D/I/S/C anywhere in the text.
    Cyrillic 'С' is read as Latin 'C'.
    """
    if not text:
        return None
    stripped = text.strip()
    if not stripped:
        return None

    letter = _canonical_letter(stripped[0])
    if letter:
        return letter

    match = _LETTER_ANYWHERE.search(stripped.upper())
    if not match:
        return None
    return _canonical_letter(match.group(0))


def extract_letter_code(raw_value: Any) -> Optional[str]:
    """
    Fallback extraction: the answer text is itself a single letter code,
    look-alikes included.
    """
    if not isinstance(raw_value, str):
        return None
    candidate = normalize_value(raw_value)
    if len(candidate) != 1:
        return None
    return _canonical_letter(candidate)


def as_traits(letters: Optional[List[DiscTrait]]) -> List[str]:
    """Explicit trait list -> distinct letters, order kept."""
    result: List[str] = []
    for letter in letters or []:
        value = letter.value if isinstance(letter, DiscTrait) else str(letter).upper()
        if value in DISC_LETTERS and value not in result:
            result.append(value)
    return result
