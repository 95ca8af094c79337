"""Customer name capture from chat messages.

Extraction is an ordered list of rules, first accepted candidate wins:

    explicit_prefix   "My name is Dilani Perera."  (phrase opens the message)
    explicit_phrase   "hi, this is Kasun"          (phrase anywhere)
    bare_name         "Kasun"                      (only right after a name prompt)

Every candidate must pass the same plausibility check: 2-30 characters,
letters and spaces only, starting with an uppercase letter, at most 4 words.
"""

import re
from dataclasses import dataclass

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 30
MAX_NAME_WORDS = 4

NAME_PHRASES = (
    "my name is",
    "you can call me",
    "call me",
    "name is",
    "i go by",
    "this is",
    "i'm",
    "i am",
    "it's",
    "its",
)
_PHRASE = "|".join(re.escape(phrase) for phrase in NAME_PHRASES)
_NAME = r"([A-Za-z]+(?:[ \t]+[A-Za-z]+)*)"

GUEST_NAME_PATTERN = re.compile(r"guest", re.IGNORECASE)
NAME_PROMPT_PATTERN = re.compile(r"name", re.IGNORECASE)
TRAILING_PUNCTUATION = re.compile(r"[.,!?]+$")
PLAUSIBLE_NAME = re.compile(r"^[A-Z][A-Za-z ]*$")


@dataclass(frozen=True)
class NameRule:
    """One extraction rule: a tagged pattern plus when it may fire."""

    tag: str
    pattern: re.Pattern[str]
    requires_prompt: bool = False

    def candidate(self, content: str) -> str | None:
        match = self.pattern.search(content)
        if match is None:
            return None
        return match.group(1).strip()


NAME_RULES: tuple[NameRule, ...] = (
    NameRule(
        tag="explicit_prefix",
        pattern=re.compile(rf"^\s*(?:{_PHRASE})\s+{_NAME}", re.IGNORECASE),
    ),
    NameRule(
        tag="explicit_phrase",
        pattern=re.compile(rf"\b(?:{_PHRASE})\s+{_NAME}", re.IGNORECASE),
    ),
    NameRule(
        tag="bare_name",
        pattern=re.compile(r"^\s*(.+?)[.,!?]*\s*$", re.DOTALL),
        requires_prompt=True,
    ),
)


def is_plausible_name(candidate: str) -> bool:
    """Check the acceptance criteria shared by every rule."""
    candidate = candidate.strip()
    if not MIN_NAME_LENGTH <= len(candidate) <= MAX_NAME_LENGTH:
        return False
    if not PLAUSIBLE_NAME.match(candidate):
        return False
    return len(candidate.split()) <= MAX_NAME_WORDS


def is_generic_name(name: str | None) -> bool:
    """True for empty names and guest placeholders like ``Guest_4821``."""
    if not name or not name.strip():
        return True
    return GUEST_NAME_PATTERN.search(name) is not None


def is_name_prompt(content: str | None) -> bool:
    """True if a staff/system message is asking for the customer's name."""
    return bool(content) and NAME_PROMPT_PATTERN.search(content) is not None


def extract_customer_name(
    content: str,
    after_prompt: bool = False,
    rules: tuple[NameRule, ...] = NAME_RULES,
) -> str | None:
    """Return the first plausible name found by the rules, if any.

    Args:
        content: Message text
        after_prompt: Whether the previous message asked for a name; enables
            rules that treat the whole message as a name

    Returns:
        Extracted name, or None
    """
    for rule in rules:
        if rule.requires_prompt and not after_prompt:
            continue
        candidate = rule.candidate(content)
        if candidate is None:
            continue
        candidate = TRAILING_PUNCTUATION.sub("", candidate).strip()
        if is_plausible_name(candidate):
            return candidate
    return None
