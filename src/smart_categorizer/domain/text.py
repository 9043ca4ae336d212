import re

STOP_WORDS = frozenset({
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "is", "are", "was", "were", "be", "been", "being", "have", "has", "had",
    "do", "does", "did", "will", "would", "could", "should", "may", "might",
    "must", "can", "this", "that", "these", "those",
})

_NUMERIC_RE = re.compile(r"^\d+$")
_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{2,4}$")

MERCHANT_INDICATORS = ("at", "from", "to", "@")


def is_stop_word(word: str) -> bool:
    return word.lower() in STOP_WORDS


def is_numeric_or_date(word: str) -> bool:
    return bool(_NUMERIC_RE.match(word) or _DATE_RE.match(word))


def split_words(text: str) -> list[str]:
    return text.lower().split()


def keyword_tokens(text: str) -> list[str]:
    """Lower-cased tokens worth counting as keywords."""
    return [
        word for word in split_words(text)
        if len(word) > 2 and not is_stop_word(word) and not is_numeric_or_date(word)
    ]


def extract_merchant(description: str) -> str:
    words = description.split()

    for indicator in MERCHANT_INDICATORS:
        for index, word in enumerate(words):
            if word.lower() == indicator and index < len(words) - 1:
                return " ".join(words[index + 1:]).strip()

    return " ".join(words[:3]).strip()
