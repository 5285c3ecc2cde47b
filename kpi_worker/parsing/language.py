import re

_WORD_RE = re.compile(r"[^\W\d_]+")

_STOPWORDS: dict[str, frozenset[str]] = {
    "en": frozenset(
        "the and of to in for is on with by from that this are as at was were".split()
    ),
    "de": frozenset(
        "der die das und in den von zu mit für ist im auf des dem nicht eine ein".split()
    ),
}

_MIN_HITS = 5


def detect_language(text: str) -> str | None:
    """Best-effort stopword vote. Returns None when no language has enough evidence."""
    counts = dict.fromkeys(_STOPWORDS, 0)
    for word in _WORD_RE.findall(text.lower()):
        for language, words in _STOPWORDS.items():
            if word in words:
                counts[language] += 1
    language, hits = max(counts.items(), key=lambda item: item[1])
    if hits < _MIN_HITS:
        return None
    return language
