"""
Keywords - Cheap lexical signals.

- query_terms(): the words of a search query we look for literally
- extract_tags(): auto-tags for a memory saved without tags
- significant_words(): the words of a free text worth searching decisions for
"""

import re
from collections import Counter

_WORD = re.compile(r"\b[a-zA-Z0-9][a-zA-Z0-9_-]*\b")

MIN_TERM_LENGTH = 3
DEFAULT_TAG_COUNT = 5

STOPWORDS = {
    'the', 'a', 'an', 'is', 'are', 'was', 'were', 'be', 'been', 'being',
    'have', 'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could',
    'should', 'may', 'might', 'must', 'shall', 'can', 'need', 'used', 'to',
    'of', 'in', 'for', 'on', 'with', 'at', 'by', 'from', 'as', 'into',
    'through', 'during', 'before', 'after', 'above', 'below', 'between',
    'under', 'again', 'further', 'then', 'once', 'here', 'there', 'when',
    'where', 'why', 'how', 'all', 'each', 'few', 'more', 'most', 'other',
    'some', 'such', 'no', 'nor', 'not', 'only', 'own', 'same', 'so', 'than',
    'too', 'very', 'just', 'and', 'but', 'if', 'or', 'because', 'until',
    'while', 'what', 'which', 'who', 'this', 'that', 'these', 'those', 'am',
    'it', 'its', 'me', 'my', 'we', 'our', 'you', 'your', 'he', 'him', 'his',
    'she', 'her', 'they', 'them', 'their', 'use', 'uses', 'using', 'also',
    'new', 'get', 'set', 'any', 'via', 'out', 'about', 'make',
}


def tokenize(text: str) -> list[str]:
    return _WORD.findall((text or "").lower())


def query_terms(query: str) -> list[str]:
    """Distinct query tokens longer than two characters, in order."""
    seen = []
    for word in tokenize(query):
        if len(word) >= MIN_TERM_LENGTH and word not in seen:
            seen.append(word)
    return seen


def count_matches(terms: list[str], haystack: str) -> int:
    """How many terms appear (as substrings) in an already-lowercased text."""
    return sum(1 for term in terms if term in haystack)


def significant_words(text: str) -> list[str]:
    """Distinct non-stopword tokens of a free text, in order."""
    return [w for w in query_terms(text) if w not in STOPWORDS]


def extract_tags(title: str, content: str, limit: int = DEFAULT_TAG_COUNT) -> list[str]:
    """Most frequent significant words of title + content.

    Title words count double. Ties keep first-seen order.

    Example:
        extract_tags("Deploy checklist", "Run migrations, then deploy the API")
        → ['deploy', 'checklist', 'run', 'migrations', 'api']
    """
    words = [w for w in tokenize(title) if len(w) >= MIN_TERM_LENGTH and w not in STOPWORDS] * 2
    words += [w for w in tokenize(content) if len(w) >= MIN_TERM_LENGTH and w not in STOPWORDS]
    words = [w for w in words if not w.isdigit()]

    counts = Counter(words)
    first_seen = {}
    for i, word in enumerate(words):
        first_seen.setdefault(word, i)

    ranked = sorted(counts, key=lambda w: (-counts[w], first_seen[w]))
    return ranked[:limit]
