"""
Tokenizer for the Bayesian classifier.
"""

import re
from typing import Set

MIN_TOKEN_LENGTH = 3
MAX_TOKEN_LENGTH = 50
URL_TOKEN_LENGTH = 30

_WORD_RE = re.compile(r'\b[a-z0-9]{%d,%d}\b' % (MIN_TOKEN_LENGTH, MAX_TOKEN_LENGTH))
_URL_RE = re.compile(r'https?://[^\s]+', re.IGNORECASE)
_EMAIL_RE = re.compile(r'[a-z0-9._%+-]+@([a-z0-9.-]+\.[a-z]{2,})', re.IGNORECASE)
_MONEY_RE = re.compile(r'\$\$\$+')
_EXCLAMATION_RE = re.compile(r'!!!+')
_ALL_CAPS_RE = re.compile(r'\b[A-Z]{5,}\b')


def tokenize(text: str) -> Set[str]:
    """
    Split text into the set of tokens the classifier counts.

    Word tokens are lower-cased; ``URL:``, ``DOMAIN:`` and the marker tokens
    (``MONEY_SIGNS``, ``EXCLAMATION_MARKS``, ``ALL_CAPS_WORDS``) are upper-case
    and so never collide with words.
    """
    tokens: Set[str] = set()
    if not text:
        return tokens

    tokens.update(_WORD_RE.findall(text.lower()))

    for url in _URL_RE.findall(text):
        tokens.add("URL:" + url.lower()[:URL_TOKEN_LENGTH])

    for domain in _EMAIL_RE.findall(text):
        tokens.add("DOMAIN:" + domain.lower())

    if _MONEY_RE.search(text):
        tokens.add("MONEY_SIGNS")
    if _EXCLAMATION_RE.search(text):
        tokens.add("EXCLAMATION_MARKS")
    if _ALL_CAPS_RE.search(text):
        tokens.add("ALL_CAPS_WORDS")

    return tokens


def message_tokens(subject: str, body: str, sender: str = "") -> Set[str]:
    """Tokens of a whole message: subject, body and sender together."""
    return tokenize(f"{subject or ''} {body or ''} {sender or ''}")
