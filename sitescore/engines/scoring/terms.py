"""
Term extraction - turns a page into a single-document corpus and counts terms.

Pipeline, in order:
    collapse newlines/whitespace -> remove digits -> remove punctuation
    -> lower-case -> Porter stem -> drop noise words -> drop stop words

Stop words are removed after stemming, so stop words whose stem differs
from the word itself ("this" -> "thi") survive. Frequencies come back in
first-appearance order.
"""

from __future__ import annotations

import copy
import re
from collections import Counter
from collections.abc import Iterable

from bs4 import BeautifulSoup
from nltk.stem.porter import PorterStemmer

from sitescore.core.config import DEFAULT_NOISE_WORDS
from sitescore.engines.base import TermFrequency

DIGIT_PATTERN = re.compile(r"\d+")
PUNCTUATION_PATTERN = re.compile(r"[^\w\s]|_")
WHITESPACE_PATTERN = re.compile(r"\s+")

# Punctuation is gone by the time stop words are removed, so no contractions here.
ENGLISH_STOP_WORDS: frozenset[str] = frozenset("""
a about above after again against all am an and any are as at be because been
before being below between both but by can cannot could did do does doing down
during each few for from further had has have having he her here hers herself
him himself his how i if in into is it its itself me more most my myself no
nor not of off on once only or other ought our ours ourselves out over own same
she should so some such than that the their theirs them themselves then there
these they this those through to too under until up very was we were what when
where which while who whom why with would you your yours yourself yourselves
""".split())


def body_text(document: BeautifulSoup) -> str:
    """Visible text of the page body with scripts and styles removed; entities come back decoded."""
    body = copy.copy(document.body or document)
    for tag in body(["script", "style", "noscript"]):
        tag.decompose()
    return body.get_text(separator=" ")


class TermExtractor:
    """Builds term frequencies for one page."""

    def __init__(self, noise_words: Iterable[str] | None = None, stop_words: Iterable[str] | None = None):
        if noise_words is None:
            noise_words = DEFAULT_NOISE_WORDS
        self.noise_words = frozenset(w.lower() for w in noise_words)
        self.stop_words = ENGLISH_STOP_WORDS if stop_words is None else frozenset(stop_words)
        self.stemmer = PorterStemmer(mode=PorterStemmer.ORIGINAL_ALGORITHM)

    def tokenize(self, text: str) -> list[str]:
        text = WHITESPACE_PATTERN.sub(" ", text).strip()
        text = DIGIT_PATTERN.sub("", text)
        text = PUNCTUATION_PATTERN.sub(" ", text)
        text = text.lower()

        tokens = [self.stemmer.stem(word) for word in text.split()]
        tokens = [t for t in tokens if t not in self.noise_words]
        return [t for t in tokens if t not in self.stop_words]

    def frequencies(self, text: str) -> list[TermFrequency]:
        counts = Counter(self.tokenize(text))
        # Counter keeps insertion order: first appearance in the text.
        return [TermFrequency(term=term, frequency=count) for term, count in counts.items()]

    def page_terms(self, title: str, description: str, keywords: str, document: BeautifulSoup) -> list[TermFrequency]:
        corpus = " ".join([title, description, keywords, body_text(document)])
        return self.frequencies(corpus)
