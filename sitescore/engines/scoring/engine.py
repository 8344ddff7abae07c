"""
Scoring Engine - turns page metadata and term frequencies into an SEO score.

Scoring Model (applied in this order, accumulating a signed integer):
- Title words found in the body:        +2 each, term frequency +2
- Description words found in the body:  +2 each, term frequency +2
- Keywords found in the body:           +1 each, term frequency +1
- last-modified within a year: +1, older: -1, missing: -2
- product with version: +1, product without version: -1
- H1 present: +1 plus one per H1 word used in title/description/keywords,
  H1 missing: -1

A metadata word only scores when the body term's frequency is above 1 at the
moment it is checked. Each boost raises the frequency the later passes see,
so title -> description -> keywords order changes the result. The term list
is sorted once, before boosting, and is not re-sorted afterwards.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import structlog
from dateutil import parser as dateparser

from sitescore.engines.base import PageMetadata, ScoreResult, TermFrequency

logger = structlog.get_logger(__name__)

# Symbols the term extraction can let through; never counted as terms.
SYMBOL_TERMS: frozenset[str] = frozenset({
    ":", "=", "==", "{", "}", "|", ";", "(", ")", "++", "//", "://", "**", "***", "()",
})

FRESHNESS_WINDOW = timedelta(days=365)
KEYWORD_SEPARATOR = re.compile(r"[,\s]+")


def sort_terms_by_frequency(terms: list[TermFrequency]) -> list[TermFrequency]:
    """Drop symbol tokens, then sort by frequency descending (stable)."""
    kept = [t.model_copy() for t in terms if t.term not in SYMBOL_TERMS]
    return sorted(kept, key=lambda t: t.frequency, reverse=True)


def parse_last_modified(value: str) -> datetime | None:
    """Parse a last-modified value; naive dates are taken as UTC."""
    try:
        parsed = dateparser.parse(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class _BoostOutcome:
    boosted_words: int = 0
    header_matches: int = 0


class ScoringEngine:
    """Deterministic page scorer. Holds no state between calls."""

    TITLE_BOOST = 2
    DESCRIPTION_BOOST = 2
    KEYWORD_BOOST = 1

    def score(
        self,
        metadata: PageMetadata,
        terms: list[TermFrequency],
        now: datetime | None = None,
    ) -> ScoreResult:
        now = now or datetime.now(timezone.utc)
        frequency_list = sort_terms_by_frequency(terms)
        header_words = metadata.header_one.split() if metadata.header_one else None

        page_score = 0
        clauses: list[str] = []

        # ── Title ─────────────────────────────────────
        title_matches = 0
        if metadata.title:
            outcome = self._boost(metadata.title.split(), frequency_list, self.TITLE_BOOST, header_words)
            page_score += outcome.boosted_words * self.TITLE_BOOST
            title_matches = outcome.header_matches
            if outcome.boosted_words > 0:
                clauses.append(f"good: {outcome.boosted_words} title words appear in body.")
            else:
                clauses.append("bad: no title words appear in body.")
        else:
            clauses.append("very bad: no title.")

        # ── Description ──────────────────────────────
        description_matches = 0
        if metadata.description:
            outcome = self._boost(
                metadata.description.split(), frequency_list, self.DESCRIPTION_BOOST, header_words
            )
            page_score += outcome.boosted_words * self.DESCRIPTION_BOOST
            description_matches = outcome.header_matches
            if outcome.boosted_words > 0:
                clauses.append(f"good: {outcome.boosted_words} description words appear in body.")
            else:
                clauses.append("bad: no description words appear in body.")
        else:
            clauses.append("very bad: no description.")

        # ── Keywords ─────────────────────────────────
        keyword_matches = 0
        if metadata.keywords:
            words = [w for w in KEYWORD_SEPARATOR.split(metadata.keywords) if w]
            outcome = self._boost(words, frequency_list, self.KEYWORD_BOOST, header_words)
            page_score += outcome.boosted_words * self.KEYWORD_BOOST
            keyword_matches = outcome.header_matches
            if outcome.boosted_words > 0:
                clauses.append(f"good: {outcome.boosted_words} keywords appear in body.")
            else:
                clauses.append("bad: no keywords appear in body.")
        else:
            clauses.append("very bad: no keywords.")

        # ── Freshness ────────────────────────────────
        last_modified = parse_last_modified(metadata.last_modified) if metadata.last_modified else None
        if last_modified is None:
            if metadata.last_modified:
                logger.debug("Unreadable last-modified", value=metadata.last_modified)
            page_score -= 2
            clauses.append("bad: page missing last-modified.")
        elif now - last_modified > FRESHNESS_WINDOW:
            page_score -= 1
            clauses.append("bad: page over 1 year old.")
        else:
            page_score += 1
            clauses.append("good: page is recent.")

        # ── Product / version ────────────────────────
        # No product may be fine; a product without a version is not.
        if metadata.product:
            if not metadata.version:
                page_score -= 1
                clauses.append("bad: page has product but missing version.")
            else:
                page_score += 1
                clauses.append("good: page has product and version.")

        # ── H1 ───────────────────────────────────────
        if metadata.header_one:
            page_score += 1 + title_matches + description_matches + keyword_matches
            clauses.append(
                f"good: page has H1, {title_matches} in title, "
                f"{description_matches} in description, {keyword_matches} in keywords"
            )
        else:
            page_score -= 1
            clauses.append("bad: page missing H1.")

        return ScoreResult(score=page_score, analysis="; ".join(clauses), terms=frequency_list)

    @staticmethod
    def _boost(
        words: list[str],
        frequency_list: list[TermFrequency],
        boost: int,
        header_words: list[str] | None,
    ) -> _BoostOutcome:
        """
        Raise the frequency of every term matching a word, in place.
        A word scores when the matched term was already seen more than once.
        """
        outcome = _BoostOutcome()
        for raw_word in words:
            word = raw_word.strip().lower()
            for entry in frequency_list:
                if entry.term == word:
                    if entry.frequency > 1:
                        outcome.boosted_words += 1
                    entry.frequency += boost
            if header_words is not None and word in header_words:
                outcome.header_matches += 1
        return outcome
