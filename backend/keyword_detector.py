"""Creator Safety Vetting - Keyword Prefilter
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Tier 0: deterministic keyword flagging (free, instant, no network).

Two passes over the text:
  1. Exact: case-insensitive substring match against the term table
  2. Stem: each token is stemmed and looked up in a stem -> term index,
     catching inflections the substring pass misses ("drug" -> "drugs")

Results feed the screening prompt and the audit trail. They never decide
on their own whether a post goes on to screening.
"""

import logging
from collections import Counter
from typing import Iterable, Optional

from nltk.stem import PorterStemmer, SnowballStemmer
from nltk.tokenize import wordpunct_tokenize

from lexicon_db import LexiconDatabase
from risk_rollup import rollup_keyword_severities, severity_rank
from vetting_models import SEVERITIES, KeywordDetectionResult, KeywordMatch

logger = logging.getLogger(__name__)

CUSTOM_KEYWORD_SEVERITY = "high"

# Snowball stemmers for non-English tables (English uses Porter)
SNOWBALL_LANGUAGES = {
    "de": "german",
    "fr": "french",
    "es": "spanish",
    "it": "italian",
    "nl": "dutch",
    "pt": "portuguese",
}


def _make_stemmer(language: str):
    if language in SNOWBALL_LANGUAGES:
        return SnowballStemmer(SNOWBALL_LANGUAGES[language])
    return PorterStemmer()


class KeywordDetector:
    """Flags risky terms in post text using a per-language lexicon."""

    def __init__(self, lexicon: Optional[LexiconDatabase] = None):
        self.lexicon = lexicon or LexiconDatabase()
        self._stemmers = {}
        self._stem_indexes: dict[str, dict[str, tuple[str, str]]] = {}

    def supported_languages(self) -> list[str]:
        return self.lexicon.supported_languages()

    def _stemmer_for(self, language: str):
        if language not in self._stemmers:
            self._stemmers[language] = _make_stemmer(language)
        return self._stemmers[language]

    def _stem_index(self, language: str) -> dict[str, tuple[str, str]]:
        """stem -> (term, severity); built once per language, worst severity first."""
        if language not in self._stem_indexes:
            stemmer = self._stemmer_for(language)
            index: dict[str, tuple[str, str]] = {}
            terms = self.lexicon.get_terms(language)
            for severity in SEVERITIES:
                for term in terms.get(severity, []):
                    # Phrases can't match a single token
                    if " " in term:
                        continue
                    index.setdefault(stemmer.stem(term), (term, severity))
            self._stem_indexes[language] = index
        return self._stem_indexes[language]

    @staticmethod
    def _keep_worst(found: dict[str, KeywordMatch], match: KeywordMatch) -> None:
        current = found.get(match.keyword)
        if current is None or severity_rank(match.severity) > severity_rank(current.severity):
            found[match.keyword] = match

    def detect(
        self,
        text: str,
        language: Optional[str] = "en",
        custom_keywords: Optional[Iterable[str]] = None,
    ) -> KeywordDetectionResult:
        """Run both passes over text and return the merged matches."""
        if not text or not text.strip():
            return KeywordDetectionResult()

        language = self.lexicon.resolve_language(language)
        lowered = text.lower()
        found: dict[str, KeywordMatch] = {}

        # Pass 1: exact substring
        terms = self.lexicon.get_terms(language)
        for severity in SEVERITIES:
            for term in terms.get(severity, []):
                if term in lowered:
                    self._keep_worst(found, KeywordMatch(term, "exact", term, severity))

        for keyword in custom_keywords or []:
            term = keyword.strip().lower()
            if term and term in lowered:
                self._keep_worst(found, KeywordMatch(term, "exact", term, CUSTOM_KEYWORD_SEVERITY))

        exact_terms = set(found)

        # Pass 2: stems
        stemmer = self._stemmer_for(language)
        stem_index = self._stem_index(language)
        for token in wordpunct_tokenize(lowered):
            if not token.isalpha():
                continue
            entry = stem_index.get(stemmer.stem(token))
            if entry is None:
                continue
            term, severity = entry
            if term in exact_terms or token == term:
                continue
            self._keep_worst(found, KeywordMatch(term, "stem", token, severity))

        matches = list(found.values())
        return KeywordDetectionResult(
            matches=matches,
            overall_risk=rollup_keyword_severities(m.severity for m in matches),
        )

    def detect_batch(
        self,
        texts: Iterable[str],
        language: Optional[str] = "en",
        custom_keywords: Optional[Iterable[str]] = None,
    ) -> list[KeywordDetectionResult]:
        custom = list(custom_keywords or [])
        return [self.detect(text, language, custom) for text in texts]


def aggregate_results(results: Iterable[KeywordDetectionResult]) -> dict:
    """
    Combine many detection results into one overview.

    Returns:
        {
            "all_flagged_terms": list[str],   # unique, first-seen order
            "overall_risk": str,
            "match_counts": {"exact": int, "stem": int},
            "severity_counts": {"critical": int, "high": int, "medium": int, "low": int},
        }
    """
    flagged: dict[str, None] = {}
    match_counts = Counter({"exact": 0, "stem": 0})
    severity_counts = Counter({sev: 0 for sev in SEVERITIES})

    for result in results:
        for match in result.matches:
            flagged.setdefault(match.keyword, None)
            match_counts[match.match_type] += 1
            severity_counts[match.severity] += 1

    present = [sev for sev, count in severity_counts.items() if count]
    return {
        "all_flagged_terms": list(flagged),
        "overall_risk": rollup_keyword_severities(present),
        "match_counts": dict(match_counts),
        "severity_counts": dict(severity_counts),
    }
