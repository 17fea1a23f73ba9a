"""
Lexicon Database - Severity-tagged term tables for the keyword prefilter
Think of this like an antivirus definition database, but for risky words
"""

import json
import logging
from pathlib import Path
from typing import Optional

from vetting_models import SEVERITIES

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "en"

_DEFAULT_TERMS = {
    "en": {
        "critical": [
            "racist", "racism", "slur", "hate", "nazi", "terrorist", "terrorism",
            "white supremacy", "supremacist", "genocide", "ethnic cleansing",
            "pedophile", "pedophilia", "child abuse",
        ],
        "high": [
            "drugs", "cocaine", "heroin", "meth", "methamphetamine", "fentanyl",
            "violence", "violent", "abuse", "assault", "murder", "kill", "killing",
            "fraud", "scam", "trafficking", "illegal", "crime", "criminal",
            "suicide", "self-harm", "eating disorder", "anorexia", "bulimia",
        ],
        "medium": [
            "controversial", "political", "explicit", "gambling", "casino", "betting",
            "conspiracy", "misinformation", "fake news", "propaganda",
            "sex", "sexual", "nude", "nudity", "porn", "pornography",
            "weapon", "gun", "firearm", "rifle",
        ],
        "low": [
            "alcohol", "beer", "wine", "vodka", "whiskey", "drunk",
            "tobacco", "cigarette", "vape", "vaping", "nicotine",
            "mature", "adult", "profanity", "swear", "curse",
            "cannabis", "marijuana", "weed", "thc", "cbd",
        ],
    },
    "de": {
        "critical": [
            "rassist", "rassismus", "rassenhass", "hetze", "nazi", "terrorist",
            "terrorismus", "völkermord", "ethnische säuberung", "pädophil",
            "kindesmissbrauch",
        ],
        "high": [
            "drogen", "kokain", "heroin", "crystal meth", "fentanyl",
            "gewalt", "gewalttätig", "missbrauch", "körperverletzung", "mord",
            "töten", "betrug", "abzocke", "menschenhandel", "illegal",
            "verbrechen", "kriminell", "selbstmord", "suizid",
            "selbstverletzung", "essstörung", "magersucht", "bulimie",
        ],
        "medium": [
            "kontrovers", "politisch", "explizit", "glücksspiel", "kasino",
            "sportwetten", "verschwörung", "desinformation", "falschmeldung",
            "fake news", "propaganda", "sexuell", "nackt", "nacktheit",
            "porno", "pornografie", "waffe", "schusswaffe", "gewehr", "pistole",
        ],
        "low": [
            "alkohol", "bier", "wodka", "whisky", "betrunken", "tabak",
            "zigarette", "vape", "dampfen", "nikotin", "fluchen",
            "schimpfwort", "cannabis", "marihuana", "kiffen", "thc", "cbd",
        ],
    },
}


def normalize_language(language: Optional[str]) -> str:
    """'de-DE' -> 'de', None -> default."""
    if not language:
        return DEFAULT_LANGUAGE
    return language.strip().lower()[:2] or DEFAULT_LANGUAGE


class LexiconDatabase:
    """
    Holds one term table per language.

    Each table maps a severity (critical, high, medium, low) to its terms.
    Tables are read from <db_path>/<language>.json when present, otherwise
    the built-in defaults are used.
    """

    def __init__(self, db_path: Optional[str] = None):
        """Load term tables from db_path (defaults to the lexicon/ folder)."""
        if db_path is None:
            db_path = Path(__file__).parent.parent / "lexicon"

        self.db_path = Path(db_path)
        self.tables: dict[str, dict[str, list[str]]] = {
            lang: {sev: list(terms) for sev, terms in table.items()}
            for lang, table in _DEFAULT_TERMS.items()
        }

        self._load_database()

    def _load_database(self) -> None:
        """Overlay tables found on disk over the defaults"""
        if not self.db_path.is_dir():
            return

        for table_file in sorted(self.db_path.glob("*.json")):
            language = normalize_language(table_file.stem)
            try:
                with open(table_file, 'r', encoding='utf-8') as f:
                    raw = json.load(f)
            except Exception as e:
                logger.error(f"Error loading {table_file}: {e}")
                continue

            if not isinstance(raw, dict):
                logger.error(f"Error loading {table_file}: expected an object of severity -> terms")
                continue

            self.tables[language] = {
                sev: [str(t).lower() for t in raw.get(sev, []) if str(t).strip()]
                for sev in SEVERITIES
            }
            logger.info(f"Loaded lexicon for '{language}' from {table_file.name}")

    def supported_languages(self) -> list[str]:
        return sorted(self.tables)

    def resolve_language(self, language: Optional[str]) -> str:
        """Normalize a language code, falling back to the default table."""
        code = normalize_language(language)
        return code if code in self.tables else DEFAULT_LANGUAGE

    def get_terms(self, language: Optional[str] = None) -> dict[str, list[str]]:
        """Severity -> terms for a language (default table if unsupported)"""
        return self.tables[self.resolve_language(language)]
