from dataclasses import dataclass
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

WILDCARD = "*"


@dataclass(frozen=True)
class LanguagePreference:
    language: str
    quality: float = 1.0

    @property
    def is_wildcard(self) -> bool:
        return self.language == WILDCARD


def parse_language_preferences(value: Optional[str]) -> List[LanguagePreference]:
    """
    Parse an Accept-Language style string ("fr-CA, fr;q=0.8, *;q=0")
    into preferences ordered by quality, highest first.

    Entries keep their original relative order when qualities tie.
    An unparseable q value leaves the default quality of 1.0.
    """
    if not value or not value.strip():
        return []

    preferences = []
    for entry in value.split(","):
        parts = [part.strip() for part in entry.split(";")]
        language = parts[0]
        if not language:
            continue

        quality = 1.0
        for param in parts[1:]:
            if param.startswith("q="):
                try:
                    quality = float(param[2:])
                except ValueError:
                    logger.debug(f"Ignoring invalid language quality '{param}' for '{language}'")
        preferences.append(LanguagePreference(language, quality))

    return sorted(preferences, key=lambda pref: pref.quality, reverse=True)


def first_language_tag(header: Optional[str]) -> Optional[str]:
    """First language tag of an Accept-Language header, without its parameters."""
    if not header or not header.strip():
        return None
    tag = header.split(",")[0].split(";")[0].strip()
    return tag or None
