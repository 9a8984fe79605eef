"""
Locale tag helpers.

A locale such as "es-AR" is reduced to its primary subtag ("es") for the
supported-language gate and for the speech-to-text language hint.
"""

from typing import Iterable, Optional

# Whisper's verbose_json reports the detected language by name
WHISPER_LANGUAGE_NAMES = {
    "spanish": "es",
    "english": "en",
    "portuguese": "pt",
    "french": "fr",
    "german": "de",
    "italian": "it",
    "catalan": "ca",
    "dutch": "nl",
    "russian": "ru",
    "chinese": "zh",
    "japanese": "ja",
    "arabic": "ar",
}


def primary_subtag(locale: Optional[str]) -> str:
    """Return the lower-cased first hyphen/underscore-delimited segment, or ''."""
    if not locale:
        return ""
    return locale.strip().replace("_", "-").split("-")[0].lower()


def normalize_language(value: Optional[str]) -> Optional[str]:
    """Map a locale tag or a Whisper language name to an ISO-639-1 primary subtag."""
    if not value:
        return None
    name = value.strip().lower()
    if name in WHISPER_LANGUAGE_NAMES:
        return WHISPER_LANGUAGE_NAMES[name]
    return primary_subtag(name) or None


def is_supported(locale: Optional[str], supported: Iterable[str]) -> bool:
    primary = primary_subtag(locale)
    return bool(primary) and primary in {s.lower() for s in supported}
