"""Language display names and their ISO 639-1 codes."""

from types import MappingProxyType
from typing import Mapping, Tuple

ENGLISH_NAME = "English"
ENGLISH_CODE = "en"

LANGUAGES: Mapping[str, str] = MappingProxyType(
    {
        "English": "en",
        "Spanish": "es",
        "French": "fr",
        "Polish": "pl",
        "Romanian": "ro",
        "Ukrainian": "uk",
        "Portuguese": "pt",
        "Italian": "it",
        "German": "de",
        "Lithuanian": "lt",
        "Latvian": "lv",
        "Russian": "ru",
        "Bulgarian": "bg",
        "Hungarian": "hu",
        "Czech": "cs",
        "Slovak": "sk",
        "Croatian": "hr",
        "Dutch": "nl",
        "Irish": "ga",
        "Chinese": "zh",
        "Hindi": "hi",
        "Arabic": "ar",
        "Turkish": "tr",
        "Greek": "el",
    }
)

_CODE_BY_NAME = {name.lower(): code for name, code in LANGUAGES.items()}
_NAME_BY_CODE = {code: name for name, code in LANGUAGES.items()}


def code_for(name: str) -> str:
    """Return the ISO code for a language name.

    Unknown names fall back to their first two characters, lower-cased.
    """
    key = name.strip().lower()
    return _CODE_BY_NAME.get(key, key[:2])


def name_for(code: str) -> str:
    """Return the display name for an ISO code, or the code itself if unknown."""
    return _NAME_BY_CODE.get(code.strip().lower(), code)


def is_valid_language(name: str) -> bool:
    return name.strip().lower() in _CODE_BY_NAME


def all_languages() -> Mapping[str, str]:
    return LANGUAGES


def resolve_language(value: str) -> Tuple[str, str]:
    """Accept a display name or an ISO code and return ``(name, code)``.

    Raises:
        ValueError: if the value is neither a known name nor a known code
    """
    key = value.strip().lower()
    if key in _CODE_BY_NAME:
        code = _CODE_BY_NAME[key]
        return _NAME_BY_CODE[code], code
    if key in _NAME_BY_CODE:
        return _NAME_BY_CODE[key], key
    raise ValueError(f"Unsupported language: {value}")
