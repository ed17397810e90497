"""Supported languages: the 24 official EU languages plus Norwegian, with auto-detect for sources."""
from typing import Dict, List

AUTO_DETECT = {"code": "auto", "name": "Auto-detect"}

LANGUAGES: List[Dict[str, str]] = [
    {"code": "en", "name": "English"},
    {"code": "es", "name": "Spanish"},
    {"code": "fr", "name": "French"},
    {"code": "de", "name": "German"},
    {"code": "it", "name": "Italian"},
    {"code": "pt", "name": "Portuguese"},
    {"code": "nl", "name": "Dutch"},
    {"code": "pl", "name": "Polish"},
    {"code": "ro", "name": "Romanian"},
    {"code": "el", "name": "Greek"},
    {"code": "cs", "name": "Czech"},
    {"code": "sv", "name": "Swedish"},
    {"code": "hu", "name": "Hungarian"},
    {"code": "da", "name": "Danish"},
    {"code": "fi", "name": "Finnish"},
    {"code": "no", "name": "Norwegian"},
    {"code": "sk", "name": "Slovak"},
    {"code": "hr", "name": "Croatian"},
    {"code": "bg", "name": "Bulgarian"},
    {"code": "lt", "name": "Lithuanian"},
    {"code": "sl", "name": "Slovenian"},
    {"code": "lv", "name": "Latvian"},
    {"code": "et", "name": "Estonian"},
    {"code": "ga", "name": "Irish"},
    {"code": "mt", "name": "Maltese"},
]

_NAMES = {lang["code"]: lang["name"] for lang in LANGUAGES}


def get_language_name(code: str) -> str:
    if code == AUTO_DETECT["code"]:
        return AUTO_DETECT["name"]
    return _NAMES.get(code, code)


def is_supported_language(code: str, allow_auto: bool = False) -> bool:
    if allow_auto and code == AUTO_DETECT["code"]:
        return True
    return code in _NAMES
