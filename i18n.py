"""Message catalogs keyed by language, selected per request from Accept-Language."""

import json
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict

from fastapi import Request

LOCALES_DIR = Path(__file__).resolve().parent / "locales"
FALLBACK_LANGUAGE = "en"

Translator = Callable[..., str]


@lru_cache(maxsize=None)
def load_catalog(language: str) -> Dict[str, str]:
    path = LOCALES_DIR / f"{language}.json"
    if not path.is_file():
        return {}
    with path.open(encoding="utf-8") as fh:
        return json.load(fh)


def available_languages():
    return sorted(p.stem for p in LOCALES_DIR.glob("*.json"))


def negotiate_language(header: str | None) -> str:
    """Pick the best supported language from an Accept-Language header."""
    if not header:
        return FALLBACK_LANGUAGE
    supported = set(available_languages())
    candidates = []
    for index, part in enumerate(header.split(",")):
        tag, _, params = part.strip().partition(";")
        quality = 1.0
        if params.strip().startswith("q="):
            try:
                quality = float(params.strip()[2:])
            except ValueError:
                quality = 0.0
        candidates.append((-quality, index, tag.strip().lower()))
    for _, _, tag in sorted(candidates):
        for lang in (tag, tag.split("-")[0]):
            if lang in supported:
                return lang
    return FALLBACK_LANGUAGE


def make_translator(language: str) -> Translator:
    catalog = load_catalog(language)
    fallback = load_catalog(FALLBACK_LANGUAGE)

    def t(key: str, **params) -> str:
        message = catalog.get(key) or fallback.get(key) or key
        return message.format(**params) if params else message

    return t


def get_translator(request: Request) -> Translator:
    return make_translator(negotiate_language(request.headers.get("accept-language")))
