from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

logger = logging.getLogger("mind_reset.i18n")

CATALOG_DIR = Path(__file__).resolve().parent
DEFAULT_LOCALE = "en"


class _KeepMissing(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


@lru_cache(maxsize=1)
def available_locales() -> frozenset[str]:
    return frozenset(path.stem for path in CATALOG_DIR.glob("*.json"))


@lru_cache(maxsize=8)
def catalog(locale: str) -> dict[str, Any]:
    """Messages shipped for ``locale``; empty when there is no such catalog."""
    if locale not in available_locales():
        return {}
    with (CATALOG_DIR / f"{locale}.json").open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        logger.warning("Catalog %s is not a mapping; ignoring it", locale)
        return {}
    return data


def resolve_locale(value: str | None) -> str:
    """Map a tag such as ``en-US`` or ``en_GB`` onto a shipped catalog.

    Unknown or empty tags resolve to ``DEFAULT_LOCALE``.
    """
    if not value:
        return DEFAULT_LOCALE
    language = value.strip().replace("_", "-").split("-", 1)[0].lower()
    return language if language in available_locales() else DEFAULT_LOCALE


def _lookup(key: str, locale: str) -> Any:
    locale = resolve_locale(locale)
    value = catalog(locale).get(key)
    if value is None and locale != DEFAULT_LOCALE:
        value = catalog(DEFAULT_LOCALE).get(key)
    return value


def t(key: str, locale: str = DEFAULT_LOCALE, **vars: Any) -> str:
    """Format the message for ``key``; the key itself is returned when no catalog has it."""
    template = _lookup(key, locale)
    if template is None:
        return key
    if not isinstance(template, str):
        return str(template)
    return template.format_map(_KeepMissing(**vars))


def t_list(key: str, locale: str = DEFAULT_LOCALE) -> list[str]:
    value = _lookup(key, locale)
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if str(item).strip()]
