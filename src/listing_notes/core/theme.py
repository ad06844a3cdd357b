# src/listing_notes/core/theme.py

from __future__ import annotations

import logging
from enum import StrEnum

from .ports import KeyValueStore

logger = logging.getLogger(__name__)

THEME_KEY = "theme"


class Theme(StrEnum):
    LIGHT = "light"
    DARK = "dark"

    def toggled(self) -> Theme:
        return Theme.DARK if self is Theme.LIGHT else Theme.LIGHT


def load_theme(storage: KeyValueStore) -> Theme:
    raw = storage.get_item(THEME_KEY)
    if not raw:
        return Theme.LIGHT
    try:
        return Theme(raw)
    except ValueError:
        logger.warning("Ignoring unknown stored theme %r", raw)
        return Theme.LIGHT


def save_theme(storage: KeyValueStore, theme: Theme) -> None:
    storage.set_item(THEME_KEY, theme.value)
