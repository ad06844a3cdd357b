# src/listing_notes/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The task store depends on Protocols instead of concrete implementations,
so the AI provider and the key-value backend stay swappable and testable.
"""

from typing import Protocol

from .listing import ListingRecord
from .media import MediaBlob


class ListingExtractor(Protocol):
    """
    Turns free text and/or one image and/or one audio clip into listings.

    Blocking call; raises on any failure (missing credentials, network,
    malformed response). The task store runs it off the event loop.
    """

    def extract(
            self,
            text: str,
            image: MediaBlob | None = None,
            audio: MediaBlob | None = None,
    ) -> list[ListingRecord]: ...


class KeyValueStore(Protocol):
    """String key -> string value, in the spirit of browser localStorage."""

    def get_item(self, key: str) -> str | None: ...
    def set_item(self, key: str, value: str) -> None: ...
