# src/listing_notes/llm/offline.py

from __future__ import annotations

from ..core.listing import ListingRecord
from ..core.media import MediaBlob
from .client import MISSING_KEY_MESSAGE


class OfflineListingExtractor:
    """
    Stand-in extractor used when no external API is configured.

    Every call fails with the configuration message, so submissions end up
    as failed tasks that can be retried once a key is set and the app restarted.
    """

    def __init__(self, reason: str = MISSING_KEY_MESSAGE) -> None:
        self.reason = reason

    def extract(
        self,
        text: str,
        image: MediaBlob | None = None,
        audio: MediaBlob | None = None,
    ) -> list[ListingRecord]:
        raise RuntimeError(self.reason)
