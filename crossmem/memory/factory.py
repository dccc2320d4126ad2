"""Pick and build the configured message store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crossmem.config import settings as default_settings

if TYPE_CHECKING:
    from crossmem.config import Settings
    from crossmem.memory.store import MessageStore

logger = logging.getLogger(__name__)


def create_message_store(settings: Settings | None = None) -> MessageStore:
    """Return a cloud store when Firestore is configured, else the embedded one.

    The cloud store refuses to start without ``CONTENT_ENCRYPTION_KEY`` since
    it would otherwise write plaintext.
    """
    settings = settings or default_settings
    backend = settings.resolved_backend()

    if backend == "cloud":
        if not settings.content_encryption_key:
            raise ValueError("CONTENT_ENCRYPTION_KEY is required for the cloud message store")

        from google.cloud import firestore

        from crossmem.memory.cloud import CloudMessageStore
        from crossmem.memory.converter import FernetCipher, FieldConverter

        client = firestore.AsyncClient(
            project=settings.firestore_project or None,
            database=settings.firestore_database,
        )
        converter = FieldConverter(FernetCipher(settings.content_encryption_key), ["content"])
        logger.info("Message store: cloud mode (Firestore project %s)", settings.firestore_project)
        return CloudMessageStore(
            client, converter, concurrency=settings.background_fetch_concurrency
        )

    from crossmem.memory.embedded import EmbeddedMessageStore

    logger.info("Message store: embedded mode (%s)", settings.database_path)
    return EmbeddedMessageStore(db_path=settings.database_path)
