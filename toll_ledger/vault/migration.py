"""
Bulk Migration: Move plaintext values into encrypted storage.

Copies the named keys from a plain backend into a SecureStorage and
removes the plaintext originals. Keys missing from the source are
skipped. A key that fails to migrate stays in the source so the
operation can simply be re-run; running it again is harmless because
migrated keys are no longer present in the source.

Security Note:
    Plaintext exists in memory only while each key is migrated.
    Never log plaintext or ciphertext values.
"""
import logging
from collections.abc import Iterable

import orjson

from .backends import StorageBackend
from .secure_storage import SecureStorage

logger = logging.getLogger("toll_ledger.vault")


async def migrate_to_secure_storage(
    keys: Iterable[str],
    source: StorageBackend,
    secure: SecureStorage,
) -> dict:
    """Encrypt the given keys of ``source`` into ``secure``.

    Args:
        keys: Key names to migrate.
        source: Plain backend holding JSON text values.
        secure: Destination SecureStorage.

    Returns:
        Stats dict with keys: total, migrated, errors, skipped.
    """
    stats = {"total": 0, "migrated": 0, "errors": 0, "skipped": 0}

    for key in keys:
        stats["total"] += 1
        try:
            raw = await source.get(key)
            if not raw:
                stats["skipped"] += 1
                continue
            value = orjson.loads(raw)
            if not await secure.set_item(key, value):
                raise RuntimeError("encrypted write failed")
            # same medium: the encrypted write already replaced the plaintext
            if source is not secure.backend:
                await source.delete(key)
            stats["migrated"] += 1
        except Exception as err:
            logger.error("Failed to migrate %s: %s", key, err)
            stats["errors"] += 1

    logger.info("Storage migration complete: %s", stats)
    return stats
