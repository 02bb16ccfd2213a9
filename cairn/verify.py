"""Verification of a stored snapshot against its manifest."""

from __future__ import annotations

import hashlib
import logging
import random

from cairn.manifest import ManifestError, unmarshal_manifest_json
from cairn.paths import manifest_key, object_key, snapshot_prefix
from cairn.store import StoreError

log = logging.getLogger(__name__)

_rng = random.SystemRandom()


class VerifyError(Exception):
    """A snapshot failed verification or could not be checked."""


def pick_random_indices(n, k):
    """Return ``k`` distinct indices from ``range(n)``, all of them when ``k >= n``."""
    if k <= 0 or n <= 0:
        return []
    if k >= n:
        return list(range(n))
    return _rng.sample(range(n), k)


def _load_manifest(store, host_id, snapshot_id, decrypt):
    try:
        stream = store.get_object(manifest_key(host_id, snapshot_id))
    except (StoreError, OSError) as exc:
        raise VerifyError(f"verify: manifest: {exc}") from exc
    try:
        with stream:
            cipher = stream.read()
    except OSError as exc:
        raise VerifyError(f"verify: read manifest: {exc}") from exc
    try:
        plain = decrypt(cipher)
    except Exception as exc:  # the decryptor may fail in any way it likes
        raise VerifyError(f"verify: decrypt manifest: {exc}") from exc
    try:
        return unmarshal_manifest_json(plain)
    except ManifestError as exc:
        raise VerifyError(f"verify: manifest json: {exc}") from exc


def _check_entry(store, host_id, snapshot_id, entry, decrypt):
    key = object_key(host_id, snapshot_id, entry.object_id)
    try:
        stream = store.get_object(key)
    except (StoreError, OSError) as exc:
        raise VerifyError(f"verify: get {entry.path}: {exc}") from exc
    try:
        with stream:
            cipher = stream.read()
    except OSError as exc:
        raise VerifyError(f"verify: read {entry.path}: {exc}") from exc
    try:
        plain = decrypt(cipher)
    except Exception as exc:  # the decryptor may fail in any way it likes
        raise VerifyError(f"verify: decrypt {entry.path}: {exc}") from exc
    if len(plain) != entry.size_plain:
        raise VerifyError(f"verify: size mismatch {entry.path}")
    if hashlib.sha256(plain).hexdigest().lower() != entry.sha256_plain.lower():
        raise VerifyError(f"verify: hash mismatch {entry.path}")
    log.debug("verify ok %s", entry.path)


def run(store, host_id, snapshot_id, decrypt, sample=0):
    """Verify a snapshot and return how many files were read back.

    Every regular file must have its object listed under the snapshot. Then
    ``sample`` randomly chosen files (all of them when ``sample`` is 0) are
    decrypted and checked against the manifest's size and SHA-256.
    """
    manifest = _load_manifest(store, host_id, snapshot_id, decrypt)

    prefix = snapshot_prefix(host_id, snapshot_id) + "objects/"
    try:
        listed = store.list_prefix(prefix)
    except (StoreError, OSError) as exc:
        raise VerifyError(f"verify: list objects: {exc}") from exc
    present = {obj.key.rsplit("/", 1)[-1] for obj in listed} - {""}

    regular = [fe for fe in manifest.files if fe.type == "regular" and fe.object_id]
    for entry in regular:
        if entry.object_id not in present:
            raise VerifyError(f"verify: missing object {entry.object_id} for path {entry.path}")

    want = sample if sample != 0 else len(regular)
    want = min(want, len(regular))
    chosen = pick_random_indices(len(regular), want)
    for index in chosen:
        _check_entry(store, host_id, snapshot_id, regular[index], decrypt)

    log.info("verify complete snapshot_id=%s sampled=%d", snapshot_id, len(chosen))
    return len(chosen)