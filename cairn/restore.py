"""Restore of one snapshot onto the local filesystem, with the manifest as authority."""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor

from cairn.manifest import ManifestError, unmarshal_manifest_json
from cairn.paths import manifest_key, object_key
from cairn.store import StoreError

log = logging.getLogger(__name__)

_DEFAULT_DIR_MODE = 0o755
_DEFAULT_FILE_MODE = 0o644
_PARENT_MODE = 0o750
_PERM_BITS = 0o7777


class RestoreError(Exception):
    """A snapshot could not be restored."""


def _local_path(root, relative):
    return os.path.join(root, *relative.split("/"))


def _may_chown():
    return os.name != "nt" and hasattr(os, "geteuid") and os.geteuid() == 0


def _discard(path):
    with contextlib.suppress(OSError):
        os.remove(path)


def _set_mtime(path, mtime_ns, what):
    try:
        os.utime(path, ns=(mtime_ns, mtime_ns))
    except OSError as exc:
        log.debug("restore: chtimes %s %s: %s", what, path, exc)


def _load_manifest(store, host_id, snapshot_id, decrypt):
    try:
        stream = store.get_object(manifest_key(host_id, snapshot_id))
    except (StoreError, OSError) as exc:
        raise RestoreError(f"restore: manifest: {exc}") from exc
    try:
        with stream:
            cipher = stream.read()
    except OSError as exc:
        raise RestoreError(f"restore: read manifest: {exc}") from exc
    try:
        plain = decrypt(cipher)
    except Exception as exc:  # the decryptor may fail in any way it likes
        raise RestoreError(f"restore: decrypt manifest: {exc}") from exc
    try:
        return unmarshal_manifest_json(plain)
    except ManifestError as exc:
        raise RestoreError(f"restore: manifest json: {exc}") from exc


def _make_parent(path):
    parent = os.path.dirname(path)
    try:
        os.makedirs(parent, _PARENT_MODE, exist_ok=True)
    except OSError as exc:
        raise RestoreError(f"restore: mkdir {parent}: {exc}") from exc


def _restore_directory(root, entry):
    dst = _local_path(root, entry.path)
    mode = entry.mode if entry.mode is not None else _DEFAULT_DIR_MODE
    try:
        os.makedirs(dst, mode & _PERM_BITS, exist_ok=True)
    except OSError as exc:
        raise RestoreError(f"restore: mkdir {dst}: {exc}") from exc
    _set_mtime(dst, entry.mtime_ns, "dir")
    if _may_chown() and entry.uid is not None and entry.gid is not None:
        try:
            os.chown(dst, entry.uid, entry.gid)
        except OSError as exc:
            log.debug("restore: chown dir %s: %s", dst, exc)


def _restore_symlink(root, entry):
    if entry.symlink_target is None:
        raise RestoreError(f"restore: symlink missing target {entry.path}")
    dst = _local_path(root, entry.path)
    try:
        os.remove(dst)
    except FileNotFoundError:
        pass
    except OSError as exc:
        raise RestoreError(f"restore: rm {dst}: {exc}") from exc
    _make_parent(dst)
    try:
        os.symlink(entry.symlink_target, dst)
    except OSError as exc:
        log.debug("restore: symlink failed %s: %s", dst, exc)


def _restore_regular(store, host_id, snapshot_id, root, entry, decrypt):
    dst = _local_path(root, entry.path)
    _make_parent(dst)
    key = object_key(host_id, snapshot_id, entry.object_id)
    try:
        stream = store.get_object(key)
    except (StoreError, OSError) as exc:
        raise RestoreError(f"restore: get {key}: {exc}") from exc
    try:
        with stream:
            cipher = stream.read()
    except OSError as exc:
        raise RestoreError(f"restore: read {key}: {exc}") from exc
    try:
        plain = decrypt(cipher)
    except Exception as exc:  # the decryptor may fail in any way it likes
        raise RestoreError(f"restore: decrypt {entry.path}: {exc}") from exc

    tmp = dst + ".partial"
    try:
        handle = open(tmp, "wb")
    except OSError as exc:
        raise RestoreError(f"restore: create {tmp}: {exc}") from exc
    try:
        with handle:
            handle.write(plain)
    except OSError as exc:
        _discard(tmp)
        raise RestoreError(f"restore: write {tmp}: {exc}") from exc

    if hashlib.sha256(plain).hexdigest().lower() != entry.sha256_plain.lower():
        _discard(tmp)
        raise RestoreError(f"restore: hash mismatch {entry.path}")

    mode = entry.mode if entry.mode is not None else _DEFAULT_FILE_MODE
    try:
        os.chmod(tmp, mode & _PERM_BITS)
    except OSError as exc:
        log.debug("restore: chmod %s: %s", tmp, exc)
    if _may_chown() and entry.uid is not None and entry.gid is not None:
        with contextlib.suppress(OSError):
            os.chown(tmp, entry.uid, entry.gid)
    try:
        os.replace(tmp, dst)
    except OSError as exc:
        _discard(tmp)
        raise RestoreError(f"restore: rename {dst}: {exc}") from exc
    _set_mtime(dst, entry.mtime_ns, "file")


def run(store, host_id, snapshot_id, target_root, decrypt, workers=0, parallelism=1):
    """Restore a snapshot under ``target_root`` and return its manifest.

    ``decrypt`` turns stored ciphertext into plaintext. ``workers`` file
    restores run in parallel; when it is not positive ``parallelism`` is used.
    Directories are created deepest first; symlinks and regular files follow.
    The first failure stops the run and is raised as RestoreError.
    """
    if workers <= 0:
        workers = parallelism
    workers = max(1, workers)

    manifest = _load_manifest(store, host_id, snapshot_id, decrypt)
    try:
        os.makedirs(target_root, _PARENT_MODE, exist_ok=True)
    except OSError as exc:
        raise RestoreError(f"restore: mkdir target: {exc}") from exc

    for entry in sorted(manifest.directories, key=lambda d: d.path.count("/"), reverse=True):
        _restore_directory(target_root, entry)

    failures = []
    lock = threading.Lock()
    stop = threading.Event()

    def restore_one(entry):
        if stop.is_set():
            return
        try:
            if entry.type == "symlink":
                _restore_symlink(target_root, entry)
            elif entry.type == "regular":
                _restore_regular(store, host_id, snapshot_id, target_root, entry, decrypt)
        except RestoreError as exc:
            with lock:
                if not failures:
                    failures.append(exc)
                    stop.set()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        list(pool.map(restore_one, manifest.files))

    if failures:
        raise failures[0]
    log.info("restore complete snapshot_id=%s files=%d", snapshot_id, len(manifest.files))
    return manifest