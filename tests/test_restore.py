import hashlib
import io
import os
from unittest import mock

import pytest

from cairn.manifest import (
    SCHEMA_V1,
    DirEntry,
    FileEntry,
    Manifest,
    ToolInfo,
    marshal_manifest_json,
)
from cairn.paths import manifest_key, object_key
from cairn.restore import RestoreError, run
from cairn.store import MemoryStore, StoreError

HOST = "h"


class FakeEnvelope:
    """Toy reversible cipher standing in for the real envelope."""

    def __init__(self, label=b"one"):
        self.header = b"fake-envelope/" + label + b"\n"

    def encrypt(self, plain):
        return self.header + bytes(b ^ 0x5A for b in plain)

    def decrypt(self, blob):
        if not blob.startswith(self.header):
            raise ValueError("no identity matched")
        return bytes(b ^ 0x5A for b in blob[len(self.header):])


class BrokenStream(io.BytesIO):
    def read(self, *args):
        raise OSError("read err")


class BrokenReadStore:
    def get_object(self, key):
        return BrokenStream(b"")


class FailGetStore:
    def get_object(self, key):
        raise StoreError("no object")


def sha(data):
    return hashlib.sha256(data).hexdigest()


def make_manifest(snap, files=(), directories=()):
    return Manifest(
        schema=SCHEMA_V1,
        snapshot_id=snap,
        host_id=HOST,
        host_os="linux",
        created_at="2010",
        completed_at="2010",
        tool=ToolInfo(name="cairn", version="t"),
        files=list(files),
        directories=list(directories),
    )


def stage(env, manifest, objects=None, raw_objects=None):
    store = MemoryStore("restore-test")
    snap = manifest.snapshot_id
    store.put_object(manifest_key(HOST, snap), env.encrypt(marshal_manifest_json(manifest)))
    for oid, plain in (objects or {}).items():
        store.put_object(object_key(HOST, snap, oid), env.encrypt(plain))
    for oid, blob in (raw_objects or {}).items():
        store.put_object(object_key(HOST, snap, oid), blob)
    return store


def regular(path, oid, plain, **extra):
    return FileEntry(
        path=path, type="regular", object_id=oid,
        size_plain=len(plain), sha256_plain=sha(plain), mtime_ns=1, **extra,
    )


@pytest.fixture
def env():
    return FakeEnvelope()


@pytest.fixture
def umask_022():
    old = os.umask(0o022)
    yield
    os.umask(old)


def test_restores_one_file(env, tmp_path):
    snap = "20260206T120000Z-f00df00d"
    oid = "33333333-3333-4333-8333-333333333333"
    plain = b"hello-restore"
    entry = FileEntry(
        path="f.txt", type="regular", object_id=oid, size_plain=len(plain),
        sha256_plain="5b95a02686eb36c9e66160582ec9dc6e27f1c79839869634d9e3fc34c545e3e0",
        mtime_ns=1,
    )
    store = stage(env, make_manifest(snap, files=[entry]), objects={oid: plain})
    out = tmp_path / "out"
    result = run(store, HOST, snap, str(out), env.decrypt, workers=1)
    assert (out / "f.txt").read_bytes() == plain
    assert os.stat(out / "f.txt").st_mtime_ns == 1
    assert result.snapshot_id == snap


def test_manifest_get_fails(env, tmp_path):
    with pytest.raises(RestoreError, match="restore: manifest"):
        run(FailGetStore(), HOST, "s", str(tmp_path), env.decrypt, workers=1)


def test_read_manifest_fails(env, tmp_path):
    with pytest.raises(RestoreError, match="read manifest"):
        run(BrokenReadStore(), HOST, "s", str(tmp_path), env.decrypt, workers=1)


def test_decrypt_manifest_wrong_identity(tmp_path):
    store = stage(FakeEnvelope(b"a"), make_manifest("s"))
    with pytest.raises(RestoreError, match="decrypt manifest"):
        run(store, HOST, "s", str(tmp_path), FakeEnvelope(b"b").decrypt, workers=1)


def test_manifest_json_invalid(env, tmp_path):
    store = MemoryStore("b")
    store.put_object(manifest_key(HOST, "s"), env.encrypt(b"{"))
    with pytest.raises(RestoreError, match="manifest json"):
        run(store, HOST, "s", str(tmp_path), env.decrypt, workers=1)


def test_symlink_missing_target(env, tmp_path):
    m = make_manifest("20100101T000000Z-aaaaaaaa",
                      files=[FileEntry(path="badlink", type="symlink", mtime_ns=1)])
    with pytest.raises(RestoreError, match="symlink missing target"):
        run(stage(env, m), HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)


def test_object_get_fails(env, tmp_path):
    m = make_manifest("20100202T000000Z-bbbbbbbb", files=[FileEntry(
        path="f", type="regular", object_id="00000000-0000-4000-8000-000000000001",
        size_plain=1, sha256_plain="ab", mtime_ns=1)])
    with pytest.raises(RestoreError, match="restore: get"):
        run(stage(env, m), HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)


def test_hash_mismatch_leaves_nothing(env, tmp_path):
    oid = "11111111-1111-4111-8111-111111111111"
    m = make_manifest("20100303T000000Z-cccccccc", files=[FileEntry(
        path="f", type="regular", object_id=oid, size_plain=1, sha256_plain="00", mtime_ns=1)])
    store = stage(env, m, objects={oid: b"x"})
    with pytest.raises(RestoreError, match="hash mismatch"):
        run(store, HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=2)
    assert os.listdir(tmp_path) == []


def test_object_decrypt_fails(env, tmp_path):
    oid = "22222222-2222-4222-8222-222222222222"
    m = make_manifest("20100404T000000Z-dddddddd", files=[FileEntry(
        path="f", type="regular", object_id=oid, size_plain=1, sha256_plain="ab", mtime_ns=1)])
    store = stage(env, m, raw_objects={oid: b"not-age-ciphertext"})
    with pytest.raises(RestoreError, match="decrypt f"):
        run(store, HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)


def test_workers_default_from_parallelism(env, tmp_path):
    m = make_manifest("20100505T000000Z-eeeeeeee", directories=[DirEntry(path="d", mtime_ns=1)])
    run(stage(env, m), HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=0, parallelism=3)
    assert (tmp_path / "d").is_dir()
    assert os.stat(tmp_path / "d").st_mtime_ns == 1


def test_target_root_not_directory(env, tmp_path):
    blocked = tmp_path / "file"
    blocked.write_bytes(b"x")
    m = make_manifest("20100909T000000Z-99999999")
    with pytest.raises(RestoreError, match="mkdir target"):
        run(stage(env, m), HOST, m.snapshot_id, str(blocked), env.decrypt, workers=1)


def test_depth_sort_and_dir_mode(env, tmp_path, umask_022):
    m = make_manifest("20101010T101010Z-aaaaaaaa", directories=[
        DirEntry(path="shallow", mtime_ns=1),
        DirEntry(path="deep/nested", mode=0o750, mtime_ns=2),
    ])
    run(stage(env, m), HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)
    nested = os.stat(tmp_path / "deep" / "nested")
    assert nested.st_mode & 0o777 == 0o750
    assert nested.st_mtime_ns == 2
    assert os.stat(tmp_path / "shallow").st_mtime_ns == 1


def test_symlink_created(env, tmp_path):
    m = make_manifest("20111111T111111Z-bbbbbbbb", files=[
        FileEntry(path="link", type="symlink", symlink_target="target", mtime_ns=1)])
    root = tmp_path / "out"
    run(stage(env, m), HOST, m.snapshot_id, str(root), env.decrypt, workers=1)
    assert os.path.islink(root / "link")
    assert os.readlink(root / "link") == "target"


def test_file_entry_with_mode(env, tmp_path):
    oid = "44444444-4444-4444-8444-444444444444"
    plain = b"modefile"
    m = make_manifest("20121212T121212Z-cccccccc", files=[regular("mf", oid, plain, mode=0o640)])
    run(stage(env, m, objects={oid: plain}), HOST, m.snapshot_id, str(tmp_path),
        env.decrypt, workers=2)
    assert (tmp_path / "mf").read_bytes() == plain
    assert os.stat(tmp_path / "mf").st_mode & 0o777 == 0o640


def test_skips_non_regular_entries(env, tmp_path):
    m = make_manifest("20100606T000000Z-ffffffff",
                      files=[FileEntry(path="skipme", type="device", mtime_ns=1)])
    result = run(stage(env, m), HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)
    assert os.listdir(tmp_path) == []
    assert len(result.files) == 1


def test_directory_mkdir_fails(env, tmp_path):
    (tmp_path / "dir-mkdir-fail").write_bytes(b"x")
    m = make_manifest("20170101T000000Z-hookdir",
                      directories=[DirEntry(path="dir-mkdir-fail/me", mtime_ns=1)])
    with pytest.raises(RestoreError, match="mkdir"):
        run(stage(env, m), HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)


def test_directory_chtimes_failure_is_logged_only(env, tmp_path):
    m = make_manifest("20180101T000000Z-chtdir",
                      directories=[DirEntry(path="chtimes-dir-marker", mtime_ns=1)])
    store = stage(env, m)
    with mock.patch("os.utime", side_effect=OSError("no chtimes")):
        run(store, HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)
    assert (tmp_path / "chtimes-dir-marker").is_dir()


def test_directory_chown_failure_as_root_is_logged_only(env, tmp_path):
    m = make_manifest("20190101T000000Z-chowndir",
                      directories=[DirEntry(path="d-chown-err", mtime_ns=1, uid=12, gid=34)])
    store = stage(env, m)
    with mock.patch("os.geteuid", return_value=0, create=True), \
            mock.patch("os.chown", side_effect=OSError("chown dir"), create=True) as chown:
        run(store, HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)
    chown.assert_called_once_with(os.path.join(str(tmp_path), "d-chown-err"), 12, 34)
    assert (tmp_path / "d-chown-err").is_dir()


def test_symlink_remove_fails(env, tmp_path):
    blocker = tmp_path / "symlink-rm-fail"
    blocker.mkdir()
    (blocker / "child").write_bytes(b"x")
    m = make_manifest("20200101T000000Z-symlrm", files=[
        FileEntry(path="symlink-rm-fail", type="symlink", symlink_target="t", mtime_ns=1)])
    with pytest.raises(RestoreError, match="rm"):
        run(stage(env, m), HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)


def test_symlink_parent_mkdir_fails(env, tmp_path):
    (tmp_path / "sym-parent-mkdir-fail").write_bytes(b"x")
    m = make_manifest("20210101T000000Z-symkm", files=[
        FileEntry(path="sym-parent-mkdir-fail/x", type="symlink", symlink_target="t", mtime_ns=1)])
    with pytest.raises(RestoreError):
        run(stage(env, m), HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)


def test_symlink_syscall_failure_is_logged_only(env, tmp_path):
    m = make_manifest("20220101T000000Z-symln", files=[
        FileEntry(path="symlink-syscall-fail", type="symlink", symlink_target="t", mtime_ns=1)])
    store = stage(env, m)
    with mock.patch("os.symlink", side_effect=OSError("symlink nope")):
        result = run(store, HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)
    assert not os.path.lexists(tmp_path / "symlink-syscall-fail")
    assert result.snapshot_id == m.snapshot_id


def test_file_parent_mkdir_fails(env, tmp_path):
    (tmp_path / "file-mkdir-fail").write_bytes(b"x")
    oid = "55555555-5555-4555-8555-555555555555"
    plain = b"p"
    m = make_manifest("20230101T000000Z-fmkd", files=[regular("file-mkdir-fail/x", oid, plain)])
    with pytest.raises(RestoreError, match="mkdir"):
        run(stage(env, m, objects={oid: plain}), HOST, m.snapshot_id, str(tmp_path),
            env.decrypt, workers=1)


def test_file_create_fails(env, tmp_path):
    (tmp_path / "create-fail.bin.partial").mkdir()
    oid = "66666666-6666-4666-8666-666666666666"
    plain = b"c"
    m = make_manifest("20240101T000000Z-fcrt", files=[regular("create-fail.bin", oid, plain)])
    with pytest.raises(RestoreError, match="create"):
        run(stage(env, m, objects={oid: plain}), HOST, m.snapshot_id, str(tmp_path),
            env.decrypt, workers=1)


def test_file_chmod_failure_is_logged_only(env, tmp_path):
    oid = "88888888-8888-4888-8888-888888888888"
    plain = b" chmod "
    m = make_manifest("20260101T000000Z-chm", files=[regular("chmod-marker/y", oid, plain)])
    store = stage(env, m, objects={oid: plain})
    with mock.patch("os.chmod", side_effect=OSError("chmod err")):
        run(store, HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)
    assert (tmp_path / "chmod-marker" / "y").read_bytes() == plain


def test_file_rename_fails(env, tmp_path):
    target = tmp_path / "rename-marker" / "z"
    target.mkdir(parents=True)
    (target / "child").write_bytes(b"x")
    oid = "99999999-9999-4999-8999-999999999999"
    plain = b"r"
    m = make_manifest("20270101T000000Z-rnm", files=[regular("rename-marker/z", oid, plain)])
    with pytest.raises(RestoreError, match="rename"):
        run(stage(env, m, objects={oid: plain}), HOST, m.snapshot_id, str(tmp_path),
            env.decrypt, workers=1)
    assert not (tmp_path / "rename-marker" / "z.partial").exists()


def test_file_chtimes_failure_is_logged_only(env, tmp_path):
    oid = "aaaaaaaa-aaaa-4aaa-8aaa-aaaaaaaaaaaa"
    plain = b"ct"
    m = make_manifest("20280101T000000Z-cht", files=[regular("chtimes-file-marker/f", oid, plain)])
    store = stage(env, m, objects={oid: plain})
    with mock.patch("os.utime", side_effect=OSError("chtimes file")):
        run(store, HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)
    assert (tmp_path / "chtimes-file-marker" / "f").read_bytes() == plain


def test_file_chown_when_root(env, tmp_path):
    oid = "bbbbbbbb-bbbb-4bbb-8bbb-bbbbbbbbbbbb"
    plain = b"own"
    m = make_manifest("20290101T000000Z-sown",
                      files=[regular("chown-file/x", oid, plain, uid=7, gid=8)])
    store = stage(env, m, objects={oid: plain})
    with mock.patch("os.geteuid", return_value=0, create=True), \
            mock.patch("os.chown", create=True) as chown:
        run(store, HOST, m.snapshot_id, str(tmp_path), env.decrypt, workers=1)
    expected = os.path.join(str(tmp_path), "chown-file", "x") + ".partial"
    chown.assert_called_once_with(expected, 7, 8)
    assert (tmp_path / "chown-file" / "x").read_bytes() == plain