"""Versioned JSON documents for snapshot manifests and host index caches."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

SCHEMA_V1 = "cairn.manifest.v1"
INDEX_SCHEMA_V1 = "cairn.index.v1"

_INT64 = (-(2**63), 2**63 - 1)
_INT32 = (-(2**31), 2**31 - 1)
_UINT32 = (0, 2**32 - 1)

_ESCAPES = (
    ("&", "\\u0026"),
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


class ManifestError(ValueError):
    """A manifest or index document is malformed or of an unsupported schema."""


def _lookup(obj, name):
    if name in obj:
        return obj[name]
    lowered = name.lower()
    for key, value in obj.items():
        if key.lower() == lowered:
            return value
    return None


def _as_obj(value, where):
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"field {where}: expected object, got {type(value).__name__}")
    return value


def _as_str(value, where):
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {where}: expected string, got {type(value).__name__}")
    return value


def _as_int(value, where, bounds=_INT64):
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {where}: expected integer, got {value!r}")
    low, high = bounds
    if not low <= value <= high:
        raise ValueError(f"field {where}: integer {value} out of range")
    return value


def _opt_int(value, where, bounds=_INT64):
    return None if value is None else _as_int(value, where, bounds)


def _opt_str(value, where):
    return None if value is None else _as_str(value, where)


def _as_list(value, where):
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {where}: expected array, got {type(value).__name__}")
    return value


def _str_list(value, where):
    return [_as_str(item, where) for item in _as_list(value, where)]


def _dumps(document):
    text = json.dumps(document, indent=2, ensure_ascii=False)
    for raw, escaped in _ESCAPES:
        text = text.replace(raw, escaped)
    return text.encode("utf-8")


def _loads(data):
    text = data.decode("utf-8", errors="replace") if isinstance(data, (bytes, bytearray)) else data
    stripped = text.lstrip(" \t\r\n")
    value, _ = json.JSONDecoder().raw_decode(stripped)
    return value


@dataclass
class ToolInfo:
    """Backup software that wrote the manifest."""

    name: str = ""
    version: str = ""

    def to_dict(self):
        return {"name": self.name, "version": self.version}

    @classmethod
    def from_dict(cls, obj):
        obj = _as_obj(obj, "tool")
        return cls(
            name=_as_str(_lookup(obj, "name"), "tool.name"),
            version=_as_str(_lookup(obj, "version"), "tool.version"),
        )


@dataclass
class CompressionInfo:
    """How file payloads were compressed."""

    algorithm: str = ""
    level: int = 0

    def to_dict(self):
        return {"algorithm": self.algorithm, "level": self.level}

    @classmethod
    def from_dict(cls, obj):
        obj = _as_obj(obj, "compression")
        return cls(
            algorithm=_as_str(_lookup(obj, "algorithm"), "compression.algorithm"),
            level=_as_int(_lookup(obj, "level"), "compression.level"),
        )


@dataclass
class EncryptionInfo:
    """Recipients used for encryption (informational)."""

    algorithm: str = ""
    recipient_type: str = ""
    recipients: list[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "algorithm": self.algorithm,
            "recipient_type": self.recipient_type,
            "recipients": list(self.recipients),
        }

    @classmethod
    def from_dict(cls, obj):
        obj = _as_obj(obj, "encryption")
        return cls(
            algorithm=_as_str(_lookup(obj, "algorithm"), "encryption.algorithm"),
            recipient_type=_as_str(_lookup(obj, "recipient_type"), "encryption.recipient_type"),
            recipients=_str_list(_lookup(obj, "recipients"), "encryption.recipients"),
        )


@dataclass
class FileEntry:
    """One backed-up file or symlink."""

    path: str = ""
    type: str = ""
    object_id: str = ""
    size_plain: int = 0
    size_object: int = 0
    sha256_plain: str = ""
    mode: int | None = None
    uid: int | None = None
    gid: int | None = None
    mtime_ns: int = 0
    symlink_target: str | None = None

    def to_dict(self):
        out = {"path": self.path, "type": self.type}
        if self.object_id:
            out["object_id"] = self.object_id
        out["size_plain"] = self.size_plain
        out["size_object"] = self.size_object
        if self.sha256_plain:
            out["sha256_plain"] = self.sha256_plain
        for name in ("mode", "uid", "gid"):
            value = getattr(self, name)
            if value is not None:
                out[name] = value
        out["mtime_ns"] = self.mtime_ns
        if self.symlink_target is not None:
            out["symlink_target"] = self.symlink_target
        return out

    @classmethod
    def from_dict(cls, obj):
        obj = _as_obj(obj, "files[]")
        return cls(
            path=_as_str(_lookup(obj, "path"), "files.path"),
            type=_as_str(_lookup(obj, "type"), "files.type"),
            object_id=_as_str(_lookup(obj, "object_id"), "files.object_id"),
            size_plain=_as_int(_lookup(obj, "size_plain"), "files.size_plain"),
            size_object=_as_int(_lookup(obj, "size_object"), "files.size_object"),
            sha256_plain=_as_str(_lookup(obj, "sha256_plain"), "files.sha256_plain"),
            mode=_opt_int(_lookup(obj, "mode"), "files.mode", _UINT32),
            uid=_opt_int(_lookup(obj, "uid"), "files.uid"),
            gid=_opt_int(_lookup(obj, "gid"), "files.gid"),
            mtime_ns=_as_int(_lookup(obj, "mtime_ns"), "files.mtime_ns"),
            symlink_target=_opt_str(_lookup(obj, "symlink_target"), "files.symlink_target"),
        )


@dataclass
class DirEntry:
    """Directory metadata for restore."""

    path: str = ""
    mode: int | None = None
    uid: int | None = None
    gid: int | None = None
    mtime_ns: int = 0

    def to_dict(self):
        out = {"path": self.path}
        for name in ("mode", "uid", "gid"):
            value = getattr(self, name)
            if value is not None:
                out[name] = value
        out["mtime_ns"] = self.mtime_ns
        return out

    @classmethod
    def from_dict(cls, obj):
        obj = _as_obj(obj, "directories[]")
        return cls(
            path=_as_str(_lookup(obj, "path"), "directories.path"),
            mode=_opt_int(_lookup(obj, "mode"), "directories.mode", _UINT32),
            uid=_opt_int(_lookup(obj, "uid"), "directories.uid"),
            gid=_opt_int(_lookup(obj, "gid"), "directories.gid"),
            mtime_ns=_as_int(_lookup(obj, "mtime_ns"), "directories.mtime_ns"),
        )


@dataclass
class Stats:
    """Snapshot totals."""

    files_total: int = 0
    bytes_plain_total: int = 0
    bytes_object_total: int = 0

    def to_dict(self):
        return {
            "files_total": self.files_total,
            "bytes_plain_total": self.bytes_plain_total,
            "bytes_object_total": self.bytes_object_total,
        }

    @classmethod
    def from_dict(cls, obj):
        obj = _as_obj(obj, "stats")
        return cls(
            files_total=_as_int(_lookup(obj, "files_total"), "stats.files_total"),
            bytes_plain_total=_as_int(_lookup(obj, "bytes_plain_total"), "stats.bytes_plain_total"),
            bytes_object_total=_as_int(_lookup(obj, "bytes_object_total"), "stats.bytes_object_total"),
        )


@dataclass
class Manifest:
    """Plaintext snapshot metadata."""

    schema: str = ""
    snapshot_id: str = ""
    host_id: str = ""
    host_os: str = ""
    created_at: str = ""
    completed_at: str = ""
    tool: ToolInfo = field(default_factory=ToolInfo)
    compression: CompressionInfo = field(default_factory=CompressionInfo)
    encryption: EncryptionInfo = field(default_factory=EncryptionInfo)
    source_roots: list[str] = field(default_factory=list)
    storage_class: str = ""
    files: list[FileEntry] = field(default_factory=list)
    directories: list[DirEntry] = field(default_factory=list)
    stats: Stats = field(default_factory=Stats)

    def to_dict(self):
        return {
            "schema": self.schema,
            "snapshot_id": self.snapshot_id,
            "host_id": self.host_id,
            "host_os": self.host_os,
            "created_at": self.created_at,
            "completed_at": self.completed_at,
            "tool": self.tool.to_dict(),
            "compression": self.compression.to_dict(),
            "encryption": self.encryption.to_dict(),
            "source_roots": list(self.source_roots),
            "storage_class": self.storage_class,
            "files": [f.to_dict() for f in self.files],
            "directories": [d.to_dict() for d in self.directories],
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, obj):
        obj = _as_obj(obj, "manifest")
        return cls(
            schema=_as_str(_lookup(obj, "schema"), "schema"),
            snapshot_id=_as_str(_lookup(obj, "snapshot_id"), "snapshot_id"),
            host_id=_as_str(_lookup(obj, "host_id"), "host_id"),
            host_os=_as_str(_lookup(obj, "host_os"), "host_os"),
            created_at=_as_str(_lookup(obj, "created_at"), "created_at"),
            completed_at=_as_str(_lookup(obj, "completed_at"), "completed_at"),
            tool=ToolInfo.from_dict(_lookup(obj, "tool")),
            compression=CompressionInfo.from_dict(_lookup(obj, "compression")),
            encryption=EncryptionInfo.from_dict(_lookup(obj, "encryption")),
            source_roots=_str_list(_lookup(obj, "source_roots"), "source_roots"),
            storage_class=_as_str(_lookup(obj, "storage_class"), "storage_class"),
            files=[FileEntry.from_dict(f) for f in _as_list(_lookup(obj, "files"), "files")],
            directories=[
                DirEntry.from_dict(d) for d in _as_list(_lookup(obj, "directories"), "directories")
            ],
            stats=Stats.from_dict(_lookup(obj, "stats")),
        )


@dataclass
class IndexSnap:
    """One row in the host index cache."""

    snapshot_id: str = ""
    created_at: str = ""
    files_total: int = 0
    bytes_object_total: int = 0
    storage_class: str = ""

    def to_dict(self):
        return {
            "snapshot_id": self.snapshot_id,
            "created_at": self.created_at,
            "files_total": self.files_total,
            "bytes_object_total": self.bytes_object_total,
            "storage_class": self.storage_class,
        }

    @classmethod
    def from_dict(cls, obj):
        obj = _as_obj(obj, "snapshots[]")
        return cls(
            snapshot_id=_as_str(_lookup(obj, "snapshot_id"), "snapshots.snapshot_id"),
            created_at=_as_str(_lookup(obj, "created_at"), "snapshots.created_at"),
            files_total=_as_int(_lookup(obj, "files_total"), "snapshots.files_total"),
            bytes_object_total=_as_int(
                _lookup(obj, "bytes_object_total"), "snapshots.bytes_object_total"
            ),
            storage_class=_as_str(_lookup(obj, "storage_class"), "snapshots.storage_class"),
        )


@dataclass
class Index:
    """Optional encrypted snapshot listing cache for a host."""

    schema: str = ""
    host_id: str = ""
    updated_at: str = ""
    snapshots: list[IndexSnap] = field(default_factory=list)

    def to_dict(self):
        return {
            "schema": self.schema,
            "host_id": self.host_id,
            "updated_at": self.updated_at,
            "snapshots": [s.to_dict() for s in self.snapshots],
        }

    @classmethod
    def from_dict(cls, obj):
        obj = _as_obj(obj, "index")
        return cls(
            schema=_as_str(_lookup(obj, "schema"), "schema"),
            host_id=_as_str(_lookup(obj, "host_id"), "host_id"),
            updated_at=_as_str(_lookup(obj, "updated_at"), "updated_at"),
            snapshots=[
                IndexSnap.from_dict(s) for s in _as_list(_lookup(obj, "snapshots"), "snapshots")
            ],
        )


def validate_schema(manifest):
    """Raise ManifestError unless the manifest carries the supported schema."""
    if manifest is None:
        raise ManifestError("manifest: nil manifest")
    if manifest.schema != SCHEMA_V1:
        raise ManifestError(f"manifest: unsupported schema {manifest.schema!r} (want {SCHEMA_V1})")


def marshal_manifest_json(manifest):
    """Serialize a manifest to indented JSON bytes."""
    return _dumps(manifest.to_dict())


def unmarshal_manifest_json(data):
    """Parse manifest JSON and check its schema; unknown fields are ignored."""
    try:
        manifest = Manifest.from_dict(_loads(data))
    except ValueError as exc:
        raise ManifestError(f"manifest: decode: {exc}") from exc
    validate_schema(manifest)
    return manifest


def validate_index_schema(index):
    """Raise ManifestError unless the index carries the supported schema."""
    if index is None:
        raise ManifestError("index: nil")
    if index.schema != INDEX_SCHEMA_V1:
        raise ManifestError(f"index: unsupported schema {index.schema!r}")


def marshal_index_json(index):
    """Serialize an index to indented JSON bytes."""
    return _dumps(index.to_dict())


def unmarshal_index_json(data):
    """Parse index JSON and check its schema."""
    try:
        index = Index.from_dict(_loads(data))
    except ValueError as exc:
        raise ManifestError(f"index: decode: {exc}") from exc
    validate_index_schema(index)
    return index