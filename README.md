# cairn

`cairn` works with encrypted per-host snapshot backups kept in S3-style object
storage. A snapshot is a directory of opaque encrypted objects plus one
manifest. The package covers the parts of that format that need no particular
cloud SDK or cipher:

| Module | What it does |
| --- | --- |
| `cairn.paths` | Object keys under `cairn/v1/hosts/<host>/...`, and parsing of keys and snapshot IDs |
| `cairn.snapshotid` | New sortable snapshot IDs such as `20260206T120000Z-deadbeef` |
| `cairn.manifest` | The `cairn.manifest.v1` and `cairn.index.v1` JSON documents |
| `cairn.store` | The `ObjectStore` protocol and an in-memory `MemoryStore` |
| `cairn.prune` | Deletion of snapshots, either by ID or by keep-last and keep-monthly rules |
| `cairn.status` | Snapshot counts per host, bytes per storage class, and an optional cost estimate |
| `cairn.pricing` | A rough table of monthly storage prices |
| `cairn.snapshots` | Snapshot listing, using the encrypted host index when it can be read |
| `cairn.restore` | Restore of a snapshot to local disk, checked with SHA-256 |
| `cairn.verify` | Checks that a stored snapshot is present and matches its manifest |
| `cairn.version` | Release name, version, and the schemas this release understands |

You supply decryption as a callable that takes ciphertext bytes and returns
plaintext bytes. The package never encrypts or decrypts anything itself.

The package has no runtime dependencies and needs Python 3.10 or newer.

## What this package does not do

- **No command-line program.** Everything is a library call.
- **No backups are taken.** Nothing here walks source directories, compresses,
  encrypts or uploads files. The package reads, lists, prunes, restores and
  verifies snapshots that already exist in a store.
- **No client for a real object store.** Any object that provides the methods
  in `cairn.store.ObjectStore` can serve as a store. The only one shipped is
  `MemoryStore`, which holds everything in memory.
- **No configuration files.** Host IDs, buckets and other settings are passed
  as plain arguments.

## Object layout

```python
from cairn import paths

paths.hosts_root_prefix()                  # "cairn/v1/hosts/"
paths.host_prefix("laptop")                # "cairn/v1/hosts/laptop/"
paths.snapshots_list_prefix("laptop")      # "cairn/v1/hosts/laptop/snapshots/"
paths.snapshot_prefix("laptop", "20260206T120000Z-deadbeef")
# "cairn/v1/hosts/laptop/snapshots/20260206T120000Z-deadbeef/"
paths.manifest_key("laptop", "20260206T120000Z-deadbeef")
# "cairn/v1/hosts/laptop/snapshots/20260206T120000Z-deadbeef/manifest.age"
paths.object_key("laptop", "20260206T120000Z-deadbeef", "obj1")
# "cairn/v1/hosts/laptop/snapshots/20260206T120000Z-deadbeef/objects/obj1"
paths.index_key("laptop")                  # "cairn/v1/hosts/laptop/index.age"
```

The parsing helpers return `""` when a key does not match:

```python
paths.snapshot_id_from_key("cairn/v1/hosts/h/snapshots/my-snap/objects/o")   # "my-snap"
paths.parse_host_id_from_hosts_path("cairn/v1/hosts/my-host/foo")            # "my-host"
paths.parse_snapshot_id_from_manifest_key(
    "cairn/v1/hosts/h1/snapshots/20230101T010203Z-deadbeef/manifest.age"
)                                                                            # "20230101T010203Z-deadbeef"
```

`paths.parse_snapshot_time(snapshot_id)` returns the UTC `datetime` at the start
of a snapshot ID. It raises `ValueError` if the ID is empty, has no hyphen, or
has a malformed timestamp.

## Snapshot IDs

```python
from cairn.snapshotid import new_snapshot_id

new_snapshot_id()            # e.g. "20260206T120000Z-3fa9c01b"
new_snapshot_id(some_dt)     # the timestamp comes from some_dt; naive values are taken as UTC
```

The suffix is eight random hex digits. Because the timestamp comes first, IDs
sort in time order.

## Manifests and index

```python
from cairn import manifest

doc = manifest.unmarshal_manifest_json(plaintext_bytes)
raw = manifest.marshal_manifest_json(doc)

ix = manifest.unmarshal_index_json(index_bytes)
raw_ix = manifest.marshal_index_json(ix)
```

The documents are dataclasses:

- `Manifest` holds `ToolInfo`, `CompressionInfo`, `EncryptionInfo`, a list of
  `FileEntry`, a list of `DirEntry`, and `Stats`.
- `Index` holds a list of `IndexSnap`.

Parsing raises `manifest.ManifestError` in three cases: the input is not JSON,
a field has the wrong type, or the schema is not supported. JSON fields the
parser does not know are ignored. `validate_schema` and `validate_index_schema`
check an already built document.

## Stores

```python
from cairn import paths
from cairn.store import MemoryStore

store = MemoryStore("my-bucket")
store.put_object(paths.manifest_key("laptop", "20200101T000000Z-aaaaaaaa"), b"...", "")
store.put_object(paths.manifest_key("laptop", "20250101T000000Z-bbbbbbbb"), b"...", "STANDARD")

store.list_prefix("cairn/v1/")      # [ListedObject(key=..., size=..., storage_class=...), ...]
store.get_object(key).read()        # bytes
store.delete_object(key)
```

`MemoryStore` behaves as follows:

- Listings come back in key order.
- An object stored with an empty storage class reports `STANDARD`.
- Deleting a missing key does nothing.
- Reading a missing key raises `store.StoreError`.
- An empty bucket name raises `store.StoreError`.

## Retention and pruning

```python
from cairn import prune

# Keep the newest snapshot; delete every other committed snapshot of "laptop".
removed = prune.run(store, "laptop", [], 1, 0, False)

# Remove specific snapshots only; the retention rules are ignored.
prune.run(store, "laptop", ["20200101T000000Z-aaaaaaaa"], 0, 0, False)
```

A snapshot counts as committed once its `manifest.age` exists. Removing a
snapshot deletes every object under its prefix.

`run` returns the list of removed IDs. With `dry_run` set to true it deletes
nothing, but still returns the IDs it would have removed.

Asking to remove an ID that is not committed raises `prune.PruneError`.
Duplicate IDs in the list are removed only once.

`prune.select_snapshots_to_keep(ids, keep_last, keep_monthly, now)` returns the
set of IDs that the rules keep:

- the newest `keep_last` IDs;
- for each of the last `keep_monthly` UTC calendar months counted from `now`,
  the newest snapshot in that month.

## Status and cost

```python
from cairn import pricing, status

report = status.run(store, "", True)   # filter_host, show_cost
report.hosts            # {host_id: HostSummary(snapshots, oldest, newest)}
report.bytes_by_class   # {"STANDARD": ..., "GLACIER": ...}
report.bytes_total
report.cost_usd         # None unless show_cost is true

pricing.monthly_estimate_usd("GLACIER", 1024 ** 3)
pricing.format_usd(1.23456)     # "$1.2346"
pricing.disclaimer()
```

In the price table, a blank storage class and any class the table does not
list are both charged at the `STANDARD` rate. The prices are stale estimates,
not a quote.

## Listing snapshots

```python
from cairn.snapshots import list_snapshots

rows = list_snapshots(store, "laptop", decrypt, "")   # [SnapshotRow(host_id, snapshot_id, created_at)]
```

`list_snapshots` first tries the host's `index.age`. It does so only when
`decrypt` is given, and it reads the index of `filter_host` if one is set,
otherwise that of `host_id`.

If the index is missing, cannot be decrypted, or is not a valid index, the
function falls back to listing manifest objects under `cairn/v1/hosts/`. That
listing is restricted to `filter_host` when one is given, and each snapshot
appears once.

## Restore and verify

```python
from cairn import restore, verify

def decrypt(ciphertext: bytes) -> bytes:
    ...  # your decryption

checked = verify.run(store, "laptop", "20250101T000000Z-bbbbbbbb", decrypt, 0)   # 0 = every file
doc = restore.run(store, "laptop", "20250101T000000Z-bbbbbbbb", "/tmp/out", decrypt, 4, 4)
```

**Restore** (`restore.run`) works as follows:

- It reads and decrypts the manifest, then creates the target directory.
- It creates directories deepest first, setting each directory's mode and
  mtime, and its ownership when running as root.
- It restores files and symlinks in parallel. It uses `workers` threads, or
  `parallelism` threads when `workers` is not positive.
- It writes each regular file to a `.partial` file next to its destination and
  checks it against the manifest's SHA-256. It then sets the mode, sets
  ownership when running as root, renames the file into place and sets its
  mtime.
- It recreates each symlink after removing anything already at its path.
- Other entry types are skipped.
- The first failure stops the run and is raised as `restore.RestoreError`.
- On success it returns the manifest.

**Verify** (`verify.run`) works as follows:

- It decrypts the manifest.
- It checks that every regular file's object is listed under the snapshot's
  `objects/` prefix.
- It decrypts `sample` randomly chosen files and checks each one's size and
  SHA-256. A `sample` of 0 checks every file.
- It returns the number of files it read back.
- Any failure raises `verify.VerifyError`.

`verify.pick_random_indices(n, k)` returns `k` distinct indices from
`range(n)`. It returns all of them when `k >= n`.

## Logging

Prune, status, snapshot listing, restore and verify report progress through the
standard `logging` module. Each uses a logger named after its module, such as
`cairn.prune`.

## Version

`cairn.version` provides `NAME`, `VERSION` and `MANIFEST_SCHEMAS`.
`supports_schema(schema)` returns whether this release understands a given
manifest or index schema.