"""Release metadata for the cairn tool."""

NAME = "cairn"
VERSION = "0.1.0"
MANIFEST_SCHEMAS = ("cairn.manifest.v1", "cairn.index.v1")


def supports_schema(schema):
    """Return True if this release understands the given manifest or index schema."""
    return schema in MANIFEST_SCHEMAS