import pytest

from cairn import version


@pytest.mark.parametrize("schema", ["cairn.manifest.v1", "cairn.index.v1"])
def test_known_schemas_supported(schema):
    assert version.supports_schema(schema) is True


@pytest.mark.parametrize("schema", ["", "cairn.manifest.v2", "other", "CAIRN.MANIFEST.V1"])
def test_unknown_schemas_rejected(schema):
    assert version.supports_schema(schema) is False


def test_every_listed_schema_is_supported():
    assert len(version.MANIFEST_SCHEMAS) >= 1
    assert all(version.supports_schema(s) for s in version.MANIFEST_SCHEMAS)


def test_name_and_version_present():
    assert version.NAME == "cairn"
    assert version.VERSION.count(".") == 2