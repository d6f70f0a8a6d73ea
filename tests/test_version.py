"""
Tests for the version module of the GiftZap SDK.
"""
import importlib
import re
from importlib import metadata as importlib_metadata
from unittest.mock import mock_open, patch

import pytest

from giftzap_sdk import __version__


@pytest.fixture(autouse=True)
def _restore_version_module():
    yield
    import giftzap_sdk.version as vmod
    importlib.reload(vmod)


def test_version_format():
    """The version string follows semantic versioning"""
    assert re.match(r'^\d+\.\d+\.\d+$', __version__), "Version should follow semantic versioning"


@patch('importlib.metadata.version')
def test_version_from_metadata(mock_metadata_version):
    """When metadata lookup succeeds, version comes from metadata"""
    mock_metadata_version.return_value = "2.3.4"
    import giftzap_sdk.version as vmod
    importlib.reload(vmod)
    assert vmod.__version__ == "2.3.4"


@patch('importlib.metadata.version')
@patch('pathlib.Path.open', new_callable=mock_open, read_data=b'[project]\nversion = "1.2.3"\n')
def test_version_from_file(mock_open_file, mock_metadata_version):
    """When metadata lookup fails, pyproject.toml is read"""
    mock_metadata_version.side_effect = importlib_metadata.PackageNotFoundError
    import giftzap_sdk.version as vmod
    importlib.reload(vmod)
    assert vmod.__version__ == "1.2.3"


@pytest.mark.parametrize("error, data", [
    (FileNotFoundError(), None),
    (None, b'[project]\nname = "giftzap-sdk"\n'),
    (None, b'not = [valid'),
])
def test_version_fallback(monkeypatch, error, data):
    """Missing file, missing key or broken TOML all fall back to the default"""
    def _missing(name):
        raise importlib_metadata.PackageNotFoundError(name)

    def _open(*args, **kwargs):
        if error is not None:
            raise error
        return mock_open(read_data=data)()

    monkeypatch.setattr(importlib_metadata, 'version', _missing)
    monkeypatch.setattr('pathlib.Path.open', _open)
    import giftzap_sdk.version as vmod
    importlib.reload(vmod)
    assert vmod.__version__ == "0.1.0"
