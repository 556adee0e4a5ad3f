"""Decode real map files, if any are available.

Place ``.vmap`` files in ``tests/fixtures/``, or pass ``--vmap-fixtures DIR`` to pytest.
"""
from pathlib import Path

import pytest

from conftest import find_samples
from dmxparser.decoder import decode_borrowed, decode_owned
from dmxparser.formats import vmap


def test_decode_sample(vmap_file: Path) -> None:
    """Both modes must agree on real files."""
    data = vmap_file.read_bytes()
    borrowed = decode_borrowed(data)
    with vmap_file.open('rb') as f:
        owned = decode_owned(f)
    assert borrowed == owned
    assert borrowed.format_name == 'vmap'
    assert len(borrowed) > 0


def test_convert_sample(vmap_file: Path) -> None:
    """Real files can be converted into map objects."""
    doc = decode_borrowed(vmap_file.read_bytes())
    root = vmap.read_vmap(doc)
    assert isinstance(root.world, vmap.MapWorld)
    assert vmap.entity_properties(doc, root.world.properties).get('classname') == 'worldspawn'


def test_fixture_option(pytestconfig: pytest.Config, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """The folder option has its own name, and redirects the search."""
    assert not isinstance(pytestconfig.getoption("--vmap-fixtures"), bool)
    (tmp_path / 'sub').mkdir()
    (tmp_path / 'sub' / 'b.vmap').write_bytes(b'')
    (tmp_path / 'a.vmap').write_bytes(b'')
    (tmp_path / 'other.txt').write_bytes(b'')
    monkeypatch.setattr(pytestconfig.option, 'vmap_fixtures', str(tmp_path))
    assert find_samples(pytestconfig) == [tmp_path / 'a.vmap', tmp_path / 'sub' / 'b.vmap']
    monkeypatch.setattr(pytestconfig.option, 'vmap_fixtures', str(tmp_path / 'missing'))
    assert find_samples(pytestconfig) == []
