"""Test the dump script."""
from pathlib import Path

import pytest

from test_vmap import build_map
from dmxparser.scripts import dump_dmx


def test_summary(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / 'test.vmap'
    path.write_bytes(build_map())
    assert dump_dmx.main([str(path), '--vmap']) == 0
    out, err = capsys.readouterr()
    lines = out.splitlines()
    assert 'Format: vmap 35' in lines
    assert 'Elements: 14' in lines
    assert 'Root: CMapRootElement ""' in lines
    assert 'Editor version: 400 (build 8611)' in lines
    assert any(line.endswith(' CMapPrefab') for line in lines)
    assert any(line.endswith(' MapEntity') for line in lines)


def test_limit(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / 'test.vmap'
    path.write_bytes(build_map())
    assert dump_dmx.main([str(path), '--borrow', '--limit', '1']) == 0
    out, err = capsys.readouterr()
    # 5 header lines, the root, then the single most common type.
    assert len(out.splitlines()) == 7


def test_invalid(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / 'broken.vmap'
    path.write_bytes(build_map()[:100])
    assert dump_dmx.main([str(path)]) == 1
    out, err = capsys.readouterr()
    assert out == ''


def test_missing_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    for borrow in [[], ['--borrow']]:
        assert dump_dmx.main([str(tmp_path / 'missing.vmap'), *borrow]) == 1
    out, err = capsys.readouterr()
    assert out == ''
