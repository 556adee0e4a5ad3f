"""Locates sample map files for the fixture tests."""
from typing import List
from pathlib import Path

import pytest


FIXTURE_DIR = Path(__file__).with_name('fixtures')


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--vmap-fixtures",
        action="store",
        metavar="DIR",
        default=None,
        help="Folder containing .vmap files to decode, instead of tests/fixtures/.",
    )


def find_samples(config: pytest.Config) -> List[Path]:
    """Find all the sample maps."""
    option = config.getoption("--vmap-fixtures")
    folder = FIXTURE_DIR if option is None else Path(option)
    if not folder.is_dir():
        return []
    return sorted(folder.rglob('*.vmap'))


def pytest_generate_tests(metafunc: pytest.Metafunc) -> None:
    if "vmap_file" in metafunc.fixturenames:
        samples = find_samples(metafunc.config)
        # With no samples, pytest skips the test.
        metafunc.parametrize("vmap_file", samples, ids=[path.name for path in samples])
