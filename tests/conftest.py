"""Shared pytest fixtures for staticfile-compiler tests."""

import logging
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

# Hash-looking values; tests assert none of them reach the build log
SECRET_HASHES = (
    '$apr1$x9bHsLVa$Qn0XAcAdhz/0kRZqS1Hpv/',
    '$2y$05$R3m0t3Cr3d3nt14lHa5hV4lu3Q2bC',
)


@pytest.fixture
def app_dir(tmp_path):
    """Application tree with a Staticfile, an index page and a stray file."""
    build = tmp_path / 'build'
    build.mkdir()
    (build / 'Staticfile').write_text('')
    (build / 'index.html').write_text('<html><body>hello</body></html>\n')
    (build / 'notes.txt').write_text('not content\n')
    return build


@pytest.fixture
def cache_dir(tmp_path):
    cache = tmp_path / 'cache'
    cache.mkdir()
    return cache


@pytest.fixture
def compiler_home(tmp_path):
    """Compiler home with a manifest.yml declaring an image-provided nginx."""
    home = tmp_path / 'compiler'
    home.mkdir()
    (home / 'manifest.yml').write_text("""
language: staticfile
version: 9.9.9
stacks:
  - cflinuxfs4
default_versions:
  - name: nginx
    version: 1.25.4
dependencies:
  - name: nginx
    version: 1.25.4
    cf_stacks:
      - cflinuxfs4
""")
    return home


@pytest.fixture
def settings(compiler_home):
    """Settings for a supported stack, pointing at the test compiler home."""
    from config import CompilerSettings
    return CompilerSettings(
        stack='cflinuxfs4',
        buildpack_dir=compiler_home,
        environ={'PATH': '/usr/bin:/bin'},
    )


@pytest.fixture
def auth_file(app_dir):
    """Staticfile.auth with two users."""
    path = app_dir / 'Staticfile.auth'
    path.write_text(f"alice:{SECRET_HASHES[0]}\nbob:{SECRET_HASHES[1]}\n")
    return path


@pytest.fixture(autouse=True)
def _reset_root_logger():
    """Keep handlers added by configure_logging from leaking between tests."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            root_logger.removeHandler(handler)
    for handler in handlers:
        if handler not in root_logger.handlers:
            root_logger.addHandler(handler)
    root_logger.setLevel(level)
