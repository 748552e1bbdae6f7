"""Tests for assets.py - relocation into the serving directory."""

import os
from unittest.mock import patch

import pytest

from assets import relocate_assets
from errors import AssetRelocationError
from paths import resolve_root


def _names(path):
    return sorted(p.name for p in path.iterdir())


class TestRelocateAssets:
    """Moving content into public/."""

    def test_root_dot_moves_content_only(self, app_dir):
        (app_dir / 'Staticfile.auth').write_text('a:b\n')
        (app_dir / 'manifest.yml').write_text('applications: []\n')
        (app_dir / '.staticfile').mkdir()
        (app_dir / '.hidden').write_text('secret')

        public = relocate_assets(app_dir, resolve_root(app_dir))

        assert public == app_dir.resolve() / 'public'
        assert _names(public) == ['index.html', 'notes.txt']
        # Compiler inputs stay at the top level
        for name in ('Staticfile', 'Staticfile.auth', 'manifest.yml', '.staticfile', '.hidden'):
            assert (app_dir / name).exists()

    def test_moves_not_copies(self, app_dir):
        inode = (app_dir / 'index.html').stat().st_ino
        public = relocate_assets(app_dir, resolve_root(app_dir))
        assert not (app_dir / 'index.html').exists()
        assert (public / 'index.html').stat().st_ino == inode

    def test_dotfiles_moved_when_hosted(self, app_dir):
        (app_dir / '.well-known').mkdir()
        (app_dir / '.well-known' / 'security.txt').write_text('contact')
        public = relocate_assets(app_dir, resolve_root(app_dir), host_dot_files=True)
        assert (public / '.well-known' / 'security.txt').exists()

    def test_root_is_public_moves_nothing(self, app_dir):
        (app_dir / 'public').mkdir()
        (app_dir / 'public' / 'index.html').write_text('inner')

        public = relocate_assets(app_dir, resolve_root(app_dir, 'public'))

        assert _names(public) == ['index.html']
        assert (public / 'index.html').read_text() == 'inner'
        # Top-level files are not served
        assert (app_dir / 'notes.txt').exists()
        assert not (public / 'notes.txt').exists()

    def test_nested_public_preserved(self, app_dir):
        """public/public keeps its inner directory instead of merging."""
        inner = app_dir / 'public' / 'public'
        inner.mkdir(parents=True)
        (inner / 'deep.html').write_text('deep')
        (app_dir / 'public' / 'index.html').write_text('outer')

        public = relocate_assets(app_dir, resolve_root(app_dir))

        assert (public / 'public' / 'index.html').read_text() == 'outer'
        assert (public / 'public' / 'public' / 'deep.html').read_text() == 'deep'
        assert (public / 'index.html').exists()

    def test_alternate_root(self, app_dir):
        dist = app_dir / 'dist'
        (dist / 'js').mkdir(parents=True)
        (dist / 'index.html').write_text('dist')
        (dist / 'js' / 'app.js').write_text('app')

        public = relocate_assets(app_dir, resolve_root(app_dir, 'dist'))

        assert _names(public) == ['index.html', 'js']
        assert (public / 'index.html').read_text() == 'dist'
        assert not dist.exists() or _names(dist) == []
        assert (app_dir / 'notes.txt').exists()

    def test_existing_public_replaced(self, app_dir):
        dist = app_dir / 'dist'
        dist.mkdir()
        (dist / 'new.html').write_text('new')
        (app_dir / 'public').mkdir()
        (app_dir / 'public' / 'stale.html').write_text('old')

        public = relocate_assets(app_dir, resolve_root(app_dir, 'dist'))
        assert _names(public) == ['new.html']

    def test_no_staging_dir_left(self, app_dir):
        relocate_assets(app_dir, resolve_root(app_dir))
        assert not [p for p in app_dir.iterdir() if p.name.startswith('.staticfile-approot.')]

    def test_failure_rolls_back(self, app_dir):
        (app_dir / 'about.html').write_text('about')
        root = resolve_root(app_dir)
        real_rename = os.rename
        calls = []

        def flaky_rename(src, dst):
            calls.append(src)
            if len(calls) == 2:
                raise PermissionError(13, 'Permission denied')
            return real_rename(src, dst)

        with patch('assets.os.rename', side_effect=flaky_rename):
            with pytest.raises(AssetRelocationError) as exc_info:
                relocate_assets(app_dir, root)

        assert 'Permission denied' in exc_info.value.message
        assert exc_info.value.exit_code == 17
        assert _names(app_dir) == ['Staticfile', 'about.html', 'index.html', 'notes.txt']
