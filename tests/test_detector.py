"""Tests for detector.py - applicability check."""

from detector import Detection, detect


class TestDetect:
    """Staticfile presence and fallback heuristics."""

    def test_staticfile_present(self, app_dir):
        assert detect(app_dir) is Detection.APPLICABLE

    def test_no_staticfile(self, tmp_path):
        (tmp_path / 'index.html').write_text('hi')
        assert detect(tmp_path) is Detection.NOT_APPLICABLE

    def test_fallback_claims_plain_site(self, tmp_path):
        (tmp_path / 'index.html').write_text('hi')
        assert detect(tmp_path, fallback=True) is Detection.APPLICABLE

    def test_fallback_defers_to_other_compiler(self, tmp_path):
        (tmp_path / 'index.html').write_text('hi')
        (tmp_path / 'package.json').write_text('{}')
        assert detect(tmp_path, fallback=True) is Detection.NOT_APPLICABLE

    def test_fallback_defers_to_glob_marker(self, tmp_path):
        (tmp_path / 'index.htm').write_text('hi')
        (tmp_path / 'App.csproj').write_text('<Project/>')
        assert detect(tmp_path, fallback=True) is Detection.NOT_APPLICABLE

    def test_fallback_needs_index(self, tmp_path):
        (tmp_path / 'readme.md').write_text('hi')
        assert detect(tmp_path, fallback=True) is Detection.NOT_APPLICABLE

    def test_missing_dir(self, tmp_path):
        assert detect(tmp_path / 'nope') is Detection.NOT_APPLICABLE

    def test_no_side_effects(self, app_dir):
        before = {p: p.stat().st_mtime_ns for p in app_dir.iterdir()}
        detect(app_dir, fallback=True)
        assert {p: p.stat().st_mtime_ns for p in app_dir.iterdir()} == before

    def test_staticfile_wins_over_markers(self, app_dir):
        (app_dir / 'Gemfile').write_text('')
        assert detect(app_dir) is Detection.APPLICABLE
