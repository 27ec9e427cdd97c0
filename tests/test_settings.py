"""
Kits Sync - Settings Tests
"""

from pathlib import Path

from kits.settings import Settings


class TestSettings:
    """Tests for Settings path handling."""

    def test_default_database_inside_instance(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        s = Settings(INSTANCE_DIR=tmp_path)

        assert s.DATABASE_URL == f"sqlite:///{(tmp_path / 'kits.sqlite').resolve().as_posix()}"

    def test_relative_sqlite_url_is_made_absolute(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:///data/kits.sqlite")
        s = Settings(DATABASE_URL="sqlite:///data/kits.sqlite")

        path = Path(s.DATABASE_URL[len("sqlite:///") :])
        assert path.is_absolute()
        assert path.name == "kits.sqlite"

    def test_memory_url_untouched(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
        s = Settings(DATABASE_URL="sqlite:///:memory:")
        assert s.DATABASE_URL == "sqlite:///:memory:"

    def test_workbook_path_relative_to_instance(self, tmp_path):
        s = Settings(INSTANCE_DIR=tmp_path, KITS_WORKBOOK_PATH="KITS.xlsx")
        assert s.workbook_path() == (tmp_path / "KITS.xlsx").resolve()

    def test_ensure_instance(self, tmp_path):
        s = Settings(INSTANCE_DIR=tmp_path / "nuevo")
        s.ensure_instance()
        assert (tmp_path / "nuevo").is_dir()
