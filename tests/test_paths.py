"""Tests for linky.paths."""

import os

import pytest

import linky.paths as paths_mod
from linky.paths import resolve_config, search_dirs


@pytest.fixture
def no_system_dirs(tmp_path, monkeypatch):
    """Point the user and system config dirs at empty temp paths."""
    monkeypatch.setattr(paths_mod, "USER_DIR", str(tmp_path / "no_user"))
    monkeypatch.setattr(paths_mod, "ETC_DIR", str(tmp_path / "no_etc"))


class TestSearchDirs:

    def test_order(self, tmp_path, monkeypatch):
        """Current directory first, then user dir, then /etc."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        dirs = search_dirs()
        assert dirs[0] == str(tmp_path)
        assert dirs[1] == str(tmp_path / "home" / ".config" / "linky")
        assert dirs[2] == paths_mod.ETC_DIR


class TestResolveConfig:
    """Tests for resolve_config()."""

    def test_finds_local_file(self, tmp_path, monkeypatch, no_system_dirs):
        cfg = tmp_path / "linky.toml"
        cfg.write_text("")
        monkeypatch.chdir(tmp_path)

        assert resolve_config("linky.toml") == str(cfg)

    def test_falls_back_to_user_dir(self, tmp_path, monkeypatch, no_system_dirs):
        user = tmp_path / "user"
        user.mkdir()
        (user / "linky.toml").write_text("")
        monkeypatch.setattr(paths_mod, "USER_DIR", str(user))
        cwd = tmp_path / "cwd"
        cwd.mkdir()
        monkeypatch.chdir(cwd)

        assert resolve_config("linky.toml") == str(user / "linky.toml")

    def test_falls_back_to_etc(self, tmp_path, monkeypatch, no_system_dirs):
        etc = tmp_path / "etc_linky"
        etc.mkdir()
        (etc / "linky.toml").write_text("")
        monkeypatch.setattr(paths_mod, "ETC_DIR", str(etc))
        cwd = tmp_path / "cwd"
        cwd.mkdir()
        monkeypatch.chdir(cwd)

        assert resolve_config("linky.toml") == str(etc / "linky.toml")

    def test_local_wins_over_etc(self, tmp_path, monkeypatch, no_system_dirs):
        etc = tmp_path / "etc_linky"
        etc.mkdir()
        (etc / "linky.toml").write_text("")
        monkeypatch.setattr(paths_mod, "ETC_DIR", str(etc))
        (tmp_path / "linky.toml").write_text("")
        monkeypatch.chdir(tmp_path)

        assert resolve_config("linky.toml") == str(tmp_path / "linky.toml")

    def test_raises_when_not_found(self, tmp_path, monkeypatch, no_system_dirs):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(FileNotFoundError, match="linky.toml"):
            resolve_config("linky.toml")

    def test_explicit_path_exists(self, tmp_path):
        cfg = tmp_path / "sub" / "linky.toml"
        cfg.parent.mkdir()
        cfg.write_text("")

        result = resolve_config(str(cfg))

        assert result == str(cfg)
        assert os.path.isabs(result)

    def test_explicit_path_not_found(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            resolve_config(str(tmp_path / "nope" / "linky.toml"))

    def test_explicit_path_not_searched(self, tmp_path, monkeypatch, no_system_dirs):
        """A relative path with a slash is resolved against cwd only."""
        (tmp_path / "conf").mkdir()
        (tmp_path / "conf" / "linky.toml").write_text("")
        monkeypatch.chdir(tmp_path)

        assert resolve_config("conf/linky.toml") == str(tmp_path / "conf" / "linky.toml")
