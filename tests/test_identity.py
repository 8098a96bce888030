from __future__ import annotations

import pytest

from gh_wtfork import identity
from gh_wtfork.identity import IdentityError, IdentityScope, Profile, get_profile, gh_config_dir


def test_scope_materializes_and_removes_config_dir(tmp_path):
    shared = tmp_path / "gh"
    shared.mkdir()
    (shared / "config.yml").write_text("git_protocol: ssh\n", encoding="utf-8")
    scope = IdentityScope(Profile(name="work", gh_user="octo"), env={"GH_CONFIG_DIR": str(shared)})

    with scope:
        config_dir = scope.config_dir
        assert config_dir is not None
        hosts = (config_dir / "hosts.yml").read_text(encoding="utf-8")
        assert "user: octo" in hosts
        assert (config_dir / "config.yml").resolve() == (shared / "config.yml").resolve()
        assert scope.environment()["GH_CONFIG_DIR"] == str(config_dir)

    assert not config_dir.exists()
    assert scope.config_dir is None


def test_scope_without_profile_uses_ambient_config():
    with IdentityScope(env={"PATH": "/usr/bin"}) as scope:
        assert scope.config_dir is None
        assert "GH_CONFIG_DIR" not in scope.environment()
        assert scope.label == "the default gh identity"


def test_scope_requires_github_user():
    with pytest.raises(IdentityError, match="no GitHub user"):
        with IdentityScope(Profile(name="work", email="me@example.com")):
            pass


def test_get_profile_reads_git_config(monkeypatch):
    values = {"identity.work.ghuser": "octo", "identity.work.email": "me@example.com"}
    monkeypatch.setattr(identity, "_git_config_value", lambda key: values.get(key, ""))

    profile = get_profile("work")

    assert profile.gh_user == "octo"
    assert profile.email == "me@example.com"
    with pytest.raises(IdentityError, match="not found"):
        get_profile("missing")


def test_gh_config_dir_resolution(tmp_path):
    assert gh_config_dir({"GH_CONFIG_DIR": "/x/gh"}).as_posix() == "/x/gh"
    assert gh_config_dir({"XDG_CONFIG_HOME": "/xdg"}).as_posix() == "/xdg/gh"
