"""Identity profiles and credential scoping for the ``gh`` CLI."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

LOGGER = logging.getLogger(__name__)

PROFILE_KEYS = ("sshkey", "email", "user", "ghuser")

HOSTS_TEMPLATE = """github.com:
    git_protocol: ssh
    users:
        {user}:
    user: {user}
"""


class IdentityError(RuntimeError):
    """Raised when an identity profile cannot be used to reach GitHub."""


@dataclass(slots=True, frozen=True)
class Profile:
    """A named identity stored as ``identity.<name>.<key>`` in global git config."""

    name: str
    ssh_key: str = ""
    email: str = ""
    user: str = ""
    gh_user: str = ""


def get_profile(name: str) -> Profile:
    values = {key: _git_config_value(f"identity.{name}.{key}") for key in PROFILE_KEYS}
    if not any(values.values()):
        raise IdentityError(f"profile {name!r} not found")
    return Profile(
        name=name,
        ssh_key=values["sshkey"],
        email=values["email"],
        user=values["user"],
        gh_user=values["ghuser"],
    )


def _git_config_value(key: str) -> str:
    try:
        result = subprocess.run(
            ["git", "config", "--global", "--get", key],
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as exc:
        raise IdentityError("git is not installed") from exc
    if result.returncode != 0:
        return ""
    return result.stdout.strip()


def gh_config_dir(env: Mapping[str, str]) -> Path:
    """Locate the shared ``gh`` configuration directory."""

    if explicit := env.get("GH_CONFIG_DIR"):
        return Path(explicit)
    if xdg := env.get("XDG_CONFIG_HOME"):
        return Path(xdg) / "gh"
    return Path.home() / ".config" / "gh"


class IdentityScope:
    """Scope ``gh`` credential selection to one profile for a batch of calls.

    Entering the scope with a profile creates a private temporary ``gh``
    configuration directory that links the shared ``config.yml`` and selects
    the profile's GitHub user in a minimal ``hosts.yml``. Every ``gh``
    invocation made through :meth:`run_gh` points ``GH_CONFIG_DIR`` at it.
    The directory is removed on exit. Without a profile the ambient ``gh``
    configuration is used unchanged.
    """

    def __init__(self, profile: Profile | None = None, env: Mapping[str, str] | None = None) -> None:
        self.profile = profile
        self._env = dict(env if env is not None else os.environ)
        self._tmp_dir: Path | None = None

    @property
    def label(self) -> str:
        return f"profile {self.profile.name!r}" if self.profile else "the default gh identity"

    @property
    def config_dir(self) -> Path | None:
        return self._tmp_dir

    def __enter__(self) -> "IdentityScope":
        if self.profile is None:
            return self
        if not self.profile.gh_user:
            raise IdentityError(f"profile {self.profile.name!r} has no GitHub user configured")

        shared_config = gh_config_dir(self._env) / "config.yml"
        self._tmp_dir = Path(tempfile.mkdtemp(prefix="gh-wtfork-"))
        try:
            if shared_config.exists():
                (self._tmp_dir / "config.yml").symlink_to(shared_config)
            hosts = self._tmp_dir / "hosts.yml"
            hosts.write_text(HOSTS_TEMPLATE.format(user=self.profile.gh_user), encoding="utf-8")
            hosts.chmod(0o600)
        except OSError:
            self.close()
            raise
        LOGGER.debug("Scoped gh configuration for %s at %s", self.label, self._tmp_dir)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def close(self) -> None:
        if self._tmp_dir is not None:
            shutil.rmtree(self._tmp_dir, ignore_errors=True)
            self._tmp_dir = None

    def environment(self) -> dict[str, str]:
        env = dict(self._env)
        if self._tmp_dir is not None:
            env["GH_CONFIG_DIR"] = str(self._tmp_dir)
        return env

    async def run_gh(self, *args: str) -> str:
        """Run ``gh`` inside the scope and return its standard output."""

        try:
            process = await asyncio.create_subprocess_exec(
                "gh",
                *args,
                env=self.environment(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise IdentityError("the gh CLI is required to resolve credentials") from exc
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise IdentityError(f"gh {' '.join(args)} failed for {self.label}: {message}")
        return stdout.decode("utf-8").strip()

    async def resolve_token(self) -> str:
        token = await self.run_gh("auth", "token")
        if not token:
            raise IdentityError(f"gh returned no token for {self.label}")
        return token


__all__ = [
    "IdentityError",
    "IdentityScope",
    "Profile",
    "get_profile",
    "gh_config_dir",
]
