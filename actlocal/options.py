"""Command-line options and the paths and platforms derived from them."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_PLATFORMS = {
    "ubuntu-latest": "node:16-buster-slim",
    "ubuntu-22.04": "node:16-bullseye-slim",
    "ubuntu-20.04": "node:16-buster-slim",
    "ubuntu-18.04": "node:16-buster-slim",
}


def user_home_dir() -> str:
    """Return the current user's home directory."""
    return str(Path.home())


def cache_home_dir() -> str:
    """Return ``$XDG_CACHE_HOME``, or ``~/.cache`` when it is unset or empty."""
    value = os.environ.get("XDG_CACHE_HOME")
    if value:
        return value
    return os.path.join(user_home_dir(), ".cache")


def _default_cache_server_path() -> str:
    return os.path.join(cache_home_dir(), "actcache")


@dataclass
class Input:
    """Options given to the root command."""

    actor: str = "actlocal"
    workdir: str = "."
    workflows_path: str = "./.github/workflows/"
    autodetect_event: bool = False
    event_path: str = ""
    reuse_containers: bool = False
    bind_workdir: bool = False
    secrets: list[str] = field(default_factory=list)
    envs: list[str] = field(default_factory=list)
    inputs: list[str] = field(default_factory=list)
    platforms: list[str] = field(default_factory=list)
    dryrun: bool = False
    force_pull: bool = True
    force_rebuild: bool = True
    no_output: bool = False
    env_file: str = ".env"
    input_file: str = ".input"
    secret_file: str = ".secrets"
    insecure_secrets: bool = False
    default_branch: str = ""
    privileged: bool = False
    userns_mode: str = ""
    container_architecture: str = ""
    container_daemon_socket: str = ""
    container_options: str = ""
    no_workflow_recurse: bool = False
    use_git_ignore: bool = True
    github_instance: str = "github.com"
    container_cap_add: list[str] = field(default_factory=list)
    container_cap_drop: list[str] = field(default_factory=list)
    auto_remove: bool = False
    artifact_server_path: str = ""
    artifact_server_addr: str = ""
    artifact_server_port: str = "34567"
    no_cache_server: bool = False
    cache_server_path: str = field(default_factory=_default_cache_server_path)
    cache_server_addr: str = ""
    cache_server_port: int = 0
    json_logger: bool = False
    no_skip_checkout: bool = False
    remote_name: str = "origin"
    replace_ghe_action_with_github_com: list[str] = field(default_factory=list)
    replace_ghe_action_token_with_github_com: str = ""
    matrix: list[str] = field(default_factory=list)

    def resolve(self, path: str) -> str:
        """Return ``path`` made absolute against the working directory.

        An empty path stays empty; an absolute path is returned unchanged.
        """
        basedir = os.path.abspath(self.workdir)
        if not path:
            return path
        if os.path.isabs(path):
            return path
        return os.path.normpath(os.path.join(basedir, path))

    @property
    def resolved_env_file(self) -> str:
        return self.resolve(self.env_file)

    @property
    def resolved_secret_file(self) -> str:
        return self.resolve(self.secret_file)

    @property
    def resolved_workdir(self) -> str:
        return self.resolve(".")

    @property
    def resolved_workflows_path(self) -> str:
        return self.resolve(self.workflows_path)

    @property
    def resolved_event_path(self) -> str:
        return self.resolve(self.event_path)

    @property
    def resolved_input_file(self) -> str:
        return self.resolve(self.input_file)

    def new_platforms(self) -> dict[str, str]:
        """Return the platform-to-image map, with ``name=image`` overrides applied.

        Entries that are not exactly one ``name=image`` pair are ignored.
        """
        platforms = dict(DEFAULT_PLATFORMS)
        for entry in self.platforms:
            parts = entry.split("=")
            if len(parts) == 2:
                platforms[parts[0]] = parts[1]
        return platforms