"""Reading configuration: rc files, env files, secrets, matrix filters and sockets."""

from __future__ import annotations

import getpass
import logging
import os
import re
import string
import sys
from collections.abc import Callable, Iterable, MutableMapping, Sequence

import yaml
from dotenv import dotenv_values

from .options import user_home_dir

_logger = logging.getLogger("actlocal.config")

CONFIG_FILE_NAME = ".actrc"

COMMON_SOCKET_PATHS = [
    "/var/run/docker.sock",
    "/var/run/podman/podman.sock",
    "$HOME/.colima/docker.sock",
    "$XDG_RUNTIME_DIR/docker.sock",
    r"\\.\pipe\docker_engine",
    "$HOME/.docker/run/docker.sock",
]

IMAGE_CHOICES = ("Large", "Medium", "Micro")

_IMAGE_OPTIONS = {
    "Large": (
        "-P ubuntu-latest=catthehacker/ubuntu:full-latest\n"
        "-P ubuntu-latest=catthehacker/ubuntu:full-20.04\n"
        "-P ubuntu-18.04=catthehacker/ubuntu:full-18.04\n"
    ),
    "Medium": (
        "-P ubuntu-latest=catthehacker/ubuntu:act-latest\n"
        "-P ubuntu-22.04=catthehacker/ubuntu:act-22.04\n"
        "-P ubuntu-20.04=catthehacker/ubuntu:act-20.04\n"
        "-P ubuntu-18.04=catthehacker/ubuntu:act-18.04\n"
    ),
    "Micro": (
        "-P ubuntu-latest=node:16-buster-slim\n"
        "-P ubuntu-22.04=node:16-bullseye-slim\n"
        "-P ubuntu-20.04=node:16-buster-slim\n"
        "-P ubuntu-18.04=node:16-buster-slim\n"
    ),
}

_ENV_VAR = re.compile(r"\$(?:\{([^}]*)\}|([A-Za-z0-9_]+))")
_WHITESPACE = re.compile(r"\s")
_LETTERS = frozenset(string.ascii_letters)


def expand_env(text: str) -> str:
    """Replace ``$VAR`` and ``${VAR}`` with their values; unset ones become empty."""
    return _ENV_VAR.sub(lambda m: os.environ.get(m.group(1) or m.group(2), ""), text)


def _search_config_file(name: str) -> str:
    config_home = os.environ.get("XDG_CONFIG_HOME") or os.path.join(user_home_dir(), ".config")
    config_dirs = [d for d in (os.environ.get("XDG_CONFIG_DIRS") or "/etc/xdg").split(os.pathsep) if d]
    for directory in (config_home, *config_dirs):
        candidate = os.path.join(directory, name)
        if os.path.isfile(candidate):
            return candidate
    return ""


def config_locations() -> list[str]:
    """Return the rc files read in order: home, XDG config (or ""), current directory."""
    xdg_config = ""
    for name in ("act/actrc", CONFIG_FILE_NAME):
        xdg_config = _search_config_file(name)
        if xdg_config:
            break
    return [
        os.path.join(user_home_dir(), CONFIG_FILE_NAME),
        xdg_config,
        os.path.join(".", CONFIG_FILE_NAME),
    ]


def socket_location() -> str | None:
    """Return the container engine socket URI, or None if none is found.

    ``$DOCKER_HOST`` wins when it is set, even to an empty value.
    """
    if "DOCKER_HOST" in os.environ:
        return os.environ["DOCKER_HOST"]
    for candidate in COMMON_SOCKET_PATHS:
        expanded = expand_env(candidate)
        if os.path.lexists(expanded):
            slashed = expanded.replace(os.sep, "/")
            if candidate.startswith("\\\\.\\"):
                return "npipe://" + slashed
            return "unix://" + slashed
    return None


def read_args_file(path: str, split: bool) -> list[str]:
    """Read arguments from an rc file; a missing file gives no arguments.

    With ``split`` only lines starting with ``-`` are kept, each split once
    at the first whitespace. Without it every line is kept as it is.
    """
    if not path:
        return []
    try:
        with open(path, encoding="utf-8") as handle:
            lines = handle.read().splitlines()
    except OSError:
        return []
    args: list[str] = []
    for line in lines:
        arg = line.strip()
        if split:
            if arg.startswith("-"):
                args.extend(_WHITESPACE.split(arg, maxsplit=1))
        else:
            args.append(arg)
    return args


def collect_args(argv: Sequence[str] | None = None) -> list[str]:
    """Return the rc file arguments followed by ``argv`` (default: the command line)."""
    args: list[str] = []
    for path in config_locations():
        args.extend(read_args_file(path, True))
    args.extend(sys.argv[1:] if argv is None else argv)
    return args


def parse_envs(env: Iterable[str] | None, envs: MutableMapping[str, str]) -> bool:
    """Add ``NAME=value`` (or bare ``NAME``) entries to ``envs``; False if ``env`` is None."""
    if env is None:
        return False
    for entry in env:
        name, _, value = entry.partition("=")
        envs[name] = value
    return True


def read_yaml_file(path: str) -> dict[str, str]:
    """Read a YAML mapping of names to scalar values, all kept as strings."""
    with open(path, encoding="utf-8") as handle:
        data = yaml.load(handle, Loader=yaml.BaseLoader)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping of names to values")
    result: dict[str, str] = {}
    for key, value in data.items():
        if not isinstance(value, str):
            raise ValueError(f"{path}: value of {key!r} is not a scalar")
        result[str(key)] = value
    return result


def read_envs(path: str, envs: MutableMapping[str, str]) -> bool:
    """Merge variables from a dotenv or YAML file into ``envs``.

    Returns False when the file does not exist; raises ValueError when it
    cannot be parsed.
    """
    if not path or not os.path.exists(path):
        return False
    try:
        if os.path.splitext(path)[1] in (".yml", ".yaml"):
            values = read_yaml_file(path)
        else:
            values = {k: v or "" for k, v in dotenv_values(path).items()}
    except (OSError, yaml.YAMLError, ValueError) as exc:
        raise ValueError(f"Error loading from {path}: {exc}") from exc
    envs.update(values)
    return True


def parse_matrix(matrix: Iterable[str]) -> dict[str, set[str]]:
    """Parse ``name:value`` filters into a map of names to allowed values."""
    matrixes: dict[str, set[str]] = {}
    for entry in matrix:
        parts = entry.split(":", 1)
        if len(parts) < 2:
            raise ValueError(f"Invalid matrix format. Failed to parse {entry}")
        matrixes.setdefault(parts[0], set()).add(parts[1])
    return matrixes


def is_docker_host_uri(daemon_path: str) -> bool:
    """True if ``daemon_path`` looks like ``scheme://...`` with a letters-only scheme."""
    scheme, sep, _ = daemon_path.partition("://")
    if not sep:
        return False
    return all(char in _LETTERS for char in scheme)


def _ask_secret(name: str) -> str:
    return getpass.getpass(f"Provide value for '{name}': ")


def new_secrets(
    secret_list: Iterable[str], prompt: Callable[[str], str] | None = None
) -> dict[str, str]:
    """Build the secrets map from ``NAME=value`` or bare ``NAME`` entries.

    Names are upper-cased. A bare name takes its value from the environment
    when set and non-empty, otherwise from ``prompt`` (by default an
    unechoed terminal prompt).
    """
    ask = prompt if prompt is not None else _ask_secret
    secrets: dict[str, str] = {}
    for pair in secret_list:
        name, sep, value = pair.partition("=")
        name = name.upper()
        if name in secrets:
            _logger.error("Secret %s is already defined (secrets are case insensitive)", name)
        if sep:
            secrets[name] = value
        elif os.environ.get(name):
            secrets[name] = os.environ[name]
        else:
            secrets[name] = ask(name)
    return secrets


def write_default_image_config(path: str, answer: str) -> None:
    """Write the platform lines for the chosen image size to the rc file ``path``."""
    try:
        option = _IMAGE_OPTIONS[answer]
    except KeyError:
        raise ValueError(f"unknown image choice {answer!r}; expected one of {IMAGE_CHOICES}") from None
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(option)