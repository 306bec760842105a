import os

import pytest

from actlocal import config


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    work = tmp_path / "work"
    work.mkdir()
    xdg = tmp_path / "xdg"
    xdg.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    monkeypatch.setenv("XDG_CONFIG_DIRS", str(tmp_path / "nodirs"))
    monkeypatch.chdir(work)
    return home, work, xdg


def test_read_args_file_split(tmp_path):
    rc = tmp_path / "rc"
    rc.write_text("-P ubuntu=img:1\n  --rm  \nnot-a-flag\n")
    assert config.read_args_file(str(rc), True) == ["-P", "ubuntu=img:1", "--rm"]


def test_read_args_file_unsplit_keeps_all_lines(tmp_path):
    rc = tmp_path / "rc"
    rc.write_text("-P ubuntu=img:1\nnot-a-flag\n")
    assert config.read_args_file(str(rc), False) == ["-P ubuntu=img:1", "not-a-flag"]


def test_read_args_file_missing(tmp_path):
    assert config.read_args_file(str(tmp_path / "missing"), True) == []


def test_config_locations_without_xdg(isolated_home):
    home, _, _ = isolated_home
    locations = config.config_locations()
    assert locations[0] == os.path.join(str(home), ".actrc")
    assert locations[1] == ""
    assert locations[2] == os.path.join(".", ".actrc")


def test_config_locations_finds_xdg(isolated_home):
    _, _, xdg = isolated_home
    (xdg / "act").mkdir()
    target = xdg / "act" / "actrc"
    target.write_text("--rm\n")
    assert config.config_locations()[1] == str(target)


def test_collect_args_orders_files_then_argv(isolated_home):
    home, work, _ = isolated_home
    (home / ".actrc").write_text("-P a=b\n")
    (work / ".actrc").write_text("--rm\n")
    assert config.collect_args(["push"]) == ["-P", "a=b", "--rm", "push"]


def test_socket_location_prefers_docker_host(monkeypatch):
    monkeypatch.setenv("DOCKER_HOST", "tcp://localhost:2375")
    assert config.socket_location() == "tcp://localhost:2375"


def test_socket_location_finds_expanded_path(tmp_path, monkeypatch):
    monkeypatch.delenv("DOCKER_HOST", raising=False)
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path))
    (tmp_path / "docker.sock").write_text("")
    monkeypatch.setattr(config, "COMMON_SOCKET_PATHS", ["$XDG_RUNTIME_DIR/docker.sock"])
    assert config.socket_location() == "unix://" + str(tmp_path / "docker.sock").replace(os.sep, "/")


def test_socket_location_none(tmp_path, monkeypatch):
    monkeypatch.delenv("DOCKER_HOST", raising=False)
    monkeypatch.setattr(config, "COMMON_SOCKET_PATHS", [str(tmp_path / "nothing.sock")])
    assert config.socket_location() is None


def test_parse_envs():
    envs = {}
    assert config.parse_envs(["A=b=c", "C"], envs) is True
    assert envs == {"A": "b=c", "C": ""}


def test_parse_envs_none():
    envs = {"X": "y"}
    assert config.parse_envs(None, envs) is False
    assert envs == {"X": "y"}


def test_read_envs_dotenv(tmp_path):
    path = tmp_path / ".env"
    path.write_text("FOO=bar\nBAZ=qux\n")
    envs = {"FOO": "old"}
    assert config.read_envs(str(path), envs) is True
    assert envs == {"FOO": "bar", "BAZ": "qux"}


def test_read_envs_yaml_keeps_strings(tmp_path):
    path = tmp_path / "vars.yml"
    path.write_text("a: 1\nb: true\n")
    envs = {}
    assert config.read_envs(str(path), envs) is True
    assert envs == {"a": "1", "b": "true"}


def test_read_envs_missing(tmp_path):
    envs = {}
    assert config.read_envs(str(tmp_path / "nope.env"), envs) is False
    assert envs == {}


def test_read_envs_bad_yaml_raises(tmp_path):
    path = tmp_path / "vars.yaml"
    path.write_text("a:\n  nested: 1\n")
    with pytest.raises(ValueError):
        config.read_envs(str(path), {})


def test_read_yaml_file_rejects_list(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ValueError):
        config.read_yaml_file(str(path))


def test_parse_matrix():
    result = config.parse_matrix(["java:13", "java:14", "os:ubuntu:22"])
    assert result == {"java": {"13", "14"}, "os": {"ubuntu:22"}}


def test_parse_matrix_invalid():
    with pytest.raises(ValueError, match="Invalid matrix format"):
        config.parse_matrix(["nocolon"])


@pytest.mark.parametrize(
    "path, expected",
    [
        ("unix:///var/run/docker.sock", True),
        ("npipe:////./pipe/docker_engine", True),
        ("/var/run/docker.sock", False),
        ("tcp1://host", False),
        ("-", False),
    ],
)
def test_is_docker_host_uri(path, expected):
    assert config.is_docker_host_uri(path) is expected


def test_new_secrets_explicit_value():
    assert config.new_secrets(["my_secret=secret"]) == {"MY_SECRET": "secret"}


def test_new_secrets_from_environment(monkeypatch):
    monkeypatch.setenv("FROM_ENV", "token")
    assert config.new_secrets(["from_env"]) == {"FROM_ENV": "token"}


def test_new_secrets_prompts(monkeypatch):
    monkeypatch.delenv("ASKED", raising=False)
    asked = []

    def prompt(name):
        asked.append(name)
        return "placeholder"

    assert config.new_secrets(["asked"], prompt=prompt) == {"ASKED": "placeholder"}
    assert asked == ["ASKED"]


def test_new_secrets_last_definition_wins():
    result = config.new_secrets(["dup=secret", "DUP=token"])
    assert result == {"DUP": "token"}


def test_write_default_image_config_round_trip(tmp_path):
    path = tmp_path / ".actrc"
    config.write_default_image_config(str(path), "Micro")
    args = config.read_args_file(str(path), True)
    assert args[:2] == ["-P", "ubuntu-latest=node:16-buster-slim"]
    assert len(args) == 8


def test_write_default_image_config_unknown(tmp_path):
    with pytest.raises(ValueError):
        config.write_default_image_config(str(tmp_path / ".actrc"), "Huge")