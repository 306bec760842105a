import os

from actlocal.options import Input, cache_home_dir, user_home_dir


def test_resolve_relative_path(tmp_path):
    options = Input(workdir=str(tmp_path))
    assert options.resolve("sub/file") == os.path.join(str(tmp_path), "sub", "file")


def test_resolve_absolute_and_empty(tmp_path):
    options = Input(workdir=str(tmp_path))
    absolute = os.path.join(str(tmp_path), "elsewhere")
    assert options.resolve(absolute) == absolute
    assert options.resolve("") == ""


def test_resolved_paths(tmp_path):
    options = Input(workdir=str(tmp_path), event_path="event.json")
    assert options.resolved_workdir == str(tmp_path)
    assert options.resolved_env_file == os.path.join(str(tmp_path), ".env")
    assert options.resolved_secret_file == os.path.join(str(tmp_path), ".secrets")
    assert options.resolved_input_file == os.path.join(str(tmp_path), ".input")
    assert options.resolved_event_path == os.path.join(str(tmp_path), "event.json")
    assert options.resolved_workflows_path == os.path.join(str(tmp_path), ".github", "workflows")


def test_empty_event_path_stays_empty(tmp_path):
    assert Input(workdir=str(tmp_path)).resolved_event_path == ""


def test_relative_workdir_resolves_against_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    options = Input(workdir="project")
    assert options.resolved_workdir == os.path.join(os.getcwd(), "project")


def test_new_platforms_defaults():
    platforms = Input().new_platforms()
    assert platforms["ubuntu-latest"] == "node:16-buster-slim"
    assert platforms["ubuntu-22.04"] == "node:16-bullseye-slim"


def test_new_platforms_overrides_and_additions():
    options = Input(platforms=["ubuntu-latest=custom:image", "self-hosted=img"])
    platforms = options.new_platforms()
    assert platforms["ubuntu-latest"] == "custom:image"
    assert platforms["self-hosted"] == "img"
    assert platforms["ubuntu-20.04"] == Input().new_platforms()["ubuntu-20.04"]


def test_new_platforms_ignores_malformed_entries():
    options = Input(platforms=["a=b=c", "nokey"])
    assert options.new_platforms() == Input().new_platforms()


def test_cache_home_dir_prefers_xdg(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))
    assert cache_home_dir() == str(tmp_path)
    assert Input().cache_server_path == os.path.join(str(tmp_path), "actcache")


def test_cache_home_dir_falls_back_to_home(tmp_path, monkeypatch):
    monkeypatch.delenv("XDG_CACHE_HOME", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("USERPROFILE", str(tmp_path))
    assert user_home_dir() == str(tmp_path)
    assert cache_home_dir() == os.path.join(str(tmp_path), ".cache")