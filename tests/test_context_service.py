"""Tests for the persisted repository path and active workspace."""

import threading

import pytest

from cpc.constants import BUILTIN_WORKSPACES
from cpc.exceptions import ConfigurationError, RepoNotConfiguredError, ValidationError, WorkspaceNotFoundError
from cpc.services.cache_service import TTLClass
from cpc.services.context_service import ContextStore


@pytest.fixture
def store(settings) -> ContextStore:
    return ContextStore(settings)


def test_default_context_when_nothing_selected(store, settings):
    assert store.get_current_context() == "default"

    settings.config_dir.mkdir(parents=True)
    settings.context_file.write_text("null\n")
    assert store.get_current_context() == "default"

    settings.context_file.write_text("\n")
    assert store.get_current_context() == "default"


def test_repo_path_not_configured(store):
    assert not store.has_repo_path()
    with pytest.raises(RepoNotConfiguredError) as exc_info:
        store.get_repo_path()
    assert exc_info.value.exit_code == 102


def test_repo_path_round_trip(store, repo, settings):
    store.set_repo_path(repo)

    assert store.get_repo_path() == repo.resolve()
    assert settings.repo_path_file.read_text().strip() == str(repo.resolve())


def test_repo_path_that_vanished(store, repo, tmp_path):
    store.set_repo_path(repo)
    repo.rename(tmp_path / "moved")

    with pytest.raises(ConfigurationError, match="does not exist"):
        store.get_repo_path()


def test_set_repo_path_requires_directory(store, tmp_path):
    with pytest.raises(ConfigurationError):
        store.set_repo_path(tmp_path / "missing")


def test_list_workspaces(store, repo):
    assert store.list_workspaces() == sorted(BUILTIN_WORKSPACES)

    store.set_repo_path(repo)
    names = store.list_workspaces()
    assert "k8s133" in names
    assert "ubuntu" in names


def test_set_context_notifies_listeners(store, repo):
    store.set_repo_path(repo)
    switches = []
    store.add_switch_listener(lambda old, new: switches.append((old, new)))

    assert store.set_context("k8s133") == "default"
    assert store.get_current_context() == "k8s133"

    store.set_context("k8s133")
    store.set_context("ubuntu")
    assert switches == [("default", "k8s133"), ("k8s133", "ubuntu")]


@pytest.mark.parametrize("name", ["", "bad name", "../etc", "x" * 65])
def test_set_context_rejects_malformed_names(store, name):
    with pytest.raises(ValidationError):
        store.set_context(name)


def test_set_context_unknown_workspace(store, repo):
    store.set_repo_path(repo)

    with pytest.raises(WorkspaceNotFoundError) as exc_info:
        store.set_context("nonexistent")
    assert "k8s133" in str(exc_info.value.context)
    assert store.get_current_context() == "default"


def test_workspace_resolution(store, repo):
    store.set_repo_path(repo)
    store.set_context("ubuntu")

    workspace = store.workspace()
    assert workspace.name == "ubuntu"
    assert workspace.is_builtin
    assert workspace.has_env_file
    assert workspace.tfvars_file == repo.resolve() / "terraform" / "environments" / "ubuntu.tfvars"
    assert not store.workspace("k8s133").is_builtin


def test_switch_invalidates_previous_workspace_cache(runtime, repo):
    runtime.store.set_repo_path(repo)
    runtime.store.set_context("ubuntu")
    runtime.cache.write("cluster_summary", {"n": 1}, TTLClass.LONG)
    runtime.cache.write("cluster_summary", {"n": 2}, TTLClass.LONG, context="k8s133")

    runtime.store.set_context("k8s133")

    assert runtime.cache.read("cluster_summary", context="ubuntu") is None
    assert runtime.cache.read("cluster_summary").payload == {"n": 2}


def test_readers_never_see_a_partial_context_during_switches(store, repo):
    first = "cluster-" + "a" * 40
    second = "cluster-" + "b" * 40
    for name in (first, second):
        (repo / "envs" / f"{name}.env").write_text("RELEASE_LETTER=x\n")
    store.set_repo_path(repo)
    store.set_context(first)

    done = threading.Event()
    seen = []
    errors = []

    def writer():
        try:
            for i in range(200):
                store.set_context(second if i % 2 == 0 else first)
        except Exception as e:
            errors.append(e)
        finally:
            done.set()

    def reader():
        while True:
            seen.append(store.get_current_context())
            if done.is_set():
                return

    readers = [threading.Thread(target=reader) for _ in range(4)]
    for thread in readers:
        thread.start()
    writer_thread = threading.Thread(target=writer)
    writer_thread.start()
    writer_thread.join()
    for thread in readers:
        thread.join()

    assert errors == []
    assert seen
    assert set(seen) <= {first, second}
