"""Shared fixtures: isolated config dir, fake repository, recording runner."""

import io
import json
import time
from pathlib import Path
from typing import Callable, Dict, List

import pytest
from rich.console import Console

from cpc.config import Settings
from cpc.constants import (
    BOOTSTRAP_PLAYBOOKS,
    PLAYBOOK_ADD_NODES,
    PLAYBOOK_CONFIGURE_COREDNS,
    PLAYBOOK_DELETE_NODE,
    PLAYBOOK_DRAIN_NODE,
    PLAYBOOK_REGENERATE_CERTIFICATES,
    PLAYBOOK_RESET_ALL_NODES,
    PLAYBOOK_RESET_NODE,
    PLAYBOOK_RUN_COMMAND,
    PLAYBOOK_UPGRADE_ADDONS,
    PLAYBOOK_UPGRADE_K8S_CONTROL_PLANE,
    PLAYBOOK_UPGRADE_NODE,
)
from cpc.core.runner import as_result
from cpc.core.runtime import Runtime
from cpc.logger import CpcLogger
from cpc.models.command import Command
from cpc.models.results import ExecutionResult

SECRETS_YAML = """\
default:
  proxmox:
    host: pve.example.lan
    username: root@pam
    password: s3cret-pass
  vm:
    username: ubuntu
global:
  docker_hub_username: builder
"""

CLUSTER_SUMMARY = {
    "ubuntu-controlplane1": {"IP": "10.10.10.11", "hostname": "cp1.example.lan", "VM_ID": "101"},
    "ubuntu-worker1": {"IP": "10.10.10.21", "hostname": "w1.example.lan", "VM_ID": "201"},
}


class FakeRunner:
    """Records every Command and answers from per-program handlers."""

    def __init__(self):
        self.logger = None
        self.calls: List[Command] = []
        self.handlers: Dict[str, Callable[[Command], ExecutionResult]] = {}

    def on(self, program: str, handler: Callable[[Command], ExecutionResult]) -> None:
        self.handlers[program] = handler

    def programs(self) -> List[str]:
        return [call.program for call in self.calls]

    def run(self, command, timeout=None, capture=True, input_text=None):
        self.calls.append(command)
        handler = self.handlers.get(command.program)
        result = handler(command) if handler else ExecutionResult(returncode=0)
        result.command = command.display()
        return result

    def invoke(self, operation, description=""):
        if isinstance(operation, Command):
            return self.run(operation)
        return as_result(operation(), description)


def write_cache_entry(settings: Settings, context: str, operation: str, payload, age: float, ttl_class: str = "long"):
    """Place a cache entry on disk as if it had been written `age` seconds ago."""
    settings.cache_dir.mkdir(parents=True, exist_ok=True)
    entry = {
        "context": context,
        "operation": operation,
        "created_at": time.time() - age,
        "ttl_class": ttl_class,
        "payload": payload,
    }
    path = settings.cache_dir / f"{context}__{operation}.json"
    path.write_text(json.dumps(entry))
    return path


@pytest.fixture
def config_dir(tmp_path, monkeypatch) -> Path:
    path = tmp_path / "config"
    monkeypatch.setenv("CPC_CONFIG_DIR", str(path))
    for name in ("CPC_DEBUG", "CPC_CACHE_SHORT_TTL", "CPC_CACHE_LONG_TTL", "CPC_SECRETS_TTL"):
        monkeypatch.delenv(name, raising=False)
    return path


@pytest.fixture
def repo(tmp_path) -> Path:
    root = tmp_path / "repo"
    (root / "envs").mkdir(parents=True)
    (root / "terraform" / "environments").mkdir(parents=True)
    (root / "ansible" / "playbooks").mkdir(parents=True)
    (root / "ansible" / "addons" / "extras").mkdir(parents=True)

    (root / "cpc.env").write_text("DOMAIN_SUFFIX=example.lan\nPRIMARY_DNS_SERVER=10.10.10.53\n")
    (root / "envs" / "ubuntu.env").write_text(
        "RELEASE_LETTER=u\nVM_DOMAIN=.${DOMAIN_SUFFIX}\nADDITIONAL_WORKERS=\n"
    )
    (root / "envs" / "k8s133.env").write_text("RELEASE_LETTER=k\nPRIMARY_DNS_SERVER=10.10.10.54\n")
    (root / "terraform" / "environments" / "ubuntu.tfvars").write_text('vm_count = 2\n')
    (root / "terraform" / "secrets.sops.yaml").write_text("sops: encrypted\n")
    (root / "ansible" / "addons" / "extras" / "my-addon.yml").write_text("---\n")

    playbooks = (
        *BOOTSTRAP_PLAYBOOKS,
        PLAYBOOK_ADD_NODES,
        PLAYBOOK_DELETE_NODE,
        PLAYBOOK_DRAIN_NODE,
        PLAYBOOK_UPGRADE_NODE,
        PLAYBOOK_RESET_NODE,
        PLAYBOOK_RUN_COMMAND,
        PLAYBOOK_UPGRADE_ADDONS,
        PLAYBOOK_CONFIGURE_COREDNS,
        PLAYBOOK_UPGRADE_K8S_CONTROL_PLANE,
        PLAYBOOK_RESET_ALL_NODES,
        PLAYBOOK_REGENERATE_CERTIFICATES,
    )
    for playbook in playbooks:
        (root / "ansible" / "playbooks" / playbook).write_text("---\n")
    return root


@pytest.fixture
def settings(config_dir) -> Settings:
    return Settings.from_env()


@pytest.fixture
def fake_runner() -> FakeRunner:
    runner = FakeRunner()
    runner.on("sops", lambda command: ExecutionResult(returncode=0, stdout=SECRETS_YAML))
    return runner


@pytest.fixture
def console() -> Console:
    return Console(width=200, color_system=None, force_terminal=False)


@pytest.fixture
def quiet_logger() -> CpcLogger:
    return CpcLogger(console=Console(file=io.StringIO(), width=200, color_system=None))


@pytest.fixture
def runtime(settings, fake_runner, console) -> Runtime:
    return Runtime.create(settings, runner=fake_runner, console=console)


@pytest.fixture
def configured_runtime(runtime, repo) -> Runtime:
    runtime.store.set_repo_path(repo)
    return runtime
