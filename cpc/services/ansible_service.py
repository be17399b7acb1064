"""
Ansible Service

Builds and runs ansible-playbook invocations against the dynamic
OpenTofu inventory.
"""

import json
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from cpc.constants import (
    ANSIBLE_DIRNAME,
    COMMAND_NOT_FOUND_EXIT_CODE,
    INVENTORY_SCRIPT,
    PLAYBOOKS_DIRNAME,
)
from cpc.core.retry import RetryEngine
from cpc.core.timeout import TimeoutEngine
from cpc.exceptions import ConfigurationError, DependencyError
from cpc.logger import CpcLogger
from cpc.models.command import Command
from cpc.models.results import ExecutionResult
from cpc.services.context_service import ContextStore
from cpc.services.secret_service import SecretService


@dataclass
class PlaybookOptions:
    """Options for one ansible-playbook run."""

    limit: Optional[str] = None
    extra_vars: Dict[str, Any] = field(default_factory=dict)
    extra_args: Sequence[str] = ()
    with_secrets: bool = True
    retry: bool = False


class AnsibleService:
    """
    Manages Ansible operations with clean interfaces.

    Responsibilities:
    - Resolve playbooks under <repo>/ansible/playbooks
    - Build the ansible-playbook argument list
    - Hand secrets over through a short-lived extra-vars file
    - Run under the ansible timeout (optionally with retries)
    """

    def __init__(
        self,
        store: ContextStore,
        secrets: SecretService,
        timeouts: TimeoutEngine,
        retry: RetryEngine,
        logger: CpcLogger,
        remote_user: Optional[str] = None,
    ):
        self.store = store
        self.secrets = secrets
        self.timeouts = timeouts
        self.retry = retry
        self.logger = logger
        self.remote_user = remote_user

    @property
    def ansible_dir(self) -> Path:
        return self.store.get_repo_path() / ANSIBLE_DIRNAME

    def playbook_path(self, playbook: str) -> Path:
        """
        Resolve a playbook name.

        Raises:
            ConfigurationError: If the playbook does not exist
        """
        path = self.ansible_dir / PLAYBOOKS_DIRNAME / playbook
        if not path.exists():
            raise ConfigurationError(f"Playbook not found: {playbook}", context=str(path))
        return path

    def build_command(self, playbook: str, options: PlaybookOptions, secrets_file: Optional[Path] = None) -> Command:
        """
        Build the ansible-playbook command.

        Args:
            playbook: Playbook file name
            options: Run options
            secrets_file: JSON extra-vars file with decrypted secrets

        Returns:
            Command with cwd set to the ansible directory
        """
        self.playbook_path(playbook)

        args = ["-i", INVENTORY_SCRIPT, f"{PLAYBOOKS_DIRNAME}/{playbook}"]
        if options.limit:
            args.extend(["-l", options.limit])
        if self.remote_user:
            args.extend(["-e", f"ansible_user={self.remote_user}"])
        if options.extra_vars:
            args.extend(["-e", json.dumps(options.extra_vars)])
        if secrets_file is not None:
            args.extend(["-e", f"@{secrets_file}"])
        args.extend(options.extra_args)

        return Command("ansible-playbook", args, cwd=self.ansible_dir)

    def run_playbook(
        self,
        playbook: str,
        options: Optional[PlaybookOptions] = None,
        description: Optional[str] = None,
    ) -> ExecutionResult:
        """
        Run a playbook, streaming its output.

        Args:
            playbook: Playbook file name
            options: Run options
            description: Label for log lines

        Returns:
            ExecutionResult (returncode 124 on timeout)
        """
        options = options or PlaybookOptions()
        description = description or f"Ansible playbook {playbook}"

        with ExitStack() as stack:
            secrets_file = None
            if options.with_secrets:
                secrets_file = stack.enter_context(self.secrets.ansible_extra_vars_file())
            command = self.build_command(playbook, options, secrets_file)

            self.logger.step(description)
            self.logger.log(f"Command: {command.display()}", "DEBUG")

            def run() -> ExecutionResult:
                return self.timeouts.ansible(command, description)

            result = self.retry.ansible_operation(run, description) if options.retry else run()

        if result.returncode == COMMAND_NOT_FOUND_EXIT_CODE:
            raise DependencyError("Required tool 'ansible-playbook' not found in PATH", context="Install Ansible")
        return result
