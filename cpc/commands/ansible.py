"""CPC CLI - Ansible passthrough commands"""

import click

from cpc.base import WorkspaceCommand
from cpc.constants import PLAYBOOK_RUN_COMMAND
from cpc.exceptions import InputError
from cpc.models.errors import ErrorAction, ErrorKind, Severity
from cpc.services import PlaybookOptions


class RunAnsibleCommand(WorkspaceCommand):
    """Run any playbook from ansible/playbooks with the workspace secrets."""

    def __init__(self, runtime, playbook: str, extra_args: tuple = ()):
        super().__init__(runtime)
        self.playbook = playbook
        self.extra_args = extra_args

    def execute(self) -> None:
        ansible = self.ensure_ansible_service()
        ansible.playbook_path(self.playbook)

        self.open_log("run-ansible")
        result = ansible.run_playbook(self.playbook, PlaybookOptions(extra_args=self.extra_args))
        if result.is_failure:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"Playbook {self.playbook} failed (exit code: {result.returncode})",
                Severity.HIGH,
                ErrorAction.ABORT,
            )
        self.logger.success(f"Playbook {self.playbook} completed")


class RunShellCommand(WorkspaceCommand):
    """Run a shell command on inventory hosts."""

    def __init__(self, runtime, target: str, command: tuple):
        super().__init__(runtime)
        self.target = target
        self.command = " ".join(command)

    def execute(self) -> None:
        if not self.target.strip():
            raise InputError("Target must not be empty", context="Use a host, IP or inventory group")
        if not self.command.strip():
            raise InputError("No command given", context="Example: cpc run-command all 'uptime'")

        ansible = self.ensure_ansible_service()
        options = PlaybookOptions(
            limit=self.target,
            extra_vars={"target_hosts": self.target, "command_to_run": self.command},
        )
        result = ansible.run_playbook(PLAYBOOK_RUN_COMMAND, options, f"Running '{self.command}' on {self.target}")
        if result.is_failure:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"Command failed on {self.target} (exit code: {result.returncode})",
                Severity.MEDIUM,
                ErrorAction.ABORT,
            )


@click.command(
    name="run-ansible",
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
)
@click.argument("playbook")
@click.argument("extra_args", nargs=-1, type=click.UNPROCESSED)
@click.pass_obj
def run_ansible(runtime, playbook, extra_args):
    """
    Run an Ansible playbook against the cluster inventory

    \b
    Example:
      cpc run-ansible pb_upgrade_node.yml --check -l 10.10.10.11
    """
    cmd = RunAnsibleCommand(runtime, playbook, tuple(extra_args))
    cmd.run()


@click.command(
    name="run-command",
    context_settings={"ignore_unknown_options": True},
)
@click.argument("target")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_obj
def run_command(runtime, target, command):
    """
    Run a shell command on hosts or inventory groups

    \b
    Examples:
      cpc run-command all "uptime"
      cpc run-command control_plane "kubectl get pods -A"
    """
    cmd = RunShellCommand(runtime, target, tuple(command))
    cmd.run()
