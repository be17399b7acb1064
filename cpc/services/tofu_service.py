"""
OpenTofu Service

Workspace management, plan/apply/destroy and output queries for the
infrastructure root at <repo>/terraform.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from cpc.constants import (
    COMMAND_NOT_FOUND_EXIT_CODE,
    TERRAFORM_DIRNAME,
    TFVARS_DIRNAME,
    TOFU_VAR_FILE_COMMANDS,
)
from cpc.core.timeout import TimeoutEngine
from cpc.exceptions import (
    DependencyError,
    ExecutionError,
    OperationTimeoutError,
    ValidationError,
)
from cpc.logger import CpcLogger
from cpc.models.command import Command
from cpc.models.results import ExecutionResult
from cpc.services.context_service import ContextStore


class TofuService:
    """
    Manages OpenTofu operations with clean interfaces.

    Responsibilities:
    - Workspace management (list/show/select/delete)
    - plan/apply/destroy/refresh with the workspace tfvars file
    - Output queries
    """

    def __init__(
        self,
        store: ContextStore,
        timeouts: TimeoutEngine,
        logger: CpcLogger,
        env: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize OpenTofu service.

        Args:
            store: Context store (repository root)
            timeouts: Timeout engine wrapping every tofu call
            logger: Logger
            env: Extra environment (TF_VAR_* overrides) for every call
        """
        self.store = store
        self.timeouts = timeouts
        self.logger = logger
        self.env = dict(env or {})

    @property
    def terraform_dir(self) -> Path:
        return self.store.get_repo_path() / TERRAFORM_DIRNAME

    def var_file(self, workspace: str) -> Path:
        """tfvars path relative to the tofu root."""
        return Path(TFVARS_DIRNAME) / f"{workspace}.tfvars"

    def _run(self, args: Sequence[str], check: bool = True, capture: bool = True) -> ExecutionResult:
        """
        Run a tofu command.

        Args:
            args: Arguments after 'tofu'
            check: Raise on a non-zero exit code
            capture: Capture output (False streams it to the terminal)

        Returns:
            ExecutionResult

        Raises:
            OperationTimeoutError: If the deadline passes and check=True
            ExecutionError: If the command fails and check=True
        """
        command = Command("tofu", args, cwd=self.terraform_dir, env=self.env)
        result = self.timeouts.terraform(command, f"tofu {' '.join(args[:2])}", capture=capture)

        if result.returncode == COMMAND_NOT_FOUND_EXIT_CODE:
            raise DependencyError("Required tool 'tofu' not found in PATH", context="Install OpenTofu")
        if check and result.timed_out:
            raise OperationTimeoutError(f"OpenTofu command timed out: {command.display()}")
        if check and result.is_failure:
            raise ExecutionError(
                f"OpenTofu command failed: {command.display()}",
                context=f"Exit code: {result.returncode}\nError: {result.stderr.strip()[-500:]}",
            )
        return result

    def list_workspaces(self) -> List[str]:
        """All tofu workspaces (including 'default')."""
        result = self._run(["workspace", "list"])
        workspaces = []
        for line in result.stdout.splitlines():
            name = line.replace("*", "").strip()
            if name:
                workspaces.append(name)
        return workspaces

    def select_workspace(self, name: str, create: bool = False) -> ExecutionResult:
        """
        Select a workspace.

        Raises:
            ExecutionError: If it does not exist and create=False
        """
        if create:
            return self._run(["workspace", "select", "-or-create", name])
        return self._run(["workspace", "select", name])

    def delete_workspace(self, name: str) -> ExecutionResult:
        return self._run(["workspace", "delete", name])

    def output_json(self, name: Optional[str] = None) -> Any:
        """
        Decoded `tofu output -json [name]`.

        Raises:
            ValidationError: If the output is not valid JSON
        """
        args = ["output", "-json"]
        if name:
            args.append(name)
        stdout = self._run(args).stdout.strip()
        if not stdout:
            return None
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as e:
            label = f"OpenTofu output '{name}'" if name else "OpenTofu output"
            raise ValidationError(f"{label} is not valid JSON", context=str(e))

    def run_subcommand(
        self,
        subcommand: str,
        workspace: str,
        extra_args: Sequence[str] = (),
        check: bool = True,
    ) -> ExecutionResult:
        """
        Run a deploy subcommand in the current workspace, streaming output.

        plan/apply/destroy/refresh get `-var-file environments/<ws>.tfvars`
        when that file exists.
        """
        args = [subcommand]
        if subcommand in TOFU_VAR_FILE_COMMANDS:
            if (self.terraform_dir / self.var_file(workspace)).exists():
                args.extend(["-var-file", str(self.var_file(workspace))])
            else:
                self.logger.debug(f"No tfvars file for workspace '{workspace}'")
        args.extend(extra_args)
        return self._run(args, check=check, capture=False)
