"""CPC CLI - Workspace and context management"""

import os
import shlex
import shutil
from pathlib import Path
from typing import Optional

import click

from cpc.base import BaseCommand, WorkspaceCommand
from cpc.constants import AUTO_EXPORT_KEYS, SAFE_CONTEXT
from cpc.core.validators import validate_workspace_name
from cpc.exceptions import CpcError, ValidationError, WorkspaceNotFoundError
from cpc.models.errors import ErrorAction, ErrorKind, Severity
from cpc.ui_components import build_table


class ContextCommand(WorkspaceCommand):
    """Show or switch the active workspace."""

    def __init__(self, runtime, name: Optional[str] = None):
        super().__init__(runtime)
        self.name = name

    def execute(self) -> None:
        if self.name:
            old = self.switch_workspace(self.name)
            if old == self.name:
                self.logger.success(f"Cluster context is already '{self.name}'")
            else:
                self.logger.success(f"Cluster context set to '{self.name}' (was '{old}')")
            return

        self.logger.info(f"Current cluster context: {self.workspace}")
        if not self.store.has_repo_path():
            return

        try:
            workspaces = self.ensure_tofu_service().list_workspaces()
        except CpcError as e:
            self.logger.warning(f"Could not list OpenTofu workspaces: {e.message}")
            return
        self.logger.info("OpenTofu workspaces:")
        for name in workspaces:
            marker = "*" if name == self.workspace else " "
            self.logger.info(f"  {marker} {name}")


class SetupCommand(BaseCommand):
    """Record the repository root."""

    def __init__(self, runtime, path: Optional[str] = None):
        super().__init__(runtime)
        self.path = Path(path) if path else Path(os.getcwd())

    def execute(self) -> None:
        repo = self.store.set_repo_path(self.path)
        self.logger.success(f"Repository path set to {repo}")
        self.logger.info(f"Current cluster context: {self.store.get_current_context()}")


class ListWorkspacesCommand(BaseCommand):
    """Table of known workspaces."""

    def execute(self) -> None:
        current = self.store.get_current_context()
        rows = []
        for name in self.store.list_workspaces():
            has_env = self.store.has_repo_path() and self.store.env_file(name).exists()
            rows.append(("*" if name == current else "", name, "yes" if has_env else "no"))

        self.console.print(build_table("Workspaces", ["", "WORKSPACE", "ENV FILE"], rows))
        if current not in self.store.list_workspaces():
            self.logger.info(f"Current cluster context: {current}")


class CloneWorkspaceCommand(WorkspaceCommand):
    """Copy a workspace's env and tfvars files under a new name."""

    multi_step = True

    def __init__(self, runtime, source: str, target: str, release_letter: Optional[str] = None):
        super().__init__(runtime)
        self.source = source
        self.target = target
        self.release_letter = release_letter

    def execute(self) -> None:
        validate_workspace_name(self.target)
        if self.release_letter is not None and (len(self.release_letter) != 1 or not self.release_letter.isalpha()):
            raise ValidationError(f"Invalid release letter: '{self.release_letter}'", context="Expected a single letter")

        source_env = self.store.env_file(self.source)
        target_env = self.store.env_file(self.target)
        if not source_env.exists():
            raise WorkspaceNotFoundError(self.source, self.store.list_workspaces())
        if target_env.exists():
            raise ValidationError(f"Workspace '{self.target}' already exists", context=str(target_env))

        self.open_log("clone-workspace", self.source)
        self.show_header("Clone Workspace", details={"From": self.source, "To": self.target})

        release_letter = (self.release_letter or self.target[0]).lower()
        recovery = self.runtime.recovery
        recovery.checkpoint("clone_workspace_start", data={"source": self.source, "target": self.target})

        shutil.copyfile(source_env, target_env)
        self.ensure_env_service().set_value(self.target, "RELEASE_LETTER", release_letter)
        recovery.checkpoint("clone_workspace_env_copied", str(target_env))
        self.logger.success(f"Created {target_env.name} (RELEASE_LETTER={release_letter})")

        source_ctx = self.store.workspace(self.source)
        target_ctx = self.store.workspace(self.target)
        if source_ctx.tfvars_file.exists():
            shutil.copyfile(source_ctx.tfvars_file, target_ctx.tfvars_file)
            recovery.checkpoint("clone_workspace_tfvars_copied", str(target_ctx.tfvars_file))
            self.logger.success(f"Created {target_ctx.tfvars_file.name}")

        self.switch_workspace(self.target)
        recovery.checkpoint("clone_workspace_complete")
        self.logger.success(f"Workspace '{self.target}' cloned from '{self.source}' and set as current context")


class DeleteWorkspaceCommand(WorkspaceCommand):
    """Destroy a workspace's infrastructure and remove its files."""

    multi_step = True

    def __init__(self, runtime, name: str, yes: bool = False):
        super().__init__(runtime)
        self.name = name
        self.yes = yes

    def execute(self) -> None:
        context = self.store.workspace(self.name)
        if context.is_builtin:
            raise ValidationError(f"Workspace '{self.name}' is built in and cannot be deleted")
        if not context.has_env_file:
            raise WorkspaceNotFoundError(self.name, self.store.list_workspaces())

        self.show_header("Delete Workspace", workspace=self.name)
        if not self.yes and not self.confirm(
            f"Destroy all resources in '{self.name}' and delete the workspace?"
        ):
            self.logger.info("Deletion cancelled")
            return

        self.open_log("delete-workspace", self.name)
        recovery = self.runtime.recovery

        original = self.switch_workspace(self.name)
        restore = SAFE_CONTEXT if original == self.name else original
        tofu = self.ensure_tofu_service(with_secrets=True)

        result = recovery.execute(
            lambda: tofu.run_subcommand("destroy", self.name, ["-auto-approve"], check=False),
            f"destroy_{self.name}",
        )
        if result.is_failure:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"Failed to destroy resources in workspace '{self.name}'",
                Severity.CRITICAL,
                ErrorAction.ABORT,
                context="Workspace files were kept; fix the problem and retry",
            )

        self.cache.invalidate(self.name)
        self.switch_workspace(restore)
        recovery.checkpoint("delete_workspace_switched", restore)

        tofu.delete_workspace(self.name)
        recovery.checkpoint("delete_workspace_tofu_deleted", self.name)

        context.env_file.unlink(missing_ok=True)
        context.tfvars_file.unlink(missing_ok=True)
        recovery.checkpoint("delete_workspace_complete", self.name)
        self.logger.success(f"Workspace '{self.name}' deleted (current context: {restore})")


class LoadSecretsCommand(WorkspaceCommand):
    """Force a fresh decrypt and show which keys are present."""

    def execute(self) -> None:
        self.logger.info("Loading secrets...")
        bundle = self.load_secrets(force=True)
        rows = sorted(bundle.masked().items())
        self.console.print(build_table("Secrets", ["KEY", "VALUE"], rows))
        self.logger.success(f"Loaded {len(rows)} secrets")


class AutoCommand(WorkspaceCommand):
    """Print shell exports for the workspace environment and secrets."""

    def execute(self) -> None:
        values = dict(self.load_env())
        values.update(self.load_secrets().values)

        click.echo(f"export CPC_CONTEXT={shlex.quote(self.workspace)}")
        for key in AUTO_EXPORT_KEYS:
            value = values.get(key)
            if value:
                click.echo(f"export {key}={shlex.quote(value)}")


class ClearCacheCommand(WorkspaceCommand):
    """Drop cached results."""

    def __init__(self, runtime, context: Optional[str] = None):
        super().__init__(runtime)
        self.context = context

    def execute(self) -> None:
        if self.context:
            removed = self.cache.invalidate(self.context)
            self.logger.success(f"Removed {removed} cache entries for '{self.context}'")
            return

        removed = self.cache.clear_all()
        self.ensure_secret_service().discard()
        self.logger.success(f"Removed {removed} cache entries")


@click.command(name="ctx")
@click.argument("name", required=False)
@click.pass_obj
def ctx(runtime, name):
    """
    Show or set the current cluster context

    \b
    Examples:
      cpc ctx            # Show current context and OpenTofu workspaces
      cpc ctx ubuntu     # Switch to the 'ubuntu' workspace
    """
    cmd = ContextCommand(runtime, name)
    cmd.run()


@click.command(name="setup-cpc")
@click.argument("path", required=False, type=click.Path(exists=True, file_okay=False))
@click.pass_obj
def setup_cpc(runtime, path):
    """Record the repository root (default: current directory)"""
    cmd = SetupCommand(runtime, path)
    cmd.run()


@click.command(name="list-workspaces")
@click.pass_obj
def list_workspaces(runtime):
    """List available workspaces"""
    cmd = ListWorkspacesCommand(runtime)
    cmd.run()


@click.command(name="clone-workspace")
@click.argument("source")
@click.argument("target")
@click.argument("release_letter", required=False)
@click.pass_obj
def clone_workspace(runtime, source, target, release_letter):
    """
    Clone a workspace environment

    \b
    Examples:
      cpc clone-workspace ubuntu k8s133        # RELEASE_LETTER=k
      cpc clone-workspace ubuntu k8s133 x      # RELEASE_LETTER=x
    """
    cmd = CloneWorkspaceCommand(runtime, source, target, release_letter)
    cmd.run()


@click.command(name="delete-workspace")
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_obj
def delete_workspace(runtime, name, yes):
    """Destroy a workspace's resources and delete it"""
    cmd = DeleteWorkspaceCommand(runtime, name, yes=yes)
    cmd.run()


@click.command(name="load_secrets")
@click.pass_obj
def load_secrets(runtime):
    """Decrypt and load secrets (values are masked)"""
    cmd = LoadSecretsCommand(runtime)
    cmd.run()


@click.command(name="auto")
@click.pass_obj
def auto(runtime):
    """
    Print export lines for the current workspace

    \b
    Example:
      eval "$(cpc auto)"
    """
    cmd = AutoCommand(runtime)
    cmd.run()


@click.command(name="clear-cache")
@click.option("--context", "context_name", help="Only clear entries of this workspace")
@click.pass_obj
def clear_cache(runtime, context_name):
    """Clear cached cluster data"""
    cmd = ClearCacheCommand(runtime, context_name)
    cmd.run()
