"""CPC CLI - OpenTofu infrastructure commands"""

import click

from cpc.base import WorkspaceCommand
from cpc.constants import TOFU_DEPLOY_COMMANDS, TOFU_MUTATING_COMMANDS
from cpc.exceptions import ValidationError
from cpc.models.errors import ErrorAction, ErrorKind, Severity
from cpc.models.options import DeployOptions


class DeployCommand(WorkspaceCommand):
    """Run an OpenTofu subcommand in the active workspace."""

    def __init__(self, runtime, options: DeployOptions):
        super().__init__(runtime)
        self.options = options

    @property
    def multi_step(self) -> bool:
        return self.options.subcommand in TOFU_MUTATING_COMMANDS

    def execute(self) -> None:
        subcommand = self.options.subcommand
        if subcommand not in TOFU_DEPLOY_COMMANDS:
            raise ValidationError(
                f"Unsupported deploy subcommand: '{subcommand}'",
                context=f"Available: {', '.join(TOFU_DEPLOY_COMMANDS)}",
            )

        workspace = self.workspace
        self.open_log(f"deploy-{subcommand}")
        self.show_header("Deploy", subtitle=f"tofu {subcommand}", workspace=workspace)

        tofu = self.ensure_tofu_service(with_secrets=True)
        tofu.select_workspace(workspace)

        def run():
            return tofu.run_subcommand(subcommand, workspace, self.options.extra_args, check=False)

        if self.multi_step:
            result = self.runtime.recovery.execute(run, f"tofu_{subcommand}_{workspace}")
        else:
            result = run()

        if subcommand in TOFU_MUTATING_COMMANDS:
            # Infrastructure may have changed even when the command failed half way
            self.cache.invalidate(workspace)

        if result.is_failure:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"tofu {subcommand} failed (exit code: {result.returncode})",
                Severity.HIGH,
                ErrorAction.ABORT,
                context=f"Workspace: {workspace}",
            )
        self.logger.success(f"tofu {subcommand} completed for workspace '{workspace}'")


@click.command(
    name="deploy",
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
)
@click.argument("subcommand")
@click.argument("extra_args", nargs=-1, type=click.UNPROCESSED)
@click.pass_obj
def deploy(runtime, subcommand, extra_args):
    """
    Run OpenTofu in the current workspace

    \b
    Examples:
      cpc deploy plan
      cpc deploy apply -auto-approve
      cpc deploy output cluster_summary
    """
    cmd = DeployCommand(runtime, DeployOptions(subcommand=subcommand, extra_args=tuple(extra_args)))
    cmd.run()
