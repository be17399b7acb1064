"""CPC CLI - Cluster status and info"""

import json
from pathlib import Path

import click

from cpc.base import WorkspaceCommand
from cpc.constants import DEFAULT_KUBECONFIG
from cpc.exceptions import CpcError
from cpc.models.cluster import ClusterSummary
from cpc.models.options import StatusOptions
from cpc.ui_components import build_table

NODE_COLUMNS = ["NODE", "IP", "HOSTNAME", "VM ID", "ROLE"]


def node_rows(summary: ClusterSummary) -> list:
    return [(node.name, node.ip, node.hostname, node.vm_id, node.role) for node in summary.nodes]


class ClusterInfoCommand(WorkspaceCommand):
    """Nodes of the active workspace, from the infrastructure output."""

    def __init__(self, runtime, options: StatusOptions):
        super().__init__(runtime)
        self.options = options

    def execute(self) -> None:
        summary = self.cluster_summary(quick=self.options.quick)

        if self.options.output_format == "json":
            click.echo(json.dumps(summary.to_dict(), indent=2, sort_keys=True))
            return

        if summary.is_empty:
            self.logger.warning(f"No VMs found in workspace '{self.workspace}'")
            return
        self.console.print(build_table(f"Cluster: {self.workspace}", NODE_COLUMNS, node_rows(summary)))


class StatusCommand(WorkspaceCommand):
    """Workspace configuration, VMs, reachability and Kubernetes nodes."""

    def __init__(self, runtime, options: StatusOptions):
        super().__init__(runtime)
        self.options = options

    def execute(self) -> None:
        self.show_header("Cluster Status", workspace=self.workspace, details={"Mode": "quick" if self.options.quick else "full"})
        self.show_local_checks()

        summary = self.cluster_summary(quick=self.options.quick)
        if summary.is_empty:
            self.logger.warning(f"No VMs found in workspace '{self.workspace}'")
            return
        self.console.print(build_table("VMs", NODE_COLUMNS, node_rows(summary)))

        if self.options.quick:
            return

        self.show_reachability(summary)
        self.show_kubernetes_nodes()

    def show_local_checks(self) -> None:
        rows = []
        configured = self.store.has_repo_path()
        rows.append(("Repository", "configured" if configured else "not configured"))
        if configured:
            env_file = self.store.workspace(self.workspace).env_file
            rows.append(("Environment file", "found" if env_file.exists() else f"missing ({env_file.name})"))
        kubeconfig = Path(DEFAULT_KUBECONFIG).expanduser()
        rows.append(("Kubeconfig", "found" if kubeconfig.exists() else "missing"))
        self.console.print(build_table("Local", ["CHECK", "STATUS"], rows))

    def show_reachability(self, summary: ClusterSummary) -> None:
        ssh = self.ensure_ssh_service()
        rows = []
        with self.logger.progress("Checking SSH connectivity"):
            for node in summary.nodes:
                reachable = bool(node.ip) and ssh.is_reachable(node.ip)
                rows.append((node.name, node.ip, "reachable" if reachable else "unreachable"))
        self.console.print(build_table("SSH", ["NODE", "IP", "STATUS"], rows))

    def show_kubernetes_nodes(self) -> None:
        try:
            nodes = self.ensure_kubectl_service().get_nodes()
        except CpcError as e:
            self.logger.warning(f"Kubernetes API not available: {e.message}")
            return
        rows = [(node["name"], "Ready" if node["ready"] else "NotReady", node["version"]) for node in nodes]
        self.console.print(build_table("Kubernetes", ["NODE", "STATUS", "VERSION"], rows))


@click.command(name="status")
@click.option("--quick", is_flag=True, help="Only use cached data and local checks")
@click.pass_obj
def status(runtime, quick):
    """
    Show cluster status

    \b
    Examples:
      cpc status           # VMs, SSH reachability, Kubernetes nodes
      cpc status --quick   # Cached data only, no remote calls
    """
    cmd = StatusCommand(runtime, StatusOptions(quick=quick))
    cmd.run()


@click.command(name="cluster-info")
@click.option("--quick", is_flag=True, help="Only use cached data")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
    help="Output format",
)
@click.pass_obj
def cluster_info(runtime, quick, output_format):
    """Show the workspace VMs (cached for the long TTL)"""
    cmd = ClusterInfoCommand(runtime, StatusOptions(quick=quick, output_format=output_format))
    cmd.run()
