"""CPC CLI - Node lifecycle commands"""

from typing import Any, Dict

import click

from cpc.base import WorkspaceCommand
from cpc.constants import (
    NODE_TYPES,
    PLAYBOOK_ADD_NODES,
    PLAYBOOK_DELETE_NODE,
    PLAYBOOK_DRAIN_NODE,
    PLAYBOOK_PREPARE_NODE,
    PLAYBOOK_RESET_NODE,
    PLAYBOOK_UPGRADE_NODE,
)
from cpc.core.validators import validate_target_hosts
from cpc.models.errors import ErrorAction, ErrorKind, Severity
from cpc.models.options import NodeOptions
from cpc.services import PlaybookOptions


class NodeCommand(WorkspaceCommand):
    """
    Runs one node playbook against --target-hosts.

    Subclasses set the playbook and operation name and may add extra
    variables or ask for confirmation.
    """

    multi_step = True
    operation: str = ""
    title: str = ""
    playbook: str = ""
    destructive: bool = False
    invalidates_cache: bool = False
    retry: bool = False

    def __init__(self, runtime, options: NodeOptions):
        super().__init__(runtime)
        self.options = options

    def extra_vars(self, hosts: list) -> Dict[str, Any]:
        return {"target_hosts": ",".join(hosts), "node_type": self.options.node_type}

    def execute(self) -> None:
        hosts = validate_target_hosts(self.options.hosts)

        self.show_header(self.title, workspace=self.workspace, details={"Hosts": ", ".join(hosts)})
        if self.destructive and not self.options.force:
            if not self.confirm(f"{self.title} on {', '.join(hosts)}?"):
                self.logger.info("Operation cancelled")
                return

        self.open_log(self.operation)
        recovery = self.runtime.recovery
        recovery.checkpoint(f"{self.operation}_start", data={"hosts": hosts})

        ansible = self.ensure_ansible_service()
        options = PlaybookOptions(limit=",".join(hosts), extra_vars=self.extra_vars(hosts), retry=self.retry)
        result = recovery.ansible_operation(lambda: ansible.run_playbook(self.playbook, options), self.playbook)

        if self.invalidates_cache:
            self.cache.invalidate(self.workspace)

        if result.is_failure:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"{self.title} failed (exit code: {result.returncode})",
                Severity.HIGH,
                ErrorAction.ABORT,
                context=f"Hosts: {', '.join(hosts)}",
            )

        recovery.checkpoint(f"{self.operation}_complete", data={"hosts": hosts})
        self.logger.success(f"{self.title} completed for {', '.join(hosts)}")


class AddNodesCommand(NodeCommand):
    operation = "add_nodes"
    title = "Add Nodes"
    playbook = PLAYBOOK_ADD_NODES
    invalidates_cache = True


class RemoveNodesCommand(NodeCommand):
    operation = "remove_nodes"
    title = "Remove Nodes"
    playbook = PLAYBOOK_DELETE_NODE
    destructive = True
    invalidates_cache = True


class DrainNodeCommand(NodeCommand):
    operation = "drain_node"
    title = "Drain Node"
    playbook = PLAYBOOK_DRAIN_NODE

    def extra_vars(self, hosts: list) -> Dict[str, Any]:
        extra = super().extra_vars(hosts)
        extra["force_drain"] = self.options.force
        extra["delete_emptydir_data"] = self.options.delete_emptydir_data
        return extra


class UpgradeNodeCommand(NodeCommand):
    operation = "upgrade_node"
    title = "Upgrade Node"
    playbook = PLAYBOOK_UPGRADE_NODE

    def extra_vars(self, hosts: list) -> Dict[str, Any]:
        extra = super().extra_vars(hosts)
        extra["skip_drain"] = self.options.skip_drain
        if self.options.k8s_version:
            extra["target_k8s_version"] = self.options.k8s_version
        return extra


class ResetNodeCommand(NodeCommand):
    operation = "reset_node"
    title = "Reset Node"
    playbook = PLAYBOOK_RESET_NODE
    destructive = True
    invalidates_cache = True


class PrepareNodeCommand(NodeCommand):
    operation = "prepare_node"
    title = "Prepare Node"
    playbook = PLAYBOOK_PREPARE_NODE
    retry = True


def target_hosts_option(func):
    func = click.option(
        "--node-type",
        type=click.Choice(NODE_TYPES),
        default="worker",
        show_default=True,
        help="Node role",
    )(func)
    return click.option(
        "--target-hosts",
        required=True,
        help="Comma separated node IP addresses",
    )(func)


@click.command(name="add-nodes")
@target_hosts_option
@click.pass_obj
def add_nodes(runtime, target_hosts, node_type):
    """Join new nodes to the cluster"""
    cmd = AddNodesCommand(runtime, NodeOptions(target_hosts=target_hosts, node_type=node_type))
    cmd.run()


@click.command(name="remove-nodes")
@target_hosts_option
@click.option("--force", is_flag=True, help="Skip confirmation")
@click.pass_obj
def remove_nodes(runtime, target_hosts, node_type, force):
    """Drain and remove nodes from the cluster"""
    cmd = RemoveNodesCommand(runtime, NodeOptions(target_hosts=target_hosts, node_type=node_type, force=force))
    cmd.run()


@click.command(name="drain-node")
@target_hosts_option
@click.option("--force", is_flag=True, help="Force drain (pods without controllers)")
@click.option("--delete-emptydir-data", is_flag=True, help="Delete pods using emptyDir volumes")
@click.pass_obj
def drain_node(runtime, target_hosts, node_type, force, delete_emptydir_data):
    """Evict workloads from nodes"""
    options = NodeOptions(
        target_hosts=target_hosts,
        node_type=node_type,
        force=force,
        delete_emptydir_data=delete_emptydir_data,
    )
    cmd = DrainNodeCommand(runtime, options)
    cmd.run()


@click.command(name="upgrade-node")
@target_hosts_option
@click.option("--k8s-version", help="Target Kubernetes version (default: workspace version)")
@click.option("--skip-drain", is_flag=True, help="Upgrade without draining first")
@click.pass_obj
def upgrade_node(runtime, target_hosts, node_type, k8s_version, skip_drain):
    """Upgrade Kubernetes components on nodes"""
    options = NodeOptions(
        target_hosts=target_hosts,
        node_type=node_type,
        k8s_version=k8s_version,
        skip_drain=skip_drain,
    )
    cmd = UpgradeNodeCommand(runtime, options)
    cmd.run()


@click.command(name="reset-node")
@target_hosts_option
@click.option("--force", is_flag=True, help="Skip confirmation")
@click.pass_obj
def reset_node(runtime, target_hosts, node_type, force):
    """Reset Kubernetes state on nodes (kubeadm reset)"""
    cmd = ResetNodeCommand(runtime, NodeOptions(target_hosts=target_hosts, node_type=node_type, force=force))
    cmd.run()


@click.command(name="prepare-node")
@target_hosts_option
@click.pass_obj
def prepare_node(runtime, target_hosts, node_type):
    """Install Kubernetes prerequisites on nodes"""
    cmd = PrepareNodeCommand(runtime, NodeOptions(target_hosts=target_hosts, node_type=node_type))
    cmd.run()
