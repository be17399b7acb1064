"""CPC CLI - Cluster bootstrap and kubeconfig"""

from pathlib import Path

import click

from cpc.base import WorkspaceCommand
from cpc.constants import (
    BOOTSTRAP_PLAYBOOKS,
    CONTROL_PLANE_GROUP,
    DEFAULT_KUBECONFIG,
    KUBE_ADMIN_CONF,
    PLAYBOOK_RESET_ALL_NODES,
    PLAYBOOK_UPGRADE_K8S_CONTROL_PLANE,
)
from cpc.core.validators import validate_k8s_version
from cpc.models.errors import ErrorAction, ErrorKind, Severity
from cpc.models.options import BootstrapOptions, KubeconfigOptions, UpgradeK8sOptions
from cpc.services import PlaybookOptions
from cpc.services.kubectl_service import kubeconfig_contexts, rewrite_kubeconfig

ADMIN_CONF_STAGING = "/tmp/cpc-admin.conf"
API_SERVER_PORT = 6443


class BootstrapCommand(WorkspaceCommand):
    """Install and initialize Kubernetes on the workspace VMs."""

    multi_step = True

    def __init__(self, runtime, options: BootstrapOptions):
        super().__init__(runtime)
        self.options = options

    def execute(self) -> None:
        self.open_log("bootstrap")
        self.show_header("Bootstrap Cluster", workspace=self.workspace)
        self.errors.require_tool("ansible-playbook", "Install Ansible to bootstrap clusters")

        recovery = self.runtime.recovery
        recovery.checkpoint("bootstrap_start", data={"workspace": self.workspace})

        summary = self.cluster_summary()
        control_plane = self.control_plane(summary)
        self.logger.info(f"Control plane: {control_plane.name} ({control_plane.ip}), {len(summary.nodes)} node(s)")

        if not self.options.skip_check:
            ssh = self.ensure_ssh_service()
            if ssh.file_exists(control_plane.ip, KUBE_ADMIN_CONF) and not self.options.force:
                recovery.checkpoint("bootstrap_cluster_exists", data={"node": control_plane.ip})
                self.errors.handle(
                    ErrorKind.VALIDATION,
                    f"Kubernetes is already initialized on {control_plane.name}",
                    Severity.MEDIUM,
                    ErrorAction.ABORT,
                    context="Use --force to bootstrap anyway",
                )

        ansible = self.ensure_ansible_service()
        for playbook in BOOTSTRAP_PLAYBOOKS:
            result = recovery.ansible_operation(lambda pb=playbook: ansible.run_playbook(pb), playbook)
            if result.is_failure:
                self.errors.handle(
                    ErrorKind.EXECUTION,
                    f"Bootstrap failed at {playbook} (exit code: {result.returncode})",
                    Severity.CRITICAL,
                    ErrorAction.ABORT,
                )

        recovery.checkpoint("bootstrap_complete")
        self.logger.success(f"Cluster bootstrapped in workspace '{self.workspace}'")
        self.logger.info("Next: cpc get-kubeconfig")


class GetKubeconfigCommand(WorkspaceCommand):
    """Fetch the admin kubeconfig from the control plane and merge it locally."""

    multi_step = True

    def __init__(self, runtime, options: KubeconfigOptions):
        super().__init__(runtime)
        self.options = options

    def execute(self) -> None:
        self.errors.require_tool("kubectl", "Install kubectl to merge kubeconfig files")
        context_name = self.options.context_name or f"cluster-{self.workspace}"
        target = Path(DEFAULT_KUBECONFIG).expanduser()

        if context_name in kubeconfig_contexts(target) and not self.options.force:
            self.errors.handle(
                ErrorKind.VALIDATION,
                f"Context '{context_name}' already exists in {target}",
                Severity.MEDIUM,
                ErrorAction.ABORT,
                context="Use --force to overwrite it",
            )

        self.show_header("Get Kubeconfig", workspace=self.workspace, details={"Context": context_name})
        control_plane = self.control_plane()
        endpoint = control_plane.hostname if self.options.use_hostname and control_plane.hostname else control_plane.ip
        server = f"https://{endpoint}:{API_SERVER_PORT}"

        kubectl = self.ensure_kubectl_service()
        staging = kubectl.temp_kubeconfig()
        recovery = self.runtime.recovery
        try:
            with self.logger.progress(f"Downloading kubeconfig from {control_plane.name}"):
                result = self.ensure_ssh_service().download(
                    control_plane.ip, KUBE_ADMIN_CONF, staging, sudo_copy=ADMIN_CONF_STAGING
                )
            if result.is_failure:
                self.errors.handle(
                    ErrorKind.NETWORK,
                    f"Could not copy {KUBE_ADMIN_CONF} from {control_plane.ip}",
                    Severity.HIGH,
                    ErrorAction.ABORT,
                    context=result.stderr.strip()[-500:],
                )
            recovery.checkpoint("kubeconfig_downloaded", data={"node": control_plane.ip})

            staging.write_text(rewrite_kubeconfig(staging.read_text(), server, context_name))
            kubectl.merge_kubeconfig(staging, target)
            recovery.checkpoint("kubeconfig_merged", str(target))
        finally:
            staging.unlink(missing_ok=True)

        kubectl.use_context(target, context_name)
        self.logger.success(f"Kubeconfig merged into {target} (context '{context_name}', server {server})")


class UpgradeK8sCommand(WorkspaceCommand):
    """Upgrade the Kubernetes control plane of the active workspace."""

    multi_step = True

    def __init__(self, runtime, options: UpgradeK8sOptions):
        super().__init__(runtime)
        self.options = options

    def execute(self) -> None:
        version = self.options.target_version
        if version is not None:
            validate_k8s_version(version)

        self.show_header(
            "Upgrade Kubernetes",
            workspace=self.workspace,
            details={
                "Target version": version or "playbook default",
                "etcd backup": "skipped" if self.options.skip_etcd_backup else "yes",
            },
        )
        if not self.options.yes and not self.confirm(f"Upgrade the control plane of '{self.workspace}'?"):
            self.logger.info("Upgrade cancelled")
            return

        self.open_log("upgrade-k8s")
        recovery = self.runtime.recovery
        recovery.checkpoint("upgrade_k8s_start", data={"version": version})

        extra_vars = {"skip_etcd_backup": self.options.skip_etcd_backup}
        if version:
            extra_vars["target_k8s_version"] = version
        ansible = self.ensure_ansible_service()
        options = PlaybookOptions(limit=CONTROL_PLANE_GROUP, extra_vars=extra_vars)
        result = recovery.ansible_operation(
            lambda: ansible.run_playbook(PLAYBOOK_UPGRADE_K8S_CONTROL_PLANE, options),
            PLAYBOOK_UPGRADE_K8S_CONTROL_PLANE,
        )
        if result.is_failure:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"Control plane upgrade failed (exit code: {result.returncode})",
                Severity.CRITICAL,
                ErrorAction.ABORT,
                context="Restore from the etcd backup if the API server does not come back",
            )

        recovery.checkpoint("upgrade_k8s_complete", data={"version": version})
        self.logger.success(f"Control plane of '{self.workspace}' upgraded")
        self.logger.info("Next: cpc upgrade-node --target-hosts <worker ip> for each worker")


class ResetAllNodesCommand(WorkspaceCommand):
    """Run kubeadm reset on every node of the active workspace."""

    multi_step = True

    def __init__(self, runtime, yes: bool = False):
        super().__init__(runtime)
        self.yes = yes

    def execute(self) -> None:
        self.show_header("Reset All Nodes", workspace=self.workspace)
        if not self.yes and not self.confirm(f"Reset Kubernetes on ALL nodes in '{self.workspace}'?"):
            self.logger.info("Reset cancelled")
            return

        self.open_log("reset-all-nodes")
        recovery = self.runtime.recovery
        recovery.checkpoint("reset_all_nodes_start", data={"workspace": self.workspace})

        ansible = self.ensure_ansible_service()
        result = recovery.ansible_operation(
            lambda: ansible.run_playbook(PLAYBOOK_RESET_ALL_NODES), PLAYBOOK_RESET_ALL_NODES
        )
        self.cache.invalidate(self.workspace)
        if result.is_failure:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"Reset failed (exit code: {result.returncode})",
                Severity.CRITICAL,
                ErrorAction.ABORT,
            )

        recovery.checkpoint("reset_all_nodes_complete", data={"workspace": self.workspace})
        self.logger.success(f"Kubernetes reset on all nodes of '{self.workspace}'")
        self.logger.info("Next: cpc bootstrap")


@click.command(name="bootstrap")
@click.option("--skip-check", is_flag=True, help="Do not check for an existing cluster")
@click.option("--force", is_flag=True, help="Bootstrap even if a cluster already exists")
@click.pass_obj
def bootstrap(runtime, skip_check, force):
    """Deploy Kubernetes on the workspace VMs"""
    cmd = BootstrapCommand(runtime, BootstrapOptions(skip_check=skip_check, force=force))
    cmd.run()


@click.command(name="get-kubeconfig")
@click.option("--use-hostname/--use-ip", default=False, help="Address the API server by hostname or by IP")
@click.option("--context-name", help="kubectl context name (default: cluster-<workspace>)")
@click.option("--force", is_flag=True, help="Overwrite an existing context")
@click.pass_obj
def get_kubeconfig(runtime, use_hostname, context_name, force):
    """Fetch the cluster kubeconfig and merge it into ~/.kube/config"""
    options = KubeconfigOptions(use_hostname=use_hostname, context_name=context_name, force=force)
    cmd = GetKubeconfigCommand(runtime, options)
    cmd.run()


@click.command(name="upgrade-k8s")
@click.option("--target-version", help="Kubernetes version to upgrade to (e.g. 1.33.2)")
@click.option("--skip-etcd-backup", is_flag=True, help="Skip the etcd snapshot taken before the upgrade")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_obj
def upgrade_k8s(runtime, target_version, skip_etcd_backup, yes):
    """
    Upgrade the Kubernetes control plane

    \b
    Examples:
      cpc upgrade-k8s
      cpc upgrade-k8s --target-version 1.33.2
    """
    options = UpgradeK8sOptions(target_version=target_version, skip_etcd_backup=skip_etcd_backup, yes=yes)
    cmd = UpgradeK8sCommand(runtime, options)
    cmd.run()


@click.command(name="reset-all-nodes")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_obj
def reset_all_nodes(runtime, yes):
    """Reset Kubernetes on every node of the workspace"""
    cmd = ResetAllNodesCommand(runtime, yes=yes)
    cmd.run()
