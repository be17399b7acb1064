"""
Command Option Models

Option structs built once at the click boundary and passed down as data.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class NodeOptions:
    """Options shared by the node lifecycle commands."""

    target_hosts: str
    node_type: str = "worker"
    force: bool = False
    delete_emptydir_data: bool = False
    skip_drain: bool = False
    k8s_version: Optional[str] = None

    @property
    def hosts(self) -> list[str]:
        """Raw comma separated hosts, stripped (not yet validated)."""
        return [host.strip() for host in self.target_hosts.split(",") if host.strip()]


@dataclass
class KubeconfigOptions:
    use_hostname: bool = False
    context_name: Optional[str] = None
    force: bool = False


@dataclass
class BootstrapOptions:
    skip_check: bool = False
    force: bool = False


@dataclass
class AddonOptions:
    addon: Optional[str] = None
    version: Optional[str] = None
    yes: bool = False


@dataclass
class CorednsOptions:
    dns_server: Optional[str] = None
    domains: Optional[str] = None
    yes: bool = False


@dataclass
class DeployOptions:
    subcommand: str
    extra_args: tuple[str, ...] = ()


@dataclass
class StatusOptions:
    quick: bool = False
    output_format: str = "table"


@dataclass
class UpgradeK8sOptions:
    target_version: Optional[str] = None
    skip_etcd_backup: bool = False
    yes: bool = False


@dataclass
class SSHCleanupOptions:
    """Options shared by clear-ssh-hosts and clear-ssh-maps."""

    all_workspaces: bool = False
    dry_run: bool = False
