"""CPC CLI - Local SSH housekeeping for cluster VMs"""

import os
import re
import shutil
import signal
import stat
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import click

from cpc.base import WorkspaceCommand
from cpc.constants import CACHE_CLUSTER_SUMMARY, DEFAULT_CONTEXT, KNOWN_HOSTS_FILE, SSH_CONTROL_SOCKET_DIRS
from cpc.exceptions import CpcError
from cpc.models.cluster import ClusterSummary
from cpc.models.command import Command
from cpc.models.options import SSHCleanupOptions
from cpc.services import TofuService
from cpc.ui_components import build_table

SSH_PROGRAMS = ("ssh",)


def mentions(text: str, host: str) -> bool:
    """True if `host` appears in `text` as a whole address, not as a prefix of a longer one."""
    return re.search(rf"(?<![\w.]){re.escape(host)}(?![\w.])", text) is not None


def known_hosts_entries(text: str, host: str) -> List[Tuple[int, str]]:
    """(line number, line) of every plain-text known_hosts entry for `host`."""
    entries = []
    for number, line in enumerate(text.splitlines(), 1):
        fields = line.split()
        if not fields or line.startswith("#"):
            continue
        names = [name.split("]")[0].lstrip("[") for name in fields[0].split(",")]
        if host in names:
            entries.append((number, line))
    return entries


class SSHCleanupCommand(WorkspaceCommand):
    """
    Base for the local SSH cleanup commands.

    Collects the VM addresses of the active workspace, or of every
    workspace OpenTofu knows about with --all.
    """

    title = ""

    def __init__(self, runtime, options: SSHCleanupOptions):
        super().__init__(runtime)
        self.options = options

    def collect_summaries(self) -> List[ClusterSummary]:
        if not self.options.all_workspaces:
            return [self.cluster_summary()]

        tofu = self.ensure_tofu_service()
        summaries = []
        try:
            for name in tofu.list_workspaces():
                if name == DEFAULT_CONTEXT:
                    continue
                summary = self._read_summary(tofu, name)
                if summary is None or summary.is_empty:
                    self.logger.warning(f"No VMs found in workspace '{name}'")
                    continue
                self.logger.info(f"Workspace '{name}': {', '.join(summary.ips())}")
                summaries.append(summary)
        finally:
            tofu.select_workspace(self.workspace)
        return summaries

    def _read_summary(self, tofu: TofuService, name: str) -> Optional[ClusterSummary]:
        try:
            tofu.select_workspace(name)
            return ClusterSummary.from_output(tofu.output_json(CACHE_CLUSTER_SUMMARY))
        except CpcError as e:
            self.logger.debug(f"Cluster summary of '{name}' not available: {e.message}")
        except ValueError as e:
            self.logger.debug(f"Cluster summary of '{name}' is malformed: {e}")
        return None

    def collect_hosts(self) -> List[str]:
        """IP addresses first, then host names, without duplicates."""
        summaries = self.collect_summaries()
        ips = sorted({ip for summary in summaries for ip in summary.ips()})
        names = sorted({name for summary in summaries for name in summary.host_names()})
        return ips + [name for name in names if name not in ips]

    def execute(self) -> None:
        hosts = self.collect_hosts()
        if not hosts:
            self.logger.warning("No VM addresses found; nothing to clear")
            self.logger.info("Make sure the VMs are deployed: cpc deploy apply")
            return

        scope = "all workspaces" if self.options.all_workspaces else self.workspace
        self.show_header(self.title, workspace=scope, details={"Hosts": ", ".join(hosts)})
        self.clear(hosts)

    def clear(self, hosts: List[str]) -> None:
        raise NotImplementedError


class ClearSSHHostsCommand(SSHCleanupCommand):
    """Remove cluster VMs from ~/.ssh/known_hosts after they were recreated."""

    title = "Clear SSH Known Hosts"

    def execute(self) -> None:
        if not Path(KNOWN_HOSTS_FILE).expanduser().exists():
            self.logger.warning(f"No {KNOWN_HOSTS_FILE} file found; nothing to clear")
            return
        super().execute()

    def clear(self, hosts: List[str]) -> None:
        known_hosts = Path(KNOWN_HOSTS_FILE).expanduser()

        if self.options.dry_run:
            text = known_hosts.read_text()
            rows = [
                (host, str(number), line.split()[1] if len(line.split()) > 1 else "")
                for host in hosts
                for number, line in known_hosts_entries(text, host)
            ]
            if rows:
                self.console.print(build_table("Entries that would be removed", ["HOST", "LINE", "KEY TYPE"], rows))
            else:
                self.logger.info("No plain-text entries found (hashed entries are only matched by ssh-keygen)")
            self.logger.info("Run without --dry-run to remove them")
            return

        self.errors.require_tool("ssh-keygen", "Install the OpenSSH client tools")
        backup = known_hosts.with_name(f"{known_hosts.name}.backup.{datetime.now():%Y%m%d_%H%M%S}")
        shutil.copy2(known_hosts, backup)
        self.logger.debug(f"Created backup: {backup}")

        removed = 0
        for host in hosts:
            command = Command("ssh-keygen", ["-R", host, "-f", str(known_hosts)])
            result = self.runtime.timeouts.execute(command, description=f"ssh-keygen -R {host}")
            if result.is_success and "found: line" in result.stdout + result.stderr:
                self.logger.success(f"Removed entries for {host}")
                removed += 1

        if removed:
            self.logger.success(f"Removed known_hosts entries for {removed} host(s)")
            self.logger.info(f"Backup saved to: {backup}")
        else:
            backup.unlink(missing_ok=True)
            self.logger.warning("No known_hosts entries were removed")


class ClearSSHMapsCommand(SSHCleanupCommand):
    """Stop SSH sessions to cluster VMs and remove their control sockets."""

    title = "Clear SSH Connections"

    def ssh_processes(self, hosts: List[str]) -> List[Tuple[int, str]]:
        """(pid, command line) of local ssh clients talking to any of `hosts`."""
        result = self.runtime.timeouts.execute(Command("ps", ["-eo", "pid=,args="]), description="ps")
        if result.is_failure:
            self.logger.warning("Could not list processes; skipping SSH sessions")
            return []

        processes = []
        own_pid = os.getpid()
        for line in result.stdout.splitlines():
            parts = line.strip().split(None, 1)
            if len(parts) != 2 or not parts[0].isdigit():
                continue
            pid, args = int(parts[0]), parts[1]
            if pid == own_pid or os.path.basename(args.split()[0]) not in SSH_PROGRAMS:
                continue
            if any(mentions(args, host) for host in hosts):
                processes.append((pid, args))
        return processes

    def control_sockets(self, hosts: List[str]) -> List[Path]:
        sockets = []
        for directory in SSH_CONTROL_SOCKET_DIRS:
            path = Path(directory).expanduser()
            if not path.is_dir():
                continue
            for entry in sorted(path.iterdir()):
                if any(mentions(entry.name, host) for host in hosts) and stat.S_ISSOCK(entry.lstat().st_mode):
                    sockets.append(entry)
        return sockets

    def clear(self, hosts: List[str]) -> None:
        processes = self.ssh_processes(hosts)
        sockets = self.control_sockets(hosts)
        if not processes and not sockets:
            self.logger.info("No SSH sessions or control sockets found for the cluster VMs")
            return

        if self.options.dry_run:
            for pid, args in processes:
                self.logger.warning(f"Would stop SSH process {pid}: {args}")
            for socket in sockets:
                self.logger.warning(f"Would remove control socket {socket}")
            self.logger.info("Run without --dry-run to clear them")
            return

        stopped = 0
        for pid, args in processes:
            try:
                os.kill(pid, signal.SIGTERM)
            except ProcessLookupError:
                continue
            except PermissionError:
                self.logger.warning(f"Not allowed to stop SSH process {pid}")
                continue
            self.logger.success(f"Stopped SSH process {pid}: {args}")
            stopped += 1

        for socket in sockets:
            socket.unlink(missing_ok=True)
            self.logger.success(f"Removed control socket {socket}")

        self.logger.success(f"Stopped {stopped} SSH process(es), removed {len(sockets)} control socket(s)")


def cleanup_options(func):
    func = click.option("--dry-run", is_flag=True, help="Show what would be cleared without changing anything")(func)
    func = click.option("--all", "all_workspaces", is_flag=True, help="Include the VMs of every workspace")(func)
    return func


@click.command(name="clear-ssh-hosts")
@cleanup_options
@click.pass_obj
def clear_ssh_hosts(runtime, all_workspaces, dry_run):
    """
    Remove cluster VMs from ~/.ssh/known_hosts

    \b
    Use after VMs were recreated with the same addresses but new host keys.
    Examples:
      cpc clear-ssh-hosts --dry-run
      cpc clear-ssh-hosts --all
    """
    cmd = ClearSSHHostsCommand(runtime, SSHCleanupOptions(all_workspaces=all_workspaces, dry_run=dry_run))
    cmd.run()


@click.command(name="clear-ssh-maps")
@cleanup_options
@click.pass_obj
def clear_ssh_maps(runtime, all_workspaces, dry_run):
    """Stop SSH sessions to cluster VMs and remove their control sockets"""
    cmd = ClearSSHMapsCommand(runtime, SSHCleanupOptions(all_workspaces=all_workspaces, dry_run=dry_run))
    cmd.run()
