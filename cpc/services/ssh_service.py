"""SSH service for executing commands on cluster nodes."""

from pathlib import Path
from typing import List, Optional

from cpc.constants import CACHE_SSH_REACHABLE, SSH_CONNECT_TIMEOUT
from cpc.core.retry import RetryEngine
from cpc.core.timeout import TimeoutEngine
from cpc.models.command import Command
from cpc.models.results import ExecutionResult
from cpc.services.cache_service import CacheService, TTLClass


class SSHService:
    """Service for SSH operations."""

    def __init__(
        self,
        user: str,
        timeouts: TimeoutEngine,
        retry: RetryEngine,
        cache: CacheService,
        connect_timeout: int = SSH_CONNECT_TIMEOUT,
    ):
        """
        Initialize SSH service.

        Args:
            user: Remote user (VM_USERNAME)
            timeouts: Timeout engine (network deadline)
            retry: Retry engine (network preset)
            cache: Cache for reachability checks
            connect_timeout: ssh ConnectTimeout in seconds
        """
        self.user = user
        self.timeouts = timeouts
        self.retry = retry
        self.cache = cache
        self.connect_timeout = connect_timeout

    def _options(self) -> List[str]:
        return [
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={self.connect_timeout}",
            "-o",
            "StrictHostKeyChecking=no",
            "-o",
            "UserKnownHostsFile=/dev/null",
            "-o",
            "LogLevel=ERROR",
        ]

    def command(self, host: str, remote_command: str) -> Command:
        return Command("ssh", [*self._options(), f"{self.user}@{host}", remote_command])

    def execute(self, host: str, remote_command: str, retry: bool = True) -> ExecutionResult:
        """
        Execute command on remote host via SSH.

        Args:
            host: Host IP or hostname
            remote_command: Command line run by the remote shell
            retry: Retry on connection-type failures

        Returns:
            ExecutionResult
        """
        command = self.command(host, remote_command)
        description = f"ssh {host}"

        def run() -> ExecutionResult:
            return self.timeouts.network(command, description)

        if retry:
            return self.retry.network_operation(run, description)
        return run()

    def is_reachable(self, host: str) -> bool:
        """SSH reachability, cached with the short TTL."""

        def check() -> bool:
            return self.timeouts.network(self.command(host, "true"), f"ssh check {host}").is_success

        return bool(self.cache.cached_call(f"{CACHE_SSH_REACHABLE}_{host}", TTLClass.SHORT, check))

    def file_exists(self, host: str, path: str) -> bool:
        return self.execute(host, f"sudo test -f {path}", retry=False).is_success

    def download(self, host: str, remote_path: str, local_path: Path, sudo_copy: Optional[str] = None) -> ExecutionResult:
        """
        Copy a remote file to the local machine with scp.

        Args:
            host: Host IP or hostname
            remote_path: File on the remote host
            local_path: Destination
            sudo_copy: If set, first copy remote_path to this readable location with sudo

        Returns:
            ExecutionResult of the scp call
        """
        source = remote_path
        if sudo_copy:
            prepared = self.execute(
                host,
                f"sudo cp {remote_path} {sudo_copy} && sudo chown {self.user} {sudo_copy}",
            )
            if prepared.is_failure:
                return prepared
            source = sudo_copy

        command = Command("scp", [*self._options(), f"{self.user}@{host}:{source}", str(local_path)])
        return self.retry.network_operation(
            lambda: self.timeouts.network(command, f"scp {host}"), f"scp {host}:{source}"
        )
