"""
Cluster Models

Typed view of the `cluster_summary` infrastructure output and of what
the cluster nodes report about themselves.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from cpc.constants import CONTROL_PLANE_MARKERS


@dataclass
class ClusterNode:
    """One VM from the infrastructure output."""

    name: str
    ip: str = ""
    hostname: str = ""
    vm_id: str = ""

    @property
    def is_control_plane(self) -> bool:
        lowered = self.name.lower()
        return any(marker in lowered for marker in CONTROL_PLANE_MARKERS)

    @property
    def role(self) -> str:
        return "control-plane" if self.is_control_plane else "worker"


@dataclass
class ClusterSummary:
    """Cluster summary with type-safe access."""

    nodes: list[ClusterNode] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_output(cls, data: Any) -> "ClusterSummary":
        """
        Build from `tofu output -json cluster_summary`.

        Accepts the JSON text or the decoded value, either bare or wrapped
        in a {"value": ...} envelope.

        Raises:
            ValueError: If the payload is not a node map
        """
        if isinstance(data, str):
            data = data.strip()
            if not data or data == "null":
                return cls()
            try:
                data = json.loads(data)
            except json.JSONDecodeError as e:
                raise ValueError(f"cluster summary is not valid JSON: {e}") from e

        if data is None:
            return cls()

        if not isinstance(data, dict):
            raise ValueError("cluster summary must be a JSON object")

        if isinstance(data.get("value"), dict) and set(data) <= {"value", "type", "sensitive"}:
            data = data["value"]

        nodes = []
        for name, info in sorted(data.items()):
            if not isinstance(info, dict):
                raise ValueError(f"cluster summary entry '{name}' is not an object")
            nodes.append(
                ClusterNode(
                    name=name,
                    ip=str(info.get("IP", "") or ""),
                    hostname=str(info.get("hostname", "") or ""),
                    vm_id=str(info.get("VM_ID", "") or ""),
                )
            )
        return cls(nodes=nodes, raw=data)

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def control_plane(self) -> Optional[ClusterNode]:
        """First control-plane node, if any."""
        for node in self.nodes:
            if node.is_control_plane:
                return node
        return None

    def find(self, name_or_ip: str) -> Optional[ClusterNode]:
        for node in self.nodes:
            if name_or_ip in (node.name, node.ip, node.hostname):
                return node
        return None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.raw)

    def ips(self) -> list[str]:
        return [node.ip for node in self.nodes if node.ip]

    def host_names(self) -> list[str]:
        """FQDNs plus their short forms, sorted and without duplicates."""
        names = set()
        for node in self.nodes:
            if node.hostname:
                names.add(node.hostname)
                names.add(node.hostname.split(".")[0])
        return sorted(names)


@dataclass
class CertificateStatus:
    """Expiry check of one certificate file on a node."""

    name: str
    path: str
    expires: str = ""
    valid: bool = False
    error: str = ""

    @classmethod
    def from_openssl(cls, name: str, path: str, returncode: int, stdout: str, stderr: str = "") -> "CertificateStatus":
        """
        Parse `openssl x509 -noout -enddate -checkend 0`.

        A missing notAfter line means the file could not be read; otherwise
        a non-zero exit status means the certificate has expired.
        """
        for line in stdout.splitlines():
            if line.startswith("notAfter="):
                return cls(name, path, expires=line.split("=", 1)[1].strip(), valid=returncode == 0)
        return cls(name, path, error=stderr.strip() or "certificate not readable")

    @property
    def status(self) -> str:
        if self.error:
            return "unreadable"
        return "valid" if self.valid else "expired"
