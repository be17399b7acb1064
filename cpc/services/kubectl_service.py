"""
Kubectl Service

Cluster API queries and kubeconfig merging.
"""

import json
import os
import tempfile
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from cpc.constants import DNS_TEST_IMAGE, DNS_TEST_TIMEOUT
from cpc.core.timeout import TimeoutEngine
from cpc.exceptions import ExecutionError, ValidationError
from cpc.models.command import Command
from cpc.models.results import ExecutionResult
from cpc.utils import atomic_write_text


def rewrite_kubeconfig(text: str, server: str, name: str) -> str:
    """
    Point an admin kubeconfig at `server` and rename its cluster, user and
    context to `name` so it can be merged next to other clusters.

    Raises:
        ValidationError: If the text is not a kubeconfig
    """
    try:
        config = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValidationError("Downloaded kubeconfig is not valid YAML", context=str(e))
    if not isinstance(config, dict) or not config.get("clusters") or not config.get("contexts"):
        raise ValidationError("Downloaded file is not a kubeconfig")

    user_name = f"{name}-admin"
    for entry in config["clusters"]:
        entry["name"] = name
        entry.setdefault("cluster", {})["server"] = server
    for entry in config.get("users") or []:
        entry["name"] = user_name
    for entry in config["contexts"]:
        entry["name"] = name
        entry.setdefault("context", {}).update({"cluster": name, "user": user_name})
    config["current-context"] = name
    return yaml.safe_dump(config, default_flow_style=False, sort_keys=False)


def kubeconfig_contexts(path: Path) -> List[str]:
    """Context names in a kubeconfig file (empty if it does not exist)."""
    if not path.exists():
        return []
    try:
        config = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ValidationError(f"Kubeconfig is not valid YAML: {path}", context=str(e))
    return [entry.get("name", "") for entry in config.get("contexts") or []]


class KubectlService:
    """Thin wrapper over kubectl under the kubectl deadline."""

    def __init__(self, timeouts: TimeoutEngine, kubeconfig: Optional[Path] = None):
        self.timeouts = timeouts
        self.kubeconfig = kubeconfig

    def _command(self, args: List[str], env: Optional[Dict[str, str]] = None) -> Command:
        env = dict(env or {})
        if self.kubeconfig and "KUBECONFIG" not in env:
            env["KUBECONFIG"] = str(self.kubeconfig)
        return Command("kubectl", args, env=env)

    def run(self, args: List[str], description: str = "kubectl") -> ExecutionResult:
        return self.timeouts.kubectl(self._command(args), description)

    def get_nodes(self) -> List[Dict[str, Any]]:
        """
        Nodes as name/ready/version dicts.

        Raises:
            ExecutionError: If kubectl fails or prints something unexpected
        """
        result = self.run(["get", "nodes", "-o", "json"], "kubectl get nodes")
        if result.is_failure:
            raise ExecutionError("kubectl get nodes failed", context=result.stderr.strip()[-500:])
        try:
            items = json.loads(result.stdout).get("items", [])
        except (json.JSONDecodeError, AttributeError) as e:
            raise ExecutionError("kubectl returned invalid JSON", context=str(e))

        nodes = []
        for item in items:
            conditions = item.get("status", {}).get("conditions", [])
            ready = any(c.get("type") == "Ready" and c.get("status") == "True" for c in conditions)
            nodes.append(
                {
                    "name": item.get("metadata", {}).get("name", ""),
                    "ready": ready,
                    "version": item.get("status", {}).get("nodeInfo", {}).get("kubeletVersion", ""),
                }
            )
        return nodes

    def cluster_reachable(self) -> bool:
        return self.run(["cluster-info"], "kubectl cluster-info").is_success

    def resource_exists(self, kind: str, name: str, namespace: str) -> bool:
        return self.run(["get", kind, name, "-n", namespace], f"kubectl get {kind}/{name}").is_success

    def get_pods(self, namespace: str, selector: str) -> List[Dict[str, Any]]:
        """
        Pods matching a label selector as name/ready/phase dicts.

        Raises:
            ExecutionError: If kubectl fails or prints something unexpected
        """
        result = self.run(["get", "pods", "-n", namespace, "-l", selector, "-o", "json"], f"kubectl get pods -l {selector}")
        if result.is_failure:
            raise ExecutionError(f"kubectl get pods -l {selector} failed", context=result.stderr.strip()[-500:])
        try:
            items = json.loads(result.stdout).get("items", [])
        except (json.JSONDecodeError, AttributeError) as e:
            raise ExecutionError("kubectl returned invalid JSON", context=str(e))

        pods = []
        for item in items:
            statuses = item.get("status", {}).get("containerStatuses", [])
            pods.append(
                {
                    "name": item.get("metadata", {}).get("name", ""),
                    "ready": bool(statuses) and all(status.get("ready") for status in statuses),
                    "phase": item.get("status", {}).get("phase", ""),
                }
            )
        return pods

    def dns_lookup(self, domain: str, server: Optional[str] = None, timeout: int = DNS_TEST_TIMEOUT) -> ExecutionResult:
        """Run nslookup from a throwaway pod inside the cluster."""
        pod = f"dns-test-{uuid.uuid4().hex[:8]}"
        args = [
            "run",
            pod,
            f"--image={DNS_TEST_IMAGE}",
            "--restart=Never",
            "--rm",
            "-i",
            f"--pod-running-timeout={timeout}s",
            "--",
            "nslookup",
            domain,
        ]
        if server:
            args.append(server)
        return self.run(args, f"nslookup {domain}")

    def merge_kubeconfig(self, new_config: Path, target: Path) -> Path:
        """
        Merge `new_config` into `target` (kubectl config view --flatten).

        The original target is left untouched if the merge fails.

        Raises:
            ExecutionError: If kubectl cannot merge the files
        """
        sources = [str(new_config)]
        if target.exists():
            sources.insert(0, str(target))

        command = Command("kubectl", ["config", "view", "--flatten"], env={"KUBECONFIG": os.pathsep.join(sources)})
        result = self.timeouts.kubectl(command, "kubectl config merge")
        if result.is_failure or not result.stdout.strip():
            raise ExecutionError("Failed to merge kubeconfig", context=result.stderr.strip()[-500:])

        atomic_write_text(target, result.stdout, mode=0o600)
        return target

    def use_context(self, kubeconfig: Path, name: str) -> ExecutionResult:
        command = Command("kubectl", ["config", "use-context", name], env={"KUBECONFIG": str(kubeconfig)})
        return self.timeouts.kubectl(command, "kubectl config use-context")

    @staticmethod
    def temp_kubeconfig() -> Path:
        fd, name = tempfile.mkstemp(prefix="cpc-kubeconfig-", suffix=".yaml")
        os.close(fd)
        return Path(name)
