"""CPC CLI - Certificate and cluster DNS operations"""

from typing import Optional

import click

from cpc.base import WorkspaceCommand
from cpc.constants import (
    CLUSTER_DNS_NAME,
    CONTROL_PLANE_GROUP,
    COREDNS_LABEL,
    DEFAULT_INSPECT_CERT,
    EXTERNAL_DNS_NAME,
    EXTERNAL_DNS_SERVER,
    KUBE_CERTIFICATES,
    KUBE_PKI_DIR,
    PLAYBOOK_REGENERATE_CERTIFICATES,
)
from cpc.core.validators import validate_domain, validate_host, validate_ip_address, validate_remote_path
from cpc.exceptions import InputError
from cpc.models.cluster import CertificateStatus
from cpc.models.errors import ErrorAction, ErrorKind, Severity
from cpc.services import KubectlService, PlaybookOptions
from cpc.ui_components import build_table

KUBE_SYSTEM = "kube-system"


class CertificateCommand(WorkspaceCommand):
    """Reads the kubeadm certificates of a node over SSH."""

    def check_certificates(self, host: str) -> list[CertificateStatus]:
        ssh = self.ensure_ssh_service()
        statuses = []
        with self.logger.progress(f"Checking certificates on {host}"):
            for filename, name in KUBE_CERTIFICATES:
                path = f"{KUBE_PKI_DIR}/{filename}"
                result = ssh.execute(host, f"sudo openssl x509 -in {path} -noout -enddate -checkend 0", retry=False)
                statuses.append(
                    CertificateStatus.from_openssl(name, path, result.returncode, result.stdout, result.stderr)
                )
        return statuses

    def show_certificates(self, host: str, statuses: list[CertificateStatus]) -> None:
        rows = [(status.name, status.path, status.expires or status.error, status.status) for status in statuses]
        self.console.print(build_table(f"Certificates on {host}", ["CERTIFICATE", "PATH", "EXPIRES", "STATUS"], rows))


class ClusterDnsCommand(WorkspaceCommand):
    """Queries the cluster API with kubectl."""

    def ensure_cluster_api(self) -> KubectlService:
        self.errors.require_tool("kubectl", "Install kubectl to query the cluster")
        kubectl = self.ensure_kubectl_service()
        if not kubectl.cluster_reachable():
            self.errors.handle(
                ErrorKind.EXECUTION,
                "Cannot connect to the Kubernetes cluster",
                Severity.HIGH,
                ErrorAction.ABORT,
                context="Run: cpc get-kubeconfig",
            )
        return kubectl

    def check_lookup(self, kubectl: KubectlService, domain: str, server: Optional[str], label: str) -> bool:
        with self.logger.progress(f"Resolving {domain}"):
            result = kubectl.dns_lookup(domain, server)
        if result.is_failure:
            self.errors.handle(ErrorKind.EXECUTION, f"{label} lookup of {domain} failed", Severity.MEDIUM, ErrorAction.CONTINUE)
            return False
        self.logger.success(f"{label} working ({domain})")
        return True


class RegenerateCertificatesCommand(CertificateCommand):
    """Re-issue the control plane certificates with DNS names in their SANs."""

    multi_step = True

    def __init__(self, runtime, node: Optional[str] = None, all_control_planes: bool = False, yes: bool = False):
        super().__init__(runtime)
        self.node = node
        self.all_control_planes = all_control_planes
        self.yes = yes

    def target(self) -> str:
        if self.node and self.all_control_planes:
            raise InputError("--node and --all-control-planes cannot be combined")
        if self.node:
            return validate_host(self.node)
        if self.all_control_planes:
            return CONTROL_PLANE_GROUP
        return f"{CONTROL_PLANE_GROUP}[0]"

    def execute(self) -> None:
        target = self.target()

        self.show_header("Regenerate Certificates", workspace=self.workspace, details={"Target": target})
        self.logger.warning("The API server is unavailable while its certificates are regenerated")
        if not self.yes and not self.confirm(f"Regenerate Kubernetes certificates on {target}?"):
            self.logger.info("Certificate regeneration cancelled")
            return

        self.open_log("regenerate-certificates")
        recovery = self.runtime.recovery
        recovery.checkpoint("regenerate_certificates_start", data={"target": target})

        ansible = self.ensure_ansible_service()
        options = PlaybookOptions(limit=target)
        result = recovery.ansible_operation(
            lambda: ansible.run_playbook(PLAYBOOK_REGENERATE_CERTIFICATES, options),
            PLAYBOOK_REGENERATE_CERTIFICATES,
        )
        if result.is_failure:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"Certificate regeneration failed (exit code: {result.returncode})",
                Severity.CRITICAL,
                ErrorAction.ABORT,
                context="Check the Ansible output in the operation log",
            )
        recovery.checkpoint("regenerate_certificates_complete", data={"target": target})
        self.logger.success(f"Certificates regenerated on {target}")

        host = self.control_plane().ip
        statuses = self.check_certificates(host)
        self.show_certificates(host, statuses)
        if not all(status.valid for status in statuses):
            self.errors.handle(
                ErrorKind.EXECUTION,
                "Certificate verification failed after regeneration",
                Severity.MEDIUM,
                ErrorAction.CONTINUE,
            )
        self.logger.info("Next: cpc get-kubeconfig --force, then restart workloads that cache certificates")


class VerifyCertificatesCommand(CertificateCommand):
    """Expiry check of the kubeadm certificates on a control plane node."""

    def __init__(self, runtime, node: Optional[str] = None):
        super().__init__(runtime)
        self.node = node

    def execute(self) -> None:
        host = validate_host(self.node) if self.node else None

        self.show_header("Verify Certificates", workspace=self.workspace)
        host = host or self.control_plane().ip
        statuses = self.check_certificates(host)
        self.show_certificates(host, statuses)

        failed = [status for status in statuses if not status.valid]
        if failed:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"{len(failed)} of {len(statuses)} certificates failed verification on {host}",
                Severity.HIGH,
                ErrorAction.ABORT,
                context=", ".join(status.path for status in failed),
            )
        self.logger.success(f"All {len(statuses)} certificates on {host} are valid")
        self.logger.info("For details of one file: cpc dns-ssl inspect-cert <path>")


class InspectCertificateCommand(WorkspaceCommand):
    """Print subject, issuer, validity and SANs of one certificate."""

    def __init__(self, runtime, cert_path: str, node: Optional[str] = None):
        super().__init__(runtime)
        self.cert_path = cert_path
        self.node = node

    def execute(self) -> None:
        path = validate_remote_path(self.cert_path)
        host = validate_host(self.node) if self.node else None

        host = host or self.control_plane().ip
        result = self.ensure_ssh_service().execute(
            host,
            f"sudo openssl x509 -in {path} -noout -subject -issuer -dates -ext subjectAltName",
            retry=False,
        )
        if result.is_failure:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"Cannot read certificate {path} on {host}",
                Severity.MEDIUM,
                ErrorAction.ABORT,
                context=result.stderr.strip()[-500:],
            )
        self.show_header("Certificate", workspace=self.workspace, details={"Node": host, "Path": path})
        self.console.print(result.stdout.rstrip(), markup=False, highlight=False)


class DnsLookupCommand(ClusterDnsCommand):
    """Resolve a name from inside the cluster, then check internal and external DNS."""

    def __init__(self, runtime, domain: str, dns_server: Optional[str] = None):
        super().__init__(runtime)
        self.domain = domain
        self.dns_server = dns_server

    def execute(self) -> None:
        domain = validate_domain(self.domain)
        server = validate_ip_address(self.dns_server) if self.dns_server else None

        self.show_header(
            "Test DNS",
            workspace=self.workspace,
            details={"Domain": domain, "Server": server or "cluster default"},
        )
        kubectl = self.ensure_cluster_api()

        with self.logger.progress(f"Resolving {domain} from a test pod"):
            result = kubectl.dns_lookup(domain, server)
        if result.is_failure:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"DNS lookup of {domain} failed",
                Severity.MEDIUM,
                ErrorAction.ABORT,
                context=(result.stderr or result.stdout).strip()[-500:],
            )
        self.logger.success(f"{domain} resolved")
        self.console.print(result.stdout.rstrip(), markup=False, highlight=False)

        self.check_lookup(kubectl, CLUSTER_DNS_NAME, None, "Internal cluster DNS")
        self.check_lookup(kubectl, EXTERNAL_DNS_NAME, EXTERNAL_DNS_SERVER, "External DNS")


class CheckClusterDnsCommand(ClusterDnsCommand):
    """CoreDNS pods, service, Corefile, resolution and kube-proxy in one pass."""

    def execute(self) -> None:
        self.show_header("Cluster DNS Check", workspace=self.workspace)
        kubectl = self.ensure_cluster_api()
        problems_before = self.errors.get_count()

        pods = kubectl.get_pods(KUBE_SYSTEM, COREDNS_LABEL)
        if not pods:
            self.errors.handle(ErrorKind.EXECUTION, "CoreDNS pods not found", Severity.HIGH, ErrorAction.ABORT)
        rows = [(pod["name"], "Ready" if pod["ready"] else "NotReady", pod["phase"]) for pod in pods]
        self.console.print(build_table("CoreDNS pods", ["POD", "STATUS", "PHASE"], rows))

        ready = sum(1 for pod in pods if pod["ready"])
        if ready == len(pods):
            self.logger.success(f"All CoreDNS pods are ready ({ready}/{len(pods)})")
        else:
            self.errors.handle(
                ErrorKind.EXECUTION,
                f"Not all CoreDNS pods are ready ({ready}/{len(pods)})",
                Severity.MEDIUM,
                ErrorAction.CONTINUE,
            )

        if not kubectl.resource_exists("service", "kube-dns", KUBE_SYSTEM):
            self.errors.handle(ErrorKind.EXECUTION, "CoreDNS service not found", Severity.HIGH, ErrorAction.CONTINUE)

        corefile = kubectl.run(
            ["get", "configmap", "coredns", "-n", KUBE_SYSTEM, "-o", "jsonpath={.data.Corefile}"],
            "kubectl get configmap coredns",
        )
        if corefile.is_success and corefile.stdout.strip():
            self.logger.info("Current Corefile:")
            self.console.print(corefile.stdout.rstrip(), markup=False, highlight=False)
        else:
            self.errors.handle(
                ErrorKind.EXECUTION, "CoreDNS configuration not accessible", Severity.MEDIUM, ErrorAction.CONTINUE
            )

        self.check_lookup(kubectl, CLUSTER_DNS_NAME, None, "Internal cluster DNS")
        self.check_lookup(kubectl, EXTERNAL_DNS_NAME, EXTERNAL_DNS_SERVER, "External DNS")

        if not kubectl.resource_exists("daemonset", "kube-proxy", KUBE_SYSTEM):
            self.errors.handle(
                ErrorKind.CONFIGURATION, "kube-proxy DaemonSet not found", Severity.MEDIUM, ErrorAction.CONTINUE
            )

        problems = self.errors.get_count() - problems_before
        if problems:
            self.logger.warning(f"Cluster DNS check found {problems} problem(s)")
        else:
            self.logger.success("Cluster DNS is healthy")


@click.group(name="dns-ssl")
def dns_ssl():
    """
    Certificate and cluster DNS operations

    \b
    Examples:
      cpc dns-ssl verify-certificates
      cpc dns-ssl test-dns google.com
      cpc dns-ssl inspect-cert /etc/kubernetes/pki/apiserver.crt
    """


@dns_ssl.command(name="regenerate-certificates")
@click.option("--node", help="Inventory host to regenerate on (default: first control plane)")
@click.option("--all-control-planes", is_flag=True, help="Regenerate on every control plane node")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_obj
def regenerate_certificates(runtime, node, all_control_planes, yes):
    """Regenerate Kubernetes certificates with DNS hostname support"""
    cmd = RegenerateCertificatesCommand(runtime, node=node, all_control_planes=all_control_planes, yes=yes)
    cmd.run()


@dns_ssl.command(name="verify-certificates")
@click.option("--node", help="Node to check (default: first control plane)")
@click.pass_obj
def verify_certificates(runtime, node):
    """Check expiry of the kubeadm certificates"""
    cmd = VerifyCertificatesCommand(runtime, node=node)
    cmd.run()


@dns_ssl.command(name="inspect-cert")
@click.argument("cert_path", default=DEFAULT_INSPECT_CERT)
@click.option("--node", help="Node holding the certificate (default: first control plane)")
@click.pass_obj
def inspect_cert(runtime, cert_path, node):
    """Show subject, issuer, validity and SANs of a certificate file"""
    cmd = InspectCertificateCommand(runtime, cert_path, node=node)
    cmd.run()


@dns_ssl.command(name="test-dns")
@click.argument("domain")
@click.option("--dns-server", help="Resolve through this server instead of the cluster default")
@click.pass_obj
def test_dns(runtime, domain, dns_server):
    """Resolve a domain from a temporary pod inside the cluster"""
    cmd = DnsLookupCommand(runtime, domain, dns_server=dns_server)
    cmd.run()


@dns_ssl.command(name="check-cluster-dns")
@click.pass_obj
def check_cluster_dns(runtime):
    """Check CoreDNS pods, service, configuration and resolution"""
    cmd = CheckClusterDnsCommand(runtime)
    cmd.run()
