"""End-to-end command tests through the click entry point."""

import json
import signal

import pytest
from click.testing import CliRunner

from cpc.main import cli
from cpc.models.results import ExecutionResult

from tests.conftest import CLUSTER_SUMMARY, write_cache_entry


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def invoke(cli_runner, runtime):
    def _invoke(*args, **kwargs):
        return cli_runner.invoke(cli, list(args), obj=runtime, **kwargs)

    return _invoke


@pytest.fixture
def ubuntu(configured_runtime):
    configured_runtime.store.set_context("ubuntu")
    return configured_runtime


# Routing


def test_unknown_command(invoke, fake_runner):
    result = invoke("bogus")

    assert result.exit_code != 0
    assert "Unknown command: bogus" in result.output
    assert fake_runner.calls == []


@pytest.mark.parametrize("flag", ["--help", "-h"])
def test_help_has_no_side_effects(cli_runner, settings, flag):
    result = cli_runner.invoke(cli, [flag])

    assert result.exit_code == 0
    assert "add-nodes" in result.output
    assert not settings.cache_dir.exists()
    assert not settings.context_file.exists()


def test_subcommand_help(invoke, settings):
    result = invoke("status", "--help")

    assert result.exit_code == 0
    assert "--quick" in result.output
    assert not settings.cache_dir.exists()


def test_version(cli_runner):
    result = cli_runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "1.0.0" in result.output


@pytest.mark.parametrize("args", [["-d", "list-workspaces"], ["list-workspaces", "-d"], ["list-workspaces", "--debug"]])
def test_debug_flag_anywhere(invoke, runtime, args):
    result = invoke(*args)

    assert result.exit_code == 0
    assert runtime.settings.debug


def test_debug_flag_after_double_dash_is_passed_through(invoke, ubuntu, fake_runner):
    result = invoke("deploy", "plan", "--", "-d")

    assert result.exit_code == 0, result.output
    assert not ubuntu.settings.debug
    plan = fake_runner.calls[-1]
    assert plan.args[0] == "plan"
    assert plan.args[-1] == "-d"


# Validation before side effects


def test_add_nodes_rejects_bad_ip(invoke, configured_runtime, fake_runner):
    result = invoke("add-nodes", "--target-hosts", "10.0.0.5,not-an-ip")

    assert result.exit_code == 105
    assert "Invalid IP address" in result.output
    assert fake_runner.calls == []


def test_upgrade_unknown_addon(invoke, configured_runtime, fake_runner, settings):
    result = invoke("upgrade-addons", "nonexistent", "--yes")

    assert result.exit_code == 105
    assert "nonexistent" in result.output
    assert fake_runner.calls == []
    assert "addon_validation_failed" in configured_runtime.recovery.checkpoint_names()
    reports = list(settings.reports_dir.glob("recovery_*.txt"))
    assert len(reports) == 1
    assert "addon_validation_failed" in reports[0].read_text()


def test_deploy_unsupported_subcommand(invoke, configured_runtime, fake_runner):
    result = invoke("deploy", "bogus")

    assert result.exit_code == 105
    assert fake_runner.calls == []


def test_command_without_repository(invoke, fake_runner):
    result = invoke("upgrade-addons", "metallb", "--yes")

    assert result.exit_code == 102
    assert "cpc setup-cpc" in result.output
    assert fake_runner.calls == []


# Cached status


def test_quick_status_uses_fresh_cache_only(invoke, ubuntu, settings, fake_runner):
    write_cache_entry(settings, "ubuntu", "cluster_summary", CLUSTER_SUMMARY, age=10)

    result = invoke("status", "--quick")

    assert result.exit_code == 0, result.output
    assert "ubuntu-controlplane1" in result.output
    assert "10.10.10.21" in result.output
    assert fake_runner.calls == []


def test_quick_status_without_cache(invoke, ubuntu, fake_runner):
    result = invoke("status", "--quick")

    assert result.exit_code == 106
    assert "No cached cluster data available" in result.output
    assert fake_runner.calls == []


def test_quick_status_with_stale_cache(invoke, ubuntu, settings, fake_runner):
    write_cache_entry(settings, "ubuntu", "cluster_summary", CLUSTER_SUMMARY, age=301)

    assert invoke("status", "--quick").exit_code == 106
    assert fake_runner.calls == []


def test_cluster_info_json(invoke, ubuntu, settings):
    write_cache_entry(settings, "ubuntu", "cluster_summary", CLUSTER_SUMMARY, age=10)

    result = invoke("cluster-info", "--quick", "--format", "json")

    assert result.exit_code == 0
    assert json.loads(result.output) == CLUSTER_SUMMARY


def test_cluster_info_queries_tofu_once(invoke, ubuntu, fake_runner):
    def tofu(command):
        if command.args[:2] == ("output", "-json"):
            return ExecutionResult(returncode=0, stdout=json.dumps(CLUSTER_SUMMARY))
        return ExecutionResult(returncode=0)

    fake_runner.on("tofu", tofu)

    assert invoke("cluster-info").exit_code == 0
    assert invoke("cluster-info").exit_code == 0

    outputs = [call for call in fake_runner.calls if call.args[:1] == ("output",)]
    assert len(outputs) == 1


# Workspaces


def test_ctx_switch_selects_tofu_workspace_and_invalidates_cache(invoke, ubuntu, settings, fake_runner):
    old_entry = write_cache_entry(settings, "ubuntu", "cluster_summary", CLUSTER_SUMMARY, age=10)

    result = invoke("ctx", "k8s133")

    assert result.exit_code == 0, result.output
    assert ubuntu.store.get_current_context() == "k8s133"
    assert fake_runner.calls[-1].args == ("workspace", "select", "-or-create", "k8s133")
    assert not old_entry.exists()


def test_ctx_unknown_workspace(invoke, configured_runtime, fake_runner):
    result = invoke("ctx", "nonexistent")

    assert result.exit_code == 102
    assert "k8s133" in result.output
    assert fake_runner.calls == []


def test_ctx_show(invoke):
    result = invoke("ctx")

    assert result.exit_code == 0
    assert "Current cluster context: default" in result.output


def test_setup_cpc(invoke, runtime, repo):
    result = invoke("setup-cpc", str(repo))

    assert result.exit_code == 0
    assert runtime.store.get_repo_path() == repo.resolve()


def test_list_workspaces(invoke, ubuntu):
    result = invoke("list-workspaces")

    assert result.exit_code == 0
    assert "k8s133" in result.output
    assert "debian" in result.output


def test_clone_workspace(invoke, ubuntu, repo, fake_runner):
    result = invoke("clone-workspace", "ubuntu", "lab1")

    assert result.exit_code == 0, result.output
    env_text = (repo / "envs" / "lab1.env").read_text()
    assert "RELEASE_LETTER=l" in env_text
    assert "VM_DOMAIN" in env_text
    assert (repo / "terraform" / "environments" / "lab1.tfvars").exists()
    assert ubuntu.store.get_current_context() == "lab1"
    assert fake_runner.programs() == ["tofu"]


@pytest.mark.parametrize(
    "args, code",
    [
        (["ubuntu", "bad name"], 105),
        (["ubuntu", "lab1", "xy"], 105),
        (["missing", "lab1"], 102),
        (["ubuntu", "k8s133"], 105),
    ],
)
def test_clone_workspace_rejections(invoke, ubuntu, fake_runner, args, code):
    assert invoke("clone-workspace", *args).exit_code == code
    assert fake_runner.calls == []


def test_delete_builtin_workspace_refused(invoke, ubuntu, fake_runner):
    assert invoke("delete-workspace", "ubuntu", "--yes").exit_code == 105
    assert fake_runner.calls == []


def test_delete_workspace(invoke, ubuntu, repo, fake_runner):
    result = invoke("delete-workspace", "k8s133", "--yes")

    assert result.exit_code == 0, result.output
    assert not (repo / "envs" / "k8s133.env").exists()
    assert ubuntu.store.get_current_context() == "ubuntu"
    tofu_args = [call.args for call in fake_runner.calls if call.program == "tofu"]
    assert ("destroy", "-auto-approve") == tofu_args[1]
    assert ("workspace", "delete", "k8s133") in tofu_args


def test_delete_workspace_returns_to_the_active_workspace(invoke, configured_runtime, repo, fake_runner):
    (repo / "envs" / "other.env").write_text("RELEASE_LETTER=o\n")
    configured_runtime.store.set_context("other")

    result = invoke("delete-workspace", "k8s133", "--yes")

    assert result.exit_code == 0, result.output
    assert configured_runtime.store.get_current_context() == "other"
    assert "current context: other" in result.output
    tofu_args = [call.args for call in fake_runner.calls if call.program == "tofu"]
    assert ("workspace", "select", "-or-create", "other") in tofu_args


def test_deleting_the_active_workspace_falls_back_to_ubuntu(invoke, configured_runtime, repo):
    configured_runtime.store.set_context("k8s133")

    result = invoke("delete-workspace", "k8s133", "--yes")

    assert result.exit_code == 0, result.output
    assert configured_runtime.store.get_current_context() == "ubuntu"


def test_delete_workspace_keeps_files_when_destroy_fails(invoke, ubuntu, repo, fake_runner):
    def tofu(command):
        return ExecutionResult(returncode=1 if command.args[0] == "destroy" else 0)

    fake_runner.on("tofu", tofu)

    result = invoke("delete-workspace", "k8s133", "--yes")

    assert result.exit_code == 106
    assert (repo / "envs" / "k8s133.env").exists()
    assert "Recovery report" in result.output


def test_clear_cache(invoke, ubuntu, settings):
    ubuntu_entry = write_cache_entry(settings, "ubuntu", "cluster_summary", {}, age=1)
    debian_entry = write_cache_entry(settings, "debian", "cluster_summary", {}, age=1)

    assert invoke("clear-cache", "--context", "debian").exit_code == 0
    assert ubuntu_entry.exists()
    assert not debian_entry.exists()

    assert invoke("clear-cache").exit_code == 0
    assert not ubuntu_entry.exists()


def test_auto_prints_exports(invoke, ubuntu):
    result = invoke("auto")

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert "export CPC_CONTEXT=ubuntu" in lines
    assert "export PROXMOX_HOST=pve.example.lan" in lines
    assert "export VM_USERNAME=ubuntu" in lines


def test_load_secrets_masks_values(invoke, ubuntu):
    result = invoke("load-secrets")

    assert result.exit_code == 0, result.output
    assert "PROXMOX_PASSWORD" in result.output
    assert "s3cret-pass" not in result.output


# Playbooks


def test_add_nodes_runs_playbook(invoke, ubuntu, fake_runner):
    result = invoke("add-nodes", "--target-hosts", "10.10.10.21,10.10.10.22")

    assert result.exit_code == 0, result.output
    playbook = fake_runner.calls[-1]
    assert playbook.program == "ansible-playbook"
    assert "playbooks/pb_add_nodes.yml" in playbook.args
    assert playbook.args[playbook.args.index("-l") + 1] == "10.10.10.21,10.10.10.22"
    assert "ansible_user=ubuntu" in playbook.args


def test_remove_nodes_can_be_cancelled(invoke, ubuntu, fake_runner):
    result = invoke("remove-nodes", "--target-hosts", "10.10.10.21", input="n\n")

    assert result.exit_code == 0
    assert "ansible-playbook" not in fake_runner.programs()


def test_failed_playbook_exits_with_execution_code(invoke, ubuntu, fake_runner, settings):
    fake_runner.on("ansible-playbook", lambda command: ExecutionResult(returncode=2))

    result = invoke("drain-node", "--target-hosts", "10.10.10.21")

    assert result.exit_code == 106
    assert list(settings.reports_dir.glob("recovery_*.txt"))


def test_upgrade_addon_passes_name_and_version(invoke, ubuntu, fake_runner):
    result = invoke("upgrade-addons", "my-addon", "--version", "1.2.3", "--yes")

    assert result.exit_code == 0, result.output
    extra = [json.loads(arg) for arg in fake_runner.calls[-1].args if arg.startswith("{")]
    assert extra == [{"addon_name": "my-addon", "addon_version": "1.2.3"}]


def test_missing_ansible_binary(invoke, ubuntu, fake_runner):
    fake_runner.on("ansible-playbook", lambda command: ExecutionResult(returncode=127))

    assert invoke("add-nodes", "--target-hosts", "10.10.10.21").exit_code == 103


# Cluster lifecycle


def test_upgrade_k8s_targets_the_control_plane(invoke, ubuntu, fake_runner):
    result = invoke("upgrade-k8s", "--target-version", "1.33.2", "--skip-etcd-backup", "--yes")

    assert result.exit_code == 0, result.output
    playbook = fake_runner.calls[-1]
    assert "playbooks/pb_upgrade_k8s_control_plane.yml" in playbook.args
    assert playbook.args[playbook.args.index("-l") + 1] == "control_plane"
    extra = [json.loads(arg) for arg in playbook.args if arg.startswith("{")]
    assert extra == [{"skip_etcd_backup": True, "target_k8s_version": "1.33.2"}]
    assert "upgrade_k8s_complete" in ubuntu.recovery.checkpoint_names()


def test_upgrade_k8s_rejects_bad_version(invoke, configured_runtime, fake_runner):
    result = invoke("upgrade-k8s", "--target-version", "latest", "--yes")

    assert result.exit_code == 105
    assert "Invalid Kubernetes version" in result.output
    assert fake_runner.calls == []


def test_reset_all_nodes_can_be_cancelled(invoke, ubuntu, fake_runner):
    result = invoke("reset-all-nodes", input="n\n")

    assert result.exit_code == 0
    assert "ansible-playbook" not in fake_runner.programs()


def test_reset_all_nodes_invalidates_cache(invoke, ubuntu, settings, fake_runner):
    entry = write_cache_entry(settings, "ubuntu", "cluster_summary", CLUSTER_SUMMARY, age=1)

    result = invoke("reset-all-nodes", "--yes")

    assert result.exit_code == 0, result.output
    assert "playbooks/pb_reset_all_nodes.yml" in fake_runner.calls[-1].args
    assert not entry.exists()


# Certificates and DNS

VALID_CERT = "notAfter=Oct 19 10:00:00 2027 GMT\nCertificate will not expire\n"


@pytest.fixture
def cached_cluster(ubuntu, settings):
    write_cache_entry(settings, "ubuntu", "cluster_summary", CLUSTER_SUMMARY, age=1)
    return ubuntu


@pytest.fixture
def tools_on_path(monkeypatch):
    monkeypatch.setattr("cpc.core.error_handler.shutil.which", lambda tool: f"/usr/bin/{tool}")


def test_regenerate_certificates_then_verifies(invoke, cached_cluster, fake_runner):
    fake_runner.on("ssh", lambda command: ExecutionResult(returncode=0, stdout=VALID_CERT))

    result = invoke("dns-ssl", "regenerate-certificates", "--yes")

    assert result.exit_code == 0, result.output
    playbook = next(call for call in fake_runner.calls if call.program == "ansible-playbook")
    assert "playbooks/regenerate_certificates_with_dns.yml" in playbook.args
    assert playbook.args[playbook.args.index("-l") + 1] == "control_plane[0]"
    ssh_calls = [call for call in fake_runner.calls if call.program == "ssh"]
    assert len(ssh_calls) == 5
    assert all("ubuntu@10.10.10.11" in call.args for call in ssh_calls)
    assert "regenerate_certificates_complete" in cached_cluster.recovery.checkpoint_names()


@pytest.mark.parametrize(
    "args, code",
    [
        (["--node", "cp1;reboot"], 105),
        (["--node", "cp1", "--all-control-planes"], 107),
    ],
)
def test_regenerate_certificates_rejects_bad_target(invoke, configured_runtime, fake_runner, args, code):
    result = invoke("dns-ssl", "regenerate-certificates", *args, "--yes")

    assert result.exit_code == code
    assert fake_runner.calls == []


def test_verify_certificates_reports_expired(invoke, cached_cluster, fake_runner):
    def ssh(command):
        if "etcd/server.crt" in command.args[-1]:
            return ExecutionResult(returncode=1, stdout="notAfter=Jan  1 00:00:00 2020 GMT\nCertificate will expire\n")
        return ExecutionResult(returncode=0, stdout=VALID_CERT)

    fake_runner.on("ssh", ssh)

    result = invoke("dns-ssl", "verify-certificates")

    assert result.exit_code == 106
    assert "1 of 5 certificates failed verification" in result.output
    assert "/etc/kubernetes/pki/etcd/server.crt" in result.output


def test_inspect_cert_prints_openssl_output(invoke, cached_cluster, fake_runner):
    fake_runner.on("ssh", lambda command: ExecutionResult(returncode=0, stdout="subject=CN = kube-apiserver\n"))

    result = invoke("dns-ssl", "inspect-cert", "--node", "10.10.10.12")

    assert result.exit_code == 0, result.output
    assert "subject=CN = kube-apiserver" in result.output
    remote = fake_runner.calls[-1]
    assert "ubuntu@10.10.10.12" in remote.args
    assert "/etc/kubernetes/pki/apiserver.crt" in remote.args[-1]


def test_inspect_cert_rejects_unsafe_path(invoke, configured_runtime, fake_runner):
    result = invoke("dns-ssl", "inspect-cert", "/etc/kubernetes/pki/ca.crt;id")

    assert result.exit_code == 105
    assert fake_runner.calls == []


def test_test_dns_runs_lookups_in_cluster(invoke, ubuntu, fake_runner, tools_on_path):
    fake_runner.on("kubectl", lambda command: ExecutionResult(returncode=0, stdout="Name: example.com\n"))

    result = invoke("dns-ssl", "test-dns", "example.com", "--dns-server", "10.10.10.53")

    assert result.exit_code == 0, result.output
    lookups = [call.args for call in fake_runner.calls if call.program == "kubectl" and call.args[0] == "run"]
    assert len(lookups) == 3
    assert lookups[0][-2:] == ("example.com", "10.10.10.53")
    assert lookups[1][-1] == "kubernetes.default.svc.cluster.local"
    assert lookups[2][-2:] == ("google.com", "8.8.8.8")


def test_test_dns_rejects_bad_domain(invoke, ubuntu, fake_runner, tools_on_path):
    result = invoke("dns-ssl", "test-dns", "bad domain")

    assert result.exit_code == 105
    assert "kubectl" not in fake_runner.programs()


def test_test_dns_needs_a_reachable_cluster(invoke, ubuntu, fake_runner, tools_on_path):
    fake_runner.on("kubectl", lambda command: ExecutionResult(returncode=1))

    result = invoke("dns-ssl", "test-dns", "example.com")

    assert result.exit_code == 106
    assert "Cannot connect to the Kubernetes cluster" in result.output


def test_check_cluster_dns(invoke, ubuntu, fake_runner, tools_on_path):
    pods = {
        "items": [
            {"metadata": {"name": f"coredns-{i}"}, "status": {"phase": "Running", "containerStatuses": [{"ready": True}]}}
            for i in range(2)
        ]
    }

    def kubectl(command):
        if command.args[:2] == ("get", "pods"):
            return ExecutionResult(returncode=0, stdout=json.dumps(pods))
        if command.args[:2] == ("get", "configmap"):
            return ExecutionResult(returncode=0, stdout=".:53 {\n    forward . /etc/resolv.conf\n}\n")
        return ExecutionResult(returncode=0)

    fake_runner.on("kubectl", kubectl)

    result = invoke("dns-ssl", "check-cluster-dns")

    assert result.exit_code == 0, result.output
    assert "All CoreDNS pods are ready (2/2)" in result.output
    assert "forward . /etc/resolv.conf" in result.output
    assert "Cluster DNS is healthy" in result.output


# SSH housekeeping

KNOWN_HOSTS = """\
10.10.10.11 ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIOld
[cp1.example.lan]:22,10.10.10.21 ecdsa-sha2-nistp256 AAAAE2VjZHNh
github.com ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIOMq
"""


@pytest.fixture
def home(tmp_path, monkeypatch):
    path = tmp_path / "home"
    (path / ".ssh").mkdir(parents=True)
    monkeypatch.setenv("HOME", str(path))
    return path


def test_clear_ssh_hosts_dry_run_changes_nothing(invoke, cached_cluster, home, fake_runner):
    known_hosts = home / ".ssh" / "known_hosts"
    known_hosts.write_text(KNOWN_HOSTS)

    result = invoke("clear-ssh-hosts", "--dry-run")

    assert result.exit_code == 0, result.output
    assert "10.10.10.11" in result.output
    assert "cp1.example.lan" in result.output
    assert known_hosts.read_text() == KNOWN_HOSTS
    assert "ssh-keygen" not in fake_runner.programs()


def test_clear_ssh_hosts_removes_cluster_entries(invoke, cached_cluster, home, fake_runner, tools_on_path):
    known_hosts = home / ".ssh" / "known_hosts"
    known_hosts.write_text(KNOWN_HOSTS)

    def ssh_keygen(command):
        host = command.args[1]
        if host in ("10.10.10.11", "10.10.10.21"):
            return ExecutionResult(returncode=0, stdout=f"# Host {host} found: line 1\n")
        return ExecutionResult(returncode=0, stderr=f"Host {host} not found in {known_hosts}\n")

    fake_runner.on("ssh-keygen", ssh_keygen)

    result = invoke("clear-ssh-hosts")

    assert result.exit_code == 0, result.output
    removed = [call.args[1] for call in fake_runner.calls if call.program == "ssh-keygen"]
    assert removed == ["10.10.10.11", "10.10.10.21", "cp1", "cp1.example.lan", "w1", "w1.example.lan"]
    assert all(call.args[-1] == str(known_hosts) for call in fake_runner.calls if call.program == "ssh-keygen")
    assert "Removed known_hosts entries for 2 host(s)" in result.output
    assert len(list((home / ".ssh").glob("known_hosts.backup.*"))) == 1


def test_clear_ssh_hosts_without_known_hosts(invoke, ubuntu, home, fake_runner):
    result = invoke("clear-ssh-hosts")

    assert result.exit_code == 0
    assert "nothing to clear" in result.output
    assert fake_runner.calls == []


def test_clear_ssh_hosts_all_workspaces_restores_selection(invoke, ubuntu, home, fake_runner):
    (home / ".ssh" / "known_hosts").write_text(KNOWN_HOSTS)

    def tofu(command):
        if command.args[:2] == ("workspace", "list"):
            return ExecutionResult(returncode=0, stdout="  default\n* ubuntu\n  k8s133\n")
        if command.args[:2] == ("output", "-json"):
            return ExecutionResult(returncode=0, stdout=json.dumps(CLUSTER_SUMMARY))
        return ExecutionResult(returncode=0)

    fake_runner.on("tofu", tofu)

    result = invoke("clear-ssh-hosts", "--all", "--dry-run")

    assert result.exit_code == 0, result.output
    selects = [call.args for call in fake_runner.calls if call.args[:2] == ("workspace", "select")]
    assert selects == [("workspace", "select", "ubuntu"), ("workspace", "select", "k8s133"), ("workspace", "select", "ubuntu")]


def test_clear_ssh_maps_stops_matching_sessions_only(invoke, cached_cluster, home, fake_runner, monkeypatch):
    ps_output = (
        " 4242 ssh -o ControlMaster=auto ubuntu@10.10.10.11\n"
        " 4243 ssh ubuntu@10.10.10.111\n"
        " 4244 vim notes-10.10.10.11\n"
    )
    fake_runner.on("ps", lambda command: ExecutionResult(returncode=0, stdout=ps_output))
    killed = []
    monkeypatch.setattr("cpc.commands.ssh.os.kill", lambda pid, sig: killed.append((pid, sig)))

    result = invoke("clear-ssh-maps")

    assert result.exit_code == 0, result.output
    assert killed == [(4242, signal.SIGTERM)]


def test_clear_ssh_maps_dry_run(invoke, cached_cluster, home, fake_runner, monkeypatch):
    fake_runner.on("ps", lambda command: ExecutionResult(returncode=0, stdout=" 4242 ssh ubuntu@10.10.10.21\n"))
    killed = []
    monkeypatch.setattr("cpc.commands.ssh.os.kill", lambda pid, sig: killed.append((pid, sig)))

    result = invoke("clear-ssh-maps", "--dry-run")

    assert result.exit_code == 0, result.output
    assert "Would stop SSH process 4242" in result.output
    assert killed == []
