"""Tests for command-boundary input validation."""

import pytest

from cpc.core.validators import (
    check_workspace_name,
    validate_domain,
    validate_domains,
    validate_host,
    validate_ip_address,
    validate_k8s_version,
    validate_remote_path,
    validate_target_hosts,
    validate_workspace_name,
)
from cpc.exceptions import ValidationError


@pytest.mark.parametrize("name", ["ubuntu", "k8s133", "my-env_2"])
def test_valid_workspace_names(name):
    assert validate_workspace_name(name) == name


def test_workspace_name_collects_every_problem():
    result = check_workspace_name("default" + "!" * 50)
    assert len(result.errors) == 2

    assert check_workspace_name("None").errors == ["'None' is a reserved name"]


def test_invalid_workspace_name_raises_validation():
    with pytest.raises(ValidationError) as exc_info:
        validate_workspace_name("bad/name")
    assert exc_info.value.exit_code == 105


def test_ip_address():
    assert validate_ip_address(" 10.0.0.5 ") == "10.0.0.5"
    assert validate_ip_address("fd00::1") == "fd00::1"
    with pytest.raises(ValidationError, match="10.0.0.256"):
        validate_ip_address("10.0.0.256")


def test_target_hosts_reports_all_invalid_entries():
    with pytest.raises(ValidationError) as exc_info:
        validate_target_hosts(["10.0.0.5", "not-an-ip", "999.1.1.1"])

    assert "'not-an-ip'" in exc_info.value.message
    assert "'999.1.1.1'" in exc_info.value.message


def test_target_hosts_must_not_be_empty():
    with pytest.raises(ValidationError, match="No target hosts"):
        validate_target_hosts([])


def test_target_hosts_normalized():
    assert validate_target_hosts(["10.0.0.5", "10.0.0.6"]) == ["10.0.0.5", "10.0.0.6"]


def test_domains():
    assert validate_domains("example.com,lab.local") == ["example.com", "lab.local"]
    for bad in ("", "example.com,", "bad domain"):
        with pytest.raises(ValidationError):
            validate_domains(bad)


def test_single_domain():
    assert validate_domain("google.com") == "google.com"
    with pytest.raises(ValidationError):
        validate_domain("a.com,b.com")


@pytest.mark.parametrize("host", ["10.10.10.11", "ubuntu-controlplane1", "cp1.example.lan"])
def test_valid_hosts(host):
    assert validate_host(host) == host


@pytest.mark.parametrize("host", ["", "-node", "node;reboot", "two words"])
def test_invalid_hosts(host):
    with pytest.raises(ValidationError):
        validate_host(host)


def test_k8s_version():
    for version in ("1.31", "1.31.2", "v1.33.0"):
        assert validate_k8s_version(version) == version
    for bad in ("", "latest", "1", "1.31.x"):
        with pytest.raises(ValidationError):
            validate_k8s_version(bad)


def test_remote_path():
    assert validate_remote_path("/etc/kubernetes/pki/etcd/ca.crt") == "/etc/kubernetes/pki/etcd/ca.crt"
    for bad in ("etc/kubernetes/pki/ca.crt", "/etc/../root/.ssh/id_rsa", "/tmp/x;rm -rf /", "/tmp/$(id)"):
        with pytest.raises(ValidationError):
            validate_remote_path(bad)
