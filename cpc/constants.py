"""
CPC CLI Constants

Centralized constants for magic values, defaults, and configuration.
"""

# Config directory layout (relative to CPC_CONFIG_DIR, default ~/.config/cpc)
DEFAULT_CONFIG_DIR = "~/.config/cpc"
REPO_PATH_FILENAME = "repo_path"
CONTEXT_FILENAME = "current_cluster_context"
CACHE_DIRNAME = "cache"
LOGS_DIRNAME = "logs"
REPORTS_DIRNAME = "reports"

# Repository layout
GLOBAL_ENV_FILENAME = "cpc.env"
ENVS_DIRNAME = "envs"
TERRAFORM_DIRNAME = "terraform"
TFVARS_DIRNAME = "environments"
SECRETS_FILENAME = "secrets.sops.yaml"
ANSIBLE_DIRNAME = "ansible"
PLAYBOOKS_DIRNAME = "playbooks"
ADDONS_DIRNAME = "addons"
INVENTORY_SCRIPT = "inventory/tofu_inventory.py"

# Workspaces
DEFAULT_CONTEXT = "default"
SAFE_CONTEXT = "ubuntu"
BUILTIN_WORKSPACES = ("ubuntu", "debian", "rocky", "suse")
RESERVED_WORKSPACE_NAMES = ("default", "null", "none")
WORKSPACE_NAME_PATTERN = r"^[a-zA-Z0-9_-]+$"
WORKSPACE_NAME_MAX_LENGTH = 50

# Cache TTL tiers (seconds)
SHORT_TTL = 30
LONG_TTL = 300
SECRETS_CACHE_TTL = 300

# Cache operation names
CACHE_CLUSTER_SUMMARY = "cluster_summary"
CACHE_SSH_REACHABLE = "ssh_reachable"

# Timeouts (seconds)
DEFAULT_TIMEOUTS = {
    "command": 300,
    "network": 30,
    "ansible": 1800,
    "kubectl": 120,
    "terraform": 3600,
}
TIMEOUT_EXIT_CODE = 124
TERMINATE_GRACE_PERIOD = 2.0
COMMAND_NOT_FOUND_EXIT_CODE = 127

# Retry defaults
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY = 2.0
DEFAULT_MAX_DELAY = 60.0
DEFAULT_BACKOFF_MULTIPLIER = 2
RETRY_JITTER_RATIO = 0.25
NETWORK_MAX_ATTEMPTS = 5
NETWORK_RETRY_DELAY = 5.0
NETWORK_RETRY_EXIT_CODES = (1, 28, 130, 255)
ANSIBLE_MAX_ATTEMPTS = 2
ANSIBLE_RETRY_EXIT_CODES = (1, 2, 4)

# SSH
SSH_CONNECT_TIMEOUT = 5
KUBE_ADMIN_CONF = "/etc/kubernetes/admin.conf"
DEFAULT_KUBECONFIG = "~/.kube/config"

# Secrets
REQUIRED_SECRET_KEYS = ("PROXMOX_HOST", "PROXMOX_USERNAME", "VM_USERNAME")
CREDENTIAL_SECRET_KEYS = ("VM_SSH_KEY", "PROXMOX_PASSWORD", "VM_PASSWORD")
SECRET_PREFIX_SEGMENTS = ("default", "global")

# Keys printed by `cpc auto` (secrets first, then workspace environment)
AUTO_EXPORT_KEYS = (
    "PROXMOX_HOST",
    "PROXMOX_USERNAME",
    "VM_USERNAME",
    "PROXMOX_PASSWORD",
    "VM_PASSWORD",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "DOCKER_HUB_USERNAME",
    "DOCKER_HUB_PASSWORD",
    "HARBOR_HOSTNAME",
    "PRIMARY_DNS_SERVER",
    "SECONDARY_DNS_SERVER",
    "TEMPLATE_VM_ID",
    "TEMPLATE_VM_NAME",
    "IMAGE_NAME",
    "IMAGE_LINK",
    "KUBERNETES_SHORT_VERSION",
    "KUBERNETES_MEDIUM_VERSION",
    "KUBERNETES_LONG_VERSION",
    "CNI_PLUGINS_VERSION",
    "CALICO_VERSION",
    "METALLB_VERSION",
    "COREDNS_VERSION",
    "METRICS_SERVER_VERSION",
    "ETCD_VERSION",
    "KUBELET_SERVING_CERT_APPROVER_VERSION",
    "LOCAL_PATH_PROVISIONER_VERSION",
    "CERT_MANAGER_VERSION",
    "ARGOCD_VERSION",
    "INGRESS_NGINX_VERSION",
    "PM_TEMPLATE_ID",
    "VM_CPU_CORES",
    "VM_MEMORY_DEDICATED",
    "VM_DISK_SIZE",
    "VM_STARTED",
    "VM_DOMAIN",
    "RELEASE_LETTER",
    "ADDITIONAL_WORKERS",
)

# Workspace env keys exported to OpenTofu as TF_VAR_<lowercase key>
TOFU_ENV_VARS = (
    "RELEASE_LETTER",
    "ADDITIONAL_WORKERS",
    "ADDITIONAL_CONTROLPLANES",
    "STATIC_IP_BASE",
    "STATIC_IP_GATEWAY",
    "STATIC_IP_START",
    "NETWORK_CIDR",
    "WORKSPACE_IP_BLOCK_SIZE",
)
TOFU_VAR_FILE_COMMANDS = ("plan", "apply", "destroy", "refresh")
TOFU_MUTATING_COMMANDS = ("apply", "destroy")
TOFU_DEPLOY_COMMANDS = (
    "plan",
    "apply",
    "destroy",
    "output",
    "refresh",
    "validate",
    "init",
    "show",
)

# Addons
KNOWN_ADDONS = (
    "calico",
    "coredns",
    "metallb",
    "metrics-server",
    "cert-manager",
    "kubelet-serving-cert-approver",
    "argocd",
    "ingress-nginx",
    "traefik-gateway",
)
ALL_ADDONS = "all"

# Playbooks
PLAYBOOK_ADD_NODES = "pb_add_nodes.yml"
PLAYBOOK_DELETE_NODE = "pb_delete_node.yml"
PLAYBOOK_DRAIN_NODE = "pb_drain_node.yml"
PLAYBOOK_UPGRADE_NODE = "pb_upgrade_node.yml"
PLAYBOOK_RESET_NODE = "pb_reset_node.yml"
PLAYBOOK_PREPARE_NODE = "install_kubernetes_cluster.yml"
PLAYBOOK_RUN_COMMAND = "pb_run_command.yml"
PLAYBOOK_UPGRADE_ADDONS = "pb_upgrade_addons_extended.yml"
PLAYBOOK_CONFIGURE_COREDNS = "configure_coredns_local_domains.yml"
PLAYBOOK_UPGRADE_K8S_CONTROL_PLANE = "pb_upgrade_k8s_control_plane.yml"
PLAYBOOK_RESET_ALL_NODES = "pb_reset_all_nodes.yml"
PLAYBOOK_REGENERATE_CERTIFICATES = "regenerate_certificates_with_dns.yml"
BOOTSTRAP_PLAYBOOKS = (
    "install_kubernetes_cluster.yml",
    "initialize_kubernetes_cluster_with_dns.yml",
    "validate_cluster.yml",
)

# Nodes
NODE_TYPES = ("worker", "control-plane")
CONTROL_PLANE_MARKERS = ("controlplane", "control-plane", "master")
CONTROL_PLANE_GROUP = "control_plane"
K8S_VERSION_PATTERN = r"^v?\d+\.\d+(\.\d+)?$"
HOST_PATTERN = r"^[A-Za-z0-9]([A-Za-z0-9._-]*[A-Za-z0-9])?$"

# CoreDNS
DEFAULT_COREDNS_FALLBACK_SERVER = "10.10.10.100"
DOMAIN_LIST_PATTERN = r"^[a-zA-Z0-9.-]+(,[a-zA-Z0-9.-]+)*$"

# Certificates and cluster DNS
KUBE_PKI_DIR = "/etc/kubernetes/pki"
KUBE_CERTIFICATES = (
    ("apiserver.crt", "API Server"),
    ("apiserver-kubelet-client.crt", "API Server Kubelet Client"),
    ("apiserver-etcd-client.crt", "API Server etcd Client"),
    ("etcd/server.crt", "etcd Server"),
    ("front-proxy-client.crt", "Front Proxy Client"),
)
DEFAULT_INSPECT_CERT = "/etc/kubernetes/pki/apiserver.crt"
REMOTE_PATH_PATTERN = r"^/[A-Za-z0-9._/-]+$"
DNS_TEST_IMAGE = "busybox"
DNS_TEST_TIMEOUT = 60
CLUSTER_DNS_NAME = "kubernetes.default.svc.cluster.local"
EXTERNAL_DNS_NAME = "google.com"
EXTERNAL_DNS_SERVER = "8.8.8.8"
COREDNS_LABEL = "k8s-app=kube-dns"

# SSH housekeeping
KNOWN_HOSTS_FILE = "~/.ssh/known_hosts"
SSH_CONTROL_SOCKET_DIRS = ("~/.ssh/sockets", "~/.ssh/master")

# Log Configuration
LOG_DATE_FORMAT = "%Y-%m-%d"
LOG_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
