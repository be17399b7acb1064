"""CPC - Proxmox / OpenTofu / Ansible cluster control CLI"""

__version__ = "1.0.0"
