"""
Template inventory lookup

Proxmox API credentials live in Vault (KV v2, one secret per cluster). The
launcher logs in with AppRole, reads the cluster's credentials and lists the
cluster's VM templates, keeping only the ones that match the template naming
policy.
"""

import logging
import os
import re
from dataclasses import dataclass

import requests
import urllib3

from infracat.config import Config
from infracat.errors import InventoryError

logger = logging.getLogger(__name__)

PROXMOX_PORT = 8006


@dataclass(frozen=True)
class ProxmoxCredentials:
    api_url: str
    token_id: str
    token_secret: str


@dataclass(frozen=True)
class ProxmoxVM:
    vmid: int
    name: str
    node: str = ""
    template: bool = False


# ─────────────────────────────────────────────────────────────────────────────
# VAULT
# ─────────────────────────────────────────────────────────────────────────────

class VaultClient:
    def __init__(self, addr: str, mount: str, timeout: float = 5.0, session: requests.Session | None = None):
        self.addr = addr.rstrip("/")
        self.mount = mount
        self.timeout = timeout
        self.session = session or requests.Session()

    def login_approle(self, role_id: str, secret_id: str) -> str:
        url = f"{self.addr}/v1/auth/approle/login"
        try:
            response = self.session.post(url, json={"role_id": role_id, "secret_id": secret_id}, timeout=self.timeout)
            response.raise_for_status()
            return response.json()["auth"]["client_token"]
        except (requests.exceptions.RequestException, KeyError, TypeError, ValueError) as e:
            raise InventoryError(f"vault appRole login failed: {e}") from e

    def read_secret(self, token: str, name: str) -> dict:
        path = f"{self.mount}/data/{name}"
        try:
            response = self.session.get(f"{self.addr}/v1/{path}", headers={"X-Vault-Token": token}, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()["data"]
        except (requests.exceptions.RequestException, KeyError, TypeError, ValueError) as e:
            raise InventoryError(f"vault read failed for {path}: {e}") from e
        # KV v2 nests the payload one level deeper
        if isinstance(data.get("data"), dict):
            data = data["data"]
        return data

    def proxmox_credentials(self, cluster: str) -> ProxmoxCredentials:
        role_id = os.environ.get("TF_VAR_role_id", "")
        secret_id = os.environ.get("TF_VAR_secret_id", "")
        if not role_id or not secret_id:
            raise InventoryError("vault approle credentials not set")

        token = self.login_approle(role_id, secret_id)
        data = self.read_secret(token, cluster)
        creds = ProxmoxCredentials(
            api_url=str(data.get("proxmox_api_url") or ""),
            token_id=str(data.get("proxmox_api_token_id") or ""),
            token_secret=str(data.get("proxmox_api_token_secret") or ""),
        )
        if not (creds.api_url and creds.token_id and creds.token_secret):
            raise InventoryError(f"missing fields in Vault secret {self.mount}/data/{cluster}")
        return creds


# ─────────────────────────────────────────────────────────────────────────────
# PROXMOX
# ─────────────────────────────────────────────────────────────────────────────

class ProxmoxClient:
    def __init__(self, creds: ProxmoxCredentials, timeout: float = 5.0, verify_tls: bool = False,
                 session: requests.Session | None = None):
        self.creds = creds
        self.timeout = timeout
        self.verify_tls = verify_tls
        self.session = session or requests.Session()
        if not verify_tls:
            # Internal clusters use self-signed certificates
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def list_vms(self) -> list[ProxmoxVM]:
        url = f"https://{self.creds.api_url}:{PROXMOX_PORT}/api2/json/cluster/resources"
        headers = {"Authorization": f"PVEAPIToken={self.creds.token_id}={self.creds.token_secret}"}
        try:
            response = self.session.get(
                url, params={"type": "vm"}, headers=headers, timeout=self.timeout, verify=self.verify_tls,
            )
            response.raise_for_status()
            rows = response.json()["data"]
            return [
                ProxmoxVM(
                    vmid=int(row.get("vmid", 0)),
                    name=str(row.get("name", "")),
                    node=str(row.get("node", "")),
                    template=row.get("template") == 1,
                )
                for row in rows
            ]
        except (requests.exceptions.RequestException, AttributeError, KeyError, TypeError, ValueError) as e:
            raise InventoryError(f"failed to list Proxmox VMs: {e}") from e


# ─────────────────────────────────────────────────────────────────────────────
# TEMPLATE LOOKUP
# ─────────────────────────────────────────────────────────────────────────────

def filter_templates(vms: list[ProxmoxVM], include_pattern: str, exclude_suffix: str) -> list[str]:
    """Template names matching `include_pattern` and not ending in `exclude_suffix`."""
    include = re.compile(include_pattern)
    names = []
    for vm in vms:
        if not vm.template:
            continue
        if not include.match(vm.name):
            continue
        if exclude_suffix and vm.name.endswith(exclude_suffix):
            continue
        names.append(vm.name)
    return names


class TemplateLookup:
    """Callable: cluster name -> template names. Raises InventoryError."""

    def __init__(self, cfg: Config):
        self.cfg = cfg

    def __call__(self, cluster: str) -> list[str]:
        vault = VaultClient(self.cfg.vault_addr, self.cfg.vault_mount, timeout=self.cfg.lookup_timeout)
        creds = vault.proxmox_credentials(cluster)
        client = ProxmoxClient(creds, timeout=self.cfg.lookup_timeout, verify_tls=self.cfg.proxmox_verify_tls)
        templates = filter_templates(
            client.list_vms(), self.cfg.template_include_pattern, self.cfg.template_exclude_suffix,
        )
        logger.info("Cluster %s: %d matching templates", cluster, len(templates))
        return templates
