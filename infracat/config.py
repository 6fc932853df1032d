"""
Launcher configuration (config.yaml).

    repo: ~/infra
    apps_path: ~/infra/apps
    template_path: ~/infra/templates/proxmox-vm
    presets_path: ~/infra/presets
    s3_bucket: my-tf-state
    aws_region: ap-southeast-2
    terraform_path: ~/infra
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from infracat.errors import ConfigError

DEFAULT_CONFIG_FILE = "config.yaml"
DEFAULT_REGION = "ap-southeast-2"
PATH_FIELDS = ("repo", "apps_path", "template_path", "presets_path", "fields_path", "terraform_path")

# Create form layout, in display order
DEFAULT_FORM_FIELDS = (
    "vm_app", "platform_description", "zone", "platform_id", "vm_network_suffix", "vm_id_prefix",
    "vm_memory", "vm_cpu_cores", "vm_disk_count", "vm_disk_size", "vm_count", "vm_template",
    "cluster",
)


@dataclass
class Config:
    """Settings loaded from config.yaml."""
    repo: str = ""
    apps_path: str = "apps"
    template_path: str = "template"
    presets_path: str = "presets"
    fields_path: str = "fields.yaml"
    aws_profile: str = ""
    aws_region: str = ""
    s3_bucket: str = ""
    terraform_path: str = ""
    terraform_binary: str = "terraform"
    provider: str = "proxmox"
    form_fields: list = field(default_factory=lambda: list(DEFAULT_FORM_FIELDS))
    # Fields F2/F3 preset switching leaves alone so a chosen zone/cluster survives
    preset_preserve_fields: list = field(default_factory=lambda: ["zone", "cluster"])

    # Template lookup
    vault_addr: str = ""
    vault_mount: str = "proxmox_api_keys"
    template_include_pattern: str = r"^ubuntu-server-24\.04\..*"
    template_exclude_suffix: str = "-test"
    lookup_timeout: float = 5.0
    proxmox_verify_tls: bool = False

    @classmethod
    def from_dict(cls, d: dict) -> 'Config':
        unknown = sorted(k for k in d if k not in cls.__dataclass_fields__)
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(unknown)}")
        cfg = cls(**d)
        cfg.aws_profile = os.environ.get("AWS_PROFILE") or cfg.aws_profile
        cfg.aws_region = os.environ.get("AWS_REGION") or cfg.aws_region
        cfg.vault_addr = cfg.vault_addr or os.environ.get("VAULT_ADDR") or "http://127.0.0.1:8200"
        return cfg

    def resolve_paths(self, base: Path) -> None:
        """Make relative paths absolute against `base` (the config file directory)."""
        for name in PATH_FIELDS:
            value = getattr(self, name)
            if value:
                path = Path(value).expanduser()
                setattr(self, name, str(path if path.is_absolute() else base / path))


def load_config(path: Path) -> Config:
    """Load config.yaml. Relative paths are taken from the config file directory."""
    path = Path(path)
    try:
        doc = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"could not load {path}: {e}") from e
    if not isinstance(doc, dict):
        raise ConfigError(f"{path} must contain a mapping")
    try:
        cfg = Config.from_dict(doc)
    except TypeError as e:
        raise ConfigError(f"invalid config {path}: {e}") from e
    cfg.resolve_paths(path.resolve().parent)
    return cfg
