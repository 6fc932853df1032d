"""
New deployment scaffolding: template copy and remote state backend config.
"""

import logging
import shutil
from pathlib import Path

from infracat.config import Config, DEFAULT_REGION
from infracat.errors import FormValidationError

logger = logging.getLogger(__name__)

BACKEND_FILE = "s3.tf"


def deployment_identity(provider: str, app: str, zone: str, platform_id: str) -> str:
    """Directory name of a deployment: <provider>_<app>_<zone>_<platform id>."""
    return f"{provider}_{app}_{zone}_{platform_id}"


IDENTITY_FIELDS = ("vm_app", "zone", "platform_id")


def identity_from_values(provider: str, values: dict[str, str]) -> str:
    """Identity for form values; each part must be non-empty and usable as a path segment."""
    parts = {}
    for key in IDENTITY_FIELDS:
        value = values.get(key, "").strip()
        if not value:
            raise FormValidationError(key, "required to name the deployment")
        if "/" in value or "\\" in value or value in (".", ".."):
            raise FormValidationError(key, "must not contain path separators")
        parts[key] = value
    return deployment_identity(provider, parts["vm_app"], parts["zone"], parts["platform_id"])


def copy_template(template_dir: Path, dest: Path) -> None:
    """Copy the template tree. Fails if `dest` exists."""
    shutil.copytree(template_dir, dest)
    logger.info("Scaffolded %s from %s", dest, template_dir)


def render_backend(cfg: Config, identity: str) -> str:
    region = cfg.aws_region or DEFAULT_REGION
    profile_line = ""
    if cfg.aws_profile:
        profile_line = f'\n    profile         = "{cfg.aws_profile}"'
    return f"""terraform {{
  backend "s3" {{
    bucket          = "{cfg.s3_bucket}"
    key             = "{identity}/s3/terraform.tfstate"
    use_lockfile    = true
    region          = "{region}"
    encrypt         = true{profile_line}
  }}
}}
"""


def write_backend(cfg: Config, dest: Path, identity: str) -> Path:
    path = Path(dest) / BACKEND_FILE
    path.write_text(render_backend(cfg, identity))
    return path
