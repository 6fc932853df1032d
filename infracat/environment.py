"""
Environment indicators for the dashboard header: AWS credentials for the
state backend, Vault AppRole credentials for template lookups, and the git
state of the infrastructure repository.
"""

import logging
import os
import subprocess
from dataclasses import dataclass

import boto3
from botocore.exceptions import BotoCoreError, ProfileNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnvironmentStatus:
    aws_ok: bool = False
    vault_ok: bool = False
    git_branch: str | None = None
    git_dirty: bool = False


def aws_ready(profile: str = "", region: str = "") -> bool:
    """True when a boto3 session for the profile/region resolves credentials."""
    if not region:
        return False
    try:
        session = boto3.Session(profile_name=profile or None, region_name=region)
        return session.get_credentials() is not None
    except (ProfileNotFound, BotoCoreError) as e:
        logger.debug("AWS session unavailable: %s", e)
        return False


def vault_ready() -> bool:
    return bool(os.environ.get("TF_VAR_role_id")) and bool(os.environ.get("TF_VAR_secret_id"))


def git_status(repo_path: str) -> tuple[str | None, bool]:
    """(branch, dirty) of `repo_path`; branch is None when git cannot tell."""
    if not repo_path:
        return None, False
    try:
        result = subprocess.run(
            ["git", "-C", repo_path, "status", "--porcelain", "--branch"],
            capture_output=True, text=True, timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None, False
    if result.returncode != 0:
        return None, False

    lines = result.stdout.split("\n")
    branch = "main"
    if lines and lines[0].startswith("## "):
        branch_line = lines[0][3:]
        if "..." in branch_line:
            branch = branch_line.split("...", 1)[0]
        else:
            branch = branch_line.split(" ", 1)[0]
    dirty = any(line.strip() for line in lines[1:])
    return branch, dirty


def probe(aws_profile: str, aws_region: str, repo_path: str) -> EnvironmentStatus:
    branch, dirty = git_status(repo_path)
    return EnvironmentStatus(
        aws_ok=aws_ready(aws_profile, aws_region),
        vault_ok=vault_ready(),
        git_branch=branch,
        git_dirty=dirty,
    )
