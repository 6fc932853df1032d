"""
Provisioning tool wrapper (terraform / tofu).

Both calls run in the deployment directory, block until the tool exits and
capture stdout and stderr together.
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Lines of tool output kept in status messages
OUTPUT_TAIL_LINES = 15


@dataclass(frozen=True)
class ProvisionResult:
    ok: bool
    output: str = ""

    def tail(self, lines: int = OUTPUT_TAIL_LINES) -> str:
        return "\n".join(self.output.strip().splitlines()[-lines:])


class Provisioner:
    """Runs `init` and `apply` for one deployment directory at a time."""

    def __init__(self, binary: str = "terraform"):
        self.binary = binary

    def _run(self, args: list[str], workdir: Path) -> ProvisionResult:
        cmd = [self.binary, *args]
        logger.info("→ %s (in %s)", " ".join(cmd), workdir)
        try:
            result = subprocess.run(
                cmd, cwd=workdir, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                text=True, encoding="utf-8", errors="replace", stdin=subprocess.DEVNULL,
            )
        except (FileNotFoundError, PermissionError) as e:
            return ProvisionResult(ok=False, output=str(e))
        if result.returncode != 0:
            logger.warning("%s exited with %d", " ".join(cmd), result.returncode)
        return ProvisionResult(ok=result.returncode == 0, output=result.stdout or "")

    def init(self, workdir: Path) -> ProvisionResult:
        return self._run(["init", "-input=false"], workdir)

    def apply(self, workdir: Path) -> ProvisionResult:
        return self._run(["apply", "-auto-approve", "-input=false"], workdir)


def check_tool_installed(tool: str) -> tuple[bool, str | None]:
    """Check that a CLI tool is on PATH and return its version line."""
    path = shutil.which(tool)
    if not path:
        return False, None
    try:
        result = subprocess.run([tool, "version"], capture_output=True, text=True, timeout=10)
    except (OSError, subprocess.TimeoutExpired):
        return True, path
    output = result.stdout.strip() or result.stderr.strip()
    version = output.split("\n")[0] if output else "unknown"
    return True, f"{version} ({os.path.dirname(path)})"
