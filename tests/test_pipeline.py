import os
import sys
import tempfile
import unittest
from pathlib import Path


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from infracat import tfvars
from infracat.config import Config
from infracat.pipeline import DeploymentPipeline
from infracat.provisioner import ProvisionResult
from infracat.scaffold import BACKEND_FILE
from infracat.state import STATE_FILE, LifecycleState, StateStore

IDENTITY = "proxmox_web_dmz_01"


class FakeProvisioner:
    """Records calls; `fail` names the action that should fail."""

    binary = "terraform"

    def __init__(self, fail: str | None = None):
        self.fail = fail
        self.calls = []

    def _result(self, action: str, workdir: Path) -> ProvisionResult:
        self.calls.append((action, Path(workdir).name))
        if action == self.fail:
            return ProvisionResult(ok=False, output=f"Error: {action} exploded\nline two")
        return ProvisionResult(ok=True, output=f"{action} ok")

    def init(self, workdir: Path) -> ProvisionResult:
        return self._result("init", workdir)

    def apply(self, workdir: Path) -> ProvisionResult:
        return self._result("apply", workdir)


class BrokenStateProvisioner(FakeProvisioner):
    """Replaces the lifecycle record with a directory during init so the next write fails."""

    def init(self, workdir: Path) -> ProvisionResult:
        state_file = Path(workdir) / STATE_FILE
        state_file.unlink()
        state_file.mkdir()
        return super().init(workdir)


class TestDeploymentPipeline(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.apps = root / "apps"
        self.apps.mkdir()
        template = root / "template"
        template.mkdir()
        (template / tfvars.TFVARS_FILE).write_text('vm_app = ""\nvm_memory = 0\n# keep me\n')
        (template / "main.tf").write_text("# resources\n")
        self.cfg = Config(
            apps_path=str(self.apps), template_path=str(template),
            s3_bucket="state-bucket", aws_region="", aws_profile="infra",
        )
        self.messages = []

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _pipeline(self, provisioner) -> DeploymentPipeline:
        return DeploymentPipeline(self.cfg, provisioner, progress=self.messages.append)

    def test_create_success(self) -> None:
        provisioner = FakeProvisioner()
        outcome = self._pipeline(provisioner).create(IDENTITY, {"vm_app": '"web"', "vm_memory": "8192"})

        dest = self.apps / IDENTITY
        self.assertTrue(outcome.ok, outcome.message)
        self.assertEqual(outcome.state, LifecycleState.DEPLOYED)
        self.assertEqual(provisioner.calls, [("init", IDENTITY), ("apply", IDENTITY)])
        self.assertEqual(
            (dest / tfvars.TFVARS_FILE).read_text(), 'vm_app = "web"\nvm_memory = 8192\n# keep me\n',
        )
        backend = (dest / BACKEND_FILE).read_text()
        self.assertIn(f'key             = "{IDENTITY}/s3/terraform.tfstate"', backend)
        self.assertIn('region          = "ap-southeast-2"', backend)
        self.assertIn('profile         = "infra"', backend)
        record = StateStore(dest).read()
        self.assertEqual(record.state, LifecycleState.DEPLOYED)
        self.assertFalse(record.partial)
        self.assertEqual(len(self.messages), 2)

    def test_create_refuses_existing(self) -> None:
        (self.apps / IDENTITY).mkdir()
        provisioner = FakeProvisioner()
        outcome = self._pipeline(provisioner).create(IDENTITY, {})
        self.assertFalse(outcome.ok)
        self.assertIn("already exists", outcome.message)
        self.assertEqual(provisioner.calls, [])

    def test_apply_failure_leaves_partial_deployment(self) -> None:
        outcome = self._pipeline(FakeProvisioner(fail="apply")).create(IDENTITY, {})

        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.state, LifecycleState.INITIALIZED)
        self.assertIn("apply failed", outcome.message)
        self.assertIn("apply exploded", outcome.message)
        self.assertIn("Partial deployment", outcome.message)
        record = StateStore(self.apps / IDENTITY).read()
        self.assertEqual(record.state, LifecycleState.INITIALIZED)
        self.assertTrue(record.partial)

    def test_init_failure_stops_before_apply(self) -> None:
        provisioner = FakeProvisioner(fail="init")
        outcome = self._pipeline(provisioner).create(IDENTITY, {})
        self.assertFalse(outcome.ok)
        self.assertEqual(outcome.state, LifecycleState.READY)
        self.assertEqual([c[0] for c in provisioner.calls], ["init"])

    def test_state_write_failure_halts_before_apply(self) -> None:
        provisioner = BrokenStateProvisioner()
        outcome = self._pipeline(provisioner).create(IDENTITY, {})

        self.assertFalse(outcome.ok)
        self.assertIn("Failed to update launcher.state (init)", outcome.message)
        self.assertEqual(provisioner.calls, [("init", IDENTITY)])

    def test_undecodable_template_variables(self) -> None:
        (Path(self.cfg.template_path) / tfvars.TFVARS_FILE).write_bytes(b"# caf\xe9\nvm_memory = 0\n")
        provisioner = FakeProvisioner()
        outcome = self._pipeline(provisioner).create(IDENTITY, {"vm_memory": "1024"})

        self.assertFalse(outcome.ok)
        self.assertIn("Failed to write tfvars", outcome.message)
        self.assertEqual(provisioner.calls, [])

    def test_missing_template(self) -> None:
        self.cfg.template_path = str(self.apps / "no-template")
        provisioner = FakeProvisioner()
        outcome = self._pipeline(provisioner).create(IDENTITY, {})
        self.assertFalse(outcome.ok)
        self.assertIn("Failed to copy template", outcome.message)
        self.assertEqual(provisioner.calls, [])
        self.assertFalse((self.apps / IDENTITY).exists())

    def test_apply_existing_deployment(self) -> None:
        dest = self.apps / IDENTITY
        dest.mkdir()
        StateStore(dest).advance(LifecycleState.READY, "save")
        provisioner = FakeProvisioner()
        outcome = self._pipeline(provisioner).apply(dest)
        self.assertTrue(outcome.ok)
        self.assertEqual(StateStore(dest).read().state, LifecycleState.DEPLOYED)

    def test_apply_missing_deployment(self) -> None:
        outcome = self._pipeline(FakeProvisioner()).apply(self.apps / "ghost")
        self.assertFalse(outcome.ok)
        self.assertIn("not found", outcome.message)


if __name__ == "__main__":
    unittest.main()
