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
from infracat.events import (
    ApplyDeployment, CreateDeployment, DeploymentsLoaded, FetchOptions, LoadDeployments, LoadVariables,
    OperationFinished, OperationProgress, OptionsFetched, Quit, SaveFinished, SaveVariables, VariablesLoaded,
)
from infracat.runner import EffectRunner
from infracat.state import LifecycleState, StateStore
from tests.test_pipeline import FakeProvisioner


def run_now(fn):
    fn()


class TestEffectRunner(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.apps = root / "apps"
        self.apps.mkdir()
        template = root / "template"
        template.mkdir()
        (template / tfvars.TFVARS_FILE).write_text("vm_memory = 0\n")
        self.cfg = Config(apps_path=str(self.apps), template_path=str(template), s3_bucket="bucket")
        self.events = []
        self.quit_calls = []
        self.provisioner = FakeProvisioner()
        self.runner = EffectRunner(
            self.cfg, self.events.append, lookup=lambda cluster: ["t1"], spawn=run_now,
            provisioner=self.provisioner, on_quit=lambda: self.quit_calls.append(True),
            probe_environment=False,
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_load_deployments(self) -> None:
        (self.apps / "proxmox_a").mkdir()
        self.runner.run([LoadDeployments(announce=True)])
        event = self.events[0]
        self.assertIsInstance(event, DeploymentsLoaded)
        self.assertTrue(event.announce)
        self.assertEqual([d.name for d in event.deployments], ["proxmox_a"])
        self.assertIsNone(event.environment)

    def test_load_deployments_unreadable_root(self) -> None:
        self.cfg.apps_path = str(self.apps / "missing")
        runner = EffectRunner(self.cfg, self.events.append, lookup=list, spawn=run_now, probe_environment=False)
        runner.run([LoadDeployments()])
        self.assertIsNotNone(self.events[0].error)

    def test_fetch_options(self) -> None:
        self.runner.run([FetchOptions(key="vm_template", trigger_value="cl1", token=4)])
        self.assertEqual(self.events, [OptionsFetched(key="vm_template", token=4, options=("t1",))])

    def test_variables_round_trip(self) -> None:
        dep = self.apps / "proxmox_a"
        dep.mkdir()
        path = str(dep / tfvars.TFVARS_FILE)
        Path(path).write_text("vm_memory = 2048\n")

        self.runner.run([SaveVariables(path=path, updates={"vm_memory": "4096"}), LoadVariables(name="proxmox_a", path=path)])
        self.assertEqual(self.events[0], SaveFinished(ok=True, message="Changes saved!"))
        self.assertEqual(self.events[1], VariablesLoaded(name="proxmox_a", path=path, variables={"vm_memory": "4096"}))

    def test_missing_variables_file(self) -> None:
        path = str(self.apps / "nope" / tfvars.TFVARS_FILE)
        self.runner.run([LoadVariables(name="nope", path=path), SaveVariables(path=path, updates={"a": "1"})])
        self.assertIsNotNone(self.events[0].error)
        self.assertFalse(self.events[1].ok)

    def test_create_reports_progress_then_result(self) -> None:
        self.runner.run([CreateDeployment(identity="proxmox_web_dmz_01", updates={"vm_memory": "1024"})])
        self.assertIsInstance(self.events[0], OperationProgress)
        final = self.events[-1]
        self.assertIsInstance(final, OperationFinished)
        self.assertTrue(final.ok)
        self.assertEqual(StateStore(self.apps / "proxmox_web_dmz_01").read().state, LifecycleState.DEPLOYED)

    def test_apply_failure(self) -> None:
        dep = self.apps / "proxmox_a"
        dep.mkdir()
        self.provisioner.fail = "init"
        self.runner.run([ApplyDeployment(path=str(dep))])
        final = self.events[-1]
        self.assertFalse(final.ok)
        self.assertIn("init failed", final.message)

    def test_undecodable_template_still_finishes(self) -> None:
        (Path(self.cfg.template_path) / tfvars.TFVARS_FILE).write_bytes(b"# caf\xe9\nvm_memory = 0\n")
        self.runner.run([CreateDeployment(identity="proxmox_web_dmz_01", updates={"vm_memory": "1024"})])
        final = self.events[-1]
        self.assertIsInstance(final, OperationFinished)
        self.assertFalse(final.ok)
        self.assertIn("Failed to write tfvars", final.message)

    def test_unexpected_error_still_finishes(self) -> None:
        dep = self.apps / "proxmox_a"
        dep.mkdir()

        def explode(workdir):
            raise RuntimeError("tool crashed")

        self.provisioner.init = explode
        self.runner.run([ApplyDeployment(path=str(dep))])
        final = self.events[-1]
        self.assertIsInstance(final, OperationFinished)
        self.assertFalse(final.ok)
        self.assertIn("RuntimeError: tool crashed", final.message)

    def test_undecodable_variables_save_fails(self) -> None:
        dep = self.apps / "proxmox_a"
        dep.mkdir()
        path = dep / tfvars.TFVARS_FILE
        path.write_bytes(b"# caf\xe9\nvm_memory = 2048\n")
        self.runner.run([SaveVariables(path=str(path), updates={"vm_memory": "4096"})])
        self.assertFalse(self.events[0].ok)
        self.assertTrue(self.events[0].message.startswith("Save failed:"))

    def test_quit(self) -> None:
        self.runner.run([Quit()])
        self.assertEqual(self.quit_calls, [True])

    def test_unknown_effect(self) -> None:
        with self.assertRaises(TypeError):
            self.runner.execute(object())


if __name__ == "__main__":
    unittest.main()
