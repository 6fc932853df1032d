import io
import os
import sys
import unittest
from dataclasses import replace

from rich.console import Console


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from infracat import tfvars
from infracat.controller import AppState, Scene
from infracat.environment import EnvironmentStatus
from infracat.form import FormEngine
from infracat.registry import DeploymentSummary
from infracat.state import LifecycleState
from infracat.view import environment_text, render
from tests.test_controller import CATALOG, LAYOUT, PRESETS


def to_text(renderable) -> str:
    console = Console(file=io.StringIO(), width=200, color_system=None)
    console.print(renderable)
    return console.file.getvalue()


class TestView(unittest.TestCase):
    def setUp(self) -> None:
        self.dep = DeploymentSummary(
            name="proxmox_web_dmz_01", description="Web tier", state=LifecycleState.INITIALIZED,
            partial=True, error="terraform apply failed",
            variables=tfvars.parse('vm_memory = 4096\nvm_disk_size = ["50G", "100G"]\n'),
        )

    def test_launcher(self) -> None:
        state = AppState(deployments=(self.dep,), status="Deployments refreshed!")
        text = to_text(render(state, CATALOG, PRESETS))
        self.assertIn("proxmox_web_dmz_01", text)
        self.assertIn("INITIALIZED*", text)
        self.assertIn("50G,100G", text)
        self.assertIn("Deployments refreshed!", text)

    def test_empty_launcher(self) -> None:
        self.assertIn("No deployments yet", to_text(render(AppState(), CATALOG, PRESETS)))

    def test_create_form(self) -> None:
        form = FormEngine.for_create(CATALOG, LAYOUT, PRESETS[0])
        state = AppState(scene=Scene.CREATE_FORM, form=form)
        text = to_text(render(state, CATALOG, PRESETS))
        self.assertIn("[Preset: default]", text)
        self.assertIn("Application", text)
        self.assertIn("‹ standard ›", text)

    def test_busy(self) -> None:
        state = AppState(deployments=(self.dep,), busy=True, busy_message="Applying...")
        self.assertIn("Applying...", to_text(render(state, CATALOG, PRESETS)))

    def test_edit_table(self) -> None:
        state = replace(AppState(deployments=(self.dep,)), scene=Scene.EDIT_TABLE)
        text = to_text(render(state, CATALOG, PRESETS))
        self.assertIn("Memory", text)
        self.assertIn("terraform apply failed", text)

    def test_environment_indicator(self) -> None:
        text = environment_text(EnvironmentStatus(aws_ok=True, vault_ok=False, git_branch="main", git_dirty=True))
        self.assertEqual(text.plain, "AWS  Vault  git main*")
        self.assertEqual(environment_text(EnvironmentStatus()).plain, "AWS  Vault  git ?")


if __name__ == "__main__":
    unittest.main()
