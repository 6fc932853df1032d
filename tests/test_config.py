import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from infracat.config import DEFAULT_FORM_FIELDS, Config, load_config
from infracat.errors import ConfigError, FormValidationError
from infracat.scaffold import identity_from_values, render_backend


class TestConfig(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, text: str) -> Path:
        path = self.dir / "config.yaml"
        path.write_text(text)
        return path

    def test_relative_paths_resolved(self) -> None:
        path = self._write("apps_path: apps\ntemplate_path: /srv/template\ns3_bucket: b\n")
        with mock.patch.dict(os.environ, {}, clear=True):
            cfg = load_config(path)
        self.assertEqual(cfg.apps_path, str(self.dir.resolve() / "apps"))
        self.assertEqual(cfg.template_path, "/srv/template")
        self.assertEqual(cfg.fields_path, str(self.dir.resolve() / "fields.yaml"))
        self.assertEqual(cfg.vault_addr, "http://127.0.0.1:8200")
        self.assertEqual(tuple(cfg.form_fields), DEFAULT_FORM_FIELDS)
        self.assertEqual(cfg.preset_preserve_fields, ["zone", "cluster"])

    def test_environment_overrides(self) -> None:
        path = self._write("aws_profile: file-profile\naws_region: us-east-1\n")
        env = {"AWS_PROFILE": "env-profile", "VAULT_ADDR": "https://vault.lan"}
        with mock.patch.dict(os.environ, env, clear=True):
            cfg = load_config(path)
        self.assertEqual(cfg.aws_profile, "env-profile")
        self.assertEqual(cfg.aws_region, "us-east-1")
        self.assertEqual(cfg.vault_addr, "https://vault.lan")

    def test_unknown_key(self) -> None:
        with self.assertRaises(ConfigError):
            load_config(self._write("apps_path: apps\nbogus: 1\n"))

    def test_malformed(self) -> None:
        with self.assertRaises(ConfigError):
            load_config(self._write("apps_path: [unclosed\n"))
        with self.assertRaises(ConfigError):
            load_config(self._write("- a list\n"))
        with self.assertRaises(ConfigError):
            load_config(self.dir / "missing.yaml")


class TestScaffold(unittest.TestCase):
    def test_identity(self) -> None:
        values = {"vm_app": "web", "zone": "dmz", "platform_id": " 01 "}
        self.assertEqual(identity_from_values("proxmox", values), "proxmox_web_dmz_01")

    def test_identity_rejects_bad_parts(self) -> None:
        for values, key in (
            ({"vm_app": "", "zone": "dmz", "platform_id": "01"}, "vm_app"),
            ({"vm_app": "web", "zone": "a/b", "platform_id": "01"}, "zone"),
            ({"vm_app": "web", "zone": "dmz", "platform_id": ".."}, "platform_id"),
        ):
            with self.assertRaises(FormValidationError) as ctx:
                identity_from_values("proxmox", values)
            self.assertEqual(ctx.exception.key, key)

    def test_backend_without_profile(self) -> None:
        text = render_backend(Config(s3_bucket="bucket", aws_region="eu-west-1"), "proxmox_web_dmz_01")
        self.assertIn('bucket          = "bucket"', text)
        self.assertIn('region          = "eu-west-1"', text)
        self.assertNotIn("profile", text)


if __name__ == "__main__":
    unittest.main()
