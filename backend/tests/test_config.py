"""Unit tests for YAML settings loading."""

import json
import os
from pathlib import Path
import sys
import tempfile
import unittest
from unittest import mock


BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import core
import models
from common.contract_abi import DEFAULT_LENDING_ABI
from core.config import load_settings


CONFIG_TEXT = """
app:
  name: Test Oracle
  port: "4000"
oracle:
  enabled: "yes"
  rpc_url: http://node:8545
  contract_address: "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
  private_key: "0xfromfile"
  poll_interval_sec: 0.5
  max_block_range: 0
  start_block: 120
  submit_max_attempts: abc
  registry_error_policy: " RETRY "
database:
  url: sqlite:///test.db
"""


class LoadSettingsTests(unittest.TestCase):
    """Settings come from YAML with typed fallbacks."""

    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.config_path = Path(self._tmp.name) / "config.yml"
        self.config_path.write_text(CONFIG_TEXT, encoding="utf-8")
        patcher = mock.patch.dict(os.environ, {}, clear=False)
        patcher.start()
        self.addCleanup(patcher.stop)
        os.environ.pop("ORACLE_PRIVATE_KEY", None)

    def test_values_are_parsed(self) -> None:
        settings = load_settings(self.config_path)

        self.assertEqual(settings.app_name, "Test Oracle")
        self.assertEqual(settings.port, 4000)
        self.assertTrue(settings.oracle_enabled)
        self.assertEqual(settings.oracle_rpc_url, "http://node:8545")
        self.assertEqual(settings.oracle_poll_interval_sec, 0.5)
        self.assertEqual(settings.oracle_start_block, 120)
        self.assertEqual(settings.database_url, "sqlite:///test.db")

    def test_invalid_values_fall_back(self) -> None:
        settings = load_settings(self.config_path)

        self.assertEqual(settings.oracle_submit_max_attempts, 5)
        self.assertEqual(settings.oracle_max_block_range, 1)
        self.assertEqual(settings.oracle_registry_error_policy, "retry")

    def test_missing_file_uses_defaults(self) -> None:
        settings = load_settings(Path(self._tmp.name) / "absent.yml")

        self.assertFalse(settings.oracle_enabled)
        self.assertEqual(settings.port, 3001)
        self.assertEqual(settings.oracle_chain_id, 31337)
        self.assertIsNone(settings.oracle_start_block)
        self.assertEqual(settings.oracle_registry_error_policy, "reject")
        self.assertTrue(settings.oracle_reconcile_on_startup)
        self.assertEqual(json.loads(settings.oracle_contract_abi_json), DEFAULT_LENDING_ABI)

    def test_environment_key_overrides_file(self) -> None:
        self.assertEqual(load_settings(self.config_path).oracle_private_key, "0xfromfile")
        os.environ["ORACLE_PRIVATE_KEY"] = "0xfromenv"
        self.assertEqual(load_settings(self.config_path).oracle_private_key, "0xfromenv")

    def test_unknown_policy_is_fail_closed(self) -> None:
        self.config_path.write_text("oracle:\n  registry_error_policy: approve\n", encoding="utf-8")
        self.assertEqual(load_settings(self.config_path).oracle_registry_error_policy, "reject")


class PackageExportTests(unittest.TestCase):
    """Package exports stay in step with the modules behind them."""

    def test_exported_names_resolve(self) -> None:
        for package in (core, models):
            for name in package.__all__:
                self.assertTrue(hasattr(package, name), "{0}.{1}".format(package.__name__, name))

    def test_settings_are_read_through_load_settings_only(self) -> None:
        self.assertIn("load_settings", core.__all__)
        self.assertNotIn("get_env", core.__all__)
        self.assertNotIn("ModelNotFoundError", models.__all__)

if __name__ == "__main__":
    unittest.main()
