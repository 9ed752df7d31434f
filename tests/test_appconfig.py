"""
Unit tests for connectors/appconfig.py
"""

import json
import os
import sys
import tempfile
import unittest

# Add src to the path so the tests run without installing the package
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from keyvault_sample.connectors.appconfig import (
    AppConfig,
    ConfigBuilder,
    flatten_json,
    load_environment,
    parse_properties,
)
from keyvault_sample.connectors.keys import SPRING
from keyvault_sample.connectors.types import ConfigEntry
from keyvault_sample.exceptions import ConfigurationKeyNotFound, InvalidConfigurationValue


class TestAppConfig(unittest.TestCase):

    def setUp(self):
        self.local = ConfigBuilder().add_mapping({
            "Secrets:ConnectionString": "Server=local;",
            "LocalOnly": "local-value",
            "Retries": "3",
            "Enabled": "Yes",
            "Hosts": "a, b ,,c",
        }, source="json").build()
        self.vault_entries = [
            ConfigEntry(key="Secrets:ConnectionString", value="Server=vault;", source="keyvault"),
        ]
        self.config = self.local.merged_with(self.vault_entries)

    def test_vault_value_takes_precedence(self):
        self.assertEqual(self.config.get("Secrets:ConnectionString"), "Server=vault;")
        self.assertEqual(self.config.source_of("Secrets:ConnectionString"), "keyvault")

    def test_local_only_value_is_unchanged(self):
        self.assertEqual(self.config.get("LocalOnly"), "local-value")
        self.assertEqual(self.config.source_of("LocalOnly"), "json")

    def test_absent_key_returns_none(self):
        self.assertIsNone(self.config.get("Missing:Key"))
        self.assertEqual(self.config.get("Missing:Key", "fallback"), "fallback")
        self.assertNotIn("Missing:Key", self.config)

    def test_require_raises_for_absent_key(self):
        with self.assertRaises(ConfigurationKeyNotFound):
            self.config.require("Missing:Key")
        with self.assertRaises(KeyError):
            self.config["Missing:Key"]

    def test_lookup_is_case_insensitive(self):
        self.assertEqual(self.config.get("secrets:connectionstring"), "Server=vault;")
        self.assertIn("SECRETS:CONNECTIONSTRING", self.config)

    def test_merge_does_not_modify_original(self):
        self.assertEqual(self.local.get("Secrets:ConnectionString"), "Server=local;")

    def test_get_value_conversions(self):
        self.assertEqual(self.config.get_value("Retries", type=int), 3)
        self.assertTrue(self.config.get_value("Enabled", type=bool))
        self.assertEqual(self.config.get_value("Missing", default=5, type=int), 5)
        self.assertIsNone(self.config.get_value("Missing", allow_none=True))
        with self.assertRaises(ConfigurationKeyNotFound):
            self.config.get_value("Missing")
        with self.assertRaises(ValueError):
            self.config.get_value("LocalOnly", type=int)

    def test_unconvertible_value_is_configuration_error(self):
        with self.assertRaises(InvalidConfigurationValue):
            self.config.get_value("LocalOnly", type=float)

    def test_first_writer_casing_is_kept(self):
        config = self.local.merged_with([ConfigEntry(key="SECRETS:CONNECTIONSTRING", value="Server=upper;", source="keyvault")])
        self.assertEqual(config.get("Secrets:ConnectionString"), "Server=upper;")
        self.assertIn("Secrets:ConnectionString", list(config))
        self.assertEqual(config.source_of("secrets:connectionstring"), "keyvault")

    def test_read_helpers(self):
        self.assertEqual(self.config.read_list("Hosts"), ["a", "b", "c"])
        self.assertEqual(self.config.read_list("Missing"), [])
        self.assertTrue(self.config.read_boolean("Enabled"))
        self.assertFalse(self.config.read_boolean("Missing"))

    def test_section(self):
        section = self.config.section("Secrets")
        self.assertEqual(section.get("ConnectionString"), "Server=vault;")
        self.assertEqual(len(section), 1)

    def test_mapping_protocol(self):
        self.assertEqual(len(self.config), 5)
        self.assertIn("LocalOnly", list(self.config))

    def test_repr_hides_values(self):
        self.assertNotIn("Server=vault", repr(self.config))

    def test_keys_from(self):
        self.assertEqual(self.config.keys_from("keyvault"), ["Secrets:ConnectionString"])


class TestSources(unittest.TestCase):

    def test_flatten_json(self):
        entries = flatten_json({
            "KeyVault": {"Uri": "https://v.vault.azure.net/"},
            "Flags": {"On": True, "Off": False, "Empty": None},
            "Hosts": ["a", "b"],
            "Port": 1433,
        })
        flat = {entry.key: entry.value for entry in entries}
        self.assertEqual(flat["KeyVault:Uri"], "https://v.vault.azure.net/")
        self.assertEqual(flat["Flags:On"], "true")
        self.assertEqual(flat["Flags:Off"], "false")
        self.assertEqual(flat["Flags:Empty"], "")
        self.assertEqual(flat["Hosts:0"], "a")
        self.assertEqual(flat["Hosts:1"], "b")
        self.assertEqual(flat["Port"], "1433")

    def test_flatten_json_spring_delimiter(self):
        entries = flatten_json({"Secrets": {"ConnectionString": "x"}}, SPRING)
        self.assertEqual(entries[0].key, "Secrets.ConnectionString")

    def test_parse_properties(self):
        text = "\n".join([
            "# comment",
            "! other comment",
            "azure.keyvault.uri=https://v.vault.azure.net/",
            "spring.application.name : sample",
            "plain value with spaces",
            "long.value=first \\",
            "    second",
            "",
        ])
        entries = {entry.key: entry.value for entry in parse_properties(text)}
        self.assertEqual(entries["azure:keyvault:uri"], "https://v.vault.azure.net/")
        self.assertEqual(entries["spring:application:name"], "sample")
        self.assertEqual(entries["plain"], "value with spaces")
        self.assertEqual(entries["long:value"], "first second")

    def test_parse_properties_keeps_dots_for_spring(self):
        entries = parse_properties("secrets.connectionstring=x", SPRING)
        self.assertEqual(entries[0].key, "secrets.connectionstring")

    def test_load_environment(self):
        entries = load_environment({"Secrets__ConnectionString": "x", "APP_Other": "y"})
        flat = {entry.key: entry.value for entry in entries}
        self.assertEqual(flat["Secrets:ConnectionString"], "x")
        self.assertTrue(all(entry.source == "environment" for entry in entries))

    def test_load_environment_with_prefix(self):
        entries = load_environment({"APP_Name": "y", "OTHER": "z"}, prefix="APP_")
        self.assertEqual([(entry.key, entry.value) for entry in entries], [("Name", "y")])

    def test_builder_precedence(self):
        with tempfile.TemporaryDirectory() as tmp:
            settings = os.path.join(tmp, "appsettings.json")
            with open(settings, "w", encoding="utf-8") as f:
                json.dump({"A": "json", "B": "json", "C": "json"}, f)
            properties = os.path.join(tmp, "application.properties")
            with open(properties, "w", encoding="utf-8") as f:
                f.write("B=properties\nC=properties\n")

            config = (ConfigBuilder()
                      .add_json_file(settings)
                      .add_properties_file(properties)
                      .add_environment({"C": "environment"})
                      .build())

        self.assertEqual(config.get("A"), "json")
        self.assertEqual(config.get("B"), "properties")
        self.assertEqual(config.get("C"), "environment")

    def test_missing_optional_file_is_skipped(self):
        config = ConfigBuilder().add_json_file("does-not-exist.json").build()
        self.assertEqual(len(config), 0)

    def test_missing_required_file_raises(self):
        with self.assertRaises(FileNotFoundError):
            ConfigBuilder().add_json_file("does-not-exist.json", optional=False).build()

    def test_empty_config(self):
        config = AppConfig()
        self.assertIsNone(config.get("Anything"))
        self.assertIsNone(config.get(None))


if __name__ == "__main__":
    unittest.main()
