"""
Unit tests for setup_secrets.py
"""

import os
import sys
import unittest
from unittest.mock import MagicMock, patch

# Add src to the path so the tests run without installing the package
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from keyvault_sample import setup_secrets
from keyvault_sample.connectors.keys import DOTNET, SPRING
from keyvault_sample.exceptions import KeyTranslationAmbiguous


class TestSetupSecrets(unittest.TestCase):

    def test_store_secret_translates_key(self):
        client = MagicMock()
        name = setup_secrets.store_secret(client, "Secrets:ConnectionString", "Server=db;", DOTNET)
        self.assertEqual(name, "Secrets--ConnectionString")
        client.set_secret.assert_called_once_with("Secrets--ConnectionString", "Server=db;")

    def test_store_secret_spring(self):
        client = MagicMock()
        setup_secrets.store_secret(client, "Secrets.ConnectionString", "jdbc:x", SPRING)
        client.set_secret.assert_called_once_with("Secrets-ConnectionString", "jdbc:x")

    def test_store_secret_rejects_untranslatable_key(self):
        client = MagicMock()
        with self.assertRaises(KeyTranslationAmbiguous):
            setup_secrets.store_secret(client, "Secrets.Connection-String", "x", SPRING)
        client.set_secret.assert_not_called()

    @patch("keyvault_sample.setup_secrets.SecretClient")
    @patch("keyvault_sample.setup_secrets.DefaultAzureCredential")
    def test_main(self, mock_credential, mock_secret_client):
        setup_secrets.main(["-k", "sample", "-v", "Server=db;"])
        mock_credential.assert_called_once_with(
            exclude_managed_identity_credential=True,
            exclude_environment_credential=True
        )
        mock_secret_client.assert_called_once_with(
            vault_url="https://sample.vault.azure.net/", credential=mock_credential.return_value
        )
        mock_secret_client.return_value.set_secret.assert_called_once_with("Secrets--ConnectionString", "Server=db;")


if __name__ == "__main__":
    unittest.main()
