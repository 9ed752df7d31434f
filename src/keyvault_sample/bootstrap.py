"""
Startup sequence: local settings, credential resolution and Key Vault secrets.

Everything here runs once, before the web server starts listening. Any error
raised from build_configuration is meant to abort the process.
"""
import os
import logging

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from keyvault_sample.connectors.appconfig import AppConfig, ConfigBuilder
from keyvault_sample.connectors.credentials import resolve_credential
from keyvault_sample.connectors.keys import KeyConvention, DOTNET
from keyvault_sample.connectors.keyvault import load_secrets, vault_url_from_name
from keyvault_sample.connectors.types import Credential
from keyvault_sample.constants import (
    CREDENTIAL_SOURCE,
    DEFAULT_KEY_VAULT_TIMEOUT,
    DEFAULT_PROBE_ATTEMPTS,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_PROPERTIES_FILE,
    DEFAULT_SETTINGS_FILE,
    ENVIRONMENT_NAME_VARIABLE,
    KEY_VAULT_NAME_PATH,
    KEY_VAULT_TIMEOUT,
    KEY_VAULT_URI_PATH,
    MANAGED_IDENTITY_CLIENT_ID,
    MANAGED_IDENTITY_PROBE_ATTEMPTS,
    MANAGED_IDENTITY_PROBE_TIMEOUT,
)


@dataclass(frozen=True)
class StartupState:
    config: AppConfig
    vault_url: Optional[str] = None
    credential: Optional[Credential] = None

    @property
    def vault_loaded(self) -> bool:
        return self.vault_url is not None


def build_local_config(settings_file=DEFAULT_SETTINGS_FILE,
                       properties_file=DEFAULT_PROPERTIES_FILE,
                       convention: KeyConvention = DOTNET,
                       environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """
    Merge the local sources, lowest precedence first: settings JSON, its
    environment overlay (appsettings.<ASPNETCORE_ENVIRONMENT>.json), the
    properties file, then environment variables.
    """
    environ = os.environ if environ is None else environ
    builder = ConfigBuilder(convention)
    if settings_file:
        settings_path = Path(settings_file)
        builder.add_json_file(settings_path)
        environment_name = environ.get(ENVIRONMENT_NAME_VARIABLE)
        if environment_name:
            builder.add_json_file(settings_path.with_name(f"{settings_path.stem}.{environment_name}{settings_path.suffix}"))
    if properties_file:
        builder.add_properties_file(properties_file)
    builder.add_environment(environ)
    return builder.build()


def get_vault_url(config: AppConfig) -> Optional[str]:
    """
    Read the vault address: KeyVault:Uri, then the Spring property azure.keyvault.uri,
    then KeyVaultName expanded to https://<name>.vault.azure.net/.
    """
    vault_url = config.get(config.key(*KEY_VAULT_URI_PATH)) or config.get(config.key("azure", "keyvault", "uri"))
    if vault_url:
        return vault_url.strip()
    vault_name = config.get(config.key(*KEY_VAULT_NAME_PATH))
    if vault_name:
        return vault_url_from_name(vault_name)
    return None


async def build_configuration(settings_file=DEFAULT_SETTINGS_FILE,
                              properties_file=DEFAULT_PROPERTIES_FILE,
                              convention: KeyConvention = DOTNET,
                              environ: Optional[Mapping[str, str]] = None,
                              credential_source: Optional[str] = None,
                              local_config: Optional[AppConfig] = None) -> StartupState:
    """
    Build the immutable configuration for the process.

    Args:
        settings_file: Path of the JSON settings file (optional on disk).
        properties_file: Path of the .properties file (optional on disk).
        convention (KeyConvention): Key naming convention shared by files and vault.
        environ (Mapping, optional): Environment variables; defaults to os.environ.
        credential_source (str, optional): Overrides CREDENTIAL_SOURCE (auto, managed_identity, service_principal).
        local_config (AppConfig, optional): Local settings already merged by build_local_config.

    Returns:
        StartupState: The merged configuration plus how it was loaded.

    Raises:
        CredentialUnavailable, VaultUnreachable, AuthenticationRejected,
        SecretNotFound, KeyTranslationAmbiguous, InvalidConfigurationValue:
            Startup must not continue.
    """
    environ = os.environ if environ is None else environ
    if local_config is None:
        local_config = build_local_config(settings_file, properties_file, convention, environ)

    vault_url = get_vault_url(local_config)
    if not vault_url:
        logging.info("Azure Key Vault skipped: no %s or %s configured. Using local configuration only.",
                     local_config.key(*KEY_VAULT_URI_PATH), local_config.key(*KEY_VAULT_NAME_PATH))
        return StartupState(config=local_config)

    credential = await resolve_credential(
        environ=environ,
        source=credential_source or local_config.get(CREDENTIAL_SOURCE, "auto"),
        managed_identity_client_id=local_config.get(MANAGED_IDENTITY_CLIENT_ID),
        probe_timeout=local_config.get_value(MANAGED_IDENTITY_PROBE_TIMEOUT, DEFAULT_PROBE_TIMEOUT, type=float),
        probe_attempts=local_config.get_value(MANAGED_IDENTITY_PROBE_ATTEMPTS, DEFAULT_PROBE_ATTEMPTS, type=int),
    )

    secret_names = local_config.read_list(local_config.key("KeyVault", "SecretNames")) or None
    entries = await load_secrets(
        vault_url,
        credential,
        convention=convention,
        names=secret_names,
        timeout=local_config.get_value(KEY_VAULT_TIMEOUT, DEFAULT_KEY_VAULT_TIMEOUT, type=float),
    )
    for entry in entries:
        logging.info("Configuration key from Key Vault: %s", entry.key)

    return StartupState(
        config=local_config.merged_with(entries),
        vault_url=vault_url,
        credential=credential,
    )
