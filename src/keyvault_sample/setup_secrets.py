import logging
import time
import argparse

from azure.identity import DefaultAzureCredential
from azure.keyvault.secrets import SecretClient

from keyvault_sample.connectors.keys import CONVENTIONS, get_convention
from keyvault_sample.connectors.keyvault import vault_url_from_name

logging.getLogger('azure').setLevel(logging.WARNING)


def store_secret(secret_client, key, value, convention):
    """
    Stores a configuration value in the vault under its translated secret name.

    Args:
        secret_client (SecretClient): Client bound to the target vault.
        key (str): Hierarchical configuration key, e.g. Secrets:ConnectionString.
        value (str): The value to store.
        convention (KeyConvention): Naming convention used to build the secret name.

    Returns:
        str: The secret name that was written.
    """
    secret_name = convention.to_remote(key)
    secret_client.set_secret(secret_name, value)
    logging.info(f"Stored configuration key {key} as secret {secret_name}.")
    return secret_name


def execute_setup(key_vault_name, key, value, convention_name, enable_managed_identities, enable_env_credentials):
    """
    Writes one configuration value to the Key Vault used by the sample.

    Args:
        key_vault_name (str): The key vault name (or its full https:// URI).
        key (str): Hierarchical configuration key to store.
        value (str): The value to store.
        convention_name (str): dotnet or spring.
        enable_managed_identities (bool): Whether to use managed identities to run the setup.
        enable_env_credentials (bool): Whether to use environment credentials to run the setup.
    """
    credential = DefaultAzureCredential(
        exclude_managed_identity_credential=not enable_managed_identities,
        exclude_environment_credential=not enable_env_credentials
    )
    vault_url = vault_url_from_name(key_vault_name)
    logging.info(f"Key Vault endpoint: {vault_url}")

    secret_client = SecretClient(vault_url=vault_url, credential=credential)
    return store_secret(secret_client, key, value, get_convention(convention_name))


def main(argv=None):
    parser = argparse.ArgumentParser(description='Store a configuration value (such as the connection string) in Key Vault.')
    parser.add_argument('-k', '--key_vault_name', required=True, help='Key vault name')
    parser.add_argument('-n', '--key', default='Secrets:ConnectionString', help='Configuration key')
    parser.add_argument('-v', '--value', help='Value to store; prompted when omitted')
    parser.add_argument('-c', '--convention', default='dotnet', choices=sorted(CONVENTIONS), help='Secret name convention')
    parser.add_argument('-i', '--enable_managed_identities', action='store_true', default=False, help='Enable managed identities')
    parser.add_argument('-e', '--enable_env_credentials', action='store_true', default=False, help='Enable environment credentials')
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    logging.info("Starting setup.")

    value = args.value
    if value is None:
        value = input(f"Enter value for {args.key}: ")

    start_time = time.time()

    execute_setup(args.key_vault_name, args.key, value, args.convention, args.enable_managed_identities, args.enable_env_credentials)

    response_time = time.time() - start_time
    logging.info(f"Finished setup. {round(response_time,2)} seconds")


if __name__ == '__main__':
    main()
