import asyncio
import logging

from typing import Iterable, List, Optional
from azure.keyvault.secrets.aio import SecretClient as AsyncSecretClient
from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)

from keyvault_sample.connectors.credentials import create_token_credential
from keyvault_sample.connectors.keys import KeyConvention, DOTNET
from keyvault_sample.connectors.types import ConfigEntry, Credential
from keyvault_sample.constants import DEFAULT_KEY_VAULT_TIMEOUT, KEY_VAULT_DOMAIN
from keyvault_sample.exceptions import (
    AuthenticationRejected,
    SecretConfigError,
    SecretNotFound,
    VaultUnreachable,
)

##########################################################
# KEY VAULT
##########################################################

def vault_url_from_name(vault_name: str) -> str:
    """Expand a vault name into its https://<name>.vault.azure.net/ endpoint."""
    vault_name = vault_name.strip()
    if vault_name.startswith("https://"):
        return vault_name
    return f"https://{vault_name}.{KEY_VAULT_DOMAIN}/"


def _translate_error(e: Exception, vault_url: str, name: Optional[str] = None) -> Optional[SecretConfigError]:
    if isinstance(e, ResourceNotFoundError) and name is not None:
        return SecretNotFound(name)
    if isinstance(e, ClientAuthenticationError):
        return AuthenticationRejected(f"Authentication to {vault_url} failed. Please check your credentials. {e}")
    if isinstance(e, HttpResponseError) and e.status_code in (401, 403):
        return AuthenticationRejected(
            f"Access to {vault_url} denied (HTTP {e.status_code}). Check the vault access policy "
            f"or role assignment for this identity. {e.message}"
        )
    if isinstance(e, (ServiceRequestError, ServiceResponseError, asyncio.TimeoutError)):
        return VaultUnreachable(f"Key Vault {vault_url} is unreachable: {str(e) or e.__class__.__name__}")
    if isinstance(e, HttpResponseError) and e.status_code is not None and e.status_code >= 500:
        return VaultUnreachable(f"Key Vault {vault_url} returned HTTP {e.status_code}: {e.message}")
    return None


async def _fetch_secret(client: AsyncSecretClient, name: str) -> str:
    retrieved_secret = await client.get_secret(name)
    return retrieved_secret.value if retrieved_secret.value is not None else ""


async def _fetch_secrets(client: AsyncSecretClient, convention: KeyConvention, names: Optional[Iterable[str]]) -> List[ConfigEntry]:
    if names is None:
        names = []
        async for properties in client.list_properties_of_secrets():
            if properties.enabled is False:
                logging.debug("Skipping disabled secret '%s'.", properties.name)
                continue
            names.append(properties.name)
    else:
        names = list(names)

    convention.check_unique(names)

    entries = []
    for name in names:
        try:
            value = await _fetch_secret(client, name)
        except ResourceNotFoundError as e:
            raise SecretNotFound(name) from e
        entries.append(ConfigEntry(key=convention.to_local(name), value=value, source="keyvault"))
    return entries


async def load_secrets(vault_url: str,
                       credential: Credential,
                       convention: KeyConvention = DOTNET,
                       names: Optional[Iterable[str]] = None,
                       timeout: float = DEFAULT_KEY_VAULT_TIMEOUT) -> List[ConfigEntry]:
    """
    Fetch secrets from a Key Vault as configuration entries.

    Args:
        vault_url (str): The vault endpoint, e.g. https://<name>.vault.azure.net/.
        credential (Credential): The resolved identity.
        convention (KeyConvention): How secret names map to hierarchical keys.
        names (Iterable[str], optional): Remote secret names to load. Loads every
            enabled secret in the vault when omitted.
        timeout (float): Seconds allowed for the whole load.

    Returns:
        List[ConfigEntry]: One entry per secret, keyed by the translated local key.

    Raises:
        VaultUnreachable: Network or DNS failure, or the load timed out.
        AuthenticationRejected: The credential was refused or lacks permission.
        SecretNotFound: A name listed in names does not exist.
        KeyTranslationAmbiguous: Two secret names map to the same local key.
    """
    token_credential = create_token_credential(credential)
    try:
        async with token_credential:
            async with AsyncSecretClient(vault_url=vault_url, credential=token_credential) as client:
                entries = await asyncio.wait_for(_fetch_secrets(client, convention, names), timeout=timeout)
    except SecretConfigError:
        raise
    except Exception as e:
        error = _translate_error(e, vault_url)
        if error is None:
            raise
        raise error from e

    logging.info("Loaded %d secrets from Key Vault %s.", len(entries), vault_url)
    return entries


async def get_secret(vault_url: str, credential: Credential, name: str,
                     timeout: float = DEFAULT_KEY_VAULT_TIMEOUT) -> str:
    """
    Fetch one secret value by its vault name.

    Raises:
        SecretNotFound: If the secret does not exist.
        VaultUnreachable, AuthenticationRejected: As for load_secrets.
    """
    token_credential = create_token_credential(credential)
    try:
        async with token_credential:
            async with AsyncSecretClient(vault_url=vault_url, credential=token_credential) as client:
                return await asyncio.wait_for(_fetch_secret(client, name), timeout=timeout)
    except Exception as e:
        error = _translate_error(e, vault_url, name)
        if error is None:
            raise
        raise error from e
