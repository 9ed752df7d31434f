import os
import asyncio
import logging

from typing import Mapping, Optional

from azure.core.exceptions import AzureError
from azure.identity import CredentialUnavailableError
from azure.identity.aio import ManagedIdentityCredential, ClientSecretCredential
from tenacity import AsyncRetrying, retry_if_not_exception_type, stop_after_attempt, wait_random_exponential

from keyvault_sample.connectors.types import AmbientManagedIdentity, Credential, ServicePrincipal
from keyvault_sample.constants import (
    AUTH_CONNECTION_STRING,
    DEFAULT_PROBE_ATTEMPTS,
    DEFAULT_PROBE_TIMEOUT,
    KEY_VAULT_SCOPE,
)
from keyvault_sample.exceptions import CredentialUnavailable, InvalidConfigurationValue

CREDENTIAL_SOURCES = ("auto", "managed_identity", "service_principal")

##########################################################
# SERVICE PRINCIPAL
##########################################################

def parse_auth_connection_string(value: str) -> dict:
    """
    Parse an AppAuthentication style connection string.

    Example: "RunAs=App;AppId=<client id>;TenantId=<tenant id>;AppKey=<secret>"

    Returns:
        dict: Lower-cased keys mapped to their values.
    """
    parts = {}
    for segment in value.split(";"):
        if not segment.strip():
            continue
        name, sep, item = segment.partition("=")
        if not sep:
            raise ValueError(f"Malformed segment '{name.strip()}' in {AUTH_CONNECTION_STRING}.")
        parts[name.strip().lower()] = item.strip()
    return parts


def read_service_principal(environ: Optional[Mapping[str, str]] = None) -> Optional[ServicePrincipal]:
    """
    Read a service principal from AZURE_TENANT_ID / AZURE_CLIENT_ID / AZURE_CLIENT_SECRET,
    or from the composite AzureServicesAuthConnectionString. Discrete variables win.

    Returns None when no complete set of values is present.

    Raises:
        CredentialUnavailable: If the composite connection string is malformed.
    """
    environ = os.environ if environ is None else environ

    tenant_id = environ.get("AZURE_TENANT_ID")
    client_id = environ.get("AZURE_CLIENT_ID")
    client_secret = environ.get("AZURE_CLIENT_SECRET")
    if tenant_id and client_id and client_secret:
        return ServicePrincipal(tenant_id=tenant_id, client_id=client_id, client_secret=client_secret)

    composite = environ.get(AUTH_CONNECTION_STRING)
    if composite:
        try:
            parts = parse_auth_connection_string(composite)
        except ValueError as e:
            raise CredentialUnavailable(f"{AUTH_CONNECTION_STRING} could not be parsed: {e}") from e
        if parts.get("runas", "app").lower() != "app":
            logging.warning("%s uses RunAs=%s; only RunAs=App is supported.", AUTH_CONNECTION_STRING, parts.get("runas"))
            return None
        tenant_id = parts.get("tenantid")
        client_id = parts.get("appid")
        client_secret = parts.get("appkey")
        if tenant_id and client_id and client_secret:
            return ServicePrincipal(tenant_id=tenant_id, client_id=client_id, client_secret=client_secret)
        logging.warning("%s is missing TenantId, AppId or AppKey.", AUTH_CONNECTION_STRING)

    return None


##########################################################
# TOKEN CREDENTIALS
##########################################################

def create_token_credential(credential: Credential):
    """Build the async azure-identity credential for a resolved Credential."""
    if isinstance(credential, AmbientManagedIdentity):
        if credential.client_id:
            return ManagedIdentityCredential(client_id=credential.client_id)
        return ManagedIdentityCredential()
    if isinstance(credential, ServicePrincipal):
        return ClientSecretCredential(
            tenant_id=credential.tenant_id,
            client_id=credential.client_id,
            client_secret=credential.client_secret.get_secret_value(),
        )
    raise TypeError(f"Unsupported credential type {type(credential).__name__}")


def _probe_before_sleep(retry_state):
    ex = retry_state.outcome.exception()
    logging.warning(
        "Managed identity probe attempt %d failed (%s: %s), retrying.",
        retry_state.attempt_number, ex.__class__.__name__, ex
    )


async def probe_managed_identity(client_id: Optional[str] = None,
                                 timeout: float = DEFAULT_PROBE_TIMEOUT,
                                 attempts: int = DEFAULT_PROBE_ATTEMPTS) -> bool:
    """
    Check whether a managed identity can issue a Key Vault token from this host.

    Each attempt is bounded by timeout seconds. CredentialUnavailableError means
    no identity endpoint exists here and is not retried.
    """
    credential = ManagedIdentityCredential(client_id=client_id) if client_id else ManagedIdentityCredential()
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_random_exponential(multiplier=0.5, max=2),
            retry=retry_if_not_exception_type(CredentialUnavailableError),
            before_sleep=_probe_before_sleep,
            reraise=True,
        ):
            with attempt:
                await asyncio.wait_for(credential.get_token(KEY_VAULT_SCOPE), timeout=timeout)
        return True
    except CredentialUnavailableError as e:
        logging.info("Managed identity not available: %s", e)
        return False
    except asyncio.TimeoutError:
        logging.info("Managed identity probe timed out after %.1f seconds.", timeout)
        return False
    except AzureError as e:
        logging.info("Managed identity probe failed: %s", e)
        return False
    finally:
        await credential.close()


async def resolve_credential(environ: Optional[Mapping[str, str]] = None,
                             source: str = "auto",
                             managed_identity_client_id: Optional[str] = None,
                             probe_timeout: float = DEFAULT_PROBE_TIMEOUT,
                             probe_attempts: int = DEFAULT_PROBE_ATTEMPTS) -> Credential:
    """
    Resolve the identity used to read the vault.

    Args:
        environ (Mapping, optional): Variables holding the service principal; defaults to os.environ.
        source (str): "auto" tries the managed identity first and falls back to the
            service principal; "managed_identity" or "service_principal" force one path.
        managed_identity_client_id (str, optional): Client ID of a user-assigned identity.
        probe_timeout (float): Seconds allowed for each managed identity probe.
        probe_attempts (int): Number of managed identity probe attempts.

    Returns:
        Credential: AmbientManagedIdentity or ServicePrincipal.

    Raises:
        CredentialUnavailable: If no path produced a credential.
        InvalidConfigurationValue: If source is not one of CREDENTIAL_SOURCES.
    """
    source = (source or "auto").strip().lower()
    if source not in CREDENTIAL_SOURCES:
        raise InvalidConfigurationValue(f"Unknown credential source '{source}'. Expected one of: {', '.join(CREDENTIAL_SOURCES)}.")

    if source in ("auto", "managed_identity"):
        if await probe_managed_identity(managed_identity_client_id, probe_timeout, probe_attempts):
            logging.info("Using managed identity credential%s.",
                         f" (client id {managed_identity_client_id})" if managed_identity_client_id else "")
            return AmbientManagedIdentity(client_id=managed_identity_client_id)
        if source == "managed_identity":
            raise CredentialUnavailable("Managed identity was requested but is not available on this host.")
        logging.info("Falling back to service principal credential.")

    service_principal = read_service_principal(environ)
    if service_principal is None:
        raise CredentialUnavailable(
            "No managed identity reachable and no service principal configured. Set AZURE_TENANT_ID, "
            f"AZURE_CLIENT_ID and AZURE_CLIENT_SECRET, or {AUTH_CONNECTION_STRING}."
        )
    logging.info("Using service principal credential (tenant %s, client id %s).",
                 service_principal.tenant_id, service_principal.client_id)
    return service_principal
