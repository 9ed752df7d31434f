from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class ConfigEntry(BaseModel):
    """
    A single hierarchical configuration value.

    Attributes:
        key: The local hierarchical key (e.g. Secrets:ConnectionString).
        value: The string value.
        source: The layer that supplied the value (json, properties, environment, keyvault, memory).
    """
    model_config = ConfigDict(frozen=True)

    key: str
    value: str
    source: str = "memory"


class AmbientManagedIdentity(BaseModel):
    """
    Identity provided by the Azure host (App Service, Functions, VM, AKS).

    Attributes:
        client_id: Client ID of a user-assigned identity; None for the system-assigned one.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["managed_identity"] = "managed_identity"
    client_id: Optional[str] = None


class ServicePrincipal(BaseModel):
    """
    Application registration used outside Azure, typically for local development.

    Attributes:
        tenant_id: The Azure tenant ID.
        client_id: The application (client) ID.
        client_secret: The client secret.
    """
    model_config = ConfigDict(frozen=True)

    kind: Literal["service_principal"] = "service_principal"
    tenant_id: str
    client_id: str
    client_secret: SecretStr


Credential = Annotated[Union[AmbientManagedIdentity, ServicePrincipal], Field(discriminator="kind")]
