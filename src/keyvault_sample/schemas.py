from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from keyvault_sample.connectors.appconfig import AppConfig
from keyvault_sample.connectors.keys import DOTNET
from keyvault_sample.constants import SECRETS_SECTION
from keyvault_sample.exceptions import ConfigurationKeyNotFound


def _lookup_secret(config: AppConfig, *segments: str) -> Optional[str]:
    value = config.get(config.key(*segments))
    if value is None and config.convention is not DOTNET:
        # Secrets stored with the ASP.NET names (Secrets--ConnectionString--JDBC)
        # load as Secrets..ConnectionString..JDBC under the Spring convention
        value = config.get(config.convention.to_local(DOTNET.to_remote(DOTNET.join(*segments))))
    return value


class Secrets(BaseModel):
    """
    Typed view over the Secrets section of the configuration.

    Attributes:
        connection_string: Secrets:ConnectionString (vault secret Secrets--ConnectionString).
        jdbc_connection_string: Secrets:ConnectionString:JDBC, the JDBC form of the same database.
    """
    model_config = ConfigDict(frozen=True)

    connection_string: str
    jdbc_connection_string: Optional[str] = None

    @classmethod
    def from_config(cls, config: AppConfig) -> "Secrets":
        connection_string = _lookup_secret(config, SECRETS_SECTION, "ConnectionString")
        jdbc_connection_string = _lookup_secret(config, SECRETS_SECTION, "ConnectionString", "JDBC")
        if not connection_string and not jdbc_connection_string:
            raise ConfigurationKeyNotFound(config.key(SECRETS_SECTION, "ConnectionString"))
        return cls(
            connection_string=connection_string or jdbc_connection_string,
            jdbc_connection_string=jdbc_connection_string,
        )


class UserResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    connection_string: str = Field(
        ...,
        alias="connectionString",
        description="Connection string read from configuration. Returned in plain text for demonstration only.",
        examples=["Server=tcp:myserver.database.windows.net,1433;Database=mydb;User ID=app;Password=..."],
    )
    result: Optional[str] = Field(
        None,
        description="Login reported by the database for this connection (SELECT SYSTEM_USER).",
        examples=["app"],
    )


class HealthResult(BaseModel):
    status: str = Field("ok", examples=["ok"])
    vault: bool = Field(..., description="Whether secrets were loaded from Key Vault at startup.")
    credential: Optional[str] = Field(
        None,
        description="Credential path used at startup: managed_identity or service_principal.",
        examples=["managed_identity"],
    )


USER_RESPONSES = {
    200: {
        "description": "The connection string in use and the database login it authenticated as.",
        "content": {
            "application/json": {
                "example": {
                    "connectionString": "Server=db;User=u;Password=p;",
                    "result": "u"
                }
            }
        }
    },
    500: {
        "description": "The database could not be reached or the query failed.",
        "content": {
            "text/plain": {
                "example": "Internal Server Error"
            }
        }
    }
}
