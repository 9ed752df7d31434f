# Application
APP_NAME = "keyvault-sample"
APPLICATION_INSIGHTS_CONNECTION_STRING = "APPLICATIONINSIGHTS_CONNECTION_STRING"

# Local settings files
DEFAULT_SETTINGS_FILE = "appsettings.json"
DEFAULT_PROPERTIES_FILE = "application.properties"
ENVIRONMENT_NAME_VARIABLE = "ASPNETCORE_ENVIRONMENT"

# Key Vault
KEY_VAULT_URI_PATH = ("KeyVault", "Uri")
KEY_VAULT_NAME_PATH = ("KeyVaultName",)
KEY_VAULT_DOMAIN = "vault.azure.net"
KEY_VAULT_SCOPE = "https://vault.azure.net/.default"
KEY_VAULT_TIMEOUT = "KEY_VAULT_TIMEOUT"
DEFAULT_KEY_VAULT_TIMEOUT = 30.0

# Credential resolution
CREDENTIAL_SOURCE = "CREDENTIAL_SOURCE"
MANAGED_IDENTITY_CLIENT_ID = "MANAGED_IDENTITY_CLIENT_ID"
MANAGED_IDENTITY_PROBE_TIMEOUT = "MANAGED_IDENTITY_PROBE_TIMEOUT"
MANAGED_IDENTITY_PROBE_ATTEMPTS = "MANAGED_IDENTITY_PROBE_ATTEMPTS"
DEFAULT_PROBE_TIMEOUT = 5.0
DEFAULT_PROBE_ATTEMPTS = 2
AUTH_CONNECTION_STRING = "AzureServicesAuthConnectionString"

# Database
SECRETS_SECTION = "Secrets"
DATABASE_DRIVER_PATH = ("Database", "Driver")
DEFAULT_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"
SYSTEM_USER_QUERY = "SELECT SYSTEM_USER"
