class SecretConfigError(Exception):
    """Base class for errors raised while loading or using configuration."""


class CredentialUnavailable(SecretConfigError):
    """Neither a managed identity nor a service principal could be resolved."""


class VaultUnreachable(SecretConfigError):
    """The Key Vault endpoint could not be reached (network, DNS or timeout)."""


class AuthenticationRejected(SecretConfigError):
    """The vault rejected the credential or the identity lacks an access policy."""


class SecretNotFound(SecretConfigError):
    def __init__(self, name: str):
        super().__init__(f"Secret '{name}' not found in the Key Vault.")
        self.name = name


class KeyTranslationAmbiguous(SecretConfigError):
    """A key cannot be mapped between vault and local naming without collision."""


class ConfigurationKeyNotFound(SecretConfigError, KeyError):
    def __init__(self, key: str):
        super().__init__(f"The configuration variable {key} not found.")
        self.key = key

    def __str__(self):
        return self.args[0]


class DatabaseConnectionFailed(SecretConfigError):
    pass


class QueryFailed(SecretConfigError):
    pass


class InvalidConfigurationValue(SecretConfigError, ValueError):
    """A configuration value is present but cannot be used (wrong type or unknown option)."""
