"""
Translation between Key Vault secret names and hierarchical configuration keys.

Key Vault only accepts alphanumerics and dashes in secret names, so nested
configuration paths are stored with a dash based delimiter and mapped back
to the local delimiter when loaded.
"""
import re
from dataclasses import dataclass
from typing import Iterable

from keyvault_sample.exceptions import KeyTranslationAmbiguous

_VALID_SECRET_NAME = re.compile(r"^[0-9a-zA-Z-]{1,127}$")


@dataclass(frozen=True)
class KeyConvention:
    """
    A pair of delimiters used by one integration.

    Attributes:
        name: Short name of the convention.
        remote_delimiter: Delimiter used inside vault secret names.
        local_delimiter: Delimiter used by the hierarchical configuration keys.
    """
    name: str
    remote_delimiter: str
    local_delimiter: str

    def to_local(self, remote_name: str) -> str:
        """
        Translate a vault secret name into a local hierarchical key.

        Every occurrence of the remote delimiter is replaced left to right;
        there is no escaping mechanism.
        """
        if self.local_delimiter in remote_name:
            raise KeyTranslationAmbiguous(
                f"Secret name '{remote_name}' already contains the local delimiter '{self.local_delimiter}'."
            )
        return remote_name.replace(self.remote_delimiter, self.local_delimiter)

    def to_remote(self, local_key: str) -> str:
        """
        Translate a local hierarchical key into the vault secret name.

        Raises KeyTranslationAmbiguous when the resulting secret name would not
        load back as the same key, e.g. a dash next to the local delimiter.
        """
        if self.remote_delimiter in local_key:
            raise KeyTranslationAmbiguous(
                f"Configuration key '{local_key}' contains the vault delimiter '{self.remote_delimiter}'."
            )
        remote_name = local_key.replace(self.local_delimiter, self.remote_delimiter)
        if not _VALID_SECRET_NAME.match(remote_name):
            raise KeyTranslationAmbiguous(
                f"Configuration key '{local_key}' does not map to a valid secret name ('{remote_name}')."
            )
        if self.to_local(remote_name) != local_key:
            raise KeyTranslationAmbiguous(
                f"Configuration key '{local_key}' maps to secret '{remote_name}', "
                f"which loads back as '{self.to_local(remote_name)}'."
            )
        return remote_name

    def join(self, *segments: str) -> str:
        return self.local_delimiter.join(segments)

    def check_unique(self, remote_names: Iterable[str]) -> None:
        """Raise if two secret names translate to the same (case-insensitive) local key."""
        seen = {}
        for remote_name in remote_names:
            local_key = self.to_local(remote_name).lower()
            if local_key in seen and seen[local_key] != remote_name:
                raise KeyTranslationAmbiguous(
                    f"Secrets '{seen[local_key]}' and '{remote_name}' both map to configuration key "
                    f"'{self.to_local(remote_name)}'."
                )
            seen[local_key] = remote_name


# ASP.NET Core: Secrets--ConnectionString <-> Secrets:ConnectionString
DOTNET = KeyConvention(name="dotnet", remote_delimiter="--", local_delimiter=":")

# Spring Boot: Secrets-ConnectionString <-> Secrets.ConnectionString
SPRING = KeyConvention(name="spring", remote_delimiter="-", local_delimiter=".")

CONVENTIONS = {convention.name: convention for convention in (DOTNET, SPRING)}


def get_convention(name: str) -> KeyConvention:
    try:
        return CONVENTIONS[name.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown key convention '{name}'. Expected one of: {', '.join(sorted(CONVENTIONS))}."
        ) from None
