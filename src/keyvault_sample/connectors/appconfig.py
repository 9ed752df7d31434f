import os
import json
import logging

from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional

from keyvault_sample.connectors.keys import KeyConvention, DOTNET
from keyvault_sample.connectors.types import ConfigEntry
from keyvault_sample.exceptions import ConfigurationKeyNotFound, InvalidConfigurationValue


class AppConfig(Mapping):
    """
    Read-only, case-insensitive view over merged configuration entries.

    Entries supplied later take precedence over earlier ones, so the order of
    the sources given to ConfigBuilder is the precedence order. A key keeps the
    casing of the first entry that defined it.
    """

    def __init__(self, entries: Iterable[ConfigEntry] = (), convention: KeyConvention = DOTNET):
        self.convention = convention
        merged: Dict[str, ConfigEntry] = {}
        for entry in entries:
            existing = merged.get(entry.key.lower())
            if existing is not None and existing.key != entry.key:
                entry = entry.model_copy(update={"key": existing.key})
            merged[entry.key.lower()] = entry
        self._entries = MappingProxyType(merged)

    def __getitem__(self, key: str) -> str:
        entry = self._entries.get(key.lower()) if key is not None else None
        if entry is None:
            raise ConfigurationKeyNotFound(key)
        return entry.value

    def __iter__(self) -> Iterator[str]:
        return (entry.key for entry in self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key) -> bool:
        return isinstance(key, str) and key.lower() in self._entries

    def __repr__(self) -> str:
        # Values are never rendered, they may be secrets.
        return f"AppConfig(keys={len(self)}, convention={self.convention.name!r})"

    def key(self, *segments: str) -> str:
        """Build a hierarchical key using this configuration's delimiter."""
        return self.convention.join(*segments)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for key, or default when absent. Never raises for a missing key."""
        if key is None:
            return default
        entry = self._entries.get(key.lower())
        return entry.value if entry is not None else default

    def require(self, key: str) -> str:
        return self[key]

    def entry(self, key: str) -> Optional[ConfigEntry]:
        return self._entries.get(key.lower())

    def source_of(self, key: str) -> Optional[str]:
        entry = self.entry(key)
        return entry.source if entry is not None else None

    def entries(self) -> List[ConfigEntry]:
        return list(self._entries.values())

    def keys_from(self, source: str) -> List[str]:
        return [entry.key for entry in self._entries.values() if entry.source == source]

    def get_value(self, key: str, default: Any = None, allow_none: bool = False, type: type = str) -> Any:

        if key is None:
            raise ValueError('The key parameter is required for get_value().')

        value = self.get(key)

        if value is not None:
            if type is not None:
                if type is bool:
                    value = value.strip().lower() in ['true', '1', 'yes']
                else:
                    try:
                        value = type(value)
                    except ValueError as e:
                        raise InvalidConfigurationValue(f'Value for {key} could not be converted to {type.__name__}. Error: {e}') from e
            return value

        if default is not None or allow_none is True:
            return default

        raise ConfigurationKeyNotFound(key)

    def read_list(self, key: str) -> List[str]:
        value = self.get_value(key, "")
        return [item.strip() for item in value.split(",") if item.strip()]

    def read_boolean(self, key: str, default: bool = False) -> bool:
        value = self.get_value(key, str(default)).strip().lower()
        return value in ['true', '1', 'yes']

    def section(self, *segments: str) -> "AppConfig":
        """
        Return the children of a section with the section prefix removed.

        section("Secrets") turns Secrets:ConnectionString into ConnectionString.
        """
        prefix = (self.key(*segments) + self.convention.local_delimiter).lower()
        children = [
            entry.model_copy(update={"key": entry.key[len(prefix):]})
            for entry in self._entries.values()
            if entry.key.lower().startswith(prefix)
        ]
        return AppConfig(children, convention=self.convention)

    def merged_with(self, entries: Iterable[ConfigEntry]) -> "AppConfig":
        """Return a new configuration where the given entries take precedence."""
        return AppConfig([*self._entries.values(), *entries], convention=self.convention)


##########################################################
# SOURCES
##########################################################

def flatten_json(data: Any, convention: KeyConvention = DOTNET, prefix: str = "", source: str = "json") -> List[ConfigEntry]:
    """
    Flatten a parsed JSON document into hierarchical entries.

    Nested objects are joined with the local delimiter and list items use their
    index as the path segment, e.g. {"KeyVault": {"Uri": "x"}} -> KeyVault:Uri = x.
    """
    entries: List[ConfigEntry] = []
    if isinstance(data, dict):
        for name, child in data.items():
            child_key = convention.join(prefix, str(name)) if prefix else str(name)
            entries.extend(flatten_json(child, convention, child_key, source))
    elif isinstance(data, list):
        for index, child in enumerate(data):
            child_key = convention.join(prefix, str(index)) if prefix else str(index)
            entries.extend(flatten_json(child, convention, child_key, source))
    elif prefix:
        if data is None:
            value = ""
        elif isinstance(data, bool):
            value = "true" if data else "false"
        else:
            value = str(data)
        entries.append(ConfigEntry(key=prefix, value=value, source=source))
    return entries


def load_json_file(path, convention: KeyConvention = DOTNET, optional: bool = True) -> List[ConfigEntry]:
    path = Path(path)
    if not path.is_file():
        if optional:
            logging.debug("Settings file %s not found, skipping.", path)
            return []
        raise FileNotFoundError(f"Settings file {path} not found.")
    with path.open(encoding="utf-8-sig") as f:
        data = json.load(f)
    entries = flatten_json(data, convention)
    logging.info("Loaded %d settings from %s.", len(entries), path)
    return entries


def parse_properties(text: str, convention: KeyConvention = DOTNET) -> List[ConfigEntry]:
    """
    Parse a Java style .properties document.

    Supports '=', ':' and whitespace separators, '#' and '!' comments, and
    backslash line continuations. Dotted keys are mapped to the local delimiter.
    """
    entries: List[ConfigEntry] = []
    logical_line = ""
    for raw_line in text.splitlines():
        line = raw_line.strip() if not logical_line else raw_line.lstrip()
        if not logical_line and (not line or line[0] in "#!"):
            continue
        if line.endswith("\\") and not line.endswith("\\\\"):
            logical_line += line[:-1]
            continue
        logical_line += line

        separator_index = len(logical_line)
        for index, char in enumerate(logical_line):
            if char in "=:" or char.isspace():
                separator_index = index
                break
        name = logical_line[:separator_index].strip()
        value = logical_line[separator_index:].lstrip()
        if value[:1] in ("=", ":"):
            value = value[1:].lstrip()
        logical_line = ""

        if name:
            key = name.replace(".", convention.local_delimiter)
            entries.append(ConfigEntry(key=key, value=value, source="properties"))
    return entries


def load_properties_file(path, convention: KeyConvention = DOTNET, optional: bool = True) -> List[ConfigEntry]:
    path = Path(path)
    if not path.is_file():
        if optional:
            logging.debug("Properties file %s not found, skipping.", path)
            return []
        raise FileNotFoundError(f"Properties file {path} not found.")
    entries = parse_properties(path.read_text(encoding="utf-8"), convention)
    logging.info("Loaded %d settings from %s.", len(entries), path)
    return entries


def load_environment(environ: Optional[Mapping[str, str]] = None, convention: KeyConvention = DOTNET, prefix: str = "") -> List[ConfigEntry]:
    """
    Read environment variables as configuration entries.

    A double underscore is the portable nesting delimiter, so
    Secrets__ConnectionString becomes Secrets:ConnectionString. When a prefix
    is given only matching variables are read and the prefix is removed.
    """
    environ = os.environ if environ is None else environ
    entries: List[ConfigEntry] = []
    for name, value in environ.items():
        if prefix:
            if not name.lower().startswith(prefix.lower()):
                continue
            name = name[len(prefix):]
        if not name:
            continue
        entries.append(ConfigEntry(key=name.replace("__", convention.local_delimiter), value=value, source="environment"))
    return entries


class ConfigBuilder:
    """
    Collects configuration sources in precedence order (lowest first) and builds an AppConfig.
    """

    def __init__(self, convention: KeyConvention = DOTNET):
        self.convention = convention
        self._sources: List[Callable[[], Iterable[ConfigEntry]]] = []

    def add_json_file(self, path, optional: bool = True) -> "ConfigBuilder":
        self._sources.append(lambda: load_json_file(path, self.convention, optional))
        return self

    def add_properties_file(self, path, optional: bool = True) -> "ConfigBuilder":
        self._sources.append(lambda: load_properties_file(path, self.convention, optional))
        return self

    def add_environment(self, environ: Optional[Mapping[str, str]] = None, prefix: str = "") -> "ConfigBuilder":
        self._sources.append(lambda: load_environment(environ, self.convention, prefix))
        return self

    def add_mapping(self, mapping: Mapping[str, Any], source: str = "memory") -> "ConfigBuilder":
        self._sources.append(
            lambda: [ConfigEntry(key=key, value=str(value), source=source) for key, value in mapping.items()]
        )
        return self

    def add_entries(self, entries: Iterable[ConfigEntry]) -> "ConfigBuilder":
        entries = list(entries)
        self._sources.append(lambda: entries)
        return self

    def build(self) -> AppConfig:
        merged: List[ConfigEntry] = []
        for source in self._sources:
            merged.extend(source())
        return AppConfig(merged, convention=self.convention)
