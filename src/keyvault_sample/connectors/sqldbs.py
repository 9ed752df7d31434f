import asyncio
import logging
import pyodbc

from typing import List, Optional, Tuple

from keyvault_sample.constants import DEFAULT_ODBC_DRIVER, SYSTEM_USER_QUERY
from keyvault_sample.exceptions import DatabaseConnectionFailed, QueryFailed

# ADO.NET / JDBC keywords mapped to their ODBC Driver for SQL Server equivalents
_KEYWORD_ALIASES = {
    "data source": "Server",
    "server": "Server",
    "address": "Server",
    "addr": "Server",
    "initial catalog": "Database",
    "database": "Database",
    "databasename": "Database",
    "user id": "UID",
    "userid": "UID",
    "user": "UID",
    "uid": "UID",
    "password": "PWD",
    "pwd": "PWD",
    "encrypt": "Encrypt",
    "trustservercertificate": "TrustServerCertificate",
    "trust server certificate": "TrustServerCertificate",
    "hostnameincertificate": "HostNameInCertificate",
    "authentication": "Authentication",
    "integrated security": "Trusted_Connection",
    "integratedsecurity": "Trusted_Connection",
    "trusted_connection": "Trusted_Connection",
}

# Keywords that only make sense to the .NET or JDBC drivers
_DROPPED_KEYWORDS = {
    "persist security info",
    "multipleactiveresultsets",
    "connect timeout",
    "connection timeout",
    "logintimeout",
    "pooling",
    "application name",
}


def _read_enclosed(connection_string: str, start: int, closing: str) -> Tuple[Optional[str], int]:
    """Read up to the closing character; a doubled closing character is a literal one."""
    chars = []
    k, length = start, len(connection_string)
    while k < length:
        char = connection_string[k]
        if char == closing:
            if connection_string[k + 1:k + 2] == closing:
                chars.append(closing)
                k += 2
                continue
            return "".join(chars), k
        chars.append(char)
        k += 1
    return None, -1


def parse_connection_string(connection_string: str) -> List[Tuple[str, str]]:
    """
    Split a keyword=value connection string into pairs.

    Values wrapped in {braces} or "quotes" may contain ';'. Inside them '}}'
    (or a doubled quote) stands for the closing character itself.
    """
    pairs = []
    i, length = 0, len(connection_string)
    while i < length:
        eq = connection_string.find("=", i)
        if eq == -1:
            if connection_string[i:].strip():
                raise ValueError("Malformed connection string: keyword without value.")
            break
        name = connection_string[i:eq].strip().strip(";").strip()
        j = eq + 1
        while j < length and connection_string[j] == " ":
            j += 1
        if j < length and connection_string[j] in "{\"'":
            closing = "}" if connection_string[j] == "{" else connection_string[j]
            value, end = _read_enclosed(connection_string, j + 1, closing)
            if value is None:
                raise ValueError(f"Malformed connection string: unterminated value for '{name}'.")
            i = connection_string.find(";", end)
            i = length if i == -1 else i + 1
        else:
            end = connection_string.find(";", j)
            end = length if end == -1 else end
            value = connection_string[j:end].strip()
            i = end + 1
        if name:
            pairs.append((name, value))
    return pairs


def _odbc_value(value: str) -> str:
    if ";" in value or value.startswith("{"):
        return "{" + value.replace("}", "}}") + "}"
    return value


def _odbc_bool(value: str) -> str:
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "mandatory", "sspi"):
        return "yes"
    if lowered in ("false", "no", "optional"):
        return "no"
    return value


def jdbc_to_pairs(jdbc_url: str) -> List[Tuple[str, str]]:
    """
    Convert jdbc:sqlserver://host:port;key=value;... into connection string pairs.

    serverName, instanceName and portNumber properties fill in (or override)
    the address part of the URL.
    """
    remainder = jdbc_url[len("jdbc:sqlserver://"):]
    address, _, properties = remainder.partition(";")
    host, _, port = address.partition(":")
    instance = None
    pairs = []
    for name, value in parse_connection_string(properties):
        lowered = name.lower()
        if lowered == "servername":
            host = value
        elif lowered == "instancename":
            instance = value
        elif lowered in ("portnumber", "port"):
            port = value
        else:
            pairs.append((name, value))
    if host:
        server = f"{host}\\{instance}" if instance else host
        pairs.insert(0, ("Server", f"{server},{port}" if port else server))
    return pairs


def to_odbc_connection_string(connection_string: str, driver: str = DEFAULT_ODBC_DRIVER) -> str:
    """
    Normalize an ADO.NET, JDBC or ODBC connection string for pyodbc.

    The driver is added when the string does not name one.
    """
    connection_string = connection_string.strip()
    if connection_string.lower().startswith("jdbc:sqlserver://"):
        pairs = jdbc_to_pairs(connection_string)
    else:
        pairs = parse_connection_string(connection_string)

    odbc_parts = []
    has_driver = False
    for name, value in pairs:
        lowered = name.lower()
        if lowered == "driver":
            has_driver = True
            odbc_parts.append(f"Driver={{{value.strip('{}')}}}")
            continue
        if lowered in _DROPPED_KEYWORDS:
            continue
        keyword = _KEYWORD_ALIASES.get(lowered, name)
        if keyword in ("Encrypt", "TrustServerCertificate", "Trusted_Connection"):
            value = _odbc_bool(value)
        odbc_parts.append(f"{keyword}={_odbc_value(value)}")

    if not has_driver:
        odbc_parts.insert(0, f"Driver={{{driver}}}")
    return ";".join(odbc_parts) + ";"


class SQLDBClient:
    """
    Opens a short-lived connection per call using a connection string read from configuration.
    """
    def __init__(self, connection_string: str, driver: str = DEFAULT_ODBC_DRIVER, timeout: int = 30):
        self.connection_string = connection_string
        self.driver = driver
        self.timeout = timeout

    async def create_connection(self):
        odbc_connection_string = to_odbc_connection_string(self.connection_string, self.driver)
        try:
            return await asyncio.to_thread(pyodbc.connect, odbc_connection_string, timeout=self.timeout)
        except pyodbc.Error as e:
            logging.error(f"Failed to connect to SQL Database: {e}")
            raise DatabaseConnectionFailed(f"Failed to connect to SQL Database: {e}") from e

    async def query_scalar(self, query: str):
        connection = await self.create_connection()
        try:
            return await asyncio.to_thread(self._execute_scalar, connection, query)
        finally:
            await asyncio.to_thread(connection.close)

    @staticmethod
    def _execute_scalar(connection, query: str):
        try:
            cursor = connection.cursor()
            try:
                cursor.execute(query)
                row = cursor.fetchone()
            finally:
                cursor.close()
        except pyodbc.Error as e:
            logging.error(f"Query failed: {e}")
            raise QueryFailed(f"Query '{query}' failed: {e}") from e
        return row[0] if row else None

    async def get_system_user(self) -> Optional[str]:
        """Return the login the server authenticated this connection as."""
        result = await self.query_scalar(SYSTEM_USER_QUERY)
        return str(result) if result is not None else None
