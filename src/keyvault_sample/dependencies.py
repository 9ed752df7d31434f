"""
Provides dependencies for API calls.

The configuration is built once at startup and stored on app.state, so request
handlers read it from there instead of a module-level singleton.
"""
from fastapi import Request

from keyvault_sample.bootstrap import StartupState
from keyvault_sample.connectors.appconfig import AppConfig
from keyvault_sample.connectors.sqldbs import SQLDBClient
from keyvault_sample.constants import DATABASE_DRIVER_PATH, DEFAULT_ODBC_DRIVER
from keyvault_sample.schemas import Secrets


def get_startup_state(request: Request) -> StartupState:
    return request.app.state.startup


def get_secrets(request: Request) -> Secrets:
    return request.app.state.secrets


def get_sql_client(request: Request) -> SQLDBClient:
    config: AppConfig = request.app.state.startup.config
    secrets: Secrets = request.app.state.secrets
    driver = config.get(config.key(*DATABASE_DRIVER_PATH), DEFAULT_ODBC_DRIVER)
    return request.app.state.sql_client_factory(secrets.connection_string, driver=driver)
