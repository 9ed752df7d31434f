import sys
import asyncio
import logging
import argparse
from pathlib import Path
from contextlib import asynccontextmanager
from typing import Callable, Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI

from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from keyvault_sample.bootstrap import StartupState, build_configuration, build_local_config
from keyvault_sample.connectors.keys import CONVENTIONS, get_convention
from keyvault_sample.connectors.credentials import CREDENTIAL_SOURCES
from keyvault_sample.connectors.sqldbs import SQLDBClient
from keyvault_sample.constants import (
    APP_NAME,
    APPLICATION_INSIGHTS_CONNECTION_STRING,
    DEFAULT_PROPERTIES_FILE,
    DEFAULT_SETTINGS_FILE,
)
from keyvault_sample.dependencies import get_secrets, get_sql_client, get_startup_state
from keyvault_sample.exceptions import SecretConfigError
from keyvault_sample.schemas import HealthResult, Secrets, UserResult, USER_RESPONSES
from keyvault_sample.telemetry import Telemetry

# Load version from VERSION file
VERSION_FILE = Path(__file__).resolve().parent.parent.parent / "VERSION"
try:
    APP_VERSION = VERSION_FILE.read_text().strip()
except FileNotFoundError:
    APP_VERSION = "0.0.0"

router = APIRouter()


@router.get(
    "/api/User",
    response_model=UserResult,
    summary="Return the database login for the configured connection string",
    response_description="The connection string and the login reported by SELECT SYSTEM_USER.",
    responses=USER_RESPONSES,
)
@router.get("/api/user", response_model=UserResult, include_in_schema=False)
async def user_endpoint(
    secrets: Secrets = Depends(get_secrets),
    sql_client: SQLDBClient = Depends(get_sql_client),
):
    """
    Opens a connection with the connection string loaded at startup and returns
    the login the database authenticated it as, next to the connection string itself.
    """
    system_user = await sql_client.get_system_user()
    return UserResult(connection_string=secrets.connection_string, result=system_user)


@router.get("/health", response_model=HealthResult, summary="Liveness check")
async def health_endpoint(startup: StartupState = Depends(get_startup_state)):
    return HealthResult(
        vault=startup.vault_loaded,
        credential=startup.credential.kind if startup.credential is not None else None,
    )


def create_app(startup: StartupState,
               sql_client_factory: Callable[..., SQLDBClient] = SQLDBClient,
               secrets: Optional[Secrets] = None) -> FastAPI:
    """
    Create the FastAPI application around an already loaded configuration.

    Raises:
        ConfigurationKeyNotFound: If the configuration has no Secrets:ConnectionString.
    """
    config = startup.config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Telemetry.configure_monitoring(config, APPLICATION_INSIGHTS_CONNECTION_STRING, APP_NAME, APP_VERSION)
        yield  # <-- application runs here

    app = FastAPI(
        title="Key Vault Sample",
        description="Reads a database connection string from Azure Key Vault and reports the database user.",
        version=APP_VERSION,
        lifespan=lifespan
    )
    app.state.startup = startup
    app.state.secrets = secrets if secrets is not None else Secrets.from_config(config)
    app.state.sql_client_factory = sql_client_factory
    app.include_router(router)

    # Instrumentation
    FastAPIInstrumentor.instrument_app(app)
    return app


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Serve the Key Vault connection string sample.')
    parser.add_argument('-s', '--settings', default=DEFAULT_SETTINGS_FILE, help='JSON settings file')
    parser.add_argument('-p', '--properties', default=DEFAULT_PROPERTIES_FILE, help='Java style properties file')
    parser.add_argument('-c', '--convention', default='dotnet', choices=sorted(CONVENTIONS), help='Secret name convention')
    parser.add_argument('--credential-source', choices=CREDENTIAL_SOURCES, default=None, help='Force the credential path')
    parser.add_argument('--env-file', default='.env', help='Local environment file, never committed')
    parser.add_argument('--host', default='0.0.0.0', help='Bind address')
    parser.add_argument('--port', type=int, default=9000, help='Bind port')
    return parser.parse_args(argv)


def run(argv=None):
    args = parse_args(argv)

    load_dotenv(args.env_file)

    ## Early minimal logging (INFO) until config is loaded; refined by Telemetry.configure_basic
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    try:
        convention = get_convention(args.convention)
        local_config = build_local_config(args.settings, args.properties, convention)
        # LOG_LEVEL / AZURE_LOG_LEVEL from local sources govern the credential and vault steps
        Telemetry.configure_basic(local_config)
        startup = asyncio.run(build_configuration(
            settings_file=args.settings,
            properties_file=args.properties,
            convention=convention,
            credential_source=args.credential_source,
            local_config=local_config,
        ))
        Telemetry.configure_basic(startup.config)
        Telemetry.log_log_level_diagnostics(startup.config)
        app = create_app(startup)
    except SecretConfigError as e:
        logging.error("Startup failed: %s: %s", e.__class__.__name__, e)
        sys.exit(1)

    uvicorn.run(app, host=args.host, port=args.port, log_level="info", timeout_keep_alive=60)


if __name__ == "__main__":
    run()
