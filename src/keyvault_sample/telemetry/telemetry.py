import os
import logging
import logging.config
import platform

from azure.monitor.opentelemetry import configure_azure_monitor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource, SERVICE_INSTANCE_ID, SERVICE_VERSION, SERVICE_NAMESPACE

from keyvault_sample.connectors.appconfig import AppConfig

AZURE_LOGGERS = ("azure", "azure.identity", "azure.core", "azure.keyvault", "azure.monitor")
AZURE_HTTP_LOGGER = "azure.core.pipeline.policies.http_logging_policy"


# Custom filter to exclude trace logs
class ExcludeTraceLogsFilter(logging.Filter):
    def filter(self, record):
        filter_out = 'applicationinsights' not in record.getMessage().lower()
        filter_out = filter_out and 'response status' not in record.getMessage().lower()
        filter_out = filter_out and 'transmission succeeded' not in record.getMessage().lower()
        return filter_out


class Telemetry:
    """
    Manages logging and the recording of application telemetry.
    """

    log_level : int = logging.WARNING
    azure_log_level : int = logging.WARNING
    azure_http_log_level : int = logging.CRITICAL
    azure_http_logs_disabled : bool = True
    api_name : str = None
    telemetry_connection_string : str = None

    @staticmethod
    def configure_basic(config: AppConfig):
        # Determine app log level
        level = Telemetry.translate_log_level(config.get('LOG_LEVEL', 'INFO'))

        # Apply base config with force to avoid duplicate handlers (e.g., under uvicorn --reload)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            force=True,
        )

        # Azure SDK loggers level (default WARNING unless overridden)
        azure_level = Telemetry.translate_log_level(config.get('AZURE_LOG_LEVEL', 'WARNING'))
        for name in AZURE_LOGGERS:
            lg = logging.getLogger(name)
            lg.setLevel(azure_level)
            lg.propagate = False
            lg.filters = []
            lg.handlers.clear()
            lg.addHandler(logging.NullHandler())

        # Azure HTTP pipeline logger: completely silent unless AZURE_HTTP_LOG_LEVEL is provided
        http_level_override = config.get('AZURE_HTTP_LOG_LEVEL')
        if http_level_override is not None:
            http_level = Telemetry.translate_log_level(http_level_override)
            http_disabled = False
        else:
            http_level = logging.CRITICAL
            http_disabled = True

        http_logger = logging.getLogger(AZURE_HTTP_LOGGER)
        http_logger.setLevel(http_level)
        http_logger.disabled = http_disabled
        http_logger.propagate = not http_disabled
        http_logger.handlers = []
        http_logger.filters = []
        if http_disabled:
            http_logger.addHandler(logging.NullHandler())

        Telemetry.log_level = level
        Telemetry.azure_log_level = azure_level
        Telemetry.azure_http_log_level = http_level
        Telemetry.azure_http_logs_disabled = http_disabled

    @staticmethod
    def configure_monitoring(config: AppConfig, telemetry_connection_string: str, api_name : str, api_version: str = "1.0.0"):

        Telemetry.telemetry_connection_string = config.get(
            telemetry_connection_string,
            default=os.getenv(telemetry_connection_string)
        )

        # If we have no connection string, disable telemetry gracefully with a clear message.
        if not Telemetry.telemetry_connection_string:
            logging.info("Telemetry disabled: missing '%s'.", telemetry_connection_string)
            return False

        Telemetry.api_name = api_name
        resource = Resource.create(
            {
                SERVICE_NAME: f"{Telemetry.api_name}",
                SERVICE_NAMESPACE : api_name,
                SERVICE_VERSION: api_version,
                SERVICE_INSTANCE_ID: f"{platform.node()}"
            })

        # Quiet noisy DEBUG during setup
        quiet_names = [
            "azure.monitor.opentelemetry",
            "azure.monitor.opentelemetry._configure",
            "opentelemetry",
            AZURE_HTTP_LOGGER,
        ]
        saved = []
        try:
            for name in quiet_names:
                lg = logging.getLogger(name)
                saved.append((lg, lg.level))
                lg.setLevel(logging.WARNING)

            # Application logs are only exported when explicitly enabled; tracing is always on.
            disable_logging_export = config.read_boolean("AZURE_MONITOR_DISABLE_LOGGING", default=True)

            configure_azure_monitor(
                connection_string=Telemetry.telemetry_connection_string,
                disable_offline_storage=True,
                disable_metrics=True,
                disable_tracing=False,
                disable_logging=disable_logging_export,
                resource=resource
            )
        finally:
            for lg, lvl in saved:
                lg.setLevel(lvl)

        Telemetry.configure_logging(config, export_to_azure=not disable_logging_export)
        return True

    @staticmethod
    def translate_log_level(log_level: str) -> int:
        """Map a variety of input strings to logging levels.

        Accepts standard names (DEBUG, INFO, WARNING, ERROR, CRITICAL, NOTSET),
        common synonyms (Trace -> DEBUG, Information -> INFO), and integers.
        Case-insensitive.
        """
        if log_level is None:
            return logging.INFO
        if isinstance(log_level, int):
            return int(log_level)
        s = str(log_level).strip()
        if s.isdigit():
            return int(s)
        # Try standard logging names first
        std = getattr(logging, s.upper(), None)
        if isinstance(std, int):
            return std
        # Synonyms
        synonyms = {
            "trace": logging.DEBUG,
            "information": logging.INFO,
        }
        return synonyms.get(s.lower(), logging.INFO)

    @staticmethod
    def configure_logging(config: AppConfig, export_to_azure: bool = False):
        enable_console_logging = config.read_boolean("ENABLE_CONSOLE_LOGGING", default=True)

        #Logging configuration
        LOGGING = {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'standard': {
                    'format': '[%(asctime)s] [%(levelname)s] %(name)s: %(message)s'
                },
                'azure': {
                    'format': '%(name)s: %(message)s'
                },
            },
            'filters': {
                'exclude_trace_logs': {
                    '()': 'keyvault_sample.telemetry.telemetry.ExcludeTraceLogsFilter',
                },
            },
            'handlers': {
                'console': {
                    'level': Telemetry.log_level,
                    'formatter': 'standard',
                    'class': 'logging.StreamHandler',
                    'filters' : ['exclude_trace_logs'],
                    'stream': 'ext://sys.stdout'
                },
            },
            'loggers': {
                # Keep Azure SDK logs quiet unless explicitly raised
                'azure': {
                    'level': Telemetry.azure_log_level,
                    'handlers': [],
                    'propagate': False,
                },
                # Gate the very chatty HTTP pipeline logger
                AZURE_HTTP_LOGGER: {
                    'level': Telemetry.azure_http_log_level,
                    'handlers': [] if Telemetry.azure_http_logs_disabled else ['console'],
                    'propagate': not Telemetry.azure_http_logs_disabled,
                },
            },
            "root": {
                "handlers": ["console"],
                "level": Telemetry.log_level,
            }
        }

        if export_to_azure:
            LOGGING['handlers']['azure'] = {
                'formatter': 'azure',
                'level': Telemetry.log_level,
                'class': 'opentelemetry.sdk._logs.LoggingHandler',
                'filters' : ['exclude_trace_logs'],
            }
            LOGGING['root']['handlers'].append('azure')

            #remove console if prod env (cut down on duplicate log data)
            if not enable_console_logging:
                LOGGING['root']['handlers'] = ["azure"]

        logging.config.dictConfig(LOGGING)

    @staticmethod
    def log_log_level_diagnostics(config: AppConfig) -> None:
        """Log the resolved LOG_LEVEL, where it came from and the effective root logger level."""
        entry = config.entry("LOG_LEVEL")
        if entry is not None:
            resolved, src = entry.value.strip().upper(), entry.source
        else:
            resolved, src = "INFO", "default"

        logging.getLogger().info("Resolved LOG_LEVEL=%s (source=%s)", resolved, src)
        logging.getLogger().info(
            "Effective root logger level: %s",
            logging.getLevelName(logging.getLogger().getEffectiveLevel()),
        )
