"""
Unit tests for telemetry/telemetry.py
"""

import logging
import os
import sys
import unittest
from unittest.mock import patch

# Add src to the path so the tests run without installing the package
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from keyvault_sample.connectors.appconfig import ConfigBuilder
from keyvault_sample.telemetry import Telemetry
from keyvault_sample.telemetry.telemetry import ExcludeTraceLogsFilter


class TestTelemetry(unittest.TestCase):

    def tearDown(self):
        logging.getLogger().setLevel(logging.WARNING)

    def test_translate_log_level(self):
        self.assertEqual(Telemetry.translate_log_level("debug"), logging.DEBUG)
        self.assertEqual(Telemetry.translate_log_level("Trace"), logging.DEBUG)
        self.assertEqual(Telemetry.translate_log_level("Information"), logging.INFO)
        self.assertEqual(Telemetry.translate_log_level("WARNING"), logging.WARNING)
        self.assertEqual(Telemetry.translate_log_level(40), logging.ERROR)
        self.assertEqual(Telemetry.translate_log_level("10"), logging.DEBUG)
        self.assertEqual(Telemetry.translate_log_level(None), logging.INFO)
        self.assertEqual(Telemetry.translate_log_level("nonsense"), logging.INFO)

    def test_configure_basic(self):
        config = ConfigBuilder().add_mapping({"LOG_LEVEL": "DEBUG", "AZURE_LOG_LEVEL": "ERROR"}).build()
        Telemetry.configure_basic(config)
        self.assertEqual(logging.getLogger().level, logging.DEBUG)
        self.assertEqual(logging.getLogger("azure.identity").level, logging.ERROR)
        self.assertTrue(logging.getLogger("azure.core.pipeline.policies.http_logging_policy").disabled)

    def test_configure_basic_enables_http_logging_on_request(self):
        config = ConfigBuilder().add_mapping({"AZURE_HTTP_LOG_LEVEL": "INFO"}).build()
        Telemetry.configure_basic(config)
        http_logger = logging.getLogger("azure.core.pipeline.policies.http_logging_policy")
        self.assertFalse(http_logger.disabled)
        self.assertEqual(http_logger.level, logging.INFO)

    @patch.dict(os.environ, {}, clear=True)
    @patch("keyvault_sample.telemetry.telemetry.configure_azure_monitor")
    def test_monitoring_disabled_without_connection_string(self, mock_configure):
        self.assertFalse(Telemetry.configure_monitoring(ConfigBuilder().build(), "APPLICATIONINSIGHTS_CONNECTION_STRING", "app"))
        mock_configure.assert_not_called()

    @patch("keyvault_sample.telemetry.telemetry.configure_azure_monitor")
    def test_monitoring_enabled(self, mock_configure):
        config = ConfigBuilder().add_mapping({
            "APPLICATIONINSIGHTS_CONNECTION_STRING": "InstrumentationKey=00000000-0000-0000-0000-000000000000",
        }).build()
        self.assertTrue(Telemetry.configure_monitoring(config, "APPLICATIONINSIGHTS_CONNECTION_STRING", "app"))
        kwargs = mock_configure.call_args.kwargs
        self.assertTrue(kwargs["disable_logging"])
        self.assertFalse(kwargs["disable_tracing"])

    def test_exclude_trace_logs_filter(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "Transmission succeeded", None, None)
        self.assertFalse(ExcludeTraceLogsFilter().filter(record))
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "Loaded 1 secrets", None, None)
        self.assertTrue(ExcludeTraceLogsFilter().filter(record))

    def test_log_level_diagnostics_reports_source(self):
        config = ConfigBuilder().add_mapping({"LOG_LEVEL": "info"}, source="json").build()
        with self.assertLogs(level="INFO") as logs:
            Telemetry.log_log_level_diagnostics(config)
        self.assertIn("Resolved LOG_LEVEL=INFO (source=json)", logs.output[0])


if __name__ == "__main__":
    unittest.main()
