from keyvault_sample.telemetry.telemetry import Telemetry

__all__ = ["Telemetry"]
