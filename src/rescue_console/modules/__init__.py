"""Console modules: telemetry channel, advisory, runtime bridge, operator console."""
