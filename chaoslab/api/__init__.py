"""ChaosLab HTTP API."""
