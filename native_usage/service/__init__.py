"""Panel service and configuration."""
