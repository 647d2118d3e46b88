"""Native usage panel - cached, schema-tolerant usage from the local management API."""

__version__ = "1.0.0"
