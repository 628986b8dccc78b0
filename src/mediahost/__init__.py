"""mediahost - per-customer media server orchestrator."""

__version__ = "0.1.0"
