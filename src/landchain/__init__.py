"""Land registry RWA platform: blockchain transaction and event subsystem."""

__version__ = "0.1.0"
