"""SafeHarbor: message-safety and memory pipeline for a companion chat service."""

__version__ = "0.1.0"
