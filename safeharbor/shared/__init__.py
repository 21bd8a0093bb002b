"""Shared models, utilities and storage for SafeHarbor services."""
