"""SafeHarbor pipeline services."""
