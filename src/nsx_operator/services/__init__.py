"""Resource-specific NSX services."""
