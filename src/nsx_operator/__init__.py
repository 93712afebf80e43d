"""NSX Operator: keeps NSX VPC networking in sync with Kubernetes custom resources."""

__version__ = "0.1.0"
