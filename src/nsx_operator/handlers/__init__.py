"""Handler modules for CRD resources."""

# Import handlers to register them - all handlers register themselves via @kopf decorators
from . import admission  # noqa: F401
from . import ipaddressallocation  # noqa: F401
from . import network  # noqa: F401
