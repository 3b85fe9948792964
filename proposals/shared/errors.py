"""Shared exception types"""


class ExternalDependencyError(Exception):
    """Raised when an external collaborator (email transport, anchoring service) fails"""

    pass
