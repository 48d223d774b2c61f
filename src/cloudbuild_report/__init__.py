"""Report Cloud Build progress as GitHub commit statuses."""

__version__ = "0.1.0"
