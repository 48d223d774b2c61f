"""Exception types raised across cloudbuild-report."""

from __future__ import annotations

from typing import Any


class ReportError(Exception):
	"""Base class for cloudbuild-report failures."""


class BuildLookupError(ReportError):
	"""The build backend could not return the requested build."""


class StatusPublishError(ReportError):
	"""A commit status could not be delivered to the status API."""


class CredentialError(ReportError):
	"""A credential needed at startup could not be resolved."""


class ProvenanceError(ReportError):
	"""A build carries no resolvable commit SHA."""

	def __init__(self, message: str, provenance: Any = None) -> None:
		super().__init__(message)
		self.provenance = provenance
