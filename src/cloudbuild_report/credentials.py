"""Credential bootstrap for the GitHub and Cloud Build APIs.

Both credentials are resolved once, when the server starts. The GitHub
token comes from the environment, the config file, or the GCE project
metadata attribute ``github_token``. Cloud Build calls use a Google
OAuth2 access token: the metadata server's service-account token when
running on GCE, application-default credentials otherwise.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Sequence

import google.auth
import google.auth.exceptions
import google.auth.transport.requests
import httpx

from cloudbuild_report.config import ReportConfig
from cloudbuild_report.errors import CredentialError

logger = logging.getLogger(__name__)

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1"
METADATA_HEADERS = {"Metadata-Flavor": "Google"}
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

# Refresh tokens this many seconds before they expire.
EXPIRY_MARGIN = 60.0


async def on_gce(client: httpx.AsyncClient) -> bool:
	"""Return True when the GCE metadata server answers."""
	try:
		resp = await client.get(f"{METADATA_URL}/", headers=METADATA_HEADERS, timeout=2.0)
	except httpx.HTTPError:
		return False
	return resp.headers.get("Metadata-Flavor") == "Google"


async def project_attribute(client: httpx.AsyncClient, name: str) -> str:
	"""Read a project-level custom metadata attribute."""
	url = f"{METADATA_URL}/project/attributes/{name}"
	try:
		resp = await client.get(url, headers=METADATA_HEADERS)
		resp.raise_for_status()
	except httpx.HTTPError as exc:
		raise CredentialError(f"Could not read metadata attribute {name!r}: {exc}") from exc
	return resp.text.strip()


async def resolve_github_token(config: ReportConfig, client: httpx.AsyncClient) -> str:
	"""Find the GitHub token, falling back to GCE project metadata."""
	if config.github.token:
		return config.github.token
	logger.info("No GitHub token configured, trying project metadata")
	token = await project_attribute(client, "github_token")
	if not token:
		raise CredentialError("Metadata attribute 'github_token' is empty")
	return token


class AccessTokenSource(ABC):
	"""Supplies bearer tokens for Google APIs."""

	@abstractmethod
	async def token(self) -> str:
		"""Return a currently valid access token."""


class MetadataTokenSource(AccessTokenSource):
	"""Service-account tokens from the GCE metadata server, cached until near expiry."""

	def __init__(self, client: httpx.AsyncClient, account: str = "default") -> None:
		self._client = client
		self._account = account
		self._token = ""
		self._expires_at = 0.0
		self._lock = asyncio.Lock()

	async def token(self) -> str:
		async with self._lock:
			if self._token and time.monotonic() < self._expires_at:
				return self._token
			url = f"{METADATA_URL}/instance/service-accounts/{self._account}/token"
			try:
				resp = await self._client.get(url, headers=METADATA_HEADERS)
				resp.raise_for_status()
				data = resp.json()
				token = str(data["access_token"])
				expires_in = float(data.get("expires_in", 0))
			except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
				raise CredentialError(f"Could not fetch token for {self._account}: {exc}") from exc
			self._token = token
			self._expires_at = time.monotonic() + max(0.0, expires_in - EXPIRY_MARGIN)
			return self._token


class GoogleAuthTokenSource(AccessTokenSource):
	"""Application-default credentials via google-auth."""

	def __init__(self, scopes: Sequence[str] = (CLOUD_PLATFORM_SCOPE,)) -> None:
		try:
			self._credentials, self._project = google.auth.default(scopes=list(scopes))
		except google.auth.exceptions.DefaultCredentialsError as exc:
			raise CredentialError(f"No application-default credentials: {exc}") from exc
		self._lock = asyncio.Lock()

	async def token(self) -> str:
		async with self._lock:
			if not self._credentials.valid:
				request = google.auth.transport.requests.Request()
				try:
					await asyncio.to_thread(self._credentials.refresh, request)
				except google.auth.exceptions.GoogleAuthError as exc:
					raise CredentialError(f"Could not refresh Google credentials: {exc}") from exc
			return str(self._credentials.token)


async def google_token_source(config: ReportConfig, client: httpx.AsyncClient) -> AccessTokenSource:
	"""Pick the Cloud Build token source for this environment."""
	if await on_gce(client):
		logger.info("Running on GCE, using service account %s", config.cloudbuild.robot_account)
		return MetadataTokenSource(client, config.cloudbuild.robot_account)
	logger.info("Using application-default credentials for Cloud Build")
	return GoogleAuthTokenSource()
