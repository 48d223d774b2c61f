"""Cloud Build status provider."""

from __future__ import annotations

from abc import ABC, abstractmethod
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from cloudbuild_report.credentials import AccessTokenSource
from cloudbuild_report.errors import BuildLookupError, CredentialError
from cloudbuild_report.models import BuildRef, BuildResource, BuildSnapshot


class BuildStatusProvider(ABC):
	"""Source of build state for the reconciliation loop."""

	@abstractmethod
	async def get_build(self, ref: BuildRef) -> BuildSnapshot:
		"""Fetch the current state of a build.

		Raises:
			BuildLookupError: If the build could not be fetched.
		"""

	async def aclose(self) -> None:
		"""Release any network resources."""


class CloudBuildClient(BuildStatusProvider):
	"""Reads builds through the Cloud Build REST API (v1)."""

	def __init__(
		self,
		tokens: AccessTokenSource,
		api_url: str = "https://cloudbuild.googleapis.com",
		timeout: float = 30.0,
		client: httpx.AsyncClient | None = None,
	) -> None:
		self._tokens = tokens
		self._api_url = api_url.rstrip("/")
		self._client = client or httpx.AsyncClient(timeout=timeout)

	async def get_build(self, ref: BuildRef) -> BuildSnapshot:
		project = quote(ref.project, safe="")
		build_id = quote(ref.build_id, safe="")
		url = f"{self._api_url}/v1/projects/{project}/builds/{build_id}"
		try:
			token = await self._tokens.token()
			resp = await self._client.get(url, headers={"Authorization": f"Bearer {token}"})
			resp.raise_for_status()
			data = resp.json()
			build = BuildResource.model_validate(data)
		except (httpx.HTTPError, CredentialError, ValueError, ValidationError) as exc:
			raise BuildLookupError(
				f"Could not get build status {ref.project!r} {ref.build_id!r}: {exc}"
			) from exc
		return build.to_snapshot(data.get("sourceProvenance"))

	async def aclose(self) -> None:
		await self._client.aclose()
