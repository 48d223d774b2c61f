"""GitHub commit status publisher."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from cloudbuild_report.errors import StatusPublishError
from cloudbuild_report.models import CommitTarget, PublishResult, RepoStatus, StatusReport

logger = logging.getLogger(__name__)

# GitHub rejects longer descriptions.
MAX_DESCRIPTION_LEN = 140


class CommitStatusPublisher(ABC):
	"""Destination for commit status updates."""

	@abstractmethod
	async def create_status(self, target: CommitTarget, report: StatusReport) -> PublishResult:
		"""Publish one status.

		Returns the published state and the HTTP status code. An error
		status code is returned, not raised.

		Raises:
			StatusPublishError: If the request never got a response.
		"""

	async def aclose(self) -> None:
		"""Release any network resources."""


class GitHubStatusClient(CommitStatusPublisher):
	"""Creates statuses through the GitHub REST API."""

	def __init__(
		self,
		token: str,
		api_url: str = "https://api.github.com",
		timeout: float = 30.0,
		client: httpx.AsyncClient | None = None,
	) -> None:
		self._api_url = api_url.rstrip("/")
		self._client = client or httpx.AsyncClient(timeout=timeout)
		self._headers = {
			"Authorization": f"Bearer {token}",
			"Accept": "application/vnd.github+json",
			"X-GitHub-Api-Version": "2022-11-28",
		}

	@staticmethod
	def _payload(report: StatusReport) -> dict[str, str]:
		return {
			"state": report.state.value,
			"target_url": report.target_url,
			"description": report.description[:MAX_DESCRIPTION_LEN],
			"context": report.context,
		}

	async def create_status(self, target: CommitTarget, report: StatusReport) -> PublishResult:
		org = quote(target.org, safe="")
		repo = quote(target.repo, safe="")
		sha = quote(target.sha, safe="")
		url = f"{self._api_url}/repos/{org}/{repo}/statuses/{sha}"
		try:
			resp = await self._client.post(url, json=self._payload(report), headers=self._headers)
		except httpx.HTTPError as exc:
			raise StatusPublishError(f"Could not set GitHub status on {target}: {exc}") from exc

		if resp.status_code > 399:
			logger.debug("GitHub answered %d: %s", resp.status_code, resp.text[:500])
			return PublishResult(state="", status_code=resp.status_code)
		try:
			published = RepoStatus.model_validate(resp.json())
		except (ValueError, ValidationError):
			return PublishResult(state=report.state.value, status_code=resp.status_code)
		return PublishResult(state=published.state or report.state.value, status_code=resp.status_code)

	async def aclose(self) -> None:
		await self._client.aclose()
