"""Tests for the Cloud Build provider and GitHub publisher HTTP clients."""

from __future__ import annotations

import json

import httpx
import pytest
from fakes import SHA

from cloudbuild_report.cloudbuild import CloudBuildClient
from cloudbuild_report.credentials import AccessTokenSource
from cloudbuild_report.errors import BuildLookupError, CredentialError, StatusPublishError
from cloudbuild_report.github import MAX_DESCRIPTION_LEN, GitHubStatusClient
from cloudbuild_report.models import BuildRef, CommitState, CommitTarget, StatusReport

BUILD_JSON = {
	"id": "b-123",
	"status": "SUCCESS",
	"startTime": "2024-01-01T00:00:00.123456789Z",
	"finishTime": "2024-01-01T00:03:00Z",
	"sourceProvenance": {
		"resolvedRepoSource": {"projectId": "my-proj", "repoName": "widgets", "commitSha": SHA},
	},
	"steps": [{"name": "gcr.io/cloud-builders/go"}],
}


class _StaticTokens(AccessTokenSource):
	def __init__(self, fail: bool = False) -> None:
		self.fail = fail

	async def token(self) -> str:
		if self.fail:
			raise CredentialError("expired")
		return "ya29.test"


def _cloudbuild(handler, tokens: AccessTokenSource | None = None) -> CloudBuildClient:
	client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
	return CloudBuildClient(tokens or _StaticTokens(), api_url="https://cb.test/", client=client)


class TestCloudBuildClient:
	@pytest.mark.asyncio
	async def test_get_build_parses_snapshot(self) -> None:
		seen: list[httpx.Request] = []

		def handler(request: httpx.Request) -> httpx.Response:
			seen.append(request)
			return httpx.Response(200, json=BUILD_JSON)

		provider = _cloudbuild(handler)
		snap = await provider.get_build(BuildRef(project="my-proj", build_id="b-123"))
		await provider.aclose()

		assert str(seen[0].url) == "https://cb.test/v1/projects/my-proj/builds/b-123"
		assert seen[0].headers["Authorization"] == "Bearer ya29.test"
		assert snap.status == "SUCCESS"
		assert snap.commit_sha == SHA
		assert snap.start_time == "2024-01-01T00:00:00.123456789Z"
		assert snap.provenance == BUILD_JSON["sourceProvenance"]
		assert snap.is_terminal

	@pytest.mark.asyncio
	async def test_missing_provenance_gives_no_sha(self) -> None:
		provider = _cloudbuild(lambda r: httpx.Response(200, json={"id": "b", "status": "QUEUED"}))
		snap = await provider.get_build(BuildRef("p", "b"))
		await provider.aclose()
		assert snap.commit_sha is None
		assert snap.provenance is None
		assert not snap.is_terminal

	@pytest.mark.asyncio
	async def test_empty_commit_sha_gives_no_sha(self) -> None:
		body = {"status": "WORKING", "sourceProvenance": {"resolvedRepoSource": {"commitSha": ""}}}
		provider = _cloudbuild(lambda r: httpx.Response(200, json=body))
		snap = await provider.get_build(BuildRef("p", "b"))
		await provider.aclose()
		assert snap.commit_sha is None

	@pytest.mark.asyncio
	async def test_http_error_raises_lookup_error(self) -> None:
		provider = _cloudbuild(lambda r: httpx.Response(404, json={"error": {"code": 404}}))
		with pytest.raises(BuildLookupError, match="my-proj"):
			await provider.get_build(BuildRef("my-proj", "b"))
		await provider.aclose()

	@pytest.mark.asyncio
	async def test_transport_error_raises_lookup_error(self) -> None:
		def handler(request: httpx.Request) -> httpx.Response:
			raise httpx.ConnectError("refused", request=request)

		provider = _cloudbuild(handler)
		with pytest.raises(BuildLookupError):
			await provider.get_build(BuildRef("p", "b"))
		await provider.aclose()

	@pytest.mark.asyncio
	async def test_token_failure_raises_lookup_error(self) -> None:
		provider = _cloudbuild(lambda r: httpx.Response(200, json=BUILD_JSON), _StaticTokens(fail=True))
		with pytest.raises(BuildLookupError, match="expired"):
			await provider.get_build(BuildRef("p", "b"))
		await provider.aclose()

	@pytest.mark.asyncio
	async def test_path_segments_are_escaped(self) -> None:
		seen: list[httpx.Request] = []

		def handler(request: httpx.Request) -> httpx.Response:
			seen.append(request)
			return httpx.Response(200, json=BUILD_JSON)

		provider = _cloudbuild(handler)
		await provider.get_build(BuildRef(project="my-proj/../other", build_id="b-1?alt=media"))
		await provider.aclose()

		assert seen[0].url.raw_path == b"/v1/projects/my-proj%2F..%2Fother/builds/b-1%3Falt%3Dmedia"
		assert seen[0].url.query == b""

	@pytest.mark.asyncio
	async def test_non_json_raises_lookup_error(self) -> None:
		provider = _cloudbuild(lambda r: httpx.Response(200, text="<html>"))
		with pytest.raises(BuildLookupError):
			await provider.get_build(BuildRef("p", "b"))
		await provider.aclose()


TARGET = CommitTarget(org="acme", repo="widgets", sha=SHA)
REPORT = StatusReport(
	context="ci/cloudbuild",
	state=CommitState.SUCCESS,
	description="SUCCESS (5s)",
	target_url="https://console.example/b",
)


def _github(handler) -> GitHubStatusClient:
	client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
	return GitHubStatusClient("gh-token", api_url="https://gh.test", client=client)


class TestGitHubStatusClient:
	@pytest.mark.asyncio
	async def test_create_status_posts_payload(self) -> None:
		seen: list[httpx.Request] = []

		def handler(request: httpx.Request) -> httpx.Response:
			seen.append(request)
			return httpx.Response(201, json={"id": 1, "state": "success", "context": "ci/cloudbuild"})

		publisher = _github(handler)
		result = await publisher.create_status(TARGET, REPORT)
		await publisher.aclose()

		assert result.ok
		assert result.state == "success"
		assert result.status_code == 201
		request = seen[0]
		assert request.method == "POST"
		assert str(request.url) == f"https://gh.test/repos/acme/widgets/statuses/{SHA}"
		assert request.headers["Authorization"] == "Bearer gh-token"
		assert json.loads(request.content) == {
			"state": "success",
			"target_url": "https://console.example/b",
			"description": "SUCCESS (5s)",
			"context": "ci/cloudbuild",
		}

	@pytest.mark.asyncio
	async def test_long_description_truncated(self) -> None:
		seen: list[dict] = []

		def handler(request: httpx.Request) -> httpx.Response:
			seen.append(json.loads(request.content))
			return httpx.Response(201, json={"state": "error"})

		publisher = _github(handler)
		long_report = StatusReport("ci/cloudbuild", CommitState.ERROR, "X" * 500, "https://u")
		await publisher.create_status(TARGET, long_report)
		await publisher.aclose()
		assert len(seen[0]["description"]) == MAX_DESCRIPTION_LEN

	@pytest.mark.asyncio
	async def test_error_status_returned_not_raised(self) -> None:
		publisher = _github(lambda r: httpx.Response(422, json={"message": "Validation Failed"}))
		result = await publisher.create_status(TARGET, REPORT)
		await publisher.aclose()
		assert result.status_code == 422
		assert not result.ok

	@pytest.mark.asyncio
	async def test_transport_error_raises(self) -> None:
		def handler(request: httpx.Request) -> httpx.Response:
			raise httpx.ReadTimeout("slow", request=request)

		publisher = _github(handler)
		with pytest.raises(StatusPublishError, match="acme/widgets"):
			await publisher.create_status(TARGET, REPORT)
		await publisher.aclose()

	@pytest.mark.asyncio
	async def test_unparsable_success_body_uses_report_state(self) -> None:
		publisher = _github(lambda r: httpx.Response(201, text=""))
		result = await publisher.create_status(TARGET, REPORT)
		await publisher.aclose()
		assert result.state == "success"
		assert result.ok

	@pytest.mark.asyncio
	async def test_path_segments_are_escaped(self) -> None:
		seen: list[httpx.Request] = []

		def handler(request: httpx.Request) -> httpx.Response:
			seen.append(request)
			return httpx.Response(201, json={"state": "success"})

		publisher = _github(handler)
		await publisher.create_status(CommitTarget(org="acme", repo="widgets/../gadgets", sha="abc#1"), REPORT)
		await publisher.aclose()

		assert seen[0].url.raw_path == b"/repos/acme/widgets%2F..%2Fgadgets/statuses/abc%231"
