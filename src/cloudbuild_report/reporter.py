"""Build reporter: turns trigger requests into detached reconciliation loops."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import httpx

from cloudbuild_report.cloudbuild import BuildStatusProvider, CloudBuildClient
from cloudbuild_report.config import LoopConfig, ReportConfig
from cloudbuild_report.credentials import google_token_source, resolve_github_token
from cloudbuild_report.errors import ProvenanceError
from cloudbuild_report.github import CommitStatusPublisher, GitHubStatusClient
from cloudbuild_report.models import BuildRef, CommitTarget
from cloudbuild_report.reconcile import LoopSettings, ReconciliationLoop
from cloudbuild_report.tasks import DetachedSpawner
from cloudbuild_report.translator import status_context

logger = logging.getLogger(__name__)

REQUIRED_PARAMS = ("buildID", "project", "org", "repo")


def missing_parameters(params: Mapping[str, str]) -> list[str]:
	"""Names of required trigger parameters that are absent or empty."""
	return [name for name in REQUIRED_PARAMS if not params.get(name)]


@dataclass(frozen=True)
class TriggerRequest:
	"""A validated request to report on one build."""

	build_id: str
	project: str
	org: str
	repo: str
	context: str | None = None

	@classmethod
	def from_params(cls, params: Mapping[str, str]) -> TriggerRequest:
		missing = missing_parameters(params)
		if missing:
			raise ValueError(f"Missing parameter(s): {', '.join(missing)}")
		return cls(
			build_id=params["buildID"],
			project=params["project"],
			org=params["org"],
			repo=params["repo"],
			context=params.get("context") or None,
		)

	@property
	def ref(self) -> BuildRef:
		return BuildRef(project=self.project, build_id=self.build_id)


class BuildReporter:
	"""Process-wide dependencies of the trigger endpoint.

	Constructed once at startup and passed to the app; no module globals.
	"""

	def __init__(
		self,
		provider: BuildStatusProvider,
		publisher: CommitStatusPublisher,
		config: LoopConfig | None = None,
		spawner: DetachedSpawner | None = None,
		extra_clients: Sequence[httpx.AsyncClient] = (),
	) -> None:
		self.provider = provider
		self.publisher = publisher
		self.config = config or LoopConfig()
		self.spawner = spawner or DetachedSpawner()
		self._extra_clients = list(extra_clients)

	def target_url(self, ref: BuildRef) -> str:
		return self.config.target_url_template.format(build_id=ref.build_id, project=ref.project)

	def new_loop(self, ref: BuildRef, target: CommitTarget, context: str) -> ReconciliationLoop:
		return ReconciliationLoop(
			ref=ref,
			target=target,
			context=context,
			target_url=self.target_url(ref),
			provider=self.provider,
			publisher=self.publisher,
			settings=LoopSettings.from_config(self.config),
		)

	async def trigger(self, request: TriggerRequest) -> CommitTarget:
		"""Resolve the build's commit and start watching it.

		Raises:
			BuildLookupError: If the build could not be fetched.
			ProvenanceError: If the build has no commit SHA.
		"""
		ref = request.ref
		snapshot = await self.provider.get_build(ref)
		if not snapshot.commit_sha:
			raise ProvenanceError("Missing CommitSHA from source provenance", snapshot.provenance)

		target = CommitTarget(org=request.org, repo=request.repo, sha=snapshot.commit_sha)
		context = status_context(self.config.base_context, request.context)
		loop = self.new_loop(ref, target, context)
		self.spawner.spawn(loop.run(snapshot), name=f"reconcile-{ref.project}-{ref.build_id}")
		logger.info("Watching build %s/%s for %s (%s)", ref.project, ref.build_id, target, context)
		return target

	async def aclose(self) -> None:
		await self.provider.aclose()
		await self.publisher.aclose()
		for client in self._extra_clients:
			await client.aclose()


async def build_reporter(config: ReportConfig) -> BuildReporter:
	"""Resolve credentials and construct the production reporter.

	Raises:
		CredentialError: If the GitHub token or Google credentials are unavailable.
	"""
	metadata_client = httpx.AsyncClient(timeout=5.0)
	try:
		github_token = await resolve_github_token(config, metadata_client)
		tokens = await google_token_source(config, metadata_client)
	except Exception:
		await metadata_client.aclose()
		raise

	provider = CloudBuildClient(
		tokens,
		api_url=config.cloudbuild.api_url,
		timeout=config.cloudbuild.request_timeout,
	)
	publisher = GitHubStatusClient(
		github_token,
		api_url=config.github.api_url,
		timeout=config.github.request_timeout,
	)
	return BuildReporter(provider, publisher, config.loop, extra_clients=[metadata_client])
