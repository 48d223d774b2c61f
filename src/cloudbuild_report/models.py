"""Data models for build reporting."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

# Cloud Build statuses after which a build never changes again.
TERMINAL_BUILD_STATUSES = frozenset({
	"SUCCESS",
	"FAILURE",
	"INTERNAL_ERROR",
	"TIMEOUT",
	"CANCELLED",
	"EXPIRED",
})


class CommitState(str, Enum):
	"""States accepted by the GitHub commit status API."""

	PENDING = "pending"
	SUCCESS = "success"
	FAILURE = "failure"
	ERROR = "error"


@dataclass(frozen=True)
class BuildRef:
	"""Lookup key for one Cloud Build build."""

	project: str
	build_id: str


@dataclass(frozen=True)
class BuildSnapshot:
	"""Build state as returned by a single poll."""

	status: str
	start_time: str = ""
	finish_time: str = ""
	commit_sha: str | None = None
	provenance: dict[str, Any] | None = None

	@property
	def is_terminal(self) -> bool:
		return self.status in TERMINAL_BUILD_STATUSES


@dataclass(frozen=True)
class CommitTarget:
	"""Repository and commit a build's statuses are attached to."""

	org: str
	repo: str
	sha: str

	def __str__(self) -> str:
		return f"{self.org}/{self.repo}@{self.sha[:12]}"


@dataclass(frozen=True)
class StatusReport:
	"""One commit status update."""

	context: str
	state: CommitState
	description: str
	target_url: str


@dataclass(frozen=True)
class PublishResult:
	"""Outcome of a create-status call that reached the API."""

	state: str
	status_code: int

	@property
	def ok(self) -> bool:
		return self.status_code <= 399


# -- Wire schemas --

class ResolvedRepoSource(BaseModel, extra="ignore"):
	commit_sha: str = Field(default="", alias="commitSha")


class SourceProvenance(BaseModel, extra="ignore"):
	resolved_repo_source: ResolvedRepoSource | None = Field(default=None, alias="resolvedRepoSource")


class BuildResource(BaseModel, extra="ignore"):
	"""Subset of the Cloud Build v1 Build resource."""

	id: str = ""
	status: str = "STATUS_UNKNOWN"
	start_time: str = Field(default="", alias="startTime")
	finish_time: str = Field(default="", alias="finishTime")
	source_provenance: SourceProvenance | None = Field(default=None, alias="sourceProvenance")

	def to_snapshot(self, raw_provenance: dict[str, Any] | None = None) -> BuildSnapshot:
		sha = None
		if self.source_provenance and self.source_provenance.resolved_repo_source:
			sha = self.source_provenance.resolved_repo_source.commit_sha or None
		return BuildSnapshot(
			status=self.status,
			start_time=self.start_time,
			finish_time=self.finish_time,
			commit_sha=sha,
			provenance=raw_provenance,
		)


class RepoStatus(BaseModel, extra="ignore"):
	"""GitHub create-status response."""

	id: int = 0
	state: str = ""
	context: str = ""
	description: str | None = None
	target_url: str | None = None
