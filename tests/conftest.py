"""Shared pytest fixtures for cloudbuild-report tests."""

from __future__ import annotations

import pytest
from fakes import SHA, FakeClock

from cloudbuild_report.config import ReportConfig
from cloudbuild_report.models import BuildRef, CommitTarget


@pytest.fixture()
def ref() -> BuildRef:
	return BuildRef(project="my-proj", build_id="b-123")


@pytest.fixture()
def target() -> CommitTarget:
	return CommitTarget(org="acme", repo="widgets", sha=SHA)


@pytest.fixture()
def clock() -> FakeClock:
	return FakeClock()


@pytest.fixture()
def config(monkeypatch: pytest.MonkeyPatch) -> ReportConfig:
	"""Default config with no environment leaking in."""
	monkeypatch.delenv("GITHUB_TOKEN", raising=False)
	monkeypatch.delenv("PORT", raising=False)
	cfg = ReportConfig()
	cfg.github.token = "gh-test-token"
	return cfg
