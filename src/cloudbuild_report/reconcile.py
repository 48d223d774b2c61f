"""Reconciliation loop: mirror one build's progress onto a commit status.

The policy lives in two pure functions. ``advance`` decides, for one poll,
whether the loop timed out and whether the translated status is new.
``settle`` folds the outcome of a publish back into the state.
``ReconciliationLoop`` only performs the I/O around them:

    polling -> publishing -> polling ... -> done | timed_out

A status whose state matches the last published one is never sent again.
A failed publish leaves ``last_published`` untouched, so the same
transition is retried on the next poll until the deadline passes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import Enum

from cloudbuild_report.cloudbuild import BuildStatusProvider
from cloudbuild_report.config import LoopConfig
from cloudbuild_report.errors import BuildLookupError, StatusPublishError
from cloudbuild_report.github import CommitStatusPublisher
from cloudbuild_report.models import (
	BuildRef,
	BuildSnapshot,
	CommitState,
	CommitTarget,
	PublishResult,
	StatusReport,
)
from cloudbuild_report.translator import build_report

logger = logging.getLogger(__name__)


class LoopPhase(Enum):
	POLLING = "polling"
	PUBLISHING = "publishing"
	DONE = "done"
	TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class LoopState:
	"""State owned by a single loop."""

	deadline: float
	phase: LoopPhase = LoopPhase.POLLING
	last_published: CommitState | None = None

	@property
	def finished(self) -> bool:
		return self.phase in (LoopPhase.DONE, LoopPhase.TIMED_OUT)


@dataclass(frozen=True)
class PublishAction:
	"""A status the loop should send next."""

	report: StatusReport
	terminal: bool = False


@dataclass(frozen=True)
class LoopSettings:
	poll_interval: float = 10.0
	timeout: float = 1800.0
	stop_on_terminal: bool = True

	@classmethod
	def from_config(cls, config: LoopConfig) -> LoopSettings:
		return cls(
			poll_interval=config.poll_interval,
			timeout=config.timeout,
			stop_on_terminal=config.stop_on_terminal,
		)


def start_state(now: float, timeout: float) -> LoopState:
	return LoopState(deadline=now + timeout)


def advance(
	state: LoopState,
	snapshot: BuildSnapshot | None,
	now: float,
	*,
	context: str,
	target_url: str,
) -> tuple[LoopState, PublishAction | None]:
	"""Apply one poll result. Returns the next state and an optional publish."""
	if now > state.deadline:
		return replace(state, phase=LoopPhase.TIMED_OUT), None
	if snapshot is None:
		return replace(state, phase=LoopPhase.POLLING), None

	report = build_report(snapshot, context, target_url)
	if report.state == state.last_published:
		return replace(state, phase=LoopPhase.POLLING), None
	action = PublishAction(report=report, terminal=snapshot.is_terminal)
	return replace(state, phase=LoopPhase.PUBLISHING), action


def settle(
	state: LoopState,
	action: PublishAction,
	published: bool,
	*,
	published_state: CommitState | None = None,
	stop_on_terminal: bool = True,
) -> LoopState:
	"""Record the outcome of a publish attempt.

	``published_state`` is the state GitHub reports back, when it named one.
	It takes precedence over the state that was sent.
	"""
	if not published:
		return replace(state, phase=LoopPhase.POLLING)
	phase = LoopPhase.DONE if (stop_on_terminal and action.terminal) else LoopPhase.POLLING
	return replace(state, phase=phase, last_published=published_state or action.report.state)


def _commit_state(result: PublishResult | None) -> CommitState | None:
	if result is None or not result.state:
		return None
	try:
		return CommitState(result.state)
	except ValueError:
		return None


class ReconciliationLoop:
	"""Polls one build and publishes its status transitions."""

	def __init__(
		self,
		ref: BuildRef,
		target: CommitTarget,
		context: str,
		target_url: str,
		provider: BuildStatusProvider,
		publisher: CommitStatusPublisher,
		settings: LoopSettings | None = None,
		clock: Callable[[], float] = time.monotonic,
		sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
	) -> None:
		self.ref = ref
		self.target = target
		self.context = context
		self.target_url = target_url
		self._provider = provider
		self._publisher = publisher
		self._settings = settings or LoopSettings()
		self._clock = clock
		self._sleep = sleep

	async def run(self, initial: BuildSnapshot | None = None) -> LoopState:
		"""Loop until the build is reported as finished or the deadline passes.

		``initial`` is the snapshot fetched when the build was triggered. It
		stands in for the build state whenever a poll fails.
		"""
		settings = self._settings
		state = start_state(self._clock(), settings.timeout)
		snapshot = initial

		while True:
			polled = await self._poll()
			if polled is not None:
				snapshot = polled

			state, action = advance(
				state, snapshot, self._clock(),
				context=self.context, target_url=self.target_url,
			)
			if state.phase is LoopPhase.TIMED_OUT:
				logger.warning("Timed out %r %r", self.ref.project, self.ref.build_id)
				return state

			if action is not None:
				result = await self._publish(action)
				state = settle(
					state, action, result is not None,
					published_state=_commit_state(result),
					stop_on_terminal=settings.stop_on_terminal,
				)
				if state.phase is LoopPhase.DONE:
					logger.info(
						"%s/%s: build finished, final status %s on %s",
						self.ref.project, self.ref.build_id, state.last_published.value, self.target,
					)
					return state

			await self._sleep(settings.poll_interval)

	async def _poll(self) -> BuildSnapshot | None:
		try:
			return await self._provider.get_build(self.ref)
		except BuildLookupError as exc:
			logger.warning("%s", exc)
			return None
		except Exception:
			logger.exception("Unexpected error polling %r %r", self.ref.project, self.ref.build_id)
			return None

	async def _publish(self, action: PublishAction) -> PublishResult | None:
		report = action.report
		logger.info(
			"%s/%s/%s: Setting status %s",
			self.ref.project, self.ref.build_id, self.target.sha, report.state.value,
		)
		try:
			result = await self._publisher.create_status(self.target, report)
		except StatusPublishError as exc:
			logger.warning("%s (context=%s, state=%s)", exc, report.context, report.state.value)
			return None
		if not result.ok:
			logger.warning(
				"Could not set GitHub status %r %r %s/%s: HTTP %d",
				self.ref.project, self.ref.build_id, self.target.org, self.target.repo, result.status_code,
			)
			return None
		return result
