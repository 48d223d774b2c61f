"""Fire-and-forget task spawning.

A detached task has no owner: ``spawn`` hands back no handle, so callers
cannot join, cancel or observe it. Outcomes are visible in logs only.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

logger = logging.getLogger(__name__)


class DetachedSpawner:
	"""Launches coroutines as detached asyncio tasks."""

	def __init__(self) -> None:
		# The event loop only keeps weak references to tasks.
		self._running: set[asyncio.Task[Any]] = set()

	def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> None:
		task = asyncio.create_task(coro, name=name)
		self._running.add(task)
		task.add_done_callback(self._finished)

	def _finished(self, task: asyncio.Task[Any]) -> None:
		self._running.discard(task)
		if task.cancelled():
			logger.info("Detached task %s cancelled", task.get_name())
			return
		exc = task.exception()
		if exc is not None:
			logger.error("Detached task %s crashed: %s", task.get_name(), exc, exc_info=exc)

	@property
	def running(self) -> int:
		return len(self._running)
