"""Translate Cloud Build statuses into GitHub commit statuses.

Everything here is pure: no network, no clock. The reconciliation loop
calls these on every poll.
"""

from __future__ import annotations

from datetime import datetime

from cloudbuild_report.models import BuildSnapshot, CommitState, StatusReport

BASE_CONTEXT = "ci/cloudbuild"

_STATE_MAP: dict[str, CommitState] = {
	"WORKING": CommitState.PENDING,
	"QUEUED": CommitState.PENDING,
	"FAILURE": CommitState.FAILURE,
	"SUCCESS": CommitState.SUCCESS,
}


def _parse_rfc3339(value: str) -> datetime | None:
	if not value:
		return None
	try:
		parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
	except ValueError:
		return None
	if parsed.tzinfo is None:
		return None
	return parsed


def format_duration(seconds: int) -> str:
	"""Render whole seconds as e.g. ``5s``, ``1m5s`` or ``2h0m7s``."""
	sign = "-" if seconds < 0 else ""
	seconds = abs(seconds)
	hours, rest = divmod(seconds, 3600)
	minutes, secs = divmod(rest, 60)
	if hours:
		return f"{sign}{hours}h{minutes}m{secs}s"
	if minutes:
		return f"{sign}{minutes}m{secs}s"
	return f"{sign}{secs}s"


def elapsed_seconds(start_time: str, finish_time: str) -> int | None:
	"""Whole seconds between two RFC 3339 timestamps, or None if either is unparsable."""
	start = _parse_rfc3339(start_time)
	finish = _parse_rfc3339(finish_time)
	if start is None or finish is None:
		return None
	return int((finish - start).total_seconds())


def translate(snapshot: BuildSnapshot) -> tuple[CommitState, str]:
	"""Map a build snapshot to a commit state and description."""
	state = _STATE_MAP.get(snapshot.status, CommitState.ERROR)
	description = snapshot.status
	if state is CommitState.SUCCESS:
		elapsed = elapsed_seconds(snapshot.start_time, snapshot.finish_time)
		if elapsed is not None:
			description = f"{snapshot.status} ({format_duration(elapsed)})"
	return state, description


def build_report(snapshot: BuildSnapshot, context: str, target_url: str) -> StatusReport:
	state, description = translate(snapshot)
	return StatusReport(
		context=context,
		state=state,
		description=description,
		target_url=target_url,
	)


def sanitize_context(suffix: str) -> str:
	"""Keep only ASCII letters and digits."""
	return "".join(ch for ch in suffix if ch.isascii() and ch.isalnum())


def status_context(base: str = BASE_CONTEXT, suffix: str | None = None) -> str:
	"""Build the status context label, e.g. ``ci/cloudbuild/foo``."""
	if not suffix:
		return base
	return f"{base}/{sanitize_context(suffix)}"
