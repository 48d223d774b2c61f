"""Trigger client: announce a started build to the report endpoint.

Meant to run as a Cloud Build step. Reads its parameters from the
environment and sends a single POST; there is no retry.

	REPORT_ID        build ID (required)
	REPORT_PROJECT   Cloud project of the build (required)
	REPORT_ORG       GitHub organization (required)
	REPORT_REPO      GitHub repository (required)
	REPORT_CONTEXT   status context suffix (optional)
	REPORT_URL       endpoint URL (optional)
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping

import httpx

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://cloudbuild-report.appspot-preview.com/"

# Environment variable -> endpoint parameter
REQUIRED_ENV = {
	"REPORT_ID": "buildID",
	"REPORT_PROJECT": "project",
	"REPORT_ORG": "org",
	"REPORT_REPO": "repo",
}


def collect_params(environ: Mapping[str, str]) -> tuple[dict[str, str], list[str]]:
	"""Return endpoint parameters and the names of missing required variables."""
	params: dict[str, str] = {}
	missing: list[str] = []
	for env_name, param in REQUIRED_ENV.items():
		value = environ.get(env_name, "")
		if value:
			params[param] = value
		else:
			missing.append(env_name)
	context = environ.get("REPORT_CONTEXT", "")
	if context:
		params["context"] = context
	return params, missing


def main() -> int:
	logging.basicConfig(
		level=logging.INFO,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
		datefmt="%H:%M:%S",
		force=True,
	)
	params, missing = collect_params(os.environ)
	if missing:
		print(f"Missing environment variables: {', '.join(missing)}", file=sys.stderr)
		return 1

	url = os.environ.get("REPORT_URL") or DEFAULT_URL
	logger.info("Reporting: %s %s", url, params)
	try:
		resp = httpx.post(url, data=params, timeout=30.0, follow_redirects=True)
	except httpx.HTTPError as exc:
		print(f"Could not reach {url}: {exc}", file=sys.stderr)
		return 1

	if resp.status_code > 399:
		logger.error("Report rejected with HTTP %d", resp.status_code)
		print(resp.text, file=sys.stderr)
		return 1

	logger.info("Reported build status.")
	return 0


if __name__ == "__main__":
	sys.exit(main())
