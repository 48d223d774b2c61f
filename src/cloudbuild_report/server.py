"""FastAPI trigger endpoint for cloudbuild-report."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse

from cloudbuild_report.config import ReportConfig, default_config
from cloudbuild_report.errors import BuildLookupError, ProvenanceError
from cloudbuild_report.reporter import BuildReporter, TriggerRequest, build_reporter, missing_parameters

logger = logging.getLogger(__name__)


async def _request_params(request: Request) -> dict[str, str]:
	"""Query string and form body merged; body values win."""
	params = dict(request.query_params)
	form = await request.form()
	for key, value in form.items():
		if isinstance(value, str):
			params[key] = value
	return params


def _provenance_dump(provenance: Any) -> str:
	return json.dumps(provenance, indent=2, sort_keys=True, default=str)


def create_app(config: ReportConfig | None = None, reporter: BuildReporter | None = None) -> FastAPI:
	"""Factory: build the trigger endpoint app.

	When ``reporter`` is given it is used as-is and left open on shutdown.
	Otherwise credentials are resolved and clients built during startup.
	"""
	cfg = config or default_config()

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		owned = reporter is None
		app.state.reporter = await build_reporter(cfg) if owned else reporter
		try:
			yield
		finally:
			if owned:
				await app.state.reporter.aclose()

	app = FastAPI(title="cloudbuild-report", lifespan=lifespan)

	@app.get("/healthz", response_class=PlainTextResponse)
	def healthz() -> str:
		return "ok"

	@app.post("/", response_class=PlainTextResponse)
	async def report(request: Request) -> str:
		params = await _request_params(request)
		missing = missing_parameters(params)
		if missing:
			raise HTTPException(status_code=400, detail=f"Missing parameter(s): {', '.join(missing)}")

		trigger = TriggerRequest.from_params(params)
		active: BuildReporter = request.app.state.reporter
		try:
			await active.trigger(trigger)
		except BuildLookupError as exc:
			logger.warning("%s", exc)
			raise HTTPException(status_code=500, detail=str(exc)) from exc
		except ProvenanceError as exc:
			logger.warning("Build %s/%s: %s", trigger.project, trigger.build_id, exc)
			raise HTTPException(
				status_code=500,
				detail=f"{exc}: {_provenance_dump(exc.provenance)}",
			) from exc
		return "ok"

	return app
