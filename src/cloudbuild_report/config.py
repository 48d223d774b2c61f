"""TOML configuration loader for cloudbuild-report."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cloudbuild_report.translator import BASE_CONTEXT, sanitize_context

DEFAULT_TARGET_URL = "https://console.cloud.google.com/cloud-build/builds/{build_id}?project={project}"
DEFAULT_ROBOT_ACCOUNT = "cloudbuild-report@appspot.gserviceaccount.com"


@dataclass
class ServerConfig:
	"""Trigger endpoint settings."""

	host: str = "0.0.0.0"
	port: int = 8080
	log_level: str = "info"


@dataclass
class LoopConfig:
	"""Reconciliation loop settings."""

	poll_interval: float = 10.0  # seconds between polls
	timeout: float = 1800.0  # overall budget per build, seconds
	stop_on_terminal: bool = True  # stop once a finished build's status is published
	base_context: str = BASE_CONTEXT
	target_url_template: str = DEFAULT_TARGET_URL


@dataclass
class GitHubConfig:
	"""GitHub status API settings."""

	api_url: str = "https://api.github.com"
	token: str = ""
	request_timeout: float = 30.0


@dataclass
class CloudBuildConfig:
	"""Cloud Build API settings."""

	api_url: str = "https://cloudbuild.googleapis.com"
	robot_account: str = DEFAULT_ROBOT_ACCOUNT
	request_timeout: float = 30.0


@dataclass
class ReportConfig:
	"""Top-level cloudbuild-report configuration."""

	server: ServerConfig = field(default_factory=ServerConfig)
	loop: LoopConfig = field(default_factory=LoopConfig)
	github: GitHubConfig = field(default_factory=GitHubConfig)
	cloudbuild: CloudBuildConfig = field(default_factory=CloudBuildConfig)


def _build_server(data: dict[str, Any]) -> ServerConfig:
	sc = ServerConfig()
	if "host" in data:
		sc.host = str(data["host"])
	if "port" in data:
		sc.port = int(data["port"])
	if "log_level" in data:
		sc.log_level = str(data["log_level"])
	return sc


def _build_loop(data: dict[str, Any]) -> LoopConfig:
	lc = LoopConfig()
	if "poll_interval" in data:
		lc.poll_interval = float(data["poll_interval"])
	if "timeout" in data:
		lc.timeout = float(data["timeout"])
	if "stop_on_terminal" in data:
		lc.stop_on_terminal = bool(data["stop_on_terminal"])
	if "base_context" in data:
		lc.base_context = str(data["base_context"])
	if "target_url_template" in data:
		lc.target_url_template = str(data["target_url_template"])
	return lc


def _build_github(data: dict[str, Any]) -> GitHubConfig:
	gc = GitHubConfig()
	if "api_url" in data:
		gc.api_url = str(data["api_url"])
	if "token" in data:
		gc.token = str(data["token"])
	if "request_timeout" in data:
		gc.request_timeout = float(data["request_timeout"])
	return gc


def _build_cloudbuild(data: dict[str, Any]) -> CloudBuildConfig:
	cc = CloudBuildConfig()
	if "api_url" in data:
		cc.api_url = str(data["api_url"])
	if "robot_account" in data:
		cc.robot_account = str(data["robot_account"])
	if "request_timeout" in data:
		cc.request_timeout = float(data["request_timeout"])
	return cc


def _apply_env(rc: ReportConfig) -> ReportConfig:
	# GITHUB_TOKEN takes precedence over a token written in the file
	env_token = os.environ.get("GITHUB_TOKEN", "")
	if env_token:
		rc.github.token = env_token
	# App Engine and Cloud Run hand the listening port over in PORT
	env_port = os.environ.get("PORT", "")
	if env_port.isdigit():
		rc.server.port = int(env_port)
	return rc


def default_config() -> ReportConfig:
	"""Defaults plus environment fallbacks, for running without a config file."""
	return _apply_env(ReportConfig())


def load_config(path: str | Path) -> ReportConfig:
	"""Load a cloudbuild-report.toml config file.

	Args:
		path: Path to the TOML config file.

	Returns:
		Parsed ReportConfig.

	Raises:
		FileNotFoundError: If config file doesn't exist.
		tomllib.TOMLDecodeError: If config is invalid TOML.
	"""
	config_path = Path(path)
	if not config_path.exists():
		raise FileNotFoundError(f"Config file not found: {config_path}")

	with open(config_path, "rb") as f:
		data = tomllib.load(f)

	rc = ReportConfig()
	if "server" in data:
		rc.server = _build_server(data["server"])
	if "loop" in data:
		rc.loop = _build_loop(data["loop"])
	if "github" in data:
		rc.github = _build_github(data["github"])
	if "cloudbuild" in data:
		rc.cloudbuild = _build_cloudbuild(data["cloudbuild"])
	return _apply_env(rc)


def validate_config(config: ReportConfig) -> list[tuple[str, str]]:
	"""Perform semantic validation of a loaded ReportConfig.

	Returns a list of (level, message) tuples where level is 'error' or 'warning'.
	"""
	issues: list[tuple[str, str]] = []

	loop = config.loop
	if loop.poll_interval <= 0:
		issues.append(("error", f"loop.poll_interval must be positive: {loop.poll_interval}"))
	if loop.timeout <= 0:
		issues.append(("error", f"loop.timeout must be positive: {loop.timeout}"))
	elif loop.timeout < loop.poll_interval:
		issues.append(("warning", "loop.timeout is shorter than one poll interval"))

	try:
		loop.target_url_template.format(build_id="b", project="p")
	except (KeyError, IndexError, ValueError) as exc:
		issues.append(("error", f"loop.target_url_template is invalid: {exc}"))

	segments = loop.base_context.split("/")
	if not loop.base_context or any(sanitize_context(s) != s or not s for s in segments):
		issues.append(("warning", f"loop.base_context has unusual characters: {loop.base_context!r}"))

	if not (0 < config.server.port < 65536):
		issues.append(("error", f"server.port out of range: {config.server.port}"))

	for name, url in (("github.api_url", config.github.api_url), ("cloudbuild.api_url", config.cloudbuild.api_url)):
		if not url.startswith(("http://", "https://")):
			issues.append(("error", f"{name} must be an http(s) URL: {url}"))

	if not config.github.token:
		issues.append(("warning", "github.token not set; will fall back to GCE metadata at startup"))

	return issues
