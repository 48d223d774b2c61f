"""CLI interface for the cloudbuild-report server."""

from __future__ import annotations

import argparse
import logging
import sys
import tomllib
from pathlib import Path

from cloudbuild_report.config import ReportConfig, default_config, load_config, validate_config

DEFAULT_CONFIG = "cloudbuild-report.toml"

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="cloudbuild-report",
		description="Report Cloud Build progress as GitHub commit statuses",
	)
	sub = parser.add_subparsers(dest="command")

	# cloudbuild-report serve
	serve = sub.add_parser("serve", help="Run the trigger endpoint")
	serve.add_argument("--config", default=DEFAULT_CONFIG, help="Config file path")
	serve.add_argument("--host", default=None, help="Host to bind to (overrides config)")
	serve.add_argument("--port", type=int, default=None, help="Port to serve on (overrides config)")

	# cloudbuild-report validate-config
	vc = sub.add_parser("validate-config", help="Validate config file semantically")
	vc.add_argument("--config", default=DEFAULT_CONFIG, help="Config file path")

	return parser


def _load(config_path: str) -> ReportConfig:
	"""Load the config file, or defaults when it doesn't exist."""
	if not Path(config_path).exists():
		logger.info("No config file at %s, using defaults", config_path)
		return default_config()
	return load_config(config_path)


def _report_issues(issues: list[tuple[str, str]]) -> bool:
	"""Print issues; return True if any is an error."""
	has_error = False
	for level, message in issues:
		print(f"[{level.upper()}] {message}")
		if level == "error":
			has_error = True
	return has_error


def cmd_validate_config(args: argparse.Namespace) -> int:
	try:
		config = _load(args.config)
	except tomllib.TOMLDecodeError as exc:
		print(f"Invalid TOML in {args.config}: {exc}")
		return 1

	issues = validate_config(config)
	if not issues:
		print("Config OK.")
		return 0
	return 1 if _report_issues(issues) else 0


def cmd_serve(args: argparse.Namespace) -> int:
	try:
		config = _load(args.config)
	except tomllib.TOMLDecodeError as exc:
		print(f"Invalid TOML in {args.config}: {exc}")
		return 1

	if args.host:
		config.server.host = args.host
	if args.port:
		config.server.port = args.port

	if _report_issues([i for i in validate_config(config) if i[0] == "error"]):
		return 1

	import uvicorn

	from cloudbuild_report.server import create_app

	app = create_app(config)
	logger.info("Serving on %s:%d", config.server.host, config.server.port)
	uvicorn.run(
		app,
		host=config.server.host,
		port=config.server.port,
		log_level=config.server.log_level,
	)
	return 0


COMMANDS = {
	"serve": cmd_serve,
	"validate-config": cmd_validate_config,
}


def main(argv: list[str] | None = None) -> int:
	logging.basicConfig(
		level=logging.INFO,
		format="%(asctime)s %(levelname)s %(name)s: %(message)s",
		datefmt="%H:%M:%S",
		force=True,
	)
	parser = build_parser()
	args = parser.parse_args(argv)

	if args.command is None:
		parser.print_help()
		return 0

	handler = COMMANDS.get(args.command)
	if handler is None:
		print(f"Unknown command: {args.command}")
		return 1

	return handler(args)


if __name__ == "__main__":
	sys.exit(main())
