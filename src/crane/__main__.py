"""CLI entrypoint: watch a branch, build new commits, report statuses.

Usage:
    crane --owner acme --repo widget --branch main --context ci/crane \\
          --command ./ci.sh --bucket acme-ci-logs --region eu-west-1

Every flag can also come from the environment (CRANE_GITHUB_USER,
CRANE_GITHUB_TOKEN, CRANE_OWNER, CRANE_REPO, CRANE_BRANCH, CRANE_CONTEXT,
CRANE_COMMAND, CRANE_LOG_REGION, CRANE_LOG_BUCKET, ...), from a .env file, or
from a YAML file passed with --config. Flags win over the environment, which
wins over the file.

Set CRANE_DEBUG (or pass --debug) for debug logging.
"""

# ruff: noqa: T201 - print is the correct output mechanism for a CLI entrypoint

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

from pydantic import ValidationError

from crane.build import run_build
from crane.checkout import LocalCheckout
from crane.cloud.s3 import LogArchive
from crane.config import CraneConfig, load_config
from crane.controller import KeyboardWatcher, RunController, RunFlag, install_signal_handlers
from crane.dashboard import ConsoleReporter, Dashboard
from crane.engine import ReconciliationEngine
from crane.errors import AuthError, CheckoutError
from crane.hub import GitHubClient
from crane.timer import BackoffTimer

logger = logging.getLogger("crane")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crane",
        description="Watches a branch, builds new commits and updates GitHub statuses.",
    )
    parser.add_argument("--config", type=Path, help="YAML file with default settings")
    parser.add_argument("-u", "--user", dest="github_user", help="GitHub username")
    parser.add_argument("-t", "--token", dest="github_token", help="GitHub access token")
    parser.add_argument("-o", "--owner", help="Owner of the repository to watch")
    parser.add_argument("-r", "--repo", help="Name of the repository to watch")
    parser.add_argument("-b", "--branch", help="Name of the branch to watch")
    parser.add_argument(
        "-c", "--context", help="Label to differentiate this status from other statuses"
    )
    parser.add_argument(
        "-e", "--command", help="Command to test a commit, run from the checkout root"
    )
    parser.add_argument("--region", dest="log_region", help="AWS region of the log bucket")
    parser.add_argument("--bucket", dest="log_bucket", help="S3 bucket for build logs")
    parser.add_argument(
        "--checkout-root", type=Path, help="Where to clone (default: /tmp/crane/OWNER/REPO/CONTEXT)"
    )
    parser.add_argument(
        "--build-timeout", type=float, help="Kill builds after this many seconds (default: never)"
    )
    parser.add_argument(
        "--pending-ttl",
        type=float,
        help="Rebuild commits whose pending status is older than this many seconds",
    )
    parser.add_argument(
        "--no-ui", action="store_true", help="Print one line per change instead of the dashboard"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, object]:
    fields = set(CraneConfig.model_fields)
    return {k: v for k, v in vars(args).items() if k in fields}


def _summarize(exc: ValidationError) -> str:
    """Flatten validation errors into one `field: message; ...` line."""
    problems = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "config"
        problems.append(f"{field}: {err['msg']}")
    return "; ".join(problems)


def configure_logging(debug: bool, handler: logging.Handler | None = None) -> None:
    if handler is None:
        logging.basicConfig(
            level=logging.WARNING,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%H:%M:%S",
            stream=sys.stderr,
        )
    else:
        # The dashboard's handler prints above the live view
        logging.basicConfig(level=logging.WARNING, format="%(message)s", handlers=[handler])
    # Only show detailed logs for our own code
    logging.getLogger("crane").setLevel(logging.DEBUG if debug else logging.INFO)


def main(argv: list[str] | None = None) -> None:
    from dotenv import load_dotenv

    load_dotenv()

    args = _build_parser().parse_args(argv)
    debug = args.debug or bool(os.environ.get("CRANE_DEBUG"))
    interactive = not args.no_ui and sys.stdout.isatty()

    try:
        cfg = load_config(args.config, _overrides(args))
    except ValidationError as exc:
        print(f"ERROR: invalid configuration: {_summarize(exc)}", file=sys.stderr)
        sys.exit(1)
    except (OSError, ValueError) as exc:
        print(f"ERROR: cannot read configuration: {exc}", file=sys.stderr)
        sys.exit(1)

    dashboard = Dashboard(cfg.properties()) if interactive else None
    if dashboard is not None:
        from rich.logging import RichHandler

        configure_logging(debug, RichHandler(console=dashboard.console, show_path=False))
    else:
        configure_logging(debug)
    logger.info("starting with %r", cfg)

    try:
        client = GitHubClient(cfg.github_token, base_url=cfg.api_url)
    except AuthError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        checkout = LocalCheckout.initialize(
            cfg.clone_url, cfg.checkout_path, cfg.branch, timeout=cfg.git_timeout
        )
    except CheckoutError as exc:
        print(f"ERROR: initial clone failed: {exc}", file=sys.stderr)
        client.close()
        sys.exit(1)

    engine = ReconciliationEngine(
        platform=client,
        checkout=checkout,
        archive=LogArchive(cfg.log_region, cfg.log_bucket, cfg.key_prefix),
        builder=run_build,
        repository=cfg.repository,
        branch=cfg.branch,
        context=cfg.context,
        command=cfg.command,
        build_timeout=cfg.build_timeout,
        pending_ttl=cfg.pending_ttl,
    )

    flag = RunFlag()
    install_signal_handlers(flag)
    timer = BackoffTimer()

    with client:
        if dashboard is not None:
            watcher = KeyboardWatcher(flag)
            watcher.start()
            with dashboard:
                RunController(
                    engine, timer, flag, dashboard, tick_seconds=cfg.tick_seconds
                ).run()
            watcher.join(timeout=1)
        else:
            print(f"Watching {cfg.repository.slug}@{cfg.branch} as {cfg.context!r}")
            RunController(
                engine, timer, flag, ConsoleReporter(), tick_seconds=cfg.tick_seconds
            ).run()

    sys.exit(0)


if __name__ == "__main__":
    main()
