"""
Command line entry point.

The API itself runs under gunicorn (`gunicorn statichost.main:app -c gunicorn_conf.py`);
this script covers the maintenance tasks and deploying a site from a terminal.
"""

import argparse
import sys
from pathlib import Path

from loguru import logger
from sqlmodel import Session

from statichost.client import ApiError, SiteCreationWizard, StaticHostClient
from statichost.core.config import get_settings
from statichost.exceptions import ValidationError
from statichost.utils.logger import setup_logging


def init_db_command(args: argparse.Namespace) -> int:
    from statichost import initial_data

    return 0 if initial_data.main() else 1


def cleanup_command(args: argparse.Namespace) -> int:
    """Apply the analytics and audit retention windows."""
    from statichost.database.database import engine
    from statichost.services import analytics as analytics_service
    from statichost.services import audit as audit_service

    settings = get_settings()
    analytics_days = args.analytics_days or settings.ANALYTICS_RETENTION_DAYS
    audit_days = args.audit_days or settings.AUDIT_RETENTION_DAYS

    with Session(engine) as session:
        hits = analytics_service.cleanup_old_data(session, analytics_days)
        entries = audit_service.cleanup(session, audit_days)
        audit_service.log_system_action(
            session,
            "system.cleanup",
            {
                "analytics_retention_days": analytics_days,
                "audit_retention_days": audit_days,
                "hits_deleted": hits,
                "audit_entries_deleted": entries,
            },
        )

    print(f"Removed {hits} analytics hits and {entries} audit entries")
    return 0


def _print_progress(percent: int, status: str) -> None:
    print(f"[{percent:3d}%] {status}")


def deploy_command(args: argparse.Namespace) -> int:
    """Create, fill and activate a site through the API."""
    try:
        details = SiteCreationWizard.validate_details(args.name, args.slug, args.description)
    except ValidationError as e:
        print(f"Invalid {e.field or 'input'}: {e.message}", file=sys.stderr)
        return 2

    with StaticHostClient(args.url, token=args.token) as client:
        wizard = SiteCreationWizard(client)
        try:
            result = wizard.run(
                details, args.strategy, args.source, progress=_print_progress, branch=args.branch
            )
        except ValidationError as e:
            print(f"Invalid {e.field or 'input'}: {e.message}", file=sys.stderr)
            return 2
        except ApiError as e:
            print(f"Deployment failed: {e.message}", file=sys.stderr)
            return 1

    site = result["site"]
    print(f"Site '{site['name']}' is live at {args.url.rstrip('/')}/s/{site['slug']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="statichost", description="StaticHost maintenance and deployment commands"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_db = subparsers.add_parser(
        "init-db", help="Create the schema, seed the first administrator and the sites bucket"
    )
    init_db.set_defaults(handler=init_db_command)

    cleanup = subparsers.add_parser(
        "cleanup", help="Delete analytics hits and audit entries past retention"
    )
    cleanup.add_argument(
        "--analytics-days",
        type=int,
        help="Analytics retention in days (default: ANALYTICS_RETENTION_DAYS)",
    )
    cleanup.add_argument(
        "--audit-days",
        type=int,
        help="Audit retention in days (default: AUDIT_RETENTION_DAYS)",
    )
    cleanup.set_defaults(handler=cleanup_command)

    deploy = subparsers.add_parser("deploy", help="Create and publish a site")
    deploy.add_argument(
        "--url",
        default="http://127.0.0.1:8000",
        help="API base URL (default: http://127.0.0.1:8000)",
    )
    deploy.add_argument("--token", required=True, help="Bearer access token")
    deploy.add_argument("name", help="Site name")
    deploy.add_argument("--slug", help="Site slug (default: generated from the name)")
    deploy.add_argument("--description", default="", help="Site description")
    deploy.add_argument(
        "--branch", default="main", help="Branch to clone for git deployments (default: main)"
    )
    deploy.add_argument("strategy", choices=["zip", "git", "manual"], help="Upload strategy")
    deploy.add_argument(
        "source",
        nargs="+",
        help="ZIP archive, repository URL, or a directory or files for manual uploads",
    )
    deploy.set_defaults(handler=deploy_command)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "deploy":
        if args.strategy != "manual" and len(args.source) > 1:
            parser.error(f"{args.strategy} deployments take a single source")
        if args.strategy != "manual":
            args.source = args.source[0]
        elif len(args.source) == 1 and Path(args.source[0]).is_dir():
            args.source = Path(args.source[0])
    else:
        setup_logging()
    logger.debug(f"Running statichost {args.command}")
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
