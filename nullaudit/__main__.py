#!/usr/bin/env python3
"""
Audit a source file from the command line.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from nullaudit import create_orchestrator
from nullaudit.config_loader import ConfigLoader
from nullaudit.errors import AuditError


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="nullaudit", description="Multi-reviewer security audit")
    parser.add_argument("file", help="Source file to audit")
    parser.add_argument(
        "--project-id",
        default=None,
        help="Project id (default: file name)",
    )
    parser.add_argument("--language", default=None, help="Source language (default: detected)")
    parser.add_argument(
        "--depth",
        default="standard",
        choices=["quick", "standard", "deep"],
        help="Analysis depth",
    )
    parser.add_argument(
        "--format",
        default="json",
        choices=["json", "html", "sarif"],
        help="Report format written to stdout",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML configuration file (default: NULLAUDIT_* environment variables)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    path = Path(args.file)
    code = path.read_text(encoding="utf-8")

    config = ConfigLoader.load_engine_config(Path(args.config) if args.config else None)
    orchestrator = create_orchestrator(config)
    try:
        result = await orchestrator.run_audit({
            "project_id": args.project_id or path.name,
            "codebase": code,
            "targets": [path.name],
            "language": args.language,
            "options": {"depth": args.depth},
        })
        report = orchestrator.export_report(result.session_id, args.format)
    except AuditError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 1
    finally:
        await orchestrator.close()

    print(report.content)
    return 0


def main(argv=None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
