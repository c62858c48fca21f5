#!/usr/bin/env python3
"""
Analyze an email file

Reads an .eml file, runs the full security analysis and prints the report
as JSON.

Usage:
    python scripts/analyze_email.py message.eml --client-ip 203.0.113.7
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from threat_engine import InboundMessage, SecurityCoordinator, Settings
from threat_engine.__version__ import get_version


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Analyze an email for security threats")
    parser.add_argument("path", help="Path to an .eml file")
    parser.add_argument("--client-ip", dest="client_address", help="IP address of the SMTP client")
    parser.add_argument("--helo", dest="helo_domain", help="HELO/EHLO name of the SMTP client")
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--rules", help="YAML rules file")
    parser.add_argument("--log-level", default=None, help="Logging level (overrides settings)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    return parser.parse_args(argv)


async def run(args) -> int:
    settings = Settings.from_yaml(args.config) if args.config else Settings()
    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    path = Path(args.path)
    if not path.exists():
        print(f"File not found: {path}", file=sys.stderr)
        return 1

    coordinator = SecurityCoordinator(settings)
    if args.rules:
        coordinator.get_rule_engine().load_yaml(args.rules)

    message = InboundMessage(
        raw_message=path.read_bytes(),
        client_address=args.client_address,
        helo_domain=args.helo_domain,
    )
    report = await coordinator.analyze(message)
    print(json.dumps(report.to_dict(), indent=2, default=str))
    return 0 if not report.degraded else 2


def main(argv=None) -> int:
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
