from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional

from phigate.guard.analyzer import PhiGuard, Status
from phigate.guard.rules import load_rulepack
from phigate.keys.rotator import KeyRotator
from phigate.pmid.probe import PubMedProbe
from phigate.pmid.verifier import PmidVerifier
from phigate.settings import get_settings
from phigate.store import build_store
from phigate.telemetry.logging import configure_root_logging

_EXIT_BY_STATUS = {Status.GREEN: 0, Status.YELLOW: 1, Status.RED: 2}


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2))


def _cmd_analyze(args: argparse.Namespace) -> int:
    if args.file and args.file != "-":
        with open(args.file, "r", encoding="utf-8") as f:
            text = f.read()
    else:
        text = sys.stdin.read()
    rules = load_rulepack(args.rulepack) if args.rulepack else None
    verdict = PhiGuard(rules).analyze(text)
    _print_json(verdict.to_dict())
    return _EXIT_BY_STATUS[verdict.status]


async def _keys_status() -> int:
    rotator = KeyRotator(build_store())
    _print_json([s.to_dict() for s in await rotator.describe()])
    return 0


async def _verify(pmids: List[str]) -> int:
    settings = get_settings()
    probe = PubMedProbe(settings=settings)
    try:
        verifier = PmidVerifier(build_store(settings), probe=probe, settings=settings)
        _print_json(await verifier.verify(pmids))
    finally:
        await probe.aclose()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="phigate")
    sub = parser.add_subparsers(dest="command", required=True)

    p_an = sub.add_parser("analyze", help="classify text (stdin when FILE is omitted)")
    p_an.add_argument("file", nargs="?")
    p_an.add_argument("--rulepack", help="rule pack name or YAML path")

    p_keys = sub.add_parser("keys", help="inspect API key slots")
    keys_sub = p_keys.add_subparsers(dest="keys_command", required=True)
    keys_sub.add_parser("status")

    p_ver = sub.add_parser("verify", help="check PMIDs against PubMed")
    p_ver.add_argument("pmids", nargs="+")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_root_logging(get_settings().log_level)

    if args.command == "analyze":
        return _cmd_analyze(args)
    if args.command == "keys":
        return asyncio.run(_keys_status())
    if args.command == "verify":
        return asyncio.run(_verify(args.pmids))
    return 2  # pragma: no cover


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
