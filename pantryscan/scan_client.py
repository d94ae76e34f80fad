#!/usr/bin/env python3
"""
scan_client.py

Purpose:
  Behave like a paired scanner: post one barcode read to the ingestion API and
  print the JSON answer. Handy for pairing checks and for seeding a pantry
  from a keyboard-wedge scanner on a laptop.

API:
  Base:   http://localhost:8089
  Scan:   POST /api/v1/scanner/scan
          body: {"barcode": "...", "scanner_serial": "SCN-XXXXXXXX-XXXX",
                 "action": "add" | "remove", "quantity": 1}

Serial precedence:
  1) --serial <value> (CLI)
  2) env PANTRY_SCANNER_SERIAL

Examples:
  pantry-scan 8000000000017 --serial SCN-AAAAAAAA-1111
  pantry-scan 8000000000017 --remove -q 2
  pantry-scan --new-serial

Exit codes:
  0 = scan accepted
  1 = scan rejected (bad request or unknown scanner)
  2 = network/HTTP error or server failure (safe to retry)
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any, Dict, Optional

import requests

from .core.serials import generate_serial, normalize_serial

DEFAULT_BASE_URL = "http://localhost:8089"
SCAN_PATH = "/api/v1/scanner/scan"


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Post a barcode scan to the pantry ingestion API.")
    p.add_argument("barcode", nargs="?", help="Barcode that was read (digits).")
    p.add_argument("--serial", default=None,
                   help="Scanner serial (SCN-XXXXXXXX-XXXX). Overrides env PANTRY_SCANNER_SERIAL.")
    p.add_argument("--remove", action="store_true",
                   help="Remove from stock instead of adding.")
    p.add_argument("-q", "--quantity", type=int, default=1,
                   help="Units to add or remove (default: 1)")
    p.add_argument("--base-url", default=DEFAULT_BASE_URL,
                   help=f"Base API URL (default: {DEFAULT_BASE_URL})")
    p.add_argument("--timeout", type=float, default=15.0,
                   help="HTTP timeout in seconds (default: 15)")
    p.add_argument("--new-serial", action="store_true",
                   help="Print a freshly generated serial number and exit.")
    p.add_argument("-v", "--verbose", action="store_true",
                   help="Verbose logging to stderr.")
    return p.parse_args(argv)


def resolve_serial(cli_serial: Optional[str]) -> Optional[str]:
    return normalize_serial(cli_serial or os.getenv("PANTRY_SCANNER_SERIAL"))


def vprint(enabled: bool, *args: Any) -> None:
    if enabled:
        print(*args, file=sys.stderr)


def build_payload(barcode: str, serial: str, remove: bool = False, quantity: int = 1) -> Dict[str, Any]:
    return {
        "barcode": barcode.strip(),
        "scanner_serial": serial,
        "action": "remove" if remove else "add",
        "quantity": quantity,
    }


def post_scan(session: requests.Session, base_url: str, payload: Dict[str, Any],
              timeout: float, verbose: bool) -> requests.Response:
    url = f"{base_url.rstrip('/')}{SCAN_PATH}"
    vprint(verbose, f"POST {url} json={payload}")
    return session.post(url, json=payload, headers={"Accept": "application/json"}, timeout=timeout)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)

    if args.new_serial:
        print(generate_serial())
        return 0

    if not args.barcode:
        print("ERROR: a barcode is required", file=sys.stderr)
        return 1

    serial = resolve_serial(args.serial)
    if not serial:
        print("ERROR: no valid scanner serial (use --serial or env PANTRY_SCANNER_SERIAL).", file=sys.stderr)
        return 1

    payload = build_payload(args.barcode, serial, remove=args.remove, quantity=args.quantity)
    session = requests.Session()
    try:
        r = post_scan(session, args.base_url, payload, args.timeout, args.verbose)
    except requests.exceptions.RequestException as e:
        print(f"NETWORK_ERROR: {e}", file=sys.stderr)
        return 2

    try:
        body = r.json()
    except ValueError:
        body = {"error": r.text}

    print(json.dumps({"status": r.status_code, "response": body}, indent=2))
    if r.status_code == 200:
        return 0
    if r.status_code >= 500:
        return 2
    return 1


if __name__ == "__main__":
    sys.exit(main())
