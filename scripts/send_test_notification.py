#!/usr/bin/env python3
"""
Dev helper: send a test payload to a running Notify Relay.

POSTs a sample JSON event (or plain text, or the contents of a file) to the
relay so the full pipeline (model formatting and sink delivery) can be
checked by hand.

Usage
-----
# Basic: sample JSON event to localhost:8000
python scripts/send_test_notification.py

# Plain-text payload
python scripts/send_test_notification.py --text "Backup failed on host alpha"

# Send a file (e.g. a forwarded email saved as .txt, or a JSON event)
python scripts/send_test_notification.py --file samples/alert.eml

# Skip verbose-content trimming
python scripts/send_test_notification.py --verbose

# Target a different relay URL
python scripts/send_test_notification.py --url https://relay.example.com

Environment / .env
------------------
RELAY_WEBHOOK_SECRET   Sent as X-Webhook-Secret when set. Overridden by --secret.

The script reads .env in the project root if present, without requiring
python-dotenv to be installed (it parses the file directly).
"""

import argparse
import json
import os
import sys
import textwrap
from pathlib import Path

import httpx


# ---------------------------------------------------------------------------
# .env loader (no dependencies required)
# ---------------------------------------------------------------------------

def _load_dotenv(path: Path) -> None:
    """
    Parse a .env file and set variables in os.environ.

    Only sets variables that are not already in the environment, the same
    behavior as python-dotenv's load_dotenv(override=False).
    """
    if not path.exists():
        return
    with path.open() as fh:
        for line in fh:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            os.environ.setdefault(key.strip(), value.strip().strip('"').strip("'"))


# ---------------------------------------------------------------------------
# Sample payloads
# ---------------------------------------------------------------------------

_SAMPLE_EVENTS = {
    "error": {
        "event": "job_failed",
        "service": "nightly-backup",
        "host": "alpha",
        "error": "No space left on device (/data at 100%)",
        "run_id": "9f3c2a1b7d8e4f6a0b1c2d3e4f5a6b7c",
    },
    "success": {
        "event": "deployment_succeeded",
        "service": "checkout-api",
        "environment": "production",
        "version": "v2.14.0",
        "duration_seconds": 184,
    },
    "warning": {
        "event": "threshold_exceeded",
        "metric": "memory_usage",
        "host": "db-primary",
        "value": "85%",
        "threshold": "80%",
    },
}


def _build_body(args: argparse.Namespace) -> tuple[bytes, str, str]:
    """Return (body, content_type, description) for the selected payload source."""
    if args.file:
        file_path = Path(args.file)
        content = file_path.read_bytes()
        content_type = "application/json" if file_path.suffix == ".json" else "text/plain"
        return content, content_type, f"file {file_path} ({len(content):,} bytes)"

    if args.text:
        return args.text.encode("utf-8"), "text/plain", "plain text"

    event = _SAMPLE_EVENTS[args.sample]
    return json.dumps(event).encode("utf-8"), "application/json", f"sample '{args.sample}' event"


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    project_root = Path(__file__).resolve().parent.parent
    _load_dotenv(project_root / ".env")
    _load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_test_notification.py",
        description=textwrap.dedent("""\
            Send a test payload to a running Notify Relay.

            Reads RELAY_WEBHOOK_SECRET from the environment or a .env file
            in the project root.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/send_test_notification.py
              python scripts/send_test_notification.py --sample warning
              python scripts/send_test_notification.py --text "Disk almost full"
              python scripts/send_test_notification.py --file alert.txt --verbose
        """),
    )
    parser.add_argument("--url", default="http://localhost:8000", help="Relay base URL (default: http://localhost:8000)")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--sample", default="error", choices=list(_SAMPLE_EVENTS), help="Built-in JSON event (default: error)")
    source.add_argument("--text", default=None, help="Send this string as a text/plain payload")
    source.add_argument("--file", default=None, metavar="PATH", help="Send a file; .json files are sent as JSON")
    parser.add_argument("--verbose", action="store_true", help="Append ?verbose=true to skip trimming")
    parser.add_argument("--secret", default=None, metavar="SECRET", help="Override RELAY_WEBHOOK_SECRET")
    parser.add_argument("--dry-run", action="store_true", help="Print the request without sending it")

    args = parser.parse_args()

    if args.file and not Path(args.file).exists():
        print(f"ERROR: File not found: {args.file}", file=sys.stderr)
        return 1

    body, content_type, description = _build_body(args)
    endpoint = args.url.rstrip("/") + "/"
    params = {"verbose": "true"} if args.verbose else {}

    headers = {"Content-Type": content_type}
    secret = args.secret or os.getenv("RELAY_WEBHOOK_SECRET", "")
    if secret:
        headers["X-Webhook-Secret"] = secret

    print(f"Endpoint : {endpoint}{'?verbose=true' if args.verbose else ''}")
    print(f"Payload  : {description}")
    print(f"Secret   : {'set' if secret else 'not set'}")

    if args.dry_run:
        print("\n[DRY RUN] Body:")
        print(body.decode("utf-8", errors="replace"))
        return 0

    try:
        # Worst case is two stages of 1s + 2s backoff plus the model latency
        response = httpx.post(endpoint, content=body, headers=headers, params=params, timeout=120)
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the relay running? Start it with:\n"
            "  cd backend && uvicorn notify_relay.main:app --reload",
            file=sys.stderr,
        )
        return 1
    except httpx.HTTPError as exc:
        print(f"\nERROR: {exc}", file=sys.stderr)
        return 1

    symbol = "OK" if response.status_code == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {response.status_code}")
    print(response.text)
    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
