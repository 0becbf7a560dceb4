#!/usr/bin/env python3
"""
Console chat widget backend.

Serves the access-gated chat API, or checks the configured chat policy for a user.
"""

import argparse
import json
import logging
import sys
from datetime import datetime

from dateutil import parser as date_parser

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)
logger = logging.getLogger(__name__)

#
# NOTE: Keep chatgate imports lazy (inside functions) so `--help` stays cheap.
#


def check_access(user_id: str, role: str, at: str = "") -> int:
    """Print the gate decision for (user_id, role) as JSON. Exit code 0 = allowed."""
    from chatgate.auth.models import ChatUser
    from chatgate.authz.access import evaluate_access
    from chatgate.authz.policy import PolicyConfigError, load_access_policy

    now = date_parser.parse(at) if at else datetime.now()
    try:
        policy = load_access_policy()
    except PolicyConfigError as e:
        # Same as the API: a broken config closes the gate.
        logger.warning("Chat policy unavailable: %s", str(e))
        policy = None
    decision = evaluate_access(policy, ChatUser(id=user_id, role=role), now)
    print(
        json.dumps(
            {"allowed": decision.allowed, "reason": decision.reason, "message": decision.message, "at": now.isoformat()},
            indent=2,
        )
    )
    return 0 if decision.allowed else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Console chat widget backend")
    parser.add_argument("--serve", action="store_true", help="Run the chat API server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Bind port (default: 8080)")
    parser.add_argument("--check-access", action="store_true", help="Evaluate the chat policy for --user-id/--role")
    parser.add_argument("--user-id", default="", help="User id for --check-access")
    parser.add_argument("--role", default="", help="User role for --check-access")
    parser.add_argument("--at", default="", help="Wall-clock time for --check-access (e.g. '2024-05-06 09:30')")

    args = parser.parse_args()

    if args.serve:
        from chatgate.api.server import run as run_server

        run_server(host=args.host, port=args.port)
        return

    if args.check_access:
        if not args.user_id or not args.role:
            parser.error("--check-access requires --user-id and --role")
        sys.exit(check_access(args.user_id, args.role, args.at))

    parser.print_help()


if __name__ == "__main__":
    main()
