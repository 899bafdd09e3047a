"""Command-line interface for Reservation Caller - HTTP client for server API."""

import argparse
import json
import logging
import sys
from typing import Any

import httpx

from reservation_caller.config import get_config, setup_logging

logger = logging.getLogger(__name__)


class ReservationCallerCLI:
    """Thin HTTP client for inspecting calls and answering approval prompts."""

    def __init__(self, server_url: str | None = None) -> None:
        self.config = get_config()
        self.server_url = (server_url or self.config.server_url).rstrip("/")

    def _request(self, method: str, path: str, body: dict | None = None) -> dict[str, Any]:
        with httpx.Client(timeout=30.0) as client:
            response = client.request(method, f"{self.server_url}{path}", json=body)

        if response.headers.get("content-type", "").startswith("application/json"):
            data = response.json()
        else:
            data = {"error": response.text}

        if response.status_code >= 400:
            error_msg = data.get("error", response.text)
            print(f"\n⚠ Server error (status {response.status_code}): {error_msg}")
        return data

    def list_calls(self) -> None:
        data = self._request("GET", "/api/calls")
        for call in data.get("calls", []):
            reservation = call["reservation"]
            print(
                f"{call['id']}  {call['status']:<22} {reservation['business_name']} "
                f"{reservation['date']} {reservation['time_preferred']} "
                f"x{reservation['party_size']}"
            )

    def show_call(self, call_id: str) -> None:
        data = self._request("GET", f"/api/calls/{call_id}")
        call = data.get("call")
        if not call:
            return

        print(json.dumps(call["reservation"], indent=2))
        print(f"\nStatus: {call['status']}")
        if call.get("outcome"):
            outcome = call["outcome"]
            print(
                f"Outcome: {outcome['status']} ({outcome.get('reason')}), "
                f"needs approval: {outcome['needs_user_approval']}"
            )
        print("\nTranscript:")
        for entry in call["transcript"]:
            print(f"  [{entry['speaker']}] {entry['text']}")

    def decide(self, call_id: str, decision: str, notes: str | None = None) -> None:
        data = self._request(
            "POST", f"/api/calls/{call_id}/approve", {"decision": decision, "notes": notes}
        )
        if data.get("ok"):
            print(f"✓ Decision recorded: {decision} -> {data['call']['status']}")

    def recall(
        self,
        call_id: str,
        date: str | None = None,
        time_preferred: str | None = None,
        party_size: int | None = None,
        notes: str | None = None,
    ) -> None:
        body = {
            "date": date,
            "time_preferred": time_preferred,
            "party_size": party_size,
            "notes": notes,
        }
        data = self._request("POST", f"/api/calls/{call_id}/recall", body)
        if data.get("ok"):
            mode = " (simulation)" if data.get("simulated") else ""
            print(f"✓ Recall queued{mode}: {data['call']['status']}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reservation-caller", description="Reservation Caller"
    )
    parser.add_argument("--server-url", help="Override SERVER_URL")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("serve", help="Run the API server")
    commands.add_parser("list", help="List calls")

    show = commands.add_parser("show", help="Show one call with its transcript")
    show.add_argument("call_id")

    decide = commands.add_parser("decide", help="Approve, revise or cancel a call")
    decide.add_argument("call_id")
    decide.add_argument("decision", choices=["approve", "revise", "cancel"])
    decide.add_argument("--notes")

    recall = commands.add_parser("recall", help="Correct a reservation and call again")
    recall.add_argument("call_id")
    recall.add_argument("--date")
    recall.add_argument("--time", dest="time_preferred")
    recall.add_argument("--party-size", type=int)
    recall.add_argument("--notes")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)

    try:
        setup_logging(get_config())
    except Exception as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    if args.command == "serve":
        from reservation_caller.server import run_server

        run_server()
        return

    cli = ReservationCallerCLI(args.server_url)
    try:
        if args.command == "list":
            cli.list_calls()
        elif args.command == "show":
            cli.show_call(args.call_id)
        elif args.command == "decide":
            cli.decide(args.call_id, args.decision, args.notes)
        elif args.command == "recall":
            cli.recall(
                args.call_id, args.date, args.time_preferred, args.party_size, args.notes
            )
    except httpx.ConnectError:
        logger.exception("Cannot connect to server")
        print(f"\n⚠ Cannot connect to server at {cli.server_url}")
        print("Make sure the server is running:")
        print("  reservation-caller serve")
        sys.exit(1)


if __name__ == "__main__":
    main()
