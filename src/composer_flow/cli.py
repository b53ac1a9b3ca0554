"""
Command-line interface for the flow connector.

Runs single create, update and retrieve operations against a business
network, using the same validation, session and dispatch path as the flow
nodes.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

from composer_flow import __version__
from composer_flow.config import BridgeConfig, set_config
from composer_flow.dispatcher import ResourceDispatcher
from composer_flow.errors import BridgeError, ValidationError
from composer_flow.operations import OperationKind, OperationRequest, OperationResult
from composer_flow.session import SessionManager
from composer_flow.validation import validate_config


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Logs go to stderr; stdout carries the operation result
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
    )


def _add_connection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--profile", help="Connection profile name")
    parser.add_argument("--network", help="Business network identifier")
    parser.add_argument("--participant-id", help="Participant id")
    parser.add_argument("--participant-password", help="Participant secret")
    parser.add_argument("--profiles-file", help="JSON file with connection profiles")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: from settings, INFO)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="composer-flow",
        description="Create, update and retrieve business network resources",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    for name, help_text in (
        ("create", "Create an asset/participant or submit a transaction"),
        ("update", "Update an asset or participant"),
    ):
        write_parser = subparsers.add_parser(name, help=help_text)
        source = write_parser.add_mutually_exclusive_group(required=True)
        source.add_argument("--payload", help="Resource JSON with a $class field")
        source.add_argument("--payload-file", help="File holding the resource JSON")
        _add_connection_arguments(write_parser)

    retrieve_parser = subparsers.add_parser("retrieve", help="Retrieve an asset or participant")
    retrieve_parser.add_argument("--model-name", required=True, help="Fully qualified type name")
    retrieve_parser.add_argument("--id", required=True, help="Resource identifier")
    _add_connection_arguments(retrieve_parser)

    ping_parser = subparsers.add_parser("ping", help="Connect and list the declared types")
    _add_connection_arguments(ping_parser)

    return parser


def build_config(args: argparse.Namespace) -> BridgeConfig:
    """Settings from env/.env with command-line overrides."""
    overrides = {
        "connection_profile": args.profile,
        "business_network_identifier": args.network,
        "participant_id": args.participant_id,
        "participant_password": args.participant_password,
        "profiles_file": args.profiles_file,
        "log_level": args.log_level,
    }
    if args.log_json:
        overrides["log_json"] = True
    return BridgeConfig(**{k: v for k, v in overrides.items() if v is not None})


def load_payload(args: argparse.Namespace) -> Any:
    """Read the JSON payload of a create/update command."""
    raw = args.payload
    if args.payload_file:
        raw = Path(args.payload_file).read_text(encoding="utf-8")
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Payload is not valid JSON: {e}") from e


def build_request(args: argparse.Namespace) -> OperationRequest:
    if args.command == "retrieve":
        return OperationRequest.retrieve(args.model_name, args.id)
    return OperationRequest(OperationKind(args.command), load_payload(args))


async def run_command(args: argparse.Namespace, config: BridgeConfig) -> int:
    """Run one command; returns the process exit code."""
    sessions = SessionManager(config)

    try:
        parameters = validate_config({
            "connectionProfile": config.connection_profile,
            "businessNetworkIdentifier": config.business_network_identifier,
            "participantId": config.participant_id,
            "participantPassword": config.participant_password,
        })
        session = sessions.get_session(parameters)

        if args.command == "ping":
            artifacts = await asyncio.wait_for(
                session.ensure_connected(),
                timeout=config.operation_timeout_seconds,
            )
            print(json.dumps({
                "network": artifacts.definition.identifier,
                "declarations": artifacts.model_manager.to_json(),
            }, indent=2))
            return 0

        request = build_request(args)
        result: OperationResult = await asyncio.wait_for(
            ResourceDispatcher(session).execute(request),
            timeout=config.operation_timeout_seconds,
        )
    except BridgeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except asyncio.TimeoutError:
        print(f"Error: operation timed out after {config.operation_timeout_seconds}s", file=sys.stderr)
        return 1
    finally:
        await sessions.close()

    if not result.ok:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1

    print(json.dumps(result.payload if result.payload is not None else result.to_dict(), indent=2))
    return 0


def main(argv: Optional[list] = None) -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = build_config(args)
    set_config(config)

    setup_logging(config.log_level, config.log_json)

    sys.exit(asyncio.run(run_command(args, config)))


if __name__ == "__main__":
    main()
