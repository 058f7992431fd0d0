"""
UShield Command Line Interface.

Provides commands for controlling the USB port security backend:
- status: Show devices, autoblock policy and pending error
- devices: List devices, optionally only trusted or untrusted ones
- trust: Grant or revoke trust for a connected device
- autoblock: Toggle the autoblock policy
- block / unblock: Block or unblock all USB ports
- watch: Follow device changes live
- serve: Run the dashboard API
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Awaitable, Callable

from ushield import __version__
from ushield.api.schemas import StateResponse
from ushield.config import UShieldConfig, load_config, validate_config
from ushield.gateway.base import ChangeEventSource, CommandGateway
from ushield.gateway.http import create_http_transport
from ushield.gateway.memory import demo_backend
from ushield.logging_setup import setup_logging
from ushield.models import Device, format_usb_id
from ushield.session import Session

Operation = Callable[[Session], Awaitable[Any]]


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="ushield",
        description="USB port security control client",
    )
    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-c", "--config",
        metavar="FILE",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Run against a simulated in-memory backend",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log at the configured level instead of warnings only",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    status_parser = subparsers.add_parser("status", help="Show current state")
    status_parser.set_defaults(func=cmd_status)

    devices_parser = subparsers.add_parser("devices", help="List USB devices")
    trust_filter = devices_parser.add_mutually_exclusive_group()
    trust_filter.add_argument("--trusted", action="store_true", help="Only trusted devices")
    trust_filter.add_argument("--untrusted", action="store_true", help="Only untrusted devices")
    devices_parser.set_defaults(func=cmd_devices)

    trust_parser = subparsers.add_parser("trust", help="Toggle trust for a device")
    trust_parser.add_argument("vid", type=parse_usb_id, help="Vendor ID (hex, e.g. 046d)")
    trust_parser.add_argument("pid", type=parse_usb_id, help="Product ID (hex, e.g. c52b)")
    trust_parser.set_defaults(func=cmd_trust)

    autoblock_parser = subparsers.add_parser("autoblock", help="Toggle autoblock mode")
    autoblock_parser.set_defaults(func=cmd_autoblock)

    block_parser = subparsers.add_parser("block", help="Block all USB ports")
    block_parser.set_defaults(func=cmd_block)

    unblock_parser = subparsers.add_parser("unblock", help="Unblock USB ports")
    unblock_parser.set_defaults(func=cmd_unblock)

    watch_parser = subparsers.add_parser("watch", help="Follow device changes")
    watch_parser.add_argument(
        "-i", "--interval",
        type=float,
        default=0.5,
        help="Seconds between state checks",
    )
    watch_parser.set_defaults(func=cmd_watch)

    serve_parser = subparsers.add_parser("serve", help="Run the dashboard API")
    serve_parser.add_argument("--host", help="Bind address (overrides config)")
    serve_parser.add_argument("--port", type=int, help="Port (overrides config)")
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    errors = validate_config(config)
    if errors:
        for error in errors:
            print(f"Config error: {error}", file=sys.stderr)
        return 2

    setup_logging(
        config.client.log_level if args.verbose else "warning",
        config.client.log_file,
    )
    args.settings = config

    return args.func(args)


def parse_usb_id(value: str) -> int:
    """argparse type for hex vendor/product ids ("046d" or "0x046D")."""
    try:
        parsed = int(value, 16)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a hex USB id: {value!r}")
    if not 0 <= parsed <= 0xFFFF:
        raise argparse.ArgumentTypeError(f"USB id out of range: {value!r}")
    return parsed


# ============================================================================
# Session plumbing
# ============================================================================


def open_transport(
    args: argparse.Namespace,
    config: UShieldConfig,
) -> tuple[CommandGateway, ChangeEventSource]:
    """Simulated backend when --simulate is given, HTTP backend otherwise."""
    if args.simulate:
        backend = demo_backend()
        return backend, backend
    return create_http_transport(config.gateway)


async def run_session(
    args: argparse.Namespace,
    operation: Operation | None = None,
    live: bool = False,
) -> int:
    """
    Run one session: load state, apply an operation, print the result.

    Returns:
        1 when an error is pending at the end, else 0.
    """
    config: UShieldConfig = args.settings
    gateway, events = open_transport(args, config)
    session = Session(
        gateway,
        events if live else None,
        event_name=config.gateway.event_name,
    )
    try:
        async with session:
            if operation is not None:
                await operation(session)
            print_state(session, args)
            return 1 if session.errors.current else 0
    finally:
        await gateway.close()
        if events is not gateway:
            await events.close()


# ============================================================================
# Output
# ============================================================================


def output(data: Any, args: argparse.Namespace) -> None:
    """Output data in requested format."""
    if getattr(args, "json", False):
        print(json.dumps(data, indent=2, default=str))
    elif isinstance(data, dict):
        for key, value in data.items():
            print(f"{key}: {value}")
    else:
        print(data)


def print_devices(devices: list[Device] | tuple[Device, ...]) -> None:
    if not devices:
        print("No devices found.")
        return

    print(f"{'VID:PID':<14} {'Product':<28} {'Port':<6} {'Trust':<10}")
    print("-" * 62)
    for device in devices:
        vid_pid = f"{device.vendor_id:04x}:{device.product_id:04x}"
        port = str(device.port_number) if device.port_number is not None else "-"
        trust = "trusted" if device.trusted else "untrusted"
        print(f"{vid_pid:<14} {device.display_name[:28]:<28} {port:<6} {trust:<10}")


def print_state(session: Session, args: argparse.Namespace) -> None:
    state = StateResponse.build(
        session.store.snapshot(),
        error=session.errors.current,
        ready=session.ready,
    )

    if getattr(args, "json", False):
        output(state.model_dump(mode="json"), args)
        return

    devices = session.store.devices
    if getattr(args, "trusted", False):
        devices = session.store.trusted_devices
    elif getattr(args, "untrusted", False):
        devices = session.store.untrusted_devices

    stats = state.statistics
    print(f"USB Devices ({stats.total} total, {stats.trusted} trusted, {stats.untrusted} untrusted)")
    print("=" * 62)
    print_devices(devices)
    print()
    print(f"Autoblock:  {'enabled' if state.autoblock_enabled else 'disabled'}")
    print(f"Status:     {state.status.value}")
    if state.error:
        print(f"Error:      {state.error}")


# ============================================================================
# Commands
# ============================================================================


def cmd_status(args: argparse.Namespace) -> int:
    """Show current state."""
    return asyncio.run(run_session(args))


def cmd_devices(args: argparse.Namespace) -> int:
    """List devices."""
    return asyncio.run(run_session(args))


def cmd_trust(args: argparse.Namespace) -> int:
    """Toggle trust for the first connected device matching VID:PID."""

    async def toggle(session: Session) -> None:
        device = next(
            (d for d in session.store.devices if d.identity == (args.vid, args.pid)),
            None,
        )
        if device is None:
            session.errors.report(
                f"Device not found: {format_usb_id(args.vid)}:{format_usb_id(args.pid)}"
            )
            return
        await session.controller.toggle_device_trust(device)

    return asyncio.run(run_session(args, toggle))


def cmd_autoblock(args: argparse.Namespace) -> int:
    """Toggle autoblock mode."""
    return asyncio.run(run_session(args, lambda s: s.controller.toggle_autoblock()))


def cmd_block(args: argparse.Namespace) -> int:
    """Block all USB ports."""
    return asyncio.run(run_session(args, lambda s: s.controller.block_all_ports()))


def cmd_unblock(args: argparse.Namespace) -> int:
    """Unblock USB ports."""
    return asyncio.run(run_session(args, lambda s: s.controller.unblock_ports()))


def cmd_watch(args: argparse.Namespace) -> int:
    """Print the device list whenever it changes, until interrupted."""

    async def follow(session: Session) -> None:
        last = session.store.devices
        print_state(session, args)
        while True:
            await asyncio.sleep(args.interval)
            current = session.store.devices
            if current != last:
                last = current
                print()
                print_state(session, args)

    try:
        return asyncio.run(run_session(args, follow, live=True))
    except KeyboardInterrupt:
        return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the dashboard API with uvicorn."""
    import uvicorn

    from ushield.api import create_app

    config: UShieldConfig = args.settings
    session = None
    if args.simulate:
        backend = demo_backend()
        session = Session(backend, backend, event_name=config.gateway.event_name)

    app = create_app(session=session, config=config)
    uvicorn.run(
        app,
        host=args.host or config.api.host,
        port=args.port or config.api.port,
        log_level=config.client.log_level,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
