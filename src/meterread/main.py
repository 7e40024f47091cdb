"""meterread command line interface."""

import argparse
import json
import sys
from pathlib import Path


def _config_path(args: argparse.Namespace) -> Path:
    from meterread.config_yaml import get_default_config_path

    return Path(args.config) if args.config else get_default_config_path()


def _load_config(args: argparse.Namespace):
    from meterread.config_yaml import YAMLConfig

    return YAMLConfig(_config_path(args)).load()


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API server."""
    from meterread.runner import run_server

    return run_server(_config_path(args))


def cmd_read(args: argparse.Namespace) -> int:
    """Read the meter in an image file."""
    import cv2

    from meterread.config_yaml import ConfigError
    from meterread.imaging import load_image
    from meterread.overlay import render_overlay
    from meterread.runner import build_reader, setup_logging

    setup_logging()
    try:
        config = _load_config(args)
    except ConfigError as e:
        print(f"Config error: {e}")
        return 1

    reader = build_reader(config)
    outcome = reader.read_path(args.image)

    if args.json:
        print(json.dumps(outcome.to_dict(), indent=2))
    elif outcome.ok:
        print(f"Reading: {outcome.reading}")
    else:
        print(f"Failed ({outcome.status.value}): {outcome.error or outcome.label}")

    if not outcome.ok:
        return 1

    if args.overlay:
        image = load_image(args.image)
        width = args.width or outcome.result.image_width
        height = args.height or outcome.result.image_height
        canvas = render_overlay(image, outcome.result, width, height, config.overlay)
        if not cv2.imwrite(str(args.overlay), canvas):
            print(f"Failed to write overlay: {args.overlay}")
            return 1
        print(f"Overlay saved to: {args.overlay}")

    return 0


def cmd_assemble(args: argparse.Namespace) -> int:
    """Assemble a reading from a JSON file of detector records."""
    from meterread.assembly import assemble_reading
    from meterread.config_yaml import ConfigError
    from meterread.ingest import ingest_detections

    try:
        config = _load_config(args)
    except ConfigError as e:
        print(f"Config error: {e}")
        return 1

    try:
        with open(args.detections, "r", encoding="utf-8") as f:
            records = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"Cannot load detections: {e}")
        return 1

    if isinstance(records, dict):
        records = records.get("detections", [])

    try:
        ingested = ingest_detections(records, args.width, args.height)
    except ValueError as e:
        print(f"Invalid input: {e}")
        return 1

    result = assemble_reading(ingested.detection_set, config.assembly)

    if args.json:
        print(json.dumps({**result.to_dict(), "dropped": ingested.dropped}, indent=2))
    else:
        print(f"Reading: {result.reading}")
        if ingested.dropped:
            print(f"Dropped {ingested.dropped} malformed record(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="meterread",
        description="Read utility meters from photographs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the API server (default)
  meterread
  meterread --config /path/to/config.yaml serve

  # Read a photo and save an overlay
  meterread read meter.jpg --overlay out.jpg --width 960 --height 640

  # Assemble detector output saved as JSON
  meterread assemble detections.json --width 480 --height 320
        """,
    )

    # Global options
    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to YAML config file (default: ~/.config/meterread/config.yaml)",
    )

    # Subcommands
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("serve", help="Run the HTTP API server")

    read_parser = subparsers.add_parser("read", help="Read the meter in an image file")
    read_parser.add_argument("image", type=str, help="Image file")
    read_parser.add_argument("--overlay", type=str, help="Write an overlay image here")
    read_parser.add_argument("--width", type=int, help="Overlay surface width")
    read_parser.add_argument("--height", type=int, help="Overlay surface height")
    read_parser.add_argument("--json", action="store_true", help="Print JSON output")

    assemble_parser = subparsers.add_parser(
        "assemble",
        help="Assemble a reading from a JSON list of detector records",
    )
    assemble_parser.add_argument("detections", type=str, help="JSON file with records")
    assemble_parser.add_argument("--width", type=int, required=True, help="Image width")
    assemble_parser.add_argument("--height", type=int, required=True, help="Image height")
    assemble_parser.add_argument("--json", action="store_true", help="Print JSON output")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # Handle subcommands
    if args.command == "read":
        sys.exit(cmd_read(args))
    elif args.command == "assemble":
        sys.exit(cmd_assemble(args))
    else:
        # Default: run the API server
        sys.exit(cmd_serve(args))


if __name__ == "__main__":
    main()
