"""Command-line entry point: convert local files in one batch, list types, or serve the API."""

import argparse
import asyncio
import sys
from dataclasses import replace
from pathlib import Path

from convert_service.config import SCALE_MAX, SCALE_MIN, configure_logging, load_settings
from convert_service.conversion import (
    CONVERSION_TYPES,
    ConversionService,
    InputFile,
    InvalidScale,
    JobEvent,
    JobStatus,
    LocalStorage,
    UnsupportedConversion,
    default_registry,
)
from convert_service.conversion.converters import media_type_of

_MARKS = {
    JobStatus.COMPLETED: "✓",
    JobStatus.ERROR: "✗",
    JobStatus.CANCELLED: "-",
}


def read_inputs(paths: list[str]) -> list[InputFile]:
    inputs = []
    for raw in paths:
        p = Path(raw).expanduser()
        with p.open("rb") as f:
            content = f.read()
        file = InputFile(name=p.name, content=content)
        inputs.append(replace(file, media_type=media_type_of(file)))
    return inputs


def _print_event(total: int):
    def observer(event: JobEvent) -> None:
        prefix = f"[{event.index + 1}/{total}] {event.name}"
        if event.status == JobStatus.ERROR:
            print(f"{prefix}: {_MARKS[event.status]} {event.error}")
        elif event.terminal:
            print(f"{prefix}: {_MARKS[event.status]} {event.status}")
        else:
            print(f"{prefix}: {event.status} {event.progress}%")

    return observer


def cmd_convert(args) -> int:
    settings = load_settings()
    missing = [p for p in args.files if not Path(p).expanduser().is_file()]
    if missing:
        print(f"File(s) not found: {', '.join(missing)}")
        return 2

    registry = default_registry()
    storage = LocalStorage(args.out)
    service = ConversionService(
        registry,
        storage,
        heartbeat_interval=settings.heartbeat_interval_sec,
        heartbeat_step=settings.heartbeat_step,
        heartbeat_cap=settings.heartbeat_cap,
    )
    inputs = read_inputs(args.files)
    try:
        batch = asyncio.run(
            service.run(inputs, args.to, args.scale, observer=_print_event(len(inputs)))
        )
    except (UnsupportedConversion, InvalidScale) as e:
        print(f"✗ {e}")
        return 2
    except KeyboardInterrupt:
        print("Interrupted.")
        return 130

    print(f"{len(batch.completed)} converted, {len(batch.failed)} failed → {storage.base}")
    return 0 if batch.ok else 1


def cmd_types(args) -> int:
    registry = default_registry()
    for t in CONVERSION_TYPES:
        flag = "" if t.key in registry else " (not implemented)"
        print(f"{t.key:<8} {t.label}{flag}")
    return 0


def cmd_serve(args) -> int:
    from convert_service.webapi import run

    run()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="convert-batch", description="Batch file conversion - images and SVG to PNG, WebP or PDF"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    convert = subparsers.add_parser("convert", help="Convert files in one batch, in order")
    convert.add_argument("files", nargs="+", help="Input files")
    convert.add_argument("--to", required=True, help="Conversion type key, e.g. to-png")
    convert.add_argument(
        "--scale", type=float, default=1.0, help=f"Scale for SVG sources ({SCALE_MIN}-{SCALE_MAX:g}, default 1)"
    )
    convert.add_argument("--out", default="converted", help="Output directory (default: converted)")
    convert.set_defaults(func=cmd_convert)

    types = subparsers.add_parser("types", help="List conversion types")
    types.set_defaults(func=cmd_types)

    serve = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.set_defaults(func=cmd_serve)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging()

    if not args.command:
        parser.print_help()
        return 1
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
