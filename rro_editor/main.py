"""Command-line entry point for inspecting and rewriting save files."""

import argparse
import csv
import logging
import os
from pathlib import Path
import sys

from rro_core.errors import CodecError
from rro_core.gvas.codec import decode, decode_file, encode, encode_file
from rro_editor.config import EditorSettings, load_settings
from rro_editor.model.errors import TrackModelError
from rro_editor.model.invariants import InvariantError
from rro_editor.model.spline_types import type_label
from rro_editor.model.track_builder import build, write_back

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Railroads Online save-file track editor")
    parser.add_argument(
        "--config",
        default=None,
        help="Settings INI file. Defaults to rro_editor.ini next to the executable.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("RRO_EDITOR_LOG_LEVEL"),
        help="Logging level (e.g. DEBUG, INFO). Overrides the [logging] level setting.",
    )
    parser.add_argument(
        "--log-file",
        default=os.getenv("RRO_EDITOR_LOG_PATH"),
        help="Optional log file path. Defaults to rro_editor_log.txt next to the executable.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    info = commands.add_parser("info", help="Summarise header, records and splines")
    info.add_argument("save", type=Path)

    verify = commands.add_parser("verify", help="Check that decode/encode is byte-exact")
    verify.add_argument("save", type=Path)

    export = commands.add_parser("export-csv", help="Write one CSV row per control point")
    export.add_argument("save", type=Path)
    export.add_argument("output", type=Path)

    normalize = commands.add_parser(
        "normalize", help="Rebuild the spline records from the track model"
    )
    normalize.add_argument("save", type=Path)
    normalize.add_argument("output", type=Path)
    return parser.parse_args(argv)


def configure_logging(log_level_name: str, log_path: str | None) -> str:
    resolved_level_name = log_level_name.upper()
    log_level = getattr(logging, resolved_level_name, logging.INFO)

    if not log_path:
        base_dir = os.path.dirname(sys.argv[0])
        log_path = os.path.join(base_dir, "rro_editor_log.txt")

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_path, mode="a", encoding="utf-8"),
            logging.StreamHandler(sys.stdout),
        ],
    )

    return log_path


def cmd_info(path: Path, settings: EditorSettings) -> int:
    document = decode_file(path)
    header = document.header
    print(f"{path}")
    print(f"  save game version : {header.save_game_version}")
    print(f"  package version   : {header.package_version}")
    print(f"  engine version    : {header.engine_version}")
    print(f"  save game type    : {header.save_game_type}")
    print(f"  entries           : {len(document.entries)}")
    for record in document.records():
        print(f"    {record.name:<40} {record.inner_type:<16} {len(record):>7} item(s)")
    opaque = list(document.opaque_spans())
    print(f"  opaque spans      : {len(opaque)} ({sum(len(span) for span in opaque)} bytes)")
    track = build(document, settings)
    print(f"  splines           : {len(track.splines())}")
    print(f"  control points    : {len(track.control_points())}")
    print(f"  groundwork items  : {len(track.groundwork())}")
    counts: dict[int, int] = {}
    for spline in track.splines():
        counts[spline.type_code] = counts.get(spline.type_code, 0) + 1
    for code in sorted(counts):
        print(f"    {type_label(code):<24} {counts[code]:>6}")
    junctions = track.junctions(settings.junction_tolerance)
    print(f"  junctions         : {len(junctions)}")
    return 0


def cmd_verify(path: Path) -> int:
    data = path.read_bytes()
    encoded = encode(decode(data))
    if encoded == data:
        print(f"{path}: round trip OK ({len(data)} bytes)")
        return 0
    limit = min(len(encoded), len(data))
    first = next((i for i in range(limit) if encoded[i] != data[i]), limit)
    print(
        f"{path}: round trip MISMATCH at offset 0x{first:X} "
        f"(original {len(data)} bytes, encoded {len(encoded)} bytes)"
    )
    return 1


def cmd_export_csv(path: Path, output: Path, settings: EditorSettings) -> int:
    track = build(decode_file(path), settings)
    with output.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(["spline", "type", "visible", "knot", "point", "x", "y", "z"])
        for spline in track.splines():
            for knot, point_id in enumerate(spline.knot_ids()):
                x, y, z = track.position(point_id)
                writer.writerow(
                    [
                        spline.spline_id,
                        type_label(spline.type_code),
                        int(spline.visible),
                        knot,
                        point_id,
                        repr(x),
                        repr(y),
                        repr(z),
                    ]
                )
    logger.info("Exported %d control points to %s", len(track.control_points()), output)
    return 0


def cmd_normalize(path: Path, output: Path, settings: EditorSettings) -> int:
    document = decode_file(path)
    track = build(document, settings)
    track.mark_modified()
    encode_file(write_back(track, document), output)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = load_settings(Path(args.config) if args.config else None)
    log_level_name = args.log_level or settings.log_level
    log_path = configure_logging(log_level_name, args.log_file)
    logger.info("Starting rro-editor %s (log level %s, log file %s)", args.command, log_level_name.upper(), log_path)

    try:
        if args.command == "info":
            return cmd_info(args.save, settings)
        if args.command == "verify":
            return cmd_verify(args.save)
        if args.command == "export-csv":
            return cmd_export_csv(args.save, args.output, settings)
        if args.command == "normalize":
            return cmd_normalize(args.save, args.output, settings)
    except (CodecError, TrackModelError, InvariantError, OSError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 2
    return 1


if __name__ == "__main__":
    sys.exit(main())
