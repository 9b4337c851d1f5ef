"""
Command-line dumpers: mft_dump ($MFT entries) and usn_dump ($UsnJrnl:$J
records), writing JSON, JSON lines or CSV.
"""

import argparse
import csv
import json
import logging
import secrets
import sys
from pathlib import Path
from typing import Iterator, TextIO

from . import __version__
from .entry import MftEntry
from .errors import DecodeError
from .export import FLAT_ENTRY_FIELDS, USN_FIELDS, entry_to_dict, flat_entry_row, usn_entry_to_dict, usn_flat_row
from .parser import MftParser
from .paths import ResolvedPath
from .usn import JournalIterator

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("json", "jsonl", "csv")
MAX_STREAM_PATH = 150


class CliError(Exception):
    """Setup problem reported to the user without a traceback."""


def parse_ranges(text: str) -> list[range]:
    """
    Parse entry ranges such as "1-5,8,10-19" into inclusive ranges.
    Raises ValueError on anything else.
    """
    ranges = []
    for part in text.split(","):
        if "-" in part:
            bounds = part.split("-")
            if len(bounds) != 2:
                raise ValueError(f"Range should contain exactly one `-`, found {part!r}")
            start, end = int(bounds[0]), int(bounds[1])
            ranges.append(range(start, end + 1))
        else:
            n = int(part)
            ranges.append(range(n, n + 1))
    return ranges


def iter_ranges(ranges: list[range]) -> Iterator[int]:
    for r in ranges:
        yield from r


def _ranges_arg(text: str) -> list[range]:
    try:
        return parse_ranges(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Failed to parse ranges: {e}") from None


def sanitized(component: str) -> str:
    """Replace path separators so a full path can be used as one file name."""
    return component.replace("\\", "_").replace("/", "_")


def create_output_file(path: Path, confirm: bool) -> TextIO:
    """
    Open path for writing. Refuses directories, asks before overwriting when
    confirm is set and creates missing parent directories.
    """
    if path.is_dir():
        raise CliError(f"There is a directory at {path}, refusing to overwrite")
    if path.exists() and confirm:
        answer = input(f"Are you sure you want to override output file at {path}? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            raise CliError("Cancelled")
    path.parent.mkdir(parents=True, exist_ok=True)
    return open(path, "w", newline="", encoding="utf-8")


def create_output_dir(path: Path) -> None:
    if path.exists():
        if not path.is_dir():
            raise CliError(f"There is a file at {path}, refusing to overwrite")
    else:
        path.mkdir(parents=True)


def extract_resident_streams(entry: MftEntry, path: ResolvedPath, directory: Path) -> list[Path]:
    """
    Write every resident $DATA stream of entry into directory, named
    <sanitized path>__<random hex>_<n>_<stream name>.dontrun.
    """
    base = str(directory / sanitized(str(path)))[:MAX_STREAM_PATH]
    written = []
    for n, (name, data) in enumerate(entry.resident_streams()):
        # random suffix keeps hard links and reused names apart
        suffix = secrets.token_bytes(6).hex().upper()
        target = Path(f"{base}__{suffix}_{n}_{sanitized(name)}.dontrun")
        if target.exists():
            raise CliError(f"Tried to overwrite an existing stream at {target}")
        target.write_bytes(data)
        written.append(target)
    return written


def setup_logging(verbosity: int) -> None:
    # level 1 lets every record through
    level = {0: logging.WARNING, 1: logging.INFO, 2: logging.DEBUG}.get(verbosity, 1)
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", metavar="INPUT", type=Path)
    parser.add_argument("-o", "--output-format", choices=OUTPUT_FORMATS, default="json", help="output format")
    parser.add_argument(
        "-f", "--output", metavar="OUTPUT", type=Path,
        help="write output to this file instead of stdout; parent directories are created",
    )
    parser.add_argument(
        "--no-confirm-overwrite", action="store_true",
        help="overwrite an existing output file without asking",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="-v info, -vv debug, -vvv everything",
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")


def build_mft_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mft_dump", description="Dump entries of an NTFS $MFT file")
    _add_common_arguments(parser)
    parser.add_argument(
        "-r", "--ranges", type=_ranges_arg,
        help="dump only the given entry range(s), for example `1-15,30`",
    )
    parser.add_argument(
        "-e", "--extract-resident-streams", metavar="DIR", type=Path,
        help="write resident data streams into DIR",
    )
    parser.add_argument(
        "--backtraces", action="store_true",
        help="include tracebacks with per-entry errors",
    )
    return parser


def build_usn_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="usn_dump", description="Dump records of a USN journal ($UsnJrnl:$J)")
    _add_common_arguments(parser)
    return parser


class _Writer:
    """Serializes dict rows as pretty JSON, JSON lines or CSV."""

    def __init__(self, out: TextIO, output_format: str, fields: list[str]):
        self.out = out
        self.output_format = output_format
        self._csv = None
        if output_format == "csv":
            self._csv = csv.DictWriter(out, fieldnames=fields, extrasaction="ignore")
            self._csv.writeheader()

    def write(self, row: dict) -> None:
        if self._csv is not None:
            self._csv.writerow(row)
        elif self.output_format == "json":
            self.out.write(json.dumps(row, indent=2, ensure_ascii=False))
            self.out.write("\n")
        else:
            self.out.write(json.dumps(row, ensure_ascii=False))
            self.out.write("\n")


def _open_output(args) -> TextIO:
    if args.output is None:
        return sys.stdout
    return create_output_file(args.output, confirm=not args.no_confirm_overwrite)


def _dump_mft(args, out: TextIO) -> None:
    writer = _Writer(out, args.output_format, FLAT_ENTRY_FIELDS)
    with MftParser.from_path(args.input) as parser:
        indexes = iter_ranges(args.ranges) if args.ranges else None
        for item in parser.iter_entries(indexes):
            if isinstance(item, DecodeError):
                logger.warning("%s", item, exc_info=item if args.backtraces else None)
                continue
            if item.is_unused:
                continue
            if args.extract_resident_streams is not None:
                extract_resident_streams(item, parser.get_full_path(item), args.extract_resident_streams)
            if args.output_format == "csv":
                writer.write(flat_entry_row(item, parser))
            else:
                writer.write(entry_to_dict(item, parser.get_full_path(item)))


def _dump_usn(args, out: TextIO) -> None:
    writer = _Writer(out, args.output_format, USN_FIELDS)
    with JournalIterator.from_path(args.input) as records:
        for item in records:
            if isinstance(item, DecodeError):
                logger.warning("%s", item)
                continue
            if args.output_format == "csv":
                writer.write(usn_flat_row(item))
            else:
                writer.write(usn_entry_to_dict(item))


def _run(args, dump) -> int:
    setup_logging(args.verbose)
    try:
        if getattr(args, "extract_resident_streams", None) is not None:
            create_output_dir(args.extract_resident_streams)
        out = _open_output(args)
    except (CliError, OSError) as e:
        print(f"An error occurred while setting up the app: {e}", file=sys.stderr)
        return 1
    try:
        dump(args, out)
    except (CliError, OSError) as e:
        print(f"A runtime error has occurred: {e}", file=sys.stderr)
        return 1
    finally:
        if out is not sys.stdout:
            out.close()
    return 0


def mft_dump(argv: list[str] | None = None) -> int:
    args = build_mft_arg_parser().parse_args(argv)
    return _run(args, _dump_mft)


def usn_dump(argv: list[str] | None = None) -> int:
    args = build_usn_arg_parser().parse_args(argv)
    return _run(args, _dump_usn)
