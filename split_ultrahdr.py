#!/usr/bin/env -S uv run --quiet --script
# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "rich>=13.0.0",
# ]
# ///
#
# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025-2026 Aryan Ameri
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
"""
Split UltraHDR (JPEG gain map) files into their parts.

An UltraHDR JPEG holds the SDR base image, followed by the gain map image, with
the gain map parameters stored as hdrgm: XMP in an APP1 segment. This writes:

  IMG_XXXX_split_1.jpg   Base image
  IMG_XXXX_split_2.jpg   Gain map
  IMG_XXXX_hdrgm.txt     Gain map parameters
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Self

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from jpeg_segments import JpegStreamError, ScanResult, scan
from ultrahdr_metadata import UltraHdrMetadata, format_metadata, metadata_from_app1

__all__: Final[list[str]] = [
    "SplitConfig",
    "OutputFile",
    "SplitReport",
    "image_output_path",
    "metadata_output_path",
    "plan_outputs",
    "split_file",
    "process_all",
    "main",
]

__version__: Final[str] = "1.0.0"

logger = logging.getLogger("split_ultrahdr")

# Console for rich output
console = Console()


# =============================================================================
# Configuration
# =============================================================================


def _get_env_path(var_name: str, /) -> Path | None:
    """Get a Path from environment variable, or None if not set/empty."""
    value = os.environ.get(var_name, "").strip()
    return Path(value) if value else None


def _get_env_int(var_name: str, /) -> int | None:
    """Get a positive int from environment variable, or None if invalid."""
    value = os.environ.get(var_name, "").strip()
    if not value:
        return None
    try:
        result = int(value)
        return result if result > 0 else None
    except ValueError:
        return None


@dataclass(frozen=True, slots=True, kw_only=True)
class SplitConfig:
    """Configuration for splitting."""

    output_dir: Path | None = None
    dry_run: bool = False
    verbose: bool = False
    jobs: int = 1

    def __post_init__(self) -> None:
        if self.jobs < 1:
            msg = f"jobs must be >= 1, got {self.jobs}"
            raise ValueError(msg)

    @classmethod
    def create(
        cls,
        *,
        output_dir: Path | None = None,
        dry_run: bool = False,
        verbose: bool = False,
        jobs: int | None = None,
    ) -> Self:
        """Create config from arguments with environment variable fallbacks."""
        return cls(
            output_dir=output_dir or _get_env_path("ULTRAHDR_OUTPUT_DIR"),
            dry_run=dry_run,
            verbose=verbose,
            jobs=jobs if jobs is not None else (_get_env_int("JOBS") or os.cpu_count() or 1),
        )

    def output_dir_for(self, source: Path) -> Path:
        return self.output_dir if self.output_dir is not None else source.parent


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True)
class OutputFile:
    """A file produced (or planned, in dry-run mode) from one input."""

    path: Path
    kind: str  # "image", "gain map", "metadata"
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True, kw_only=True)
class SplitReport:
    """Outcome of splitting one input file."""

    source: Path
    scan: ScanResult | None = None
    metadata: tuple[UltraHdrMetadata, ...] = ()
    outputs: tuple[OutputFile, ...] = ()
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


# =============================================================================
# Output Planning
# =============================================================================


def image_output_path(output_dir: Path, stem: str, index: int) -> Path:
    return output_dir / f"{stem}_split_{index}.jpg"


def metadata_output_path(output_dir: Path, stem: str, index: int) -> Path:
    if index == 1:
        return output_dir / f"{stem}_hdrgm.txt"
    return output_dir / f"{stem}_hdrgm_{index}.txt"


def _image_kind(index: int) -> str:
    if index == 1:
        return "image"
    if index == 2:
        return "gain map"
    return f"image {index}"


def plan_outputs(
    buffer: bytes,
    stem: str,
    output_dir: Path,
) -> tuple[ScanResult, tuple[UltraHdrMetadata, ...], tuple[OutputFile, ...]]:
    """Scan ``buffer`` and decide which files to write. Performs no I/O.

    Raises:
        JpegStreamError: If the stream cannot be scanned
    """
    result = scan(buffer)
    outputs: list[OutputFile] = []

    for index, image in enumerate(result.images, start=1):
        outputs.append(
            OutputFile(image_output_path(output_dir, stem, index), _image_kind(index), image.extract(buffer))
        )

    records: list[UltraHdrMetadata] = []
    for payload in result.app1_payloads:
        record = metadata_from_app1(payload)
        if record is None:
            continue
        records.append(record)
        text = format_metadata(record).encode("utf-8")
        outputs.append(OutputFile(metadata_output_path(output_dir, stem, len(records)), "metadata", text))

    return result, tuple(records), tuple(outputs)


# =============================================================================
# Core Processing Functions
# =============================================================================


def split_file(source: Path, config: SplitConfig) -> SplitReport:
    """Split one file. Stream and I/O errors are returned in the report."""
    output_dir = config.output_dir_for(source)

    try:
        buffer = source.read_bytes()
    except OSError as e:
        return SplitReport(source=source, error=f"Cannot read file: {e}")

    try:
        result, records, outputs = plan_outputs(buffer, source.stem, output_dir)
    except JpegStreamError as e:
        return SplitReport(source=source, error=str(e))

    if result.trailing is not None:
        logger.warning(
            "%s: %d bytes after the last EOI at 0x%X",
            source.name,
            result.trailing.size,
            result.trailing.start,
        )
    if not records:
        logger.info("%s: no UltraHDR metadata found", source.name)

    if not config.dry_run:
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            for output in outputs:
                output.path.write_bytes(output.data)
                logger.info("File written: %s to %s", output.kind, output.path)
        except OSError as e:
            return SplitReport(source=source, scan=result, metadata=records, error=f"Cannot write output: {e}")

    return SplitReport(source=source, scan=result, metadata=records, outputs=outputs)


def print_segment_table(report: SplitReport) -> None:
    """Print every segment found in the file."""
    if report.scan is None:
        return

    table = Table(title=f"Segments: {report.source.name}")
    table.add_column("Marker", style="cyan")
    table.add_column("Code")
    table.add_column("Offset", justify="right")
    table.add_column("Length", justify="right")
    table.add_column("Scan Data", justify="right")

    for segment in report.scan.segments:
        scan_data = segment.end - segment.data_end
        table.add_row(
            segment.name,
            f"{segment.marker:04X}",
            f"{segment.start:08X}",
            str(segment.length),
            str(scan_data) if scan_data else "-",
        )

    console.print(table)


def print_report(report: SplitReport, config: SplitConfig) -> None:
    """Print the outcome of one file."""
    if not report.success:
        console.print(f"  [red]✗[/red] {report.source.name}: {report.error}")
        return

    if config.verbose:
        print_segment_table(report)

    status = "[dim][DRY RUN][/dim] " if config.dry_run else ""
    console.print(f"  {status}[green]✓[/green] {report.source.name}")
    for output in report.outputs:
        console.print(f"      {output.kind:<9} {output.path.name} [dim]({output.size} bytes)[/dim]")
    for record in report.metadata:
        console.print("    UltraHDR parameters:")
        console.print(format_metadata(record, prefix="      "), end="", highlight=False)


def process_all(sources: list[Path], config: SplitConfig) -> list[SplitReport]:
    """Split all files with parallel execution and progress display."""
    reports: list[SplitReport] = []

    if len(sources) == 1 or config.jobs == 1:
        for source in sources:
            report = split_file(source, config)
            print_report(report, config)
            reports.append(report)
        return reports

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("[cyan]Splitting UltraHDR files...", total=len(sources))

        with ThreadPoolExecutor(max_workers=config.jobs) as executor:
            futures = {executor.submit(split_file, source, config): source for source in sources}

            for future in as_completed(futures):
                report = future.result()
                print_report(report, config)
                reports.append(report)
                progress.advance(task)

    return reports


# =============================================================================
# CLI
# =============================================================================


def configure_logging(verbose: bool) -> None:
    """Route log records through the rich console."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, show_time=False)],
        force=True,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Split UltraHDR JPEG files into base image, gain map, and gain map parameters.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Output (next to each input unless -o is given):
  IMG_XXXX_split_1.jpg - Base image
  IMG_XXXX_split_2.jpg - Gain map image
  IMG_XXXX_hdrgm.txt   - Gain map parameters from hdrgm: XMP

Environment variables:
  ULTRAHDR_OUTPUT_DIR  Output directory when -o is not given
  JOBS                 Parallel files when -j is not given

Examples:
  %(prog)s IMG_1234.jpg              Split one file
  %(prog)s *.jpg -o split/           Split many files into split/
  %(prog)s -n -v IMG_1234.jpg        Show segments without writing
        """,
    )

    parser.add_argument(
        "inputs",
        nargs="+",
        type=Path,
        help="UltraHDR JPEG files to split",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        metavar="DIR",
        help="Output directory (default: same as input)",
    )
    parser.add_argument(
        "-n",
        "--dry-run",
        action="store_true",
        help="Scan and report without writing files",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show every segment and debug logging",
    )
    parser.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        metavar="N",
        help="Parallel processing jobs (default: CPU count)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point."""
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = SplitConfig.create(
            output_dir=args.output.resolve() if args.output else None,
            dry_run=args.dry_run,
            verbose=args.verbose,
            jobs=args.jobs,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] Invalid configuration: {e}")
        sys.exit(1)

    sources = [p.resolve() for p in args.inputs]
    missing = [p for p in sources if not p.is_file()]
    for path in missing:
        console.print(f"[red]Error:[/red] '{path}' is not a file")
    if missing:
        sys.exit(1)

    console.print()
    console.print(f"[bold]UltraHDR Splitter v{__version__}[/bold]")
    console.print(f"Files: {len(sources)}")
    if config.output_dir is not None:
        console.print(f"Output: {config.output_dir}")
    if config.dry_run:
        console.print("[yellow][DRY RUN MODE][/yellow]")
    console.print()

    try:
        reports = process_all(sources, config)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/]")
        sys.exit(130)

    failure_count = sum(1 for report in reports if not report.success)
    success_count = len(reports) - failure_count

    console.print()
    if failure_count == 0:
        console.print(f"[green]Complete:[/green] {success_count} file(s) split successfully")
    else:
        console.print(
            f"[yellow]Complete:[/yellow] {success_count} succeeded, "
            f"[red]{failure_count} failed[/red]"
        )

    sys.exit(0 if failure_count == 0 else 1)


if __name__ == "__main__":
    main()
