#!/usr/bin/env python3
"""
JPEG Marker Segment Scanner.

Walks a JPEG byte stream segment by segment and reports segment boundaries,
the byte ranges of every complete sub-image (SOI through EOI), and the payloads
of APP1 segments. Multi-picture files such as UltraHDR gain map JPEGs contain
several sub-images back to back; each EOI closes one.

SPDX-License-Identifier: MPL-2.0
Copyright (c) 2025-2026 Aryan Ameri
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Final

__all__: Final[list[str]] = [
    "Segment",
    "SubImage",
    "ScanResult",
    "JpegStreamError",
    "MalformedStream",
    "TruncatedStream",
    "iter_segments",
    "scan",
    "marker_name",
    "SOI",
    "EOI",
    "SOS",
    "APP1",
]

logger = logging.getLogger(__name__)

# Marker codes
SOI: Final[int] = 0xFFD8
EOI: Final[int] = 0xFFD9
SOS: Final[int] = 0xFFDA
DQT: Final[int] = 0xFFDB
DRI: Final[int] = 0xFFDD
DHT: Final[int] = 0xFFC4
COM: Final[int] = 0xFFFE
APP0: Final[int] = 0xFFE0
APP1: Final[int] = 0xFFE1

# Lowest code that starts a segment
MIN_MARKER: Final[int] = 0xFFC0

# Restart markers live inside entropy-coded data
RST0: Final[int] = 0xD0
RST7: Final[int] = 0xD7


# =============================================================================
# Exceptions
# =============================================================================


class JpegStreamError(Exception):
    """Base exception for unreadable JPEG streams."""

    __slots__ = ("offset",)

    def __init__(self, message: str, *, offset: int) -> None:
        super().__init__(f"{message} at offset 0x{offset:08X}")
        self.offset = offset


class MalformedStream(JpegStreamError):
    """Bytes at a marker position are not a recognized marker."""


class TruncatedStream(JpegStreamError):
    """A segment or scan runs past the end of the buffer."""


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True)
class Segment:
    """A single marker segment.

    Attributes:
        marker: 16-bit marker code (e.g. 0xFFE1)
        start: Offset of the marker's 0xFF byte
        end: Offset one past the last byte of the segment
        payload_start: Offset of the first payload byte (== end for SOI/EOI)
        data_end: For SOS, offset one past the scan header; the entropy-coded
            data runs from here to ``end``. Equal to ``end`` otherwise.
    """

    marker: int
    start: int
    end: int
    payload_start: int
    data_end: int

    @property
    def name(self) -> str:
        return marker_name(self.marker)

    @property
    def length(self) -> int:
        """Declared length field value (0 for markers without one)."""
        if self.marker in (SOI, EOI):
            return 0
        return self.data_end - self.start - 2

    def payload(self, buffer: bytes) -> bytes:
        """Slice the payload (bytes after the length field) out of ``buffer``."""
        return buffer[self.payload_start : self.data_end]

    def __repr__(self) -> str:
        return f"Segment({self.name}, start=0x{self.start:X}, end=0x{self.end:X})"


@dataclass(frozen=True, slots=True)
class SubImage:
    """Byte range ``[start, end)`` of one complete embedded image."""

    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start

    def extract(self, buffer: bytes) -> bytes:
        return buffer[self.start : self.end]


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Everything a full scan of one buffer produced."""

    segments: tuple[Segment, ...]
    images: tuple[SubImage, ...]
    app1_payloads: tuple[bytes, ...]
    trailing: SubImage | None = None


# =============================================================================
# Marker Names
# =============================================================================


def marker_name(code: int) -> str:
    """Human-readable name for a marker code, for reporting only."""
    low = code & 0xFF
    if code == SOI:
        return "SOI"
    if code == EOI:
        return "EOI"
    if code == SOS:
        return "SOS"
    if code == DQT:
        return "DQT"
    if code == DHT:
        return "DHT"
    if code == DRI:
        return "DRI"
    if code == COM:
        return "COM"
    if 0xC0 <= low <= 0xCF and low not in (0xC4, 0xC8, 0xCC):
        return f"SOF{low - 0xC0}"
    if RST0 <= low <= RST7:
        return f"RST{low - RST0}"
    if APP0 <= code <= 0xFFEF:
        return f"APP{code - APP0}"
    return f"0x{code:04X}"


# =============================================================================
# Scanning
# =============================================================================


def _read_u16(buffer: bytes, offset: int) -> int:
    if offset + 2 > len(buffer):
        raise TruncatedStream("Unexpected end of stream", offset=offset)
    return struct.unpack_from(">H", buffer, offset)[0]


def _skip_entropy_data(buffer: bytes, offset: int) -> int:
    """Return the offset of the marker that ends the entropy-coded data at ``offset``.

    0xFF 0x00 is a stuffed 0xFF byte and RST0-RST7 belong to the scan. Fill
    bytes (0xFF runs) before a marker are counted as scan data.
    """
    size = len(buffer)
    pos = offset
    while True:
        pos = buffer.find(b"\xff", pos)
        if pos < 0 or pos + 1 >= size:
            raise TruncatedStream("Entropy-coded data has no terminating marker", offset=offset)

        following = buffer[pos + 1]
        if following == 0x00 or following == 0xFF or RST0 <= following <= RST7:
            pos += 1
            continue
        return pos


def iter_segments(buffer: bytes) -> Iterator[Segment]:
    """Yield every marker segment in ``buffer`` in file order.

    Raises:
        MalformedStream: If a marker position holds anything but a marker
        TruncatedStream: If a length field or scan runs past the buffer
    """
    offset = 0
    size = len(buffer)

    while offset < size:
        start = offset
        code = _read_u16(buffer, offset)
        if (code & 0xFF00) != 0xFF00 or code < MIN_MARKER:
            raise MalformedStream(f"Unknown chunk {code:04X}", offset=start)
        offset += 2

        if code in (SOI, EOI):
            yield Segment(code, start, offset, offset, offset)
            continue

        length = _read_u16(buffer, offset)
        if length < 2:
            raise MalformedStream(f"Invalid length {length} for {marker_name(code)}", offset=offset)
        payload_start = offset + 2
        offset += length
        if offset > size:
            raise TruncatedStream(
                f"{marker_name(code)} declares {length} bytes, {size - start - 2} remain",
                offset=start,
            )

        data_end = offset
        if code == SOS:
            offset = _skip_entropy_data(buffer, offset)
            logger.debug("Scan data 0x%X..0x%X", data_end, offset)

        yield Segment(code, start, offset, payload_start, data_end)


def scan(buffer: bytes) -> ScanResult:
    """Scan ``buffer`` and collect sub-image ranges and APP1 payloads.

    A new sub-image starts at offset 0 and after every EOI. Segments after the
    last EOI are returned as ``trailing`` rather than as an image.
    """
    segments: list[Segment] = []
    images: list[SubImage] = []
    app1_payloads: list[bytes] = []
    image_start = 0

    for segment in iter_segments(buffer):
        segments.append(segment)
        if segment.marker == EOI:
            images.append(SubImage(image_start, segment.end))
            image_start = segment.end
        elif segment.marker == APP1:
            app1_payloads.append(segment.payload(buffer))

    trailing = SubImage(image_start, len(buffer)) if image_start < len(buffer) else None

    return ScanResult(
        segments=tuple(segments),
        images=tuple(images),
        app1_payloads=tuple(app1_payloads),
        trailing=trailing,
    )


if __name__ == "__main__":
    import sys
    from pathlib import Path

    if len(sys.argv) < 2:
        print("Usage: jpeg_segments.py <file.jpg>")
        sys.exit(1)

    jpeg_path = Path(sys.argv[1])
    result = scan(jpeg_path.read_bytes())

    print(f"JPEG stream: {jpeg_path}")
    print(f"Segments: {len(result.segments)}, images: {len(result.images)}")
    print()

    for segment in result.segments:
        print(f"  {segment.name:<6} offset {segment.start:8X} length {segment.length}")
