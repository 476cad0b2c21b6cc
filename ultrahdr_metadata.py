#!/usr/bin/env python3
"""
UltraHDR Gain Map XMP Metadata.

Extracts the hdrgm: gain map parameters from the XMP packet stored in a JPEG
APP1 segment. Google's UltraHDR writer stores each field as a single attribute:

    hdrgm:GainMapMax="1.500000"

Adobe Lightroom writes RGB gain maps with one value per channel:

    <hdrgm:GainMapMin>
        <rdf:Seq>
            <rdf:li>-0.07811</rdf:li>
            <rdf:li>-0.049089</rdf:li>
            <rdf:li>-0.028652</rdf:li>
        </rdf:Seq>
    </hdrgm:GainMapMin>

Both shapes are recognized for every numeric field except Version.

Reference: https://developer.android.com/media/platform/hdr-image-format

SPDX-License-Identifier: MPL-2.0
Copyright (c) 2025-2026 Aryan Ameri
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Final

__all__: Final[list[str]] = [
    "XMP_SIGNATURE",
    "FieldSpec",
    "FIELDS",
    "UltraHdrMetadata",
    "UltraHdrMetadataBuilder",
    "XmpMetadataError",
    "NotXmp",
    "NotUltraHdr",
    "MissingField",
    "NumberFormatError",
    "extract_xmp",
    "match_scalar",
    "match_sequence",
    "parse_metadata",
    "metadata_from_app1",
    "format_metadata",
]

logger = logging.getLogger(__name__)

# APP1 XMP namespace signature (followed by a NUL terminator in the file)
XMP_SIGNATURE: Final[bytes] = b"http://ns.adobe.com/xap/1.0/"

_WHITESPACE: Final[str] = " \t\r\n"
_DIGITS: Final[str] = "0123456789"


# =============================================================================
# Exceptions
# =============================================================================


class XmpMetadataError(Exception):
    """Base exception for APP1 metadata that cannot be used."""


class NotXmp(XmpMetadataError):
    """APP1 payload is not an XMP packet (e.g. Exif)."""


class NotUltraHdr(XmpMetadataError):
    """XMP packet does not describe an UltraHDR gain map."""


class MissingField(NotUltraHdr):
    """A required hdrgm: field is absent."""

    __slots__ = ("field",)

    def __init__(self, field: str) -> None:
        super().__init__(f"Required field hdrgm:{field} not found")
        self.field = field


class NumberFormatError(NotUltraHdr):
    """A matched numeral could not be converted to a float."""


# =============================================================================
# Field Table
# =============================================================================


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """One numeric hdrgm: field.

    Attributes:
        attr: UltraHdrMetadata attribute name
        xmp_name: Local name in the hdrgm namespace
        label: Label used by format_metadata()
        default: Default for optional fields, None when required
        vector: Whether the rdf:Seq three-value form is accepted
    """

    attr: str
    xmp_name: str
    label: str
    default: float | None = None
    vector: bool = True

    @property
    def required(self) -> bool:
        return self.default is None


FIELDS: Final[tuple[FieldSpec, ...]] = (
    FieldSpec("header_version", "Version", "Version", vector=False),
    FieldSpec("gain_map_min", "GainMapMin", "GainMapMin", default=0.0),
    FieldSpec("gain_map_max", "GainMapMax", "GainMapMax"),
    FieldSpec("gamma", "Gamma", "Gamma", default=1.0),
    FieldSpec("offset_sdr", "OffsetSDR", "OffsetSDR", default=1 / 64),
    FieldSpec("offset_hdr", "OffsetHDR", "OffsetHDR", default=1 / 64),
    FieldSpec("capacity_min", "HDRCapacityMin", "HDRCapacityMin", default=0.0),
    FieldSpec("capacity_max", "HDRCapacityMax", "HDRCapacityMax"),
)

BASE_RENDITION_FIELD: Final[str] = "BaseRenditionIsHDR"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True, kw_only=True)
class UltraHdrMetadata:
    """Immutable UltraHDR gain map parameters.

    Vector fields hold one value for single-channel gain maps and three for
    RGB gain maps.
    """

    header_version: float
    base_rendition_is_hdr: bool = False
    gain_map_min: tuple[float, ...]
    gain_map_max: tuple[float, ...]
    gamma: tuple[float, ...]
    offset_sdr: tuple[float, ...]
    offset_hdr: tuple[float, ...]
    capacity_min: tuple[float, ...]
    capacity_max: tuple[float, ...]

    @property
    def is_multichannel(self) -> bool:
        """True if any field carries per-channel values."""
        return any(len(getattr(self, spec.attr)) > 1 for spec in FIELDS if spec.vector)


class UltraHdrMetadataBuilder:
    """Accumulates field values and materializes the record once complete."""

    __slots__ = ("_values", "_base_rendition_is_hdr")

    def __init__(self) -> None:
        self._values: dict[str, tuple[float, ...]] = {}
        self._base_rendition_is_hdr = False

    def set_values(self, spec: FieldSpec, values: tuple[float, ...]) -> None:
        self._values[spec.attr] = values

    def set_base_rendition_is_hdr(self, value: bool) -> None:
        self._base_rendition_is_hdr = value

    def build(self) -> UltraHdrMetadata:
        """Fill defaults and return the record.

        Raises:
            MissingField: If a required field was never set
        """
        values: dict[str, tuple[float, ...]] = {}
        for spec in FIELDS:
            found = self._values.get(spec.attr)
            if found is None:
                if spec.required:
                    raise MissingField(spec.xmp_name)
                found = (spec.default,)
            values[spec.attr] = found

        header_version = values.pop("header_version")[0]
        return UltraHdrMetadata(
            header_version=header_version,
            base_rendition_is_hdr=self._base_rendition_is_hdr,
            **values,
        )


# =============================================================================
# Text Matching
# =============================================================================


class _TextCursor:
    """Forward-only cursor over XMP text."""

    __slots__ = ("text", "pos")

    def __init__(self, text: str, pos: int = 0) -> None:
        self.text = text
        self.pos = pos

    def skip_whitespace(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos] in _WHITESPACE:
            self.pos += 1

    def literal(self, expected: str) -> bool:
        if self.text.startswith(expected, self.pos):
            self.pos += len(expected)
            return True
        return False

    def tag(self, expected: str) -> bool:
        """Match a tag, allowing whitespace in front of it."""
        self.skip_whitespace()
        return self.literal(expected)

    def _digits(self) -> int:
        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] in _DIGITS:
            self.pos += 1
        return self.pos - start

    def number(self) -> str | None:
        """Match ``[+-]?digits(.digits)?`` and return the literal."""
        start = self.pos
        if self.pos < len(self.text) and self.text[self.pos] in "+-":
            self.pos += 1
        if not self._digits():
            self.pos = start
            return None

        fraction_start = self.pos
        if self.literal(".") and not self._digits():
            self.pos = fraction_start
        return self.text[start : self.pos]


def _occurrences(text: str, needle: str) -> Iterator[int]:
    pos = text.find(needle)
    while pos >= 0:
        yield pos + len(needle)
        pos = text.find(needle, pos + 1)


def match_scalar(text: str, name: str) -> str | None:
    """Find ``hdrgm:<name>="<number>"`` and return the numeral."""
    for pos in _occurrences(text, f'hdrgm:{name}="'):
        cursor = _TextCursor(text, pos)
        value = cursor.number()
        if value is not None and cursor.literal('"'):
            return value
    return None


def match_sequence(text: str, name: str, count: int = 3) -> list[str] | None:
    """Find a ``<hdrgm:<name>><rdf:Seq>`` block of exactly ``count`` numbers."""
    for pos in _occurrences(text, f"<hdrgm:{name}>"):
        cursor = _TextCursor(text, pos)
        if not cursor.tag("<rdf:Seq>"):
            continue

        values: list[str] = []
        for _ in range(count):
            if not cursor.tag("<rdf:li>"):
                break
            value = cursor.number()
            if value is None or not cursor.tag("</rdf:li>"):
                break
            values.append(value)

        if (
            len(values) == count
            and cursor.tag("</rdf:Seq>")
            and cursor.tag(f"</hdrgm:{name}>")
        ):
            return values
    return None


def _to_float(literal: str, name: str) -> float:
    try:
        return float(literal)
    except ValueError as e:
        raise NumberFormatError(f"hdrgm:{name} value {literal!r} is not a number") from e


def _match_base_rendition(text: str) -> bool:
    for pos in _occurrences(text, f'hdrgm:{BASE_RENDITION_FIELD}="'):
        cursor = _TextCursor(text, pos)
        if cursor.literal('True"'):
            return True
        if cursor.literal('False"'):
            return False
    return False


# =============================================================================
# Parsing
# =============================================================================


def extract_xmp(payload: bytes) -> str:
    """Strip the XMP signature from an APP1 payload and return the packet text.

    Raises:
        NotXmp: If the payload does not begin with the XMP namespace signature
    """
    if not payload.startswith(XMP_SIGNATURE):
        raise NotXmp("APP1 payload has no XMP signature")
    body = payload[len(XMP_SIGNATURE) :].removeprefix(b"\x00")
    return body.decode("utf-8", errors="replace")


def parse_metadata(text: str) -> UltraHdrMetadata:
    """Parse UltraHDR gain map parameters from XMP text.

    Raises:
        MissingField: If Version, GainMapMax or HDRCapacityMax is absent
        NumberFormatError: If a matched value cannot be converted
    """
    builder = UltraHdrMetadataBuilder()

    for spec in FIELDS:
        scalar = match_scalar(text, spec.xmp_name)
        if scalar is not None:
            builder.set_values(spec, (_to_float(scalar, spec.xmp_name),))
            continue
        if spec.vector:
            sequence = match_sequence(text, spec.xmp_name)
            if sequence is not None:
                builder.set_values(
                    spec, tuple(_to_float(v, spec.xmp_name) for v in sequence)
                )
                continue

    builder.set_base_rendition_is_hdr(_match_base_rendition(text))
    return builder.build()


def metadata_from_app1(payload: bytes) -> UltraHdrMetadata | None:
    """Parse an APP1 payload, returning None if it is not UltraHDR XMP."""
    try:
        return parse_metadata(extract_xmp(payload))
    except NotXmp:
        logger.debug("Skipping non-XMP APP1 segment (%d bytes)", len(payload))
    except NotUltraHdr as e:
        logger.debug("XMP packet is not UltraHDR metadata: %s", e)
    return None


def _format_values(values: tuple[float, ...]) -> str:
    return ", ".join(f"{v:g}" for v in values)


def format_metadata(metadata: UltraHdrMetadata, prefix: str = "") -> str:
    """Render the record as ``label: values`` lines."""
    width = max(len(spec.label) for spec in FIELDS)
    lines = [
        f"{prefix}{'Version':<{width}}: {metadata.header_version:g}",
        f"{prefix}{BASE_RENDITION_FIELD}: {str(metadata.base_rendition_is_hdr).lower()}",
    ]
    for spec in FIELDS[1:]:
        lines.append(f"{prefix}{spec.label:<{width}}: {_format_values(getattr(metadata, spec.attr))}")
    return "\n".join(lines) + "\n"


if __name__ == "__main__":
    import sys
    from pathlib import Path

    if len(sys.argv) < 2:
        print("Usage: ultrahdr_metadata.py <packet.xmp>")
        sys.exit(1)

    xmp_text = Path(sys.argv[1]).read_text(encoding="utf-8", errors="replace")
    try:
        print(format_metadata(parse_metadata(xmp_text)), end="")
    except NotUltraHdr as e:
        print(f"Not UltraHDR metadata: {e}")
        sys.exit(1)
