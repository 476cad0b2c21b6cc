"""Helpers that synthesize JPEG byte streams for tests."""

from __future__ import annotations

from ultrahdr_metadata import XMP_SIGNATURE

SOI_BYTES = b"\xff\xd8"
EOI_BYTES = b"\xff\xd9"

# Single component scan header: Ns=1, Cs=1, Td/Ta=0, Ss=0, Se=63, Ah/Al=0
SCAN_HEADER = b"\x01\x01\x00\x00\x3f\x00"

GOOGLE_XMP = """<x:xmpmeta xmlns:x="adobe:ns:meta/" x:xmptk="Adobe XMP Core 5.1.2">
  <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">
    <rdf:Description xmlns:hdrgm="http://ns.adobe.com/hdr-gain-map/1.0/"
     hdrgm:Version="1.0"
     hdrgm:GainMapMin="0.000000"
     hdrgm:GainMapMax="1.500000"
     hdrgm:Gamma="1.000000"
     hdrgm:OffsetSDR="0.000000"
     hdrgm:OffsetHDR="0.000000"
     hdrgm:HDRCapacityMin="0.000000"
     hdrgm:HDRCapacityMax="1.500000"
     hdrgm:BaseRenditionIsHDR="False"/>
  </rdf:RDF>
</x:xmpmeta>
"""

LIGHTROOM_XMP = """<x:xmpmeta xmlns:x="adobe:ns:meta/">
 <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">
  <rdf:Description rdf:about=""
    xmlns:hdrgm="http://ns.adobe.com/hdr-gain-map/1.0/"
   hdrgm:Version="1.0"
   hdrgm:BaseRenditionIsHDR="True"
   hdrgm:HDRCapacityMin="0"
   hdrgm:HDRCapacityMax="2.3">
   <hdrgm:GainMapMin>
    <rdf:Seq>
     <rdf:li>-0.07811</rdf:li>
     <rdf:li>-0.049089</rdf:li>
     <rdf:li>-0.028652</rdf:li>
    </rdf:Seq>
   </hdrgm:GainMapMin>
   <hdrgm:GainMapMax>
    <rdf:Seq>
     <rdf:li>2.3</rdf:li>
     <rdf:li>2.28</rdf:li>
     <rdf:li>2.25</rdf:li>
    </rdf:Seq>
   </hdrgm:GainMapMax>
   <hdrgm:Gamma>
    <rdf:Seq>
     <rdf:li>1</rdf:li>
     <rdf:li>1</rdf:li>
     <rdf:li>1</rdf:li>
    </rdf:Seq>
   </hdrgm:Gamma>
  </rdf:Description>
 </rdf:RDF>
</x:xmpmeta>
"""

# Primary image XMP in an UltraHDR file: version and container directory only
PRIMARY_XMP = """<x:xmpmeta xmlns:x="adobe:ns:meta/">
  <rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">
    <rdf:Description xmlns:hdrgm="http://ns.adobe.com/hdr-gain-map/1.0/"
     hdrgm:Version="1.0"/>
  </rdf:RDF>
</x:xmpmeta>
"""


def segment(marker: int, payload: bytes = b"") -> bytes:
    """Length-prefixed marker segment."""
    return marker.to_bytes(2, "big") + (len(payload) + 2).to_bytes(2, "big") + payload


def scan_segment(entropy: bytes) -> bytes:
    """SOS header followed by entropy-coded data."""
    return segment(0xFFDA, SCAN_HEADER) + entropy


def xmp_payload(xmp: str) -> bytes:
    return XMP_SIGNATURE + b"\x00" + xmp.encode("utf-8")


def app1_xmp(xmp: str) -> bytes:
    return segment(0xFFE1, xmp_payload(xmp))


def app1_exif() -> bytes:
    return segment(0xFFE1, b"Exif\x00\x00MM\x00\x2a\x00\x00\x00\x08\x00\x00")


def jpeg(*segments: bytes, entropy: bytes = b"\x12\x34\x56") -> bytes:
    """Minimal baseline JPEG: SOI, given segments, DQT, SOS + data, EOI."""
    return (
        SOI_BYTES
        + b"".join(segments)
        + segment(0xFFDB, b"\x00" + bytes(64))
        + scan_segment(entropy)
        + EOI_BYTES
    )


def ultrahdr_jpeg(gain_map_xmp: str = GOOGLE_XMP) -> tuple[bytes, bytes]:
    """Return (primary image, gain map image) as Google's encoder lays them out."""
    primary = jpeg(app1_exif(), app1_xmp(PRIMARY_XMP), entropy=b"\x01\xff\x00\x02")
    gain_map = jpeg(app1_xmp(gain_map_xmp), entropy=b"\x7f\x7f\xff\xd0\x7f")
    return primary, gain_map
