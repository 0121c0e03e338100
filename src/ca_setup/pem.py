"""
PEM decoding.

Splits a raw buffer into typed blocks. Anything between blocks (comments,
`openssl x509 -text` dumps, blank lines) is ignored. A block whose body is
not valid base64 is kept as a MalformedBlock so that callers can echo the
offending text back to the user. A BEGIN line with no matching END
line is malformed too, and never swallows the blocks after it.
"""

from __future__ import annotations

import base64
import binascii
import enum
import re
from dataclasses import dataclass
from typing import Union

_BLOCK_RE = re.compile(
    r"-----BEGIN (?P<label>[A-Z0-9 ]+)-----"
    r"(?P<body>(?:(?!-----BEGIN ).)*?)"
    # An unterminated block stops at the next BEGIN line or the end of input
    r"(?:(?P<end>-----END (?P=label)-----)|(?=-----BEGIN )|\Z)",
    re.DOTALL,
)


class PemKind(enum.Enum):
    CERTIFICATE = "certificate"
    PRIVATE_KEY = "private-key"
    CRL = "crl"
    UNKNOWN = "unknown"

    @classmethod
    def from_label(cls, label: str) -> "PemKind":
        """
        Map a PEM label to a block kind.

        Args:
            label (str): Text between "BEGIN " and the closing dashes.

        Returns:
            PemKind: CERTIFICATE for "CERTIFICATE", PRIVATE_KEY for any
            "... PRIVATE KEY" label, CRL for "X509 CRL", UNKNOWN otherwise.
        """
        label = label.strip()
        if label == "CERTIFICATE":
            return cls.CERTIFICATE
        if label == "PRIVATE KEY" or label.endswith(" PRIVATE KEY"):
            return cls.PRIVATE_KEY
        if label == "X509 CRL":
            return cls.CRL
        return cls.UNKNOWN


@dataclass(frozen=True)
class PemBlock:
    kind: PemKind
    label: str
    raw_text: str
    decoded_bytes: bytes


@dataclass(frozen=True)
class MalformedBlock:
    kind: PemKind
    label: str
    raw_text: str
    reason: str


DecodedBlock = Union[PemBlock, MalformedBlock]


def _body_lines(body: str) -> list[str]:
    # RFC 1421 headers (Proc-Type, DEK-Info) precede the base64 payload
    lines = [ln.strip() for ln in body.strip().splitlines()]
    if lines and ":" in lines[0]:
        while lines and lines[0]:
            lines.pop(0)
    return [ln for ln in lines if ln]


def decode_pem(data: bytes) -> list[DecodedBlock]:
    """
    Decode every PEM block found in a buffer, in file order.

    Args:
        data (bytes): Raw file contents. Non-UTF-8 bytes are replaced rather
            than rejected, since only the delimited blocks matter.

    Returns:
        list[PemBlock | MalformedBlock]: One entry per BEGIN line.
    """
    text = data.decode("utf-8", errors="replace")
    blocks: list[DecodedBlock] = []
    for m in _BLOCK_RE.finditer(text):
        label = m.group("label")
        kind = PemKind.from_label(label)
        raw = m.group(0)
        if m.group("end") is None:
            blocks.append(MalformedBlock(kind, label, raw.rstrip(), f"no END {label} line"))
            continue
        payload = "".join(_body_lines(m.group("body")))
        try:
            decoded = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            blocks.append(MalformedBlock(kind, label, raw, str(e)))
            continue
        blocks.append(PemBlock(kind, label, raw, decoded))
    return blocks
