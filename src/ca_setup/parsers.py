"""
Parsers that turn decoded PEM blocks into cryptography objects.

Each parser takes a Provided source and the shared report. Parse failures
are recorded as issues and the offending block is left out; nothing here
raises on bad input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from .errors import IssueKind, ValidationReport
from .pem import MalformedBlock, PemBlock, PemKind, decode_pem
from .sources import Provided

LOGGER = logging.getLogger(__name__)


@dataclass
class CertificateBundle:
    """
    Certificates in file order: index 0 is the leaf, the last entry is the
    topmost authority supplied (not necessarily self-signed).
    """
    path: str
    certificates: list[x509.Certificate] = field(default_factory=list)

    @property
    def leaf(self) -> x509.Certificate:
        return self.certificates[0]

    @property
    def top(self) -> x509.Certificate:
        return self.certificates[-1]

    def __len__(self) -> int:
        return len(self.certificates)


@dataclass
class CrlChain:
    """CRLs in file order: index 0 is the CRL published by the leaf CA."""
    path: str
    crls: list[x509.CertificateRevocationList] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.crls)


def _parse_failure(report: ValidationReport, path: str, raw_text: str) -> None:
    report.add_error(IssueKind.MALFORMED_PEM, f"Could not parse {path}: {raw_text}", path)


def parse_bundle(source: Provided, report: ValidationReport) -> Optional[CertificateBundle]:
    """
    Parse every certificate block in a bundle file.

    Args:
        source (Provided): Bundle bytes and the path they came from.
        report (ValidationReport): Receives one MALFORMED_PEM error per bad
            block, and EMPTY_COLLECTION if nothing parsed.

    Returns:
        CertificateBundle | None: The bundle, or None if it holds no certificates.
    """
    bundle = CertificateBundle(source.path)
    for block in decode_pem(source.data):
        if block.kind is not PemKind.CERTIFICATE:
            LOGGER.debug("Ignoring %s block in %s", block.label, source.path)
            continue
        if isinstance(block, MalformedBlock):
            _parse_failure(report, source.path, block.raw_text)
            continue
        try:
            bundle.certificates.append(x509.load_der_x509_certificate(block.decoded_bytes))
        except ValueError as e:
            LOGGER.debug("Certificate in %s failed to load: %s", source.path, e)
            _parse_failure(report, source.path, block.raw_text)

    if not bundle.certificates:
        report.add_error(IssueKind.EMPTY_COLLECTION,
                         f"Could not detect any certificates in {source.path}", source.path)
        return None
    LOGGER.debug("Parsed %d certificate(s) from %s", len(bundle), source.path)
    return bundle


def _load_key(block: PemBlock) -> PrivateKeyTypes:
    # The PEM loader understands legacy encryption headers; the DER loader does not
    return serialization.load_pem_private_key(block.raw_text.encode("utf-8"), password=None)


def parse_private_key(source: Provided, report: ValidationReport) -> Optional[PrivateKeyTypes]:
    """
    Parse the first private key block of a key file.

    Only the first key block is considered; any further key blocks are
    ignored and logged.

    Args:
        source (Provided): Key file bytes and path.
        report (ValidationReport): Receives MALFORMED_PEM on any failure.

    Returns:
        private key | None: A cryptography private key, or None on failure.
    """
    keys = [b for b in decode_pem(source.data) if b.kind is PemKind.PRIVATE_KEY]
    if len(keys) > 1:
        LOGGER.warning("%s contains %d private keys; using the first one", source.path, len(keys))

    key = None
    if keys and isinstance(keys[0], PemBlock):
        try:
            key = _load_key(keys[0])
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            LOGGER.debug("Private key in %s failed to load: %s", source.path, e)
    if key is None:
        report.add_error(IssueKind.MALFORMED_PEM, f"Could not parse {source.path}", source.path)
    return key


def parse_crl_chain(source: Provided, report: ValidationReport) -> Optional[CrlChain]:
    """
    Parse every CRL block in a CRL chain file.

    Args:
        source (Provided): CRL chain bytes and path.
        report (ValidationReport): Receives one MALFORMED_PEM error per bad
            block, and EMPTY_COLLECTION if nothing parsed.

    Returns:
        CrlChain | None: The chain, or None if it holds no CRLs.
    """
    chain = CrlChain(source.path)
    for block in decode_pem(source.data):
        if block.kind is not PemKind.CRL:
            LOGGER.debug("Ignoring %s block in %s", block.label, source.path)
            continue
        if isinstance(block, MalformedBlock):
            _parse_failure(report, source.path, block.raw_text)
            continue
        try:
            chain.crls.append(x509.load_der_x509_crl(block.decoded_bytes))
        except ValueError as e:
            LOGGER.debug("CRL in %s failed to load: %s", source.path, e)
            _parse_failure(report, source.path, block.raw_text)

    if not chain.crls:
        report.add_error(IssueKind.EMPTY_COLLECTION,
                         f"Could not detect any CRLs in {source.path}", source.path)
        return None
    LOGGER.debug("Parsed %d CRL(s) from %s", len(chain), source.path)
    return chain
