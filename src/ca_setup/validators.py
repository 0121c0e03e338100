"""
Cross-object checks run after parsing.

    check_key_matches_leaf      private key vs. leaf certificate public key
    check_chain_of_trust        issuer/subject linkage and signatures, leaf to top
    check_crl_correspondence    CRL chain position i vs. bundle position i
    check_leaf_path             full path validation of the leaf, with revocation

Every check records its findings on the ValidationReport it is given and
returns a bool for logging; none of them raise on bad material.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes, PublicKeyTypes

from .errors import IssueKind, ValidationReport
from .parsers import CertificateBundle, CrlChain

LOGGER = logging.getLogger(__name__)


# ---------- helpers ----------

def _name_str(name: x509.Name) -> str:
    return name.rfc4514_string() or "<empty name>"

def _assert(cond: bool, msg: str) -> None:
    """
    Raise ValueError with `msg` unless `cond` holds.

    Used inside path validation, where the first failed condition ends the
    path and becomes its (logged) cause.
    """
    if not cond:
        raise ValueError(msg)

def _is_self_issued(cert: x509.Certificate) -> bool:
    return cert.issuer == cert.subject

def _signed_by(cert: x509.Certificate, issuer: x509.Certificate) -> bool:
    """True if `issuer` names and signs `cert`."""
    try:
        cert.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, InvalidSignature, UnsupportedAlgorithm):
        return False
    return True

def _crl_signed_by(crl: x509.CertificateRevocationList, cert: x509.Certificate) -> bool:
    try:
        return crl.is_signature_valid(cert.public_key())
    except (ValueError, TypeError, UnsupportedAlgorithm):
        return False

def _crl_is_current(crl: x509.CertificateRevocationList, at_time: datetime) -> bool:
    next_update = crl.next_update_utc
    return crl.last_update_utc <= at_time and (next_update is None or at_time <= next_update)

def same_public_key(a: PublicKeyTypes, b: PublicKeyTypes) -> bool:
    """
    Compare two public keys structurally.

    RSA keys match on modulus and exponent, EC keys on curve and point. Any
    other algorithm is compared by its SubjectPublicKeyInfo encoding, which
    also makes keys of different algorithms unequal.
    """
    if isinstance(a, rsa.RSAPublicKey) and isinstance(b, rsa.RSAPublicKey):
        return a.public_numbers() == b.public_numbers()
    if isinstance(a, ec.EllipticCurvePublicKey) and isinstance(b, ec.EllipticCurvePublicKey):
        return a.curve.name == b.curve.name and a.public_numbers() == b.public_numbers()
    spki = (serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)
    return a.public_bytes(*spki) == b.public_bytes(*spki)


# ---------- key / certificate ----------

def check_key_matches_leaf(
    key: PrivateKeyTypes, bundle: CertificateBundle, report: ValidationReport, key_path: str = ""
) -> bool:
    """
    Record KEY_CERTIFICATE_MISMATCH unless the key belongs to the leaf.
    A public key that cannot be loaded on either side counts as a mismatch.

    Args:
        key: Parsed private key.
        bundle (CertificateBundle): Non-empty bundle; only the leaf is used.
        report (ValidationReport): Receives the mismatch error.
        key_path (str): Path of the key file, used as the issue's subject.

    Returns:
        bool: True if the keys match.
    """
    try:
        matches = same_public_key(key.public_key(), bundle.leaf.public_key())
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        LOGGER.debug("Could not compare private key with leaf %s: %s", _name_str(bundle.leaf.subject), e)
        matches = False
    if matches:
        return True
    report.add_error(IssueKind.KEY_CERTIFICATE_MISMATCH,
                     "Private key and certificate do not match", key_path)
    return False


# ---------- chain of trust ----------

def check_chain_of_trust(bundle: CertificateBundle, report: ValidationReport) -> bool:
    """
    Verify that each bundle entry was issued and signed by the next one.

    The last entry is accepted as a trust anchor whether or not it is
    self-signed. Every broken link is reported; the walk does not stop at
    the first one.

    Args:
        bundle (CertificateBundle): Parsed, non-empty bundle.
        report (ValidationReport): Receives CHAIN_LINKAGE_FAILURE errors.

    Returns:
        bool: True if every link holds.
    """
    intact = True
    certs = bundle.certificates
    for i in range(len(certs) - 1):
        cert, issuer = certs[i], certs[i + 1]
        if cert.issuer != issuer.subject:
            report.add_error(
                IssueKind.CHAIN_LINKAGE_FAILURE,
                f"Certificate {_name_str(cert.subject)} in {bundle.path} names issuer "
                f"{_name_str(cert.issuer)}, but the next certificate is {_name_str(issuer.subject)}",
                bundle.path,
            )
            intact = False
        elif not _signed_by(cert, issuer):
            report.add_error(
                IssueKind.CHAIN_LINKAGE_FAILURE,
                f"Signature on certificate {_name_str(cert.subject)} in {bundle.path} "
                f"does not verify with the key of {_name_str(issuer.subject)}",
                bundle.path,
            )
            intact = False
    return intact


# ---------- CRL chain vs. bundle ----------

def _crl_level_message(level: int, cert: x509.Certificate, crl_path: str, verb: str) -> str:
    if level == 0:
        return f"Leaf CRL was not {verb} by leaf certificate"
    return f"CRL {level + 1} in {crl_path} was not {verb} by {_name_str(cert.subject)}"

def check_crl_correspondence(
    bundle: CertificateBundle,
    crl_chain: CrlChain,
    report: ValidationReport,
    at_time: datetime,
) -> bool:
    """
    Match each CRL to the bundle certificate at the same position.

    CRL 0 must be issued and signed by the leaf CA, CRL 1 by its issuer, and
    so on up the bundle. An issuer mismatch at a level suppresses that
    level's signature check. CRLs past their next update and CRLs with no
    certificate at their position are reported as warnings.

    Args:
        bundle (CertificateBundle): Parsed, non-empty bundle.
        crl_chain (CrlChain): Parsed, non-empty CRL chain.
        report (ValidationReport): Receives CRL_* issues.
        at_time (datetime): Timezone-aware time used for staleness.

    Returns:
        bool: True if no error was recorded.
    """
    ok = True
    path = crl_chain.path
    for level, crl in enumerate(crl_chain.crls):
        if level >= len(bundle):
            extra = len(crl_chain) - len(bundle)
            report.add_warning(
                IssueKind.UNMATCHED_CRL,
                f"{extra} CRL(s) in {path} have no corresponding certificate in {bundle.path}",
                path,
            )
            break
        cert = bundle.certificates[level]
        if crl.issuer != cert.subject:
            report.add_error(IssueKind.CRL_ISSUER_MISMATCH,
                             _crl_level_message(level, cert, path, "issued"), path)
            ok = False
            continue
        if not _crl_signed_by(crl, cert):
            report.add_error(IssueKind.CRL_SIGNATURE_FAILURE,
                             _crl_level_message(level, cert, path, "signed"), path)
            ok = False
        next_update = crl.next_update_utc
        if next_update is not None and next_update < at_time:
            report.add_warning(
                IssueKind.STALE_CRL,
                f"CRL issued by {_name_str(crl.issuer)} in {path} expired at "
                f"{next_update:%Y-%m-%d %H:%M:%S} UTC",
                path,
            )
    return ok


# ---------- leaf path ----------

def _build_path(bundle: CertificateBundle) -> list[x509.Certificate]:
    """
    Walk from the leaf to a self-issued certificate or the topmost entry.

    Issuers are looked up anywhere in the bundle, so this succeeds for a
    bundle in the wrong order as long as every issuer is present.
    """
    certs = bundle.certificates
    last = len(certs) - 1
    indices = [0]
    current = 0
    while not _is_self_issued(certs[current]) and current != last:
        issuer = next(
            (j for j in range(1, len(certs))
             if j not in indices and _signed_by(certs[current], certs[j])),
            None,
        )
        _assert(issuer is not None,
                f"no issuer for {_name_str(certs[current].subject)} in {bundle.path}")
        indices.append(issuer)
        current = issuer
    return [certs[i] for i in indices]

def _check_validity_period(cert: x509.Certificate, at_time: datetime) -> None:
    _assert(cert.not_valid_before_utc <= at_time,
            f"{_name_str(cert.subject)} is not valid before {cert.not_valid_before_utc}")
    _assert(at_time <= cert.not_valid_after_utc,
            f"{_name_str(cert.subject)} expired at {cert.not_valid_after_utc}")

def _check_not_revoked(
    cert: x509.Certificate,
    issuer: x509.Certificate,
    crl_chain: CrlChain,
    at_time: datetime,
) -> None:
    crls = [
        crl for crl in crl_chain.crls
        if crl.issuer == issuer.subject and _crl_signed_by(crl, issuer) and _crl_is_current(crl, at_time)
    ]
    _assert(bool(crls), f"no current CRL from {_name_str(issuer.subject)} "
                        f"to check {_name_str(cert.subject)}")
    for crl in crls:
        revoked = crl.get_revoked_certificate_by_serial_number(cert.serial_number)
        _assert(revoked is None,
                f"{_name_str(cert.subject)} (serial {cert.serial_number:x}) is revoked")

def check_leaf_path(
    bundle: CertificateBundle,
    crl_chain: Optional[CrlChain],
    report: ValidationReport,
    at_time: datetime,
    *,
    crl_check_all: bool = True,
) -> bool:
    """
    Validate the leaf against the bundle as trust anchors.

    Checks, in order: a path from the leaf to a trusted certificate can be
    built, every certificate on it is inside its validity window, and, when
    a CRL chain is given, no certificate on it is revoked. With
    `crl_check_all` False only the leaf is checked for revocation. A
    certificate whose issuer has no current, correctly signed CRL fails the
    path. The topmost bundle entry, when not self-issued, has no issuer to
    check against and is trusted as-is.

    The report only ever receives the generic LEAF_VALIDATION_FAILURE
    message; the specific cause is logged at DEBUG.

    Args:
        bundle (CertificateBundle): Parsed, non-empty bundle.
        crl_chain (CrlChain | None): Revocation sources, or None.
        report (ValidationReport): Receives LEAF_VALIDATION_FAILURE.
        at_time (datetime): Timezone-aware validation time.
        crl_check_all (bool): Check every certificate on the path, not just the leaf.

    Returns:
        bool: True if the leaf validated.
    """
    try:
        path = _build_path(bundle)
        for cert in path:
            _check_validity_period(cert, at_time)
        if crl_chain is not None:
            checked = path if crl_check_all else path[:1]
            for pos, cert in enumerate(checked):
                if pos + 1 < len(path):
                    issuer = path[pos + 1]
                elif _is_self_issued(cert):
                    issuer = cert
                else:
                    continue    # trusted top of a partial chain
                _check_not_revoked(cert, issuer, crl_chain, at_time)
    except ValueError as e:
        LOGGER.debug("Leaf path validation failed: %s", e)
        report.add_error(IssueKind.LEAF_VALIDATION_FAILURE,
                         "Leaf certificate could not be validated", bundle.path)
        return False
    LOGGER.debug("Leaf path validated through %d certificate(s)", len(path))
    return True
