"""
Shared test PKI.

Builds a small CA hierarchy on the fly with the cryptography builders:

    root CA  (self-signed)
      └── leaf CA  (the material being installed)

plus one CRL per CA, and helpers for writing the usual three input files.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID


def _cert_name(common_name: str, org: str = "Example Org", country: str = "US") -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, country),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, org),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])


def new_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def make_ca_cert(
    common_name: str,
    key,
    issuer_cert: Optional[x509.Certificate] = None,
    issuer_key=None,
    not_before: Optional[datetime] = None,
    not_after: Optional[datetime] = None,
    subject: Optional[x509.Name] = None,
) -> x509.Certificate:
    """
    Build a CA certificate. Without an issuer it is self-signed.

    Args:
        common_name (str): CN of the subject.
        key: The subject's private key.
        issuer_cert (x509.Certificate | None): Issuing CA certificate.
        issuer_key: Issuing CA private key (required with issuer_cert).
        not_before (datetime | None): Defaults to yesterday.
        not_after (datetime | None): Defaults to a year from now.
        subject (x509.Name | None): Overrides the name built from common_name.

    Returns:
        x509.Certificate: The signed certificate.
    """
    now = datetime.now(timezone.utc)
    subject = subject or _cert_name(common_name)
    issuer = issuer_cert.subject if issuer_cert is not None else subject
    signing_key = issuer_key if issuer_key is not None else key
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before or now - timedelta(days=1))   # Clock-skew tolerance
        .not_valid_after(not_after or now + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(x509.KeyUsage(
            digital_signature=True,
            content_commitment=False,
            key_encipherment=False,
            data_encipherment=False,
            key_agreement=False,
            key_cert_sign=True,
            crl_sign=True,
            encipher_only=False,
            decipher_only=False,
        ), critical=True)
    )
    return builder.sign(private_key=signing_key, algorithm=hashes.SHA256())


def make_crl(
    issuer_cert: x509.Certificate,
    issuer_key,
    revoked_serials: Iterable[int] = (),
    last_update: Optional[datetime] = None,
    next_update: Optional[datetime] = None,
    crl_number: int = 0,
) -> x509.CertificateRevocationList:
    """Build a CRL naming `issuer_cert` and signed with `issuer_key`."""
    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateRevocationListBuilder()
        .issuer_name(issuer_cert.subject)
        .last_update(last_update or now - timedelta(days=1))
        .next_update(next_update or now + timedelta(days=30))
        .add_extension(x509.CRLNumber(crl_number), critical=False)
    )
    for serial in revoked_serials:
        builder = builder.add_revoked_certificate(
            x509.RevokedCertificateBuilder()
            .serial_number(serial)
            .revocation_date(now - timedelta(hours=1))
            .build()
        )
    return builder.sign(private_key=issuer_key, algorithm=hashes.SHA256())


def pem_certs(*certs: x509.Certificate) -> bytes:
    return b"".join(c.public_bytes(serialization.Encoding.PEM) for c in certs)


def pem_crls(*crls: x509.CertificateRevocationList) -> bytes:
    return b"".join(c.public_bytes(serialization.Encoding.PEM) for c in crls)


def pem_key(key, fmt=serialization.PrivateFormat.PKCS8) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=fmt,
        encryption_algorithm=serialization.NoEncryption(),
    )


@dataclass
class Pki:
    root_key: rsa.RSAPrivateKey
    root_cert: x509.Certificate
    root_crl: x509.CertificateRevocationList
    leaf_key: rsa.RSAPrivateKey
    leaf_cert: x509.Certificate
    leaf_crl: x509.CertificateRevocationList

    @property
    def bundle_pem(self) -> bytes:
        return pem_certs(self.leaf_cert, self.root_cert)

    @property
    def key_pem(self) -> bytes:
        return pem_key(self.leaf_key)

    @property
    def crl_chain_pem(self) -> bytes:
        return pem_crls(self.leaf_crl, self.root_crl)


@dataclass
class CaFiles:
    bundle: Path
    key: Path
    chain: Path


@pytest.fixture(scope="session")
def pki() -> Pki:
    """Root CA, leaf CA issued by it, and an empty CRL from each."""
    root_key = new_key()
    root_cert = make_ca_cert("Test Root CA", root_key)
    leaf_key = new_key()
    leaf_cert = make_ca_cert("Test Leaf CA", leaf_key, root_cert, root_key)
    return Pki(
        root_key=root_key,
        root_cert=root_cert,
        root_crl=make_crl(root_cert, root_key),
        leaf_key=leaf_key,
        leaf_cert=leaf_cert,
        leaf_crl=make_crl(leaf_cert, leaf_key),
    )


@pytest.fixture(scope="session")
def unrelated_ca():
    """A self-signed CA with no relationship to `pki`, as (key, cert)."""
    key = new_key()
    return key, make_ca_cert("Unrelated CA", key)


@pytest.fixture
def ca_files(tmp_path: Path, pki: Pki) -> CaFiles:
    """The valid bundle, key and CRL chain written to disk."""
    files = CaFiles(
        bundle=tmp_path / "bundle.pem",
        key=tmp_path / "key.pem",
        chain=tmp_path / "chain.pem",
    )
    files.bundle.write_bytes(pki.bundle_pem)
    files.key.write_bytes(pki.key_pem)
    files.chain.write_bytes(pki.crl_chain_pem)
    return files
