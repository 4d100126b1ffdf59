"""TLS certificate discovery and validation for Let's Encrypt material."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Protocol, cast

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from .config import TLSConfig


class TLSConfigurationError(RuntimeError):
    """Raised when TLS material cannot be resolved."""


class TLSValidationSeverity(Enum):
    """Validation severities for TLS checks."""

    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class TLSValidationFinding:
    """Individual validation check outcome."""

    scope: str
    check: str
    severity: TLSValidationSeverity
    message: str
    path: Path | None = None


@dataclass(frozen=True)
class TLSMaterial:
    """Certificate chain and private key for one domain."""

    domain: str
    certificate: Path
    key: Path


@dataclass(frozen=True)
class TLSValidationReport:
    """Aggregate validation results for a TLS material."""

    material: TLSMaterial
    findings: tuple[TLSValidationFinding, ...]
    not_valid_after: datetime | None

    @property
    def has_errors(self) -> bool:
        """Return True when any finding is classified as an error."""
        return any(f.severity is TLSValidationSeverity.ERROR for f in self.findings)

    @property
    def has_warnings(self) -> bool:
        """Return True when the report includes warning findings."""
        return any(f.severity is TLSValidationSeverity.WARNING for f in self.findings)

    @property
    def status(self) -> TLSValidationSeverity:
        """Return the overall status derived from the findings."""
        if self.has_errors:
            return TLSValidationSeverity.ERROR
        if self.has_warnings:
            return TLSValidationSeverity.WARNING
        return TLSValidationSeverity.OK

    def problems(self) -> list[str]:
        """Return messages for every non-OK finding."""
        return [
            f"{self.material.domain}: {finding.message}"
            for finding in self.findings
            if finding.severity is not TLSValidationSeverity.OK
        ]


class PublicKeyProtocol(Protocol):
    """Subset of the public key API used for comparison."""

    def public_bytes(
        self,
        encoding: serialization.Encoding,
        format: serialization.PublicFormat,
    ) -> bytes:
        """Serialise the key."""


class PrivateKeyProtocol(Protocol):
    """Subset of the private key API used for comparison."""

    def public_key(self) -> PublicKeyProtocol:
        """Return the matching public key."""


class TLSInspector:
    """Locate certificates issued into the Let's Encrypt live directory."""

    def __init__(self, config: TLSConfig) -> None:
        """Bind the inspector to the TLS configuration."""
        self._live_dir = config.live_dir

    def domains(self) -> list[str]:
        """Return domains with a certificate directory, sorted."""
        if not self._live_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self._live_dir.iterdir()
            if entry.is_dir() and (entry / "fullchain.pem").exists()
        )

    def material_for(self, domain: str) -> TLSMaterial:
        """Return the certificate/key paths for *domain*."""
        base = self._live_dir / domain
        certificate = base / "fullchain.pem"
        key = base / "privkey.pem"
        if not certificate.exists() or not key.exists():
            raise TLSConfigurationError(
                f"Let's Encrypt material for '{domain}' not found under {base}."
            )
        return TLSMaterial(domain=domain, certificate=certificate, key=key)


class TLSValidator:
    """Validate certificate readability, key match and expiry."""

    def __init__(self, config: TLSConfig) -> None:
        """Store the expiry warning window."""
        self._warn_expiry_days = config.warn_expiry_days

    def validate(self, material: TLSMaterial, *, now: datetime | None = None) -> TLSValidationReport:
        """Return a report describing the health of *material*."""
        moment = now or datetime.now(tz=UTC)
        findings: list[TLSValidationFinding] = []
        cert_obj: x509.Certificate | None = None
        key_obj: PrivateKeyProtocol | None = None
        not_after: datetime | None = None

        if self._check_file(material.certificate, "certificate", findings):
            try:
                cert_obj = _load_certificate(material.certificate)
            except ValueError as exc:
                findings.append(
                    TLSValidationFinding(
                        scope="certificate",
                        check="parse",
                        severity=TLSValidationSeverity.ERROR,
                        message=f"Unable to parse certificate: {exc}",
                        path=material.certificate,
                    )
                )

        if self._check_file(material.key, "key", findings):
            try:
                key_obj = _load_private_key(material.key)
            except (ValueError, TypeError) as exc:
                findings.append(
                    TLSValidationFinding(
                        scope="key",
                        check="parse",
                        severity=TLSValidationSeverity.ERROR,
                        message=f"Unable to parse private key: {exc}",
                        path=material.key,
                    )
                )

        if cert_obj is not None and key_obj is not None and not _public_keys_match(cert_obj, key_obj):
            findings.append(
                TLSValidationFinding(
                    scope="certificate",
                    check="match",
                    severity=TLSValidationSeverity.ERROR,
                    message="Certificate does not match the private key.",
                    path=material.certificate,
                )
            )

        if cert_obj is not None:
            not_after = cert_obj.not_valid_after_utc
            if not_after <= moment:
                findings.append(
                    TLSValidationFinding(
                        scope="certificate",
                        check="expiry",
                        severity=TLSValidationSeverity.ERROR,
                        message=f"Certificate expired on {not_after.date().isoformat()}",
                        path=material.certificate,
                    )
                )
            else:
                days_remaining = (not_after - moment).days
                severity = (
                    TLSValidationSeverity.WARNING
                    if days_remaining <= self._warn_expiry_days
                    else TLSValidationSeverity.OK
                )
                findings.append(
                    TLSValidationFinding(
                        scope="certificate",
                        check="expiry",
                        severity=severity,
                        message=f"Certificate expires in {days_remaining} day(s)",
                        path=material.certificate,
                    )
                )

        return TLSValidationReport(
            material=material,
            findings=tuple(findings),
            not_valid_after=not_after,
        )

    def _check_file(
        self,
        path: Path,
        scope: str,
        findings: list[TLSValidationFinding],
    ) -> bool:
        if not path.is_file():
            findings.append(
                TLSValidationFinding(
                    scope=scope,
                    check="exists",
                    severity=TLSValidationSeverity.ERROR,
                    message="File does not exist.",
                    path=path,
                )
            )
            return False
        if not os.access(path, os.R_OK):
            findings.append(
                TLSValidationFinding(
                    scope=scope,
                    check="readable",
                    severity=TLSValidationSeverity.ERROR,
                    message="File is not readable by the current user.",
                    path=path,
                )
            )
            return False
        return True


def _load_certificate(path: Path) -> x509.Certificate:
    data = path.read_bytes()
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError:
        return x509.load_der_x509_certificate(data)


def _load_private_key(path: Path) -> PrivateKeyProtocol:
    data = path.read_bytes()
    private_key = serialization.load_pem_private_key(data, password=None)
    return cast(PrivateKeyProtocol, private_key)


def _public_keys_match(cert: x509.Certificate, private_key: PrivateKeyProtocol) -> bool:
    cert_key = cert.public_key()
    try:
        key_public = private_key.public_key()
    except AttributeError:  # pragma: no cover
        return False
    cert_bytes = cert_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    key_bytes = key_public.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return cert_bytes == key_bytes


__all__ = [
    "TLSConfigurationError",
    "TLSInspector",
    "TLSMaterial",
    "TLSValidationFinding",
    "TLSValidationReport",
    "TLSValidationSeverity",
    "TLSValidator",
]
