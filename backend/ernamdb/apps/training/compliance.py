"""
Compliance aggregator: read-only projection over certificates.

Dashboards call into here instead of re-deriving expiry rules; the
classification itself is `certificates.certificate_status`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..accounts import models as account_models
from . import models
from .certificates import Moment, as_date, certificate_status


@dataclass
class CertificateView:
    certificate_id: str
    certificate_code: str
    recipient_user_id: str
    session_id: str
    issue_date: date
    expiry_date: date
    status: models.CertificateStatus
    standard_code: Optional[str] = None
    standard_title: Optional[str] = None


@dataclass
class ComplianceReport:
    organization_id: Optional[str]
    as_of: date
    valid: int = 0
    expiring: int = 0
    expired: int = 0
    revoked: int = 0
    expiring_certificates: List[CertificateView] = field(default_factory=list)
    expired_certificates: List[CertificateView] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.valid + self.expiring + self.expired + self.revoked


def view_certificate(certificate: models.Certificate, now: Moment = None) -> CertificateView:
    today = as_date(now)
    standard = certificate.session.training_standard if certificate.session is not None else None
    return CertificateView(
        certificate_id=certificate.id,
        certificate_code=certificate.certificate_code,
        recipient_user_id=certificate.recipient_user_id,
        session_id=certificate.session_id,
        issue_date=certificate.issue_date,
        expiry_date=certificate.expiry_date,
        status=certificate_status(certificate.expiry_date, today, certificate.revoked_at),
        standard_code=standard.code if standard is not None else None,
        standard_title=standard.title if standard is not None else None,
    )


def classify_certificates(
    certificates: Iterable[models.Certificate],
    now: Moment = None,
    *,
    organization_id: Optional[str] = None,
) -> ComplianceReport:
    today = as_date(now)
    report = ComplianceReport(organization_id=organization_id, as_of=today)
    for certificate in certificates:
        view = view_certificate(certificate, today)
        if view.status == models.CertificateStatus.VALID:
            report.valid += 1
        elif view.status == models.CertificateStatus.EXPIRING:
            report.expiring += 1
            report.expiring_certificates.append(view)
        elif view.status == models.CertificateStatus.EXPIRED:
            report.expired += 1
            report.expired_certificates.append(view)
        else:
            report.revoked += 1

    report.expiring_certificates.sort(key=lambda v: v.expiry_date)
    report.expired_certificates.sort(key=lambda v: v.expiry_date)
    return report


def aggregate_for_organization(db: Session, organization_id: str, now: Moment = None) -> ComplianceReport:
    """
    Classify every certificate held by the organisation's members. An
    organisation with no members or no certificates yields an all-zero
    report, not an error.
    """
    certificates = (
        db.query(models.Certificate)
        .join(account_models.User, account_models.User.id == models.Certificate.recipient_user_id)
        .filter(account_models.User.organization_id == organization_id)
        .order_by(models.Certificate.issue_date.desc())
        .all()
    )
    return classify_certificates(certificates, now, organization_id=organization_id)


def list_participant_certificates(
    db: Session, participant_id: str, now: Moment = None
) -> List[CertificateView]:
    today = as_date(now)
    certificates = (
        db.query(models.Certificate)
        .filter(models.Certificate.recipient_user_id == participant_id)
        .order_by(models.Certificate.issue_date.desc())
        .all()
    )
    return [view_certificate(c, today) for c in certificates]
