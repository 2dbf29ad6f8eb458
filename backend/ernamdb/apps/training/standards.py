from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import errors, models
from . import schemas as training_schemas
from .outcomes import OperationRecord

logger = logging.getLogger(__name__)

# Fields that would change the meaning of already-issued certificates.
_FROZEN_WHEN_REFERENCED = ("validity_months",)


def normalize_code(code: str) -> str:
    return code.strip().upper()


def get_standard(db: Session, standard_id: str) -> models.TrainingStandard:
    standard = db.get(models.TrainingStandard, standard_id)
    if standard is None:
        raise errors.EntityNotFound("Training standard", standard_id)
    return standard


def list_standards(db: Session, *, include_inactive: bool = False) -> List[models.TrainingStandard]:
    q = db.query(models.TrainingStandard)
    if not include_inactive:
        q = q.filter(models.TrainingStandard.active.is_(True))
    return q.order_by(models.TrainingStandard.code.asc()).all()


def create_standard(
    db: Session,
    payload: training_schemas.TrainingStandardCreate,
    *,
    actor_user_id: Optional[str] = None,
) -> OperationRecord:
    code = normalize_code(payload.code)
    standard = models.TrainingStandard(
        code=code,
        title=payload.title.strip(),
        description=payload.description,
        validity_months=payload.validity_months,
        active=payload.active,
    )
    try:
        with db.begin_nested():
            db.add(standard)
    except IntegrityError:
        db.rollback()
        raise errors.DuplicateStandardCode(code)
    standard_id = standard.id
    db.commit()

    logger.info("Training standard created", extra={"code": code, "actor": actor_user_id})
    return OperationRecord(
        operation="create_standard",
        entity_type="training_standard",
        entity_id=standard_id,
        actor_user_id=actor_user_id,
        after={"code": code, "validity_months": payload.validity_months},
    )


def _is_referenced(db: Session, standard_id: str) -> bool:
    return (
        db.query(models.TrainingSession.id)
        .filter(models.TrainingSession.training_standard_id == standard_id)
        .first()
        is not None
    )


def update_standard(
    db: Session,
    standard_id: str,
    payload: training_schemas.TrainingStandardUpdate,
    *,
    actor_user_id: Optional[str] = None,
) -> OperationRecord:
    standard = get_standard(db, standard_id)
    changes = payload.model_dump(exclude_unset=True)

    referenced = None
    for field in _FROZEN_WHEN_REFERENCED:
        if field in changes and changes[field] != getattr(standard, field):
            if referenced is None:
                referenced = _is_referenced(db, standard_id)
            if referenced:
                raise errors.StandardInUse(standard_id, field)

    before = {field: getattr(standard, field) for field in changes}
    for field, value in changes.items():
        setattr(standard, field, value)
    db.commit()

    return OperationRecord(
        operation="update_standard",
        entity_type="training_standard",
        entity_id=standard_id,
        actor_user_id=actor_user_id,
        before=before,
        after=changes,
    )
