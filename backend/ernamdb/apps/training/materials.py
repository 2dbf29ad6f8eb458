from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from . import errors, models, store
from . import schemas as training_schemas
from .outcomes import OperationRecord


def add_material(
    db: Session,
    session_id: str,
    payload: training_schemas.SessionMaterialCreate,
    *,
    actor_user_id: Optional[str] = None,
) -> OperationRecord:
    """Attach a file reference; the file itself stays in external storage."""
    store.get_session(db, session_id)
    material = models.SessionMaterial(
        session_id=session_id,
        title=payload.title.strip(),
        file_url=payload.file_url,
        kind=payload.kind,
        uploaded_by_user_id=actor_user_id,
    )
    db.add(material)
    db.flush()
    material_id = material.id
    db.commit()

    return OperationRecord(
        operation="add_material",
        entity_type="session_material",
        entity_id=material_id,
        actor_user_id=actor_user_id,
        session_id=session_id,
        after={"title": payload.title, "file_url": payload.file_url},
    )


def list_materials(db: Session, session_id: str) -> List[models.SessionMaterial]:
    return (
        db.query(models.SessionMaterial)
        .filter(models.SessionMaterial.session_id == session_id)
        .order_by(models.SessionMaterial.created_at.asc())
        .all()
    )


def remove_material(
    db: Session,
    material_id: str,
    *,
    actor_user_id: Optional[str] = None,
) -> OperationRecord:
    material = db.get(models.SessionMaterial, material_id)
    if material is None:
        raise errors.EntityNotFound("Material", material_id)
    before = {"title": material.title, "file_url": material.file_url}
    session_id = material.session_id
    db.delete(material)
    db.commit()

    # The caller decides whether to delete the stored file.
    return OperationRecord(
        operation="remove_material",
        entity_type="session_material",
        entity_id=material_id,
        actor_user_id=actor_user_id,
        session_id=session_id,
        before=before,
        after={"removed": True},
    )
