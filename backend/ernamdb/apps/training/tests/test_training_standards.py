from __future__ import annotations

import pytest

from ernamdb.apps.training import errors, materials, models, standards
from ernamdb.apps.training import schemas as training_schemas


def test_code_is_trimmed_and_upper_cased(db_session):
    record = standards.create_standard(
        db_session,
        training_schemas.TrainingStandardCreate(code="  avsec-basic ", title="AVSEC Basic"),
    )

    standard = standards.get_standard(db_session, record.entity_id)
    assert standard.code == "AVSEC-BASIC"
    assert standard.validity_months == 12
    assert standard.active is True


def test_duplicate_code_differs_only_in_case(db_session, make_standard):
    make_standard(code="DG-AWARENESS")
    with pytest.raises(errors.DuplicateStandardCode):
        make_standard(code="dg-awareness")
    assert db_session.query(models.TrainingStandard).count() == 1


def test_negative_validity_rejected_by_schema():
    with pytest.raises(ValueError):
        training_schemas.TrainingStandardCreate(code="X", title="X", validity_months=-1)


def test_unreferenced_standard_can_change_validity(db_session, make_standard):
    standard = make_standard(validity_months=12)

    record = standards.update_standard(
        db_session, standard.id, training_schemas.TrainingStandardUpdate(validity_months=36)
    )

    assert record.before == {"validity_months": 12}
    assert standards.get_standard(db_session, standard.id).validity_months == 36


def test_validity_frozen_once_a_session_references_it(db_session, make_session, make_standard):
    standard = make_standard(validity_months=12)
    make_session(standard=standard)

    with pytest.raises(errors.StandardInUse):
        standards.update_standard(
            db_session, standard.id, training_schemas.TrainingStandardUpdate(validity_months=6)
        )

    record = standards.update_standard(
        db_session,
        standard.id,
        training_schemas.TrainingStandardUpdate(title="Renamed", active=False),
    )
    assert record.after == {"title": "Renamed", "active": False}
    assert standards.get_standard(db_session, standard.id).validity_months == 12


def test_inactive_standards_hidden_by_default(db_session, make_standard):
    live = make_standard(code="LIVE")
    make_standard(code="RETIRED", active=False)

    assert [s.id for s in standards.list_standards(db_session)] == [live.id]
    assert len(standards.list_standards(db_session, include_inactive=True)) == 2


def test_materials_are_references_only(db_session, make_session, admin):
    session = make_session()

    record = materials.add_material(
        db_session,
        session.id,
        training_schemas.SessionMaterialCreate(
            title="Screening checklist",
            file_url="https://files.ernam.test/materials/checklist.pdf",
        ),
        actor_user_id=admin.id,
    )
    (material,) = materials.list_materials(db_session, session.id)
    assert material.id == record.entity_id
    assert material.kind == models.MaterialKind.DOCUMENT
    assert material.uploaded_by_user_id == admin.id

    removed = materials.remove_material(db_session, material.id)
    assert removed.before["file_url"].endswith("checklist.pdf")
    assert materials.list_materials(db_session, session.id) == []

    with pytest.raises(errors.EntityNotFound):
        materials.remove_material(db_session, material.id)
