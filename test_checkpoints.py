"""
Checkpoint Ordering Test

Validates that route checkpoints keep a gap-free order when inserted,
deleted and reordered.
"""

import pytest

from checkpoints import (
    CheckpointCreate,
    CheckpointPosition,
    CheckpointUpdate,
    create_checkpoint,
    delete_checkpoint,
    get_checkpoint,
    init_checkpoints_db,
    list_checkpoints,
    reorder_checkpoints,
    update_checkpoint,
)
from core.errors import NotFoundError, ValidationError


@pytest.fixture
def route(db_path):
    """DAR -> MOROGORO -> MBEYA"""
    init_checkpoints_db(db_path)
    for name in ("Dar", "Morogoro", "Mbeya"):
        create_checkpoint(checkpoint(name), db_path=db_path)
    return db_path


def checkpoint(name, **kwargs):
    return CheckpointCreate(name=name, display_name=name.title(), region="Route", country="Tanzania", **kwargs)


def names(db_path, **kwargs):
    return [c.name for c in list_checkpoints(db_path=db_path, **kwargs)]


class TestCreate:

    def test_appends_in_order(self, route):
        checkpoints = list_checkpoints(db_path=route)

        assert [c.name for c in checkpoints] == ["DAR", "MOROGORO", "MBEYA"]
        assert [c.order for c in checkpoints] == [1, 2, 3]

    def test_insert_after_shifts_later_checkpoints(self, route):
        created = create_checkpoint(checkpoint("Iringa", insert_after="morogoro"), db_path=route)

        assert created.order == 3
        assert names(route) == ["DAR", "MOROGORO", "IRINGA", "MBEYA"]
        assert [c.order for c in list_checkpoints(db_path=route)] == [1, 2, 3, 4]

    def test_explicit_order_is_clamped(self, route):
        created = create_checkpoint(checkpoint("Tunduma", order=99), db_path=route)

        assert created.order == 4

    def test_duplicate_name(self, route):
        with pytest.raises(ValidationError):
            create_checkpoint(checkpoint(" dar "), db_path=route)

    def test_insert_after_unknown(self, route):
        with pytest.raises(NotFoundError):
            create_checkpoint(checkpoint("Iringa", insert_after="Nowhere"), db_path=route)

    def test_alternative_names_round_trip(self, route):
        created = create_checkpoint(checkpoint("Tunduma", alternative_names=["TDM", "TUNDUMA BORDER"],
                                               border_crossing=True), db_path=route)

        stored = get_checkpoint(created.id, db_path=route)
        assert stored.alternative_names == ["TDM", "TUNDUMA BORDER"]
        assert stored.border_crossing


class TestUpdateAndDelete:

    def test_delete_closes_the_gap(self, route):
        morogoro = list_checkpoints(db_path=route)[1]

        delete_checkpoint(morogoro.id, db_path=route)

        checkpoints = list_checkpoints(db_path=route)
        assert [c.name for c in checkpoints] == ["DAR", "MBEYA"]
        assert [c.order for c in checkpoints] == [1, 2]
        assert get_checkpoint(morogoro.id, db_path=route) is None

    def test_delete_unknown(self, route):
        with pytest.raises(NotFoundError):
            delete_checkpoint(404, db_path=route)

    def test_inactive_hidden_by_default(self, route):
        mbeya = list_checkpoints(db_path=route)[2]

        update_checkpoint(mbeya.id, CheckpointUpdate(is_active=False, fuel_available=True), db_path=route)

        assert names(route) == ["DAR", "MOROGORO"]
        assert names(route, include_inactive=True) == ["DAR", "MOROGORO", "MBEYA"]
        assert get_checkpoint(mbeya.id, db_path=route).fuel_available

    def test_update_unknown(self, route):
        with pytest.raises(NotFoundError):
            update_checkpoint(404, CheckpointUpdate(region="North"), db_path=route)


class TestReorder:

    def test_reorder(self, route):
        dar, morogoro, mbeya = list_checkpoints(db_path=route)

        count = reorder_checkpoints([
            CheckpointPosition(id=mbeya.id, order=1),
            CheckpointPosition(id=dar.id, order=2),
            CheckpointPosition(id=morogoro.id, order=3),
        ], db_path=route)

        assert count == 3
        assert names(route) == ["MBEYA", "DAR", "MOROGORO"]

    def test_empty_list(self, route):
        with pytest.raises(ValidationError):
            reorder_checkpoints([], db_path=route)

    def test_unknown_id_changes_nothing(self, route):
        dar = list_checkpoints(db_path=route)[0]

        with pytest.raises(ValidationError):
            reorder_checkpoints([
                CheckpointPosition(id=dar.id, order=3),
                CheckpointPosition(id=404, order=1),
            ], db_path=route)

        assert names(route) == ["DAR", "MOROGORO", "MBEYA"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
