import numpy as np
import pytest

from face_engine.reference_store import ReferenceStore
from tests.helpers import make_embedding
from utils.exceptions import PersistenceError

def test_insert_and_get_by_identity(reference_store):
    embeddings = [make_embedding(i) for i in range(3)]
    record_id = reference_store.insert("E1", embeddings)

    stored = reference_store.get_by_identity("E1")
    assert record_id
    assert len(stored) == 3
    for original, loaded in zip(embeddings, stored):
        np.testing.assert_array_equal(original, loaded)

def test_unknown_identity_returns_empty(reference_store):
    assert reference_store.get_by_identity("nobody") == []
    assert reference_store.get_records("nobody") == []

def test_get_all_groups_records_by_identity(reference_store):
    reference_store.insert("E1", [make_embedding(1), make_embedding(2)])
    reference_store.insert("E1", [make_embedding(3)])
    reference_store.insert("E2", [make_embedding(4)])

    grouped = dict(reference_store.get_all())
    assert set(grouped) == {"E1", "E2"}
    assert len(grouped["E1"]) == 3
    assert len(grouped["E2"]) == 1
    assert reference_store.count() == 3

def test_delete_removes_every_record_for_identity(reference_store):
    reference_store.insert("E1", [make_embedding(1)])
    reference_store.insert("E1", [make_embedding(2)])
    reference_store.insert("E2", [make_embedding(3)])

    assert reference_store.delete_by_identity("E1") == 2
    assert reference_store.get_by_identity("E1") == []
    assert reference_store.identities() == ["E2"]
    assert reference_store.delete_by_identity("E1") == 0

def test_clear_all(reference_store):
    reference_store.insert("E1", [make_embedding(1)])
    reference_store.insert("E2", [make_embedding(2)])
    assert reference_store.clear_all() == 2
    assert reference_store.get_all() == []

def test_insert_rejects_bad_input(reference_store):
    with pytest.raises(ValueError):
        reference_store.insert("E1", [])
    with pytest.raises(ValueError):
        reference_store.insert("E1", [np.zeros(128), np.zeros(64)])
    assert reference_store.count() == 0

def test_records_survive_reopen(tmp_path):
    path = str(tmp_path / "faces.db")
    embedding = make_embedding(5)
    with ReferenceStore(path) as store:
        store.insert("E1", [embedding])

    with ReferenceStore(path) as store:
        records = store.get_records("E1")
        assert len(records) == 1
        np.testing.assert_array_equal(records[0].embeddings[0], embedding)

def test_use_before_open_fails(tmp_path):
    store = ReferenceStore(str(tmp_path / "faces.db"))
    assert not store.is_open
    with pytest.raises(PersistenceError):
        store.get_all()

def test_open_is_idempotent(reference_store):
    reference_store.open()
    assert reference_store.is_open
