import json

import pytest
from google.cloud.firestore import GeoPoint

from sources.firebase.config import FirebaseConfig, FirestoreParameters
from sources.firebase.driver import FirebaseClients, FirestoreDriver, open_clients, test_connection as check_connection
from sources.runtime.errors import ConfigurationError
from sources.runtime.loader import create_driver
from sources.runtime.protocol import Collection, SourceConfig, TimeInterval

from .fakes import FakeAuth, FakeCollection, FakeDocument, FakeFirestore, fake_user

CONFIG = {"project_id": "proj", "credentials": json.dumps({"type": "service_account"})}
SOURCE = SourceConfig(source_id="fb", type="firebase", config=CONFIG)
ID = "_firestore_document_id"


def _clients(collections=None, users=()):
    return FirebaseClients(firestore=FakeFirestore(collections or {}), auth=FakeAuth(users))


def _firestore_driver(expression, collections, **config):
    src = SourceConfig(source_id="fb", type="firebase", config={**CONFIG, **config})
    coll = Collection(name="orders", type="firestore", source_id="fb", parameters={"firestore_collection": expression})
    return FirestoreDriver(src, coll, clients=_clients(collections))


def _collect(driver):
    calls = []
    driver.get_objects_for(TimeInterval.all(), lambda objs, pos, total, pct: calls.append((objs, pos, total, pct)))
    assert len(calls) == 1
    return calls[0]


class TestFirestoreCollection:
    def test_flat_collection(self):
        root = FakeCollection("orders", [FakeDocument("o1", {"total": 3}), FakeDocument("o2", {"total": 5})])
        objs, pos, total, pct = _collect(_firestore_driver("orders", {"orders": root}))
        assert objs == [{"total": 3, ID: "o1"}, {"total": 5, ID: "o2"}]
        assert (pos, total, pct) == (0, 2, 0)

    def test_wildcard_with_empty_subcollections_pages_root_twice(self):
        docs = [FakeDocument(f"a{i}", {"x": i}, {"B": FakeCollection("B", [])}) for i in range(150)]
        root = FakeCollection("A", docs)
        objs, _, total, _ = _collect(_firestore_driver("A/*/B", {"A": root}))
        assert objs == []
        assert total == 0
        assert [(o, l) for o, l, _, _ in root.fetches] == [(0, 100), (100, 100)]

    def test_ancestor_ids_are_attached(self):
        c_of_b1 = FakeCollection("C", [FakeDocument("c1", {"v": 1}), FakeDocument("c2", {"v": 2})])
        c_of_b2 = FakeCollection("C", [FakeDocument("c3", {"v": 3})])
        b_of_a1 = FakeCollection("B", [FakeDocument("b1", {}, {"C": c_of_b1}), FakeDocument("b2", {}, {"C": c_of_b2})])
        root = FakeCollection("A", [FakeDocument("a1", {}, {"B": b_of_a1})])

        objs, *_ = _collect(_firestore_driver("A/*/B/*/C", {"A": root}))
        assert objs == [
            {"v": 1, f"{ID}_B_C": "c1", f"{ID}_B": "b1", ID: "a1"},
            {"v": 2, f"{ID}_B_C": "c2", f"{ID}_B": "b1", ID: "a1"},
            {"v": 3, f"{ID}_B_C": "c3", f"{ID}_B": "b2", ID: "a1"},
        ]

    def test_siblings_do_not_share_ancestor_ids(self):
        b1 = FakeCollection("B", [FakeDocument("x", {"n": 1})])
        b2 = FakeCollection("B", [FakeDocument("y", {"n": 2})])
        root = FakeCollection("A", [FakeDocument("a1", {}, {"B": b1}), FakeDocument("a2", {}, {"B": b2})])
        objs, *_ = _collect(_firestore_driver("A/*/B", {"A": root}))
        assert [(o[ID], o[f"{ID}_B"]) for o in objs] == [("a1", "x"), ("a2", "y")]

    def test_empty_documents_are_skipped(self):
        root = FakeCollection("A", [FakeDocument("a1", None), FakeDocument("a2", {}), FakeDocument("a3", {"k": 1})])
        objs, *_ = _collect(_firestore_driver("A", {"A": root}))
        assert objs == [{"k": 1, ID: "a3"}]

    def test_geopoints_flattened_at_depth(self):
        leaf = FakeCollection("B", [FakeDocument("b1", {"meta": {"where": GeoPoint(10.0, 20.0)}})])
        root = FakeCollection("A", [FakeDocument("a1", {}, {"B": leaf})])
        objs, *_ = _collect(_firestore_driver("A/*/B", {"A": root}))
        assert objs[0]["meta"] == {"where.latitude": 10.0, "where.longitude": 20.0}

    def test_page_size_from_config(self):
        root = FakeCollection("A", [FakeDocument(f"a{i}", {"i": i}) for i in range(5)])
        _collect(_firestore_driver("A", {"A": root}, page_size=2))
        assert [n for _, _, n, _ in root.fetches] == [2, 2, 1]

    def test_missing_root_collection_loads_nothing(self):
        clients = _clients()
        coll = Collection(name="orders", type="firestore", source_id="fb", parameters={"firestore_collection": "A/*/B"})
        d = FirestoreDriver(SOURCE, coll, clients=clients)
        assert d.load_collection() == []
        assert [n for _, _, n, _ in clients.firestore.collection("A").fetches] == [0]

    def test_load_collection_on_users_collection(self):
        d = FirestoreDriver(SOURCE, Collection(name="users", type="users", source_id="fb"), clients=_clients())
        with pytest.raises(ConfigurationError, match="not a \\[firestore\\] collection"):
            d.load_collection()

    def test_fetch_error_aborts_whole_load(self, events):
        bad = FakeCollection("B", [], fail_with=RuntimeError("deadline exceeded"))
        ok = FakeCollection("B", [FakeDocument("b0", {"n": 0})])
        root = FakeCollection("A", [FakeDocument("a0", {}, {"B": ok}), FakeDocument("a1", {}, {"B": bad})])
        calls = []
        d = _firestore_driver("A/*/B", {"A": root})
        with pytest.raises(RuntimeError, match="deadline exceeded"):
            d.get_objects_for(TimeInterval.all(), lambda *a: calls.append(a))
        assert calls == []
        failed = next(e for e in events if e.message == "firestore.load.failed")
        assert failed.level == "error"
        assert failed.fields["expression"] == "A/*/B"

    def test_callback_error_propagates(self):
        root = FakeCollection("A", [FakeDocument("a1", {"k": 1})])
        d = _firestore_driver("A", {"A": root})

        def loader(*args):
            raise ValueError("destination full")

        with pytest.raises(ValueError, match="destination full"):
            d.get_objects_for(TimeInterval.all(), loader)


class TestUsersCollection:
    def test_principals_projection(self):
        users = [
            fake_user("u1", "a@x.io", ["password", "google.com"], created=1700000000123, last_login=1700000100000),
            fake_user("u2", disabled=True),
        ]
        coll = Collection(name="users", type="users", source_id="fb")
        d = FirestoreDriver(SOURCE, coll, clients=_clients(users=users))
        objs, pos, total, pct = _collect(d)

        assert (pos, total, pct) == (0, 2, 0)
        assert objs[0] == {
            "email": "a@x.io",
            "uid": "u1",
            "phone": None,
            "sign_in_methods": ["password", "google.com"],
            "disabled": False,
            "created_at": "2023-11-14T22:13:20.000000Z",
            "last_login": "2023-11-14T22:15:00.000000Z",
            "last_refresh": None,
        }
        assert objs[1]["disabled"] is True
        assert objs[1]["sign_in_methods"] == []
        assert objs[1]["created_at"] is None


class TestDriverContract:
    def test_intervals_and_refresh_window(self):
        d = _firestore_driver("A", {})
        assert d.get_all_available_intervals() == [TimeInterval.all()]
        assert d.get_refresh_window().total_seconds() == 86400
        assert d.get_collection_table() == "fb_orders"

    def test_unsupported_collection_type(self):
        with pytest.raises(ConfigurationError, match="only \\[users\\] and \\[firestore\\]"):
            FirestoreDriver(SOURCE, Collection(name="x", type="realtime"), clients=_clients())

    def test_missing_path_expression(self):
        with pytest.raises(ConfigurationError):
            FirestoreDriver(SOURCE, Collection(name="x", type="firestore"), clients=_clients())

    def test_invalid_config(self):
        src = SourceConfig(source_id="fb", type="firebase", config={"project_id": "p"})
        with pytest.raises(ConfigurationError, match="firebase"):
            FirestoreDriver(src, Collection(name="users", type="users"), clients=_clients())

    def test_close_releases_clients(self):
        d = _firestore_driver("A", {})
        with d:
            pass
        assert d.clients.firestore.closed

    def test_resolved_through_loader(self):
        d = create_driver(SOURCE, Collection(name="users", type="users"), clients=_clients())
        assert isinstance(d, FirestoreDriver)

    def test_connection_reads_one_principal(self):
        clients = _clients(users=[fake_user("u1"), fake_user("u2")])
        check_connection(SOURCE, clients=clients)
        assert clients.auth.calls == [1]
        assert not clients.firestore.closed

    def test_bad_service_account(self):
        cfg = FirebaseConfig(project_id="p", credentials=json.dumps({"type": "authorized_user"}))
        with pytest.raises(ConfigurationError, match="credentials"):
            open_clients(cfg)


class TestFirestoreParameters:
    def test_alias_and_normalisation(self):
        p = FirestoreParameters.model_validate({"firestore_collection": " /A/*/B/ "})
        assert p.collection == "A/*/B"
        assert p.path_segments() == ["A", "B"]

    def test_field_name_accepted(self):
        assert FirestoreParameters(collection="A").path_segments() == ["A"]

    @pytest.mark.parametrize("expr", ["", "A/*/", "A/*/*/B", "*"])
    def test_invalid_expressions(self, expr):
        with pytest.raises(ValueError):
            FirestoreParameters.model_validate({"firestore_collection": expr})
