import json

import pytest

from nodestore.storage.errors import DuplicateRecord, StorageError
from nodestore.storage.memory import MemoryStore
from nodestore.storage.models import Node


@pytest.fixture
def store():
    return MemoryStore()


def test_create_fetch_round_trip(store):
    node = Node.new("web01")
    node.override = {"nginx": {"port": 8080}}
    store.create(node)

    fetched = store.fetch("web01")

    assert fetched == node
    assert store.exists("web01")


def test_create_refuses_duplicate_and_keeps_original(store):
    first = Node.new("web01")
    first.run_list = ["recipe[nginx]"]
    store.create(first)

    with pytest.raises(DuplicateRecord):
        store.create(Node.new("web01"))

    assert store.fetch("web01").run_list == ["recipe[nginx]"]


def test_fetch_missing_returns_none(store):
    assert store.fetch("nope") is None


def test_fetched_nodes_are_independent_copies(store):
    store.save(Node.new("web01"))

    fetched = store.fetch("web01")
    fetched.normal["changed"] = True
    fetched.run_list.append("recipe[x]")

    again = store.fetch("web01")
    assert again.normal == {}
    assert again.run_list == []
    assert again is not fetched


def test_saved_node_is_not_aliased(store):
    node = Node.new("web01")
    store.save(node)
    node.default["late"] = 1

    assert store.fetch("web01").default == {}


def test_save_overwrites(store):
    store.save(Node.new("web01"))
    updated = Node.new("web01")
    updated.chef_environment = "production"
    store.save(updated)

    assert store.fetch("web01").chef_environment == "production"


def test_delete_and_list_names(store):
    for name in ("a", "b", "c"):
        store.create(Node.new(name))

    assert store.delete("b") is True
    assert store.delete("b") is False
    assert set(store.list_names()) == {"a", "c"}


def test_keyed_store_is_partitioned_by_kind(store):
    store.set("environment", "web01", {"name": "web01"})
    store.save(Node.new("web01"))

    assert store.get_list("environment") == ["web01"]
    assert store.list_names() == ["web01"]
    assert store.get("role", "web01") == (None, False)


def test_snapshot_reloads_nodes(tmp_path):
    path = tmp_path / "state" / "nodes.json"
    store = MemoryStore(state_path=str(path))
    node = Node.new("web01")
    node.run_list = ["recipe[nginx]"]
    node.automatic = {"platform": "debian", "cpu": {"total": 4}}
    store.create(node)
    store.create(Node.new("web02"))
    store.delete("web02")

    reloaded = MemoryStore(state_path=str(path))

    assert reloaded.list_names() == ["web01"]
    assert reloaded.fetch("web01") == node
    assert json.loads(path.read_text())["node"][0]["name"] == "web01"


def test_corrupt_snapshot_raises(tmp_path):
    path = tmp_path / "nodes.json"
    path.write_text("{not json")

    with pytest.raises(StorageError):
        MemoryStore(state_path=str(path))


def _unwritable_path(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    return blocker / "nodes.json"


def test_failed_snapshot_undoes_create(tmp_path):
    store = MemoryStore()
    store.state_path = _unwritable_path(tmp_path)

    with pytest.raises(StorageError):
        store.create(Node.new("web01"))

    assert store.fetch("web01") is None
    assert store.list_names() == []


def test_failed_snapshot_undoes_save_and_delete(tmp_path):
    path = tmp_path / "nodes.json"
    store = MemoryStore(state_path=str(path))
    original = Node.new("web01")
    original.normal = {"keep": True}
    store.create(original)

    store.state_path = _unwritable_path(tmp_path)
    changed = Node.new("web01")
    changed.normal = {"keep": False}
    with pytest.raises(StorageError):
        store.save(changed)
    with pytest.raises(StorageError):
        store.delete("web01")

    assert store.fetch("web01") == original


def test_snapshot_refuses_unregistered_kind(tmp_path):
    store = MemoryStore(state_path=str(tmp_path / "nodes.json"))

    with pytest.raises(StorageError) as excinfo:
        store.set("role", "web", {"name": "web"})

    assert excinfo.value.detail["kind"] == "role"
    assert store.get("role", "web") == (None, False)
