from nodestore.service.indexer import MemoryIndex, flatten, index_terms, indexify
from nodestore.storage.models import Node


def test_flatten_joins_nested_keys_and_expands_lists():
    flat = flatten(
        {
            "name": "web01",
            "override": {"nginx": {"port": 8080, "sites": ["a", "b"]}},
            "automatic": {"ok": True, "none": None, "nics": [{"ip": "10.0.0.1"}]},
        }
    )

    assert flat == {
        "name": ["web01"],
        "override_nginx_port": ["8080"],
        "override_nginx_sites": ["a", "b"],
        "automatic_ok": ["true"],
        "automatic_none": [""],
        "automatic_nics_ip": ["10.0.0.1"],
    }


def test_empty_containers_produce_no_terms():
    assert flatten({"normal": {}, "run_list": []}) == {}


def test_indexify_sorts_and_dedupes():
    assert indexify({"b": ["2", "2"], "a": ["1"]}) == ["a:1", "b:2"]


def test_node_terms():
    node = Node.new("web01")
    node.run_list = ["recipe[nginx]", "role[web]"]
    node.default = {"app": {"version": 1.5}}

    terms = index_terms(node)

    assert "name:web01" in terms
    assert "chef_environment:_default" in terms
    assert "chef_type:node" in terms
    assert "json_class:Chef::Node" in terms
    assert "run_list:recipe[nginx]" in terms
    assert "run_list:role[web]" in terms
    assert "default_app_version:1.5" in terms
    assert terms == sorted(terms)


def test_memory_index_replace_and_remove():
    index = MemoryIndex()
    node = Node.new("web01")
    node.normal = {"tier": "front"}
    index.index(node)

    assert index.search("node", "normal_tier:front") == ["web01"]

    node.normal = {"tier": "back"}
    index.index(node)
    assert index.search("node", "normal_tier:front") == []
    assert index.search("node", "normal_tier:back") == ["web01"]

    index.remove("node", "web01")
    assert index.terms("node", "web01") is None
    index.remove("node", "web01")
    index.remove("role", "missing")


def test_search_is_scoped_by_kind():
    index = MemoryIndex()
    index.index(Node.new("web01"))

    assert index.search("role", "name:web01") == []
