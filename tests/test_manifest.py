import pytest

from servingoperator.manifest import Cluster, Manifest, parse_manifests
from servingoperator.resource import NotFoundError, Unstructured


def _config_map(name, namespace="ns", data=None):
    return Unstructured(
        {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": name, "namespace": namespace},
            "data": dict(data or {}),
        }
    )


def test_parse_single_file_skips_empty_documents(tmp_path):
    path = tmp_path / "a.yaml"
    path.write_text(
        "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: one\n---\n---\n"
        "apiVersion: v1\nkind: Service\nmetadata:\n  name: two\n"
    )
    resources = parse_manifests(path, False)
    assert [(r.kind, r.name) for r in resources] == [("ConfigMap", "one"), ("Service", "two")]


def test_parse_directory_respects_recursive_flag(tmp_path):
    (tmp_path / "b.yaml").write_text("kind: ConfigMap\nmetadata:\n  name: top\n")
    (tmp_path / "notes.txt").write_text("kind: ConfigMap\nmetadata:\n  name: ignored\n")
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / "c.yml").write_text("kind: ConfigMap\nmetadata:\n  name: nested\n")

    flat = parse_manifests(tmp_path, False)
    deep = parse_manifests(str(tmp_path), True)

    assert [r.name for r in flat] == ["top"]
    assert sorted(r.name for r in deep) == ["nested", "top"]


def test_parse_missing_path_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        parse_manifests(tmp_path / "absent", False)


def test_parse_rejects_non_mapping_document(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        parse_manifests(path, False)


def test_cluster_get_missing_raises_not_found():
    with pytest.raises(NotFoundError):
        Cluster().get("v1", "ConfigMap", "ns", "absent")


def test_cluster_apply_then_get_round_trip():
    cluster = Cluster()
    cm = _config_map("config-logging", data={"k": "v"})
    cluster.apply(cm)
    assert cluster.get("v1", "ConfigMap", "ns", "config-logging") == cm
    assert len(cluster) == 1


def test_cluster_returns_copies():
    cluster = Cluster([_config_map("config-logging", data={"k": "v"})])
    fetched = cluster.get("v1", "ConfigMap", "ns", "config-logging")
    fetched.set_nested("changed", "data", "k")
    assert cluster.get("v1", "ConfigMap", "ns", "config-logging").get_nested("data", "k") == "v"


def test_cluster_apply_keeps_existing_status():
    with_status = _config_map("cm")
    with_status.object["status"] = {"phase": "ok"}
    cluster = Cluster([with_status])
    cluster.apply(_config_map("cm", data={"k": "v"}))
    stored = cluster.get("v1", "ConfigMap", "ns", "cm")
    assert stored.get_nested("status") == {"phase": "ok"}
    assert stored.get_nested("data", "k") == "v"


def test_cluster_apply_requires_name():
    with pytest.raises(ValueError):
        Cluster().apply(Unstructured({"apiVersion": "v1", "kind": "Secret"}))


def test_cluster_delete():
    cluster = Cluster([_config_map("cm")])
    cluster.delete("v1", "ConfigMap", "ns", "cm")
    with pytest.raises(NotFoundError):
        cluster.get("v1", "ConfigMap", "ns", "cm")
    with pytest.raises(NotFoundError):
        cluster.delete("v1", "ConfigMap", "ns", "cm")


def test_transform_applies_in_order_without_mutating_original():
    original = _config_map("cm", data={"k": "v"})
    manifest = Manifest([original], Cluster())

    def first(u):
        u.set_nested(u.get_nested("data", "k") + "1", "data", "k")

    def second(u):
        u.set_nested(u.get_nested("data", "k") + "2", "data", "k")

    transformed = manifest.transform(first, second)
    assert transformed.resources[0].get_nested("data", "k") == "v12"
    assert original.get_nested("data", "k") == "v"
    assert transformed.cluster is manifest.cluster


def test_apply_all_and_delete_all():
    cluster = Cluster()
    manifest = Manifest([_config_map("a"), _config_map("b")], cluster)
    manifest.apply_all()
    assert cluster.get("v1", "ConfigMap", "ns", "b").name == "b"
    cluster.delete("v1", "ConfigMap", "ns", "a")
    manifest.delete_all()
    assert len(cluster) == 0


def test_delete_ignores_missing_resource():
    cluster = Cluster([_config_map("kept")])
    manifest = Manifest([], cluster)
    manifest.delete(_config_map("absent"))
    manifest.delete(_config_map("kept"))
    assert len(cluster) == 0