import pytest

from archrepo_provisioner.lib.artifacts import discover_artifacts, is_artifact, package_name_from_artifact, package_names


@pytest.mark.parametrize(
    "filename,name",
    [
        ("foo-1.0-1-x86_64.pkg.tar.zst", "foo"),
        ("foo-bar-2:1.2.3-4-any.pkg.tar.xz", "foo-bar"),
        ("/srv/repo/python-foo-0.1.r12.gabc-1-x86_64.pkg.tar", "python-foo"),
    ],
)
def test_package_name_from_artifact(filename, name):
    assert package_name_from_artifact(filename) == name


def test_package_name_rejects_non_artifacts():
    with pytest.raises(ValueError):
        package_name_from_artifact("localrepo.db.tar.gz")


def test_signatures_and_index_are_not_artifacts():
    assert is_artifact("foo-1-1-any.pkg.tar.zst")
    assert not is_artifact("foo-1-1-any.pkg.tar.zst.sig")
    assert not is_artifact("localrepo.db.tar.gz")


def test_package_names_dedupes_and_skips_signatures():
    files = [
        "foo-1-1-any.pkg.tar.zst",
        "foo-1-1-any.pkg.tar.zst.sig",
        "bar-2-1-any.pkg.tar.zst",
        "foo-1-2-any.pkg.tar.zst",
    ]
    assert package_names(files) == ["foo", "bar"]


def test_discover_artifacts(tmp_path):
    (tmp_path / "b-1-1-any.pkg.tar.zst").write_bytes(b"")
    (tmp_path / "a-1-1-any.pkg.tar.zst").write_bytes(b"")
    (tmp_path / "a-1-1-any.pkg.tar.zst.sig").write_bytes(b"")
    (tmp_path / "notes.txt").write_text("x")
    found = discover_artifacts(str(tmp_path))
    assert [p.rsplit("/", 1)[-1] for p in found] == ["a-1-1-any.pkg.tar.zst", "b-1-1-any.pkg.tar.zst"]
    assert discover_artifacts(str(tmp_path / "missing")) == []
