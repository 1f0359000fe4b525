"""
Tests for orphan removal from content folders.
"""

from packsync.core.cleanup import cleanup_folder


def populate(folder, names):
    folder.mkdir(parents=True, exist_ok=True)
    for name in names:
        (folder / name).write_bytes(b"x")


def test_removes_unexpected_entries(tmp_path):
    populate(tmp_path, ["keep.jar", "stale.jar", "old.zip"])

    removed = cleanup_folder(tmp_path, {"keep.jar"})

    assert removed == ["old.zip", "stale.jar"]
    assert [p.name for p in tmp_path.iterdir()] == ["keep.jar"]


def test_protected_names_survive(tmp_path):
    populate(
        tmp_path,
        ["Figura-Mod.jar", "fragmentskin.jar", "modcache.bin", "shaderpacks", "junk.jar"],
    )

    removed = cleanup_folder(tmp_path, set())

    assert removed == ["junk.jar"]
    assert len(list(tmp_path.iterdir())) == 4


def test_extra_protected_names(tmp_path):
    populate(tmp_path, ["journeymap.jar", "junk.jar"])

    removed = cleanup_folder(tmp_path, set(), extra_protected=["JourneyMap"])

    assert removed == ["junk.jar"]


def test_removes_directories_but_does_not_descend_into_kept_ones(tmp_path):
    (tmp_path / "stale-dir" / "nested").mkdir(parents=True)
    (tmp_path / "kept-dir").mkdir()
    (tmp_path / "kept-dir" / "anything.jar").write_bytes(b"x")

    removed = cleanup_folder(tmp_path, {"kept-dir"})

    assert removed == ["stale-dir"]
    assert (tmp_path / "kept-dir" / "anything.jar").exists()


def test_missing_folder(tmp_path):
    assert cleanup_folder(tmp_path / "nope", {"a"}) == []


def test_deletion_errors_are_logged(tmp_path, monkeypatch, caplog):
    populate(tmp_path, ["locked.jar", "stale.jar"])

    def flaky_remove(path):
        if path.name == "locked.jar":
            raise PermissionError("in use")
        path.unlink()

    monkeypatch.setattr("packsync.core.cleanup.remove_path", flaky_remove)

    removed = cleanup_folder(tmp_path, set())

    assert removed == ["stale.jar"]
    assert (tmp_path / "locked.jar").exists()
    assert "locked.jar" in caplog.text
