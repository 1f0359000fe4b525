"""
Tests for archive reconciliation into an instance directory.
"""

from pathlib import Path

import pytest

from packsync.archive.extractors import ExtractionBackend, InProcessExtractor
from packsync.archive.reconciler import ArchiveReconciler, effective_root
from packsync.core.cancellation import CancellationToken
from packsync.exceptions import Cancelled, ExtractionFailed
from tests.fakes import make_zip


def snapshot(root: Path) -> dict[str, bytes]:
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def staging_dirs(parent: Path) -> list[Path]:
    return [p for p in parent.iterdir() if p.name.startswith(".staging-")]


class FailingBackend(ExtractionBackend):
    def __init__(self):
        self.calls = 0

    @property
    def name(self) -> str:
        return "failing"

    def supports(self, archive: Path) -> bool:
        return True

    async def extract(self, archive, destination, token=None) -> None:
        self.calls += 1
        raise ExtractionFailed("tool crashed")


class CancellingBackend(InProcessExtractor):
    """Extracts, then fires the token as if the user pressed Ctrl+C."""

    def __init__(self, token: CancellationToken):
        self.token = token

    async def extract(self, archive, destination, token=None) -> None:
        await super().extract(archive, destination)
        self.token.cancel("stop")


@pytest.fixture
def reconciler():
    return ArchiveReconciler([InProcessExtractor()])


@pytest.fixture
def instance(tmp_path):
    target = tmp_path / "instance"
    (target / "mods").mkdir(parents=True)
    (target / "config").mkdir()
    (target / "saves" / "world").mkdir(parents=True)
    (target / "mods" / "old.jar").write_bytes(b"old")
    (target / "mods" / "figura-0.1.jar").write_bytes(b"figura")
    (target / "config" / "old.cfg").write_bytes(b"stale")
    (target / "saves" / "world" / "level.dat").write_bytes(b"world")
    (target / "options.txt").write_bytes(b"user settings")
    return target


@pytest.fixture
def pack(tmp_path):
    return make_zip(
        tmp_path / "modpack.zip",
        {
            "mods/a.jar": b"A",
            "mods/lib/b.jar": b"B",
            "config/a.cfg": b"cfg",
            "options.txt": b"pack defaults",
            "optionsof.txt": b"optifine defaults",
        },
    )


class TestEffectiveRoot:
    def test_flattens_single_wrapper_folder(self, tmp_path):
        (tmp_path / "Pack" / "mods").mkdir(parents=True)
        assert effective_root(tmp_path) == tmp_path / "Pack"

    def test_keeps_single_content_folder(self, tmp_path):
        (tmp_path / "Mods").mkdir()
        assert effective_root(tmp_path) == tmp_path

    def test_ignores_hidden_entries(self, tmp_path):
        (tmp_path / "Pack").mkdir()
        (tmp_path / ".DS_Store").write_bytes(b"")
        assert effective_root(tmp_path) == tmp_path / "Pack"

    def test_several_entries_are_not_flattened(self, tmp_path):
        (tmp_path / "Pack").mkdir()
        (tmp_path / "readme.txt").write_bytes(b"")
        assert effective_root(tmp_path) == tmp_path


class TestArchiveReconciler:
    @pytest.mark.asyncio
    async def test_installs_and_removes_orphans(self, reconciler, instance, pack):
        result = await reconciler.reconcile(pack, instance)

        files = snapshot(instance)
        assert files["mods/a.jar"] == b"A"
        assert files["mods/lib/b.jar"] == b"B"
        assert files["config/a.cfg"] == b"cfg"
        assert "mods/old.jar" not in files
        assert "config/old.cfg" not in files
        assert files["mods/figura-0.1.jar"] == b"figura"
        assert files["saves/world/level.dat"] == b"world"

        assert result.extractor == "in-process"
        assert sorted(result.removed) == ["config/old.cfg", "mods/old.jar"]
        assert result.preserved == ["mods/figura-0.1.jar"]

    @pytest.mark.asyncio
    async def test_existing_settings_are_preserved(self, reconciler, instance, pack):
        result = await reconciler.reconcile(pack, instance)

        assert (instance / "options.txt").read_bytes() == b"user settings"
        # Settings the user does not have yet are installed.
        assert (instance / "optionsof.txt").read_bytes() == b"optifine defaults"
        assert result.skipped_protected == ["options.txt"]

    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(self, reconciler, instance, pack):
        await reconciler.reconcile(pack, instance)
        first = snapshot(instance)

        result = await reconciler.reconcile(pack, instance)

        assert snapshot(instance) == first
        assert result.removed == []

    @pytest.mark.asyncio
    async def test_flattens_wrapper_folder(self, reconciler, tmp_path):
        archive = make_zip(
            tmp_path / "wrapped.zip",
            {"MyPack/mods/a.jar": b"A", "MyPack/config/a.cfg": b"cfg"},
        )
        target = tmp_path / "instance"

        result = await reconciler.reconcile(archive, target)

        assert sorted(result.installed) == ["config/a.cfg", "mods/a.jar"]
        assert (target / "mods" / "a.jar").read_bytes() == b"A"
        assert not (target / "MyPack").exists()

    @pytest.mark.asyncio
    async def test_single_content_folder_is_kept(self, reconciler, tmp_path):
        archive = make_zip(tmp_path / "mods-only.zip", {"mods/a.jar": b"A"})
        target = tmp_path / "instance"

        await reconciler.reconcile(archive, target)

        assert (target / "mods" / "a.jar").is_file()
        assert not (target / "a.jar").exists()

    @pytest.mark.asyncio
    async def test_extra_whitelist_entries(self, reconciler, instance, pack):
        (instance / "mods" / "journeymap-cache.jar").write_bytes(b"jm")

        result = await reconciler.reconcile(
            pack, instance, whitelist_extra=["journeymap"]
        )

        assert (instance / "mods" / "journeymap-cache.jar").exists()
        assert "mods/journeymap-cache.jar" in result.preserved

    @pytest.mark.asyncio
    async def test_staging_is_removed(self, reconciler, instance, pack, tmp_path):
        await reconciler.reconcile(pack, instance)
        assert staging_dirs(tmp_path) == []

    @pytest.mark.asyncio
    async def test_corrupt_archive_raises(self, reconciler, instance, tmp_path):
        broken = tmp_path / "broken.zip"
        broken.write_bytes(b"this is not a zip file")
        before = snapshot(instance)

        with pytest.raises(ExtractionFailed):
            await reconciler.reconcile(broken, instance)

        assert staging_dirs(tmp_path) == []
        assert snapshot(instance) == before

    @pytest.mark.asyncio
    async def test_falls_back_to_next_backend(self, instance, pack):
        failing = FailingBackend()
        reconciler = ArchiveReconciler([failing, InProcessExtractor()])

        result = await reconciler.reconcile(pack, instance)

        assert failing.calls == 1
        assert result.extractor == "in-process"
        assert (instance / "mods" / "a.jar").exists()

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, reconciler, instance, pack, tmp_path):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(Cancelled):
            await reconciler.reconcile(pack, instance, token=token)
        assert staging_dirs(tmp_path) == []

    @pytest.mark.asyncio
    async def test_cancelled_after_extraction(self, instance, pack, tmp_path):
        token = CancellationToken()
        reconciler = ArchiveReconciler([CancellingBackend(token)])

        with pytest.raises(Cancelled):
            await reconciler.reconcile(pack, instance, token=token)

        assert staging_dirs(tmp_path) == []
        assert (instance / "mods" / "old.jar").exists()
