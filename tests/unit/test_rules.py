"""
Name rules: settings protection, whitelist and content folders.
"""

import pytest

from packsync.archive.rules import (
    contains_any,
    is_content_folder,
    is_settings_file,
    is_whitelisted,
)


class TestSettingsFile:
    @pytest.mark.parametrize(
        "path",
        ["options.txt", "OPTIONS.TXT", "optionsof.txt", "optionsshaders.txt"],
    )
    def test_settings_files(self, path):
        assert is_settings_file(path) is True

    @pytest.mark.parametrize(
        "path",
        ["config/options.txt", "options.json", "myoptions.txt", "mods/a.jar"],
    )
    def test_other_files(self, path):
        assert is_settings_file(path) is False


class TestWhitelist:
    def test_builtin_names_case_insensitive(self):
        assert is_whitelisted("mods/Figura-0.1.jar")
        assert is_whitelisted("mods/FragmentSkin.jar")
        assert is_whitelisted("config/emotes/settings.json")

    def test_regular_file_not_whitelisted(self):
        assert not is_whitelisted("mods/old.jar")

    def test_extra_names(self):
        assert is_whitelisted("mods/MyCustom.jar", extra=("mycustom",))
        assert not is_whitelisted("mods/MyCustom.jar")

    def test_empty_needle_matches_nothing(self):
        assert contains_any("anything", ("",)) is False


def test_content_folders():
    assert is_content_folder("Mods")
    assert is_content_folder("resourcepacks")
    assert not is_content_folder("MyPack")
