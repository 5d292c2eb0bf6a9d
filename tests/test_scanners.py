"""Tests for install-source scanners."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from gameshelf.models.scan_result import GameSource, ScanStatus, SteamScanResult
from gameshelf.scanners import base
from gameshelf.scanners.base import find_executables, is_denied
from gameshelf.scanners.epic import EpicScanner
from gameshelf.scanners.gog import GogScanner
from gameshelf.scanners.manager import ScannerManager
from gameshelf.scanners.manual import ManualScanner
from gameshelf.scanners.rockstar import RockstarScanner
from gameshelf.scanners.steam import SteamScanner
from gameshelf.scanners.ubisoft import UbisoftScanner
from gameshelf.scanners.xbox import XboxScanner


def _touch(path: Path, data: bytes = b"MZ") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def _app_manifest(steamapps: Path, app_id: str, name: str, installdir: str, flags: str = "4") -> None:
    steamapps.mkdir(parents=True, exist_ok=True)
    (steamapps / f"appmanifest_{app_id}.acf").write_text(
        '"AppState"\n{\n'
        f'\t"appid"\t\t"{app_id}"\n'
        f'\t"name"\t\t"{name}"\n'
        f'\t"StateFlags"\t\t"{flags}"\n'
        f'\t"installdir"\t\t"{installdir}"\n'
        '\t"SizeOnDisk"\t\t"1048576"\n'
        "}\n",
        encoding="utf-8",
    )


@pytest.fixture
def manager() -> ScannerManager:
    sm = ScannerManager()
    sm.discover_scanners()
    return sm


class TestScannerManager:
    def test_discovers_every_source(self, manager: ScannerManager) -> None:
        assert {s.source for s in manager.scanners} == set(GameSource)

    def test_get_scanner_by_id(self, manager: ScannerManager) -> None:
        assert isinstance(manager.get_scanner("steam"), SteamScanner)
        assert manager.get_scanner("origin") is None

    def test_absent_root_yields_empty_list(self, manager: ScannerManager, tmp_path: Path) -> None:
        missing = tmp_path / "does-not-exist"
        for scanner in manager.scanners:
            assert scanner.scan(missing) == []
            assert scanner.scan("") == []


class TestFindExecutables:
    def test_deny_list(self) -> None:
        assert is_denied("UnityCrashHandler64.exe")
        assert is_denied("unins000.exe")
        assert is_denied("Setup.exe")
        assert not is_denied("Game.exe")
        assert is_denied("upc.exe", extra_deny=("upc",))

    def test_skips_denied_and_non_exe(self, tmp_path: Path) -> None:
        _touch(tmp_path / "Game.exe")
        _touch(tmp_path / "uninstall.exe")
        _touch(tmp_path / "readme.txt")
        assert [p.name for p in find_executables(tmp_path)] == ["Game.exe"]

    def test_shallowest_copy_wins(self, tmp_path: Path) -> None:
        _touch(tmp_path / "bin" / "x64" / "Game.exe")
        _touch(tmp_path / "Game.exe")
        found = find_executables(tmp_path)
        assert found == [tmp_path / "Game.exe"]

    def test_depth_limit(self, tmp_path: Path) -> None:
        _touch(tmp_path / "a" / "b" / "c" / "Deep.exe")
        _touch(tmp_path / "a" / "b" / "c" / "d" / "TooDeep.exe")
        names = [p.name for p in find_executables(tmp_path, max_depth=3)]
        assert names == ["Deep.exe"]

    def test_ordered_by_depth_then_path(self, tmp_path: Path) -> None:
        _touch(tmp_path / "sub" / "Alpha.exe")
        _touch(tmp_path / "Zeta.exe")
        assert [p.name for p in find_executables(tmp_path)] == ["Zeta.exe", "Alpha.exe"]

    def test_unreadable_subdirectory_is_skipped(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _touch(tmp_path / "Game.exe")
        _touch(tmp_path / "Locked" / "Secret.exe")
        _touch(tmp_path / "Tools" / "Editor.exe")
        real_scandir = os.scandir

        def scandir(path):
            if Path(path).name == "Locked":
                raise PermissionError(13, "Permission denied", str(path))
            return real_scandir(path)

        monkeypatch.setattr(base.os, "scandir", scandir)
        assert [p.name for p in find_executables(tmp_path)] == ["Game.exe", "Editor.exe"]

    def test_unreadable_game_folder_does_not_stop_scan(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _touch(tmp_path / "Locked" / "Locked.exe")
        _touch(tmp_path / "Hades" / "Hades.exe")
        real_scandir = os.scandir

        def scandir(path):
            if Path(path).name == "Locked":
                raise PermissionError(13, "Permission denied", str(path))
            return real_scandir(path)

        monkeypatch.setattr(base.os, "scandir", scandir)
        assert [r.title for r in ManualScanner().scan(tmp_path)] == ["Hades"]


class TestSteamScanner:
    def test_reads_app_manifests(self, tmp_path: Path) -> None:
        _app_manifest(tmp_path / "steamapps", "220", "Half-Life 2", "Half-Life 2")
        results = SteamScanner().scan(tmp_path)
        assert len(results) == 1
        result = results[0]
        assert isinstance(result, SteamScanResult)
        assert result.source_app_id == "220"
        assert result.entry_id() == "steam-220"
        assert result.title == "Half-Life 2"
        assert result.exe_path is None
        assert result.status == ScanStatus.READY
        assert Path(result.install_path) == tmp_path / "steamapps" / "common" / "Half-Life 2"

    def test_skips_runtimes_and_partial_installs(self, tmp_path: Path) -> None:
        steamapps = tmp_path / "steamapps"
        _app_manifest(steamapps, "228980", "Steamworks Common Redistributables", "Steamworks Shared")
        _app_manifest(steamapps, "1493710", "Proton Experimental", "Proton - Experimental")
        _app_manifest(steamapps, "400", "Portal", "Portal", flags="1026")
        _app_manifest(steamapps, "620", "Portal 2", "Portal 2")
        assert [r.source_app_id for r in SteamScanner().scan(tmp_path)] == ["620"]

    def test_additional_library_folders(self, tmp_path: Path) -> None:
        root = tmp_path / "Steam"
        extra = tmp_path / "SteamLibrary"
        _app_manifest(root / "steamapps", "220", "Half-Life 2", "Half-Life 2")
        _app_manifest(extra / "steamapps", "620", "Portal 2", "Portal 2")
        (root / "steamapps" / "libraryfolders.vdf").write_text(
            '"libraryfolders"\n{\n'
            '\t"contentstatsid"\t\t"123"\n'
            f'\t"0"\n\t{{\n\t\t"path"\t\t"{root.as_posix()}"\n\t}}\n'
            f'\t"1"\n\t{{\n\t\t"path"\t\t"{extra.as_posix()}"\n\t}}\n'
            "}\n",
            encoding="utf-8",
        )
        results = SteamScanner().scan(root)
        assert sorted(r.source_app_id for r in results) == ["220", "620"]

    def test_corrupt_manifest_is_skipped(self, tmp_path: Path) -> None:
        steamapps = tmp_path / "steamapps"
        _app_manifest(steamapps, "620", "Portal 2", "Portal 2")
        (steamapps / "appmanifest_999.acf").write_text('"AppState"\n{\n\t"appid"', encoding="utf-8")
        assert [r.source_app_id for r in SteamScanner().scan(tmp_path)] == ["620"]


class TestEpicScanner:
    def test_manifest_and_walk_are_merged(self, tmp_path: Path) -> None:
        fortnite = tmp_path / "Fortnite"
        _touch(fortnite / "FortniteGame" / "Binaries" / "Win64" / "FortniteClient.exe")
        _touch(tmp_path / "Control" / "Control.exe")
        manifests = tmp_path / "Epic Games Launcher" / "Data" / "Manifests"
        manifests.mkdir(parents=True)
        (manifests / "ABC.item").write_text(
            json.dumps({
                "DisplayName": "Fortnite",
                "InstallLocation": str(fortnite),
                "LaunchExecutable": "FortniteGame/Binaries/Win64/FortniteClient.exe",
                "CatalogItemId": "4fe75bbc",
                "CatalogNamespace": "fn",
            }),
            encoding="utf-8",
        )

        results = EpicScanner().scan(tmp_path)
        by_title = {r.title: r for r in results}
        assert set(by_title) == {"Fortnite", "Control"}
        assert by_title["Fortnite"].source_app_id == "4fe75bbc"
        assert by_title["Fortnite"].exe_path.endswith("FortniteClient.exe")
        assert by_title["Control"].source_app_id is None

    def test_launcher_folder_is_not_a_game(self, tmp_path: Path) -> None:
        _touch(tmp_path / "Epic Games Launcher" / "Portal" / "EpicWebHelper.exe")
        assert EpicScanner().scan(tmp_path) == []


class TestGogScanner:
    def test_reads_info_manifest(self, tmp_path: Path) -> None:
        game = tmp_path / "Games" / "Witcher 3"
        _touch(game / "bin" / "x64" / "witcher3.exe")
        (game / "goggame-1207664643.info").write_text(
            json.dumps({
                "gameId": "1207664643",
                "name": "The Witcher 3: Wild Hunt",
                "playTasks": [
                    {"type": "URLTask", "link": "https://example.com"},
                    {"type": "FileTask", "isPrimary": True, "path": "bin\\x64\\witcher3.exe"},
                ],
            }),
            encoding="utf-8",
        )
        results = GogScanner().scan(tmp_path)
        assert len(results) == 1
        assert results[0].source_app_id == "1207664643"
        assert results[0].title == "The Witcher 3: Wild Hunt"
        assert results[0].exe_path == str(game / "bin" / "x64" / "witcher3.exe")

    def test_missing_games_folder(self, tmp_path: Path) -> None:
        (tmp_path / "Galaxy").mkdir()
        assert GogScanner().scan(tmp_path) == []


class TestXboxScanner:
    def test_reads_microsoft_game_config(self, tmp_path: Path) -> None:
        content = tmp_path / "Halo Infinite" / "Content"
        _touch(content / "HaloInfinite.exe")
        _touch(content / "gamelaunchhelper.exe")
        (content / "MicrosoftGame.config").write_text(
            '<?xml version="1.0" encoding="utf-8"?>\n'
            '<Game configVersion="1">\n'
            '  <Identity Name="Microsoft.254428597CFE2" Publisher="CN=Microsoft" Version="1.0.0.0"/>\n'
            '  <ExecutableList><Executable Name="HaloInfinite.exe" Id="Game"/></ExecutableList>\n'
            '  <ShellVisuals DefaultDisplayName="Halo Infinite"/>\n'
            "</Game>\n",
            encoding="utf-8",
        )
        results = XboxScanner().scan(tmp_path)
        assert len(results) == 1
        assert results[0].title == "Halo Infinite"
        assert results[0].package_name == "Microsoft.254428597CFE2"
        assert Path(results[0].install_path) == content


class TestFolderScanners:
    def test_manual_folders_and_loose_executables(self, tmp_path: Path) -> None:
        _touch(tmp_path / "Hades" / "x64" / "Hades.exe")
        _touch(tmp_path / "Celeste.exe")
        _touch(tmp_path / "Empty" / "notes.txt")
        results = ManualScanner().scan(tmp_path)
        assert {r.title for r in results} == {"Hades", "Celeste"}
        assert all(r.source_app_id is None for r in results)

    def test_manual_scan_single_folder(self, tmp_path: Path) -> None:
        _touch(tmp_path / "Hollow Knight" / "hollow_knight.exe")
        _touch(tmp_path / "Hollow Knight" / "UnityCrashHandler64.exe")
        result = ManualScanner().scan_folder(tmp_path / "Hollow Knight")
        assert result is not None
        assert result.exe_path.endswith("hollow_knight.exe")
        assert ManualScanner().scan_folder(tmp_path / "nope") is None

    def test_ubisoft_games_subfolder(self, tmp_path: Path) -> None:
        _touch(tmp_path / "games" / "Far Cry 5" / "bin" / "FarCry5.exe")
        _touch(tmp_path / "UbisoftConnect.exe")
        results = UbisoftScanner().scan(tmp_path)
        assert [r.title for r in results] == ["Far Cry 5"]

    def test_rockstar_skips_launcher(self, tmp_path: Path) -> None:
        _touch(tmp_path / "Launcher" / "Launcher.exe")
        _touch(tmp_path / "Red Dead Redemption 2" / "RDR2.exe")
        results = RockstarScanner().scan(tmp_path)
        assert [r.title for r in results] == ["Red Dead Redemption 2"]
        assert results[0].source == GameSource.ROCKSTAR
