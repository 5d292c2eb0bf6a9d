"""Tests for scan-result reconciliation."""

from __future__ import annotations

from pathlib import Path

from gameshelf.core.reconciler import LibraryIndex, MatchRule, Reconciler
from gameshelf.models.library_entry import LibraryEntry
from gameshelf.models.scan_result import EpicScanResult, ManualScanResult, SteamScanResult
from gameshelf.scanners.manual import ManualScanner


def _steam(app_id: str, name: str) -> SteamScanResult:
    return SteamScanResult(
        original_name=name,
        install_path=f"D:/Steam/steamapps/common/{name}",
        source_app_id=app_id,
    )


def _always(exists: bool):
    return lambda _path: exists


class TestMatching:
    def test_id_match(self) -> None:
        existing = [LibraryEntry(id="steam-620", title="Portal 2", source="steam", source_app_id="620")]
        result = Reconciler(_always(True)).reconcile([_steam("620", "Portal 2")], existing)
        assert result.new_games == []
        assert result.known[0].rule == MatchRule.ID
        assert result.known[0].entry.id == "steam-620"

    def test_known_steam_id_yields_no_new_games(self) -> None:
        existing = [LibraryEntry(id="steam-100", title="Portal 2", source="steam", source_app_id="100")]
        result = Reconciler(_always(True)).reconcile([_steam("100", "Portal 2")], existing)
        assert result.new_games == []

    def test_exe_path_match_is_normalized(self) -> None:
        existing = [LibraryEntry(id="custom-1", title="Hades", exe_path="C:\\Games\\Hades\\Hades.exe")]
        scanned = ManualScanResult(
            original_name="Hades", install_path="E:/Elsewhere", exe_path="c:/games/hades/HADES.exe"
        )
        result = Reconciler(_always(True)).reconcile([scanned], existing)
        assert result.known[0].rule == MatchRule.EXE_PATH

    def test_install_dir_containment(self) -> None:
        existing = [LibraryEntry(id="custom-1", title="Control", install_dir="C:/Epic/Control")]
        scanned = EpicScanResult(
            original_name="Control", install_path="C:/Epic/Control/bin", exe_path="C:/Epic/Control/bin/Control.exe"
        )
        matched = Reconciler().match_existing(scanned, existing)
        assert matched is not None
        assert matched[1] == MatchRule.INSTALL_DIR

    def test_parent_dir_is_not_a_match(self) -> None:
        index = LibraryIndex([LibraryEntry(id="custom-1", title="Control", install_dir="C:/Epic/Control/bin")])
        scanned = EpicScanResult(original_name="Control", install_path="C:/Epic/Control")
        assert index.match(scanned) is None

    def test_sibling_prefix_is_not_a_match(self) -> None:
        index = LibraryIndex([LibraryEntry(id="custom-1", title="Game", install_dir="C:/Games/Game")])
        scanned = ManualScanResult(original_name="Game 2", install_path="C:/Games/Game 2")
        assert index.match(scanned) is None

    def test_new_game(self) -> None:
        result = Reconciler(_always(True)).reconcile([_steam("220", "Half-Life 2")], [])
        assert [r.source_app_id for r in result.new_games] == ["220"]
        assert result.known == []

    def test_batch_duplicates_collapse(self) -> None:
        first = ManualScanResult(original_name="Hades", install_path="C:/Games/Hades", exe_path="C:/Games/Hades/Hades.exe")
        dup = ManualScanResult(original_name="Hades copy", install_path="C:/Other", exe_path="c:\\games\\hades\\hades.exe")
        result = Reconciler(_always(True)).reconcile([first, dup], [])
        assert result.new_games == [first]


class TestMissing:
    def test_exe_entries_checked_on_disk(self) -> None:
        gone = LibraryEntry(id="custom-1", title="Gone", exe_path="C:/Gone/gone.exe")
        here = LibraryEntry(id="custom-2", title="Here", exe_path="C:/Here/here.exe")
        reconciler = Reconciler(lambda path: path == "C:/Here/here.exe")
        result = reconciler.reconcile([], [gone, here])
        assert result.missing_games == [gone]

    def test_steam_entry_missing_only_when_source_scanned(self) -> None:
        entry = LibraryEntry(id="steam-400", title="Portal", source="steam", source_app_id="400")
        reconciler = Reconciler(_always(True))

        scanned = reconciler.reconcile([_steam("620", "Portal 2")], [entry])
        assert scanned.missing_games == [entry]

        not_scanned = reconciler.reconcile([], [entry], scanned_sources=["epic"])
        assert not_scanned.missing_games == []

    def test_still_installed_steam_entry_not_missing(self) -> None:
        entry = LibraryEntry(id="steam-620", title="Portal 2", source="steam", source_app_id="620")
        result = Reconciler(_always(True)).reconcile([_steam("620", "Portal 2")], [entry])
        assert result.missing_games == []

    def test_uncheckable_entry_never_missing(self) -> None:
        entry = LibraryEntry(id="custom-9", title="Somewhere", source="manual")
        result = Reconciler(_always(False)).reconcile([], [entry], scanned_sources=["manual"])
        assert result.missing_games == []


class TestSharedInstallDirectory:
    def test_two_loose_executables_are_separate_games(self) -> None:
        doom = ManualScanResult(original_name="Doom", install_path="C:/Games", exe_path="C:/Games/Doom.exe")
        quake = ManualScanResult(original_name="Quake", install_path="C:/Games", exe_path="C:/Games/Quake.exe")
        result = Reconciler(_always(True)).reconcile([doom, quake], [])
        assert result.new_games == [doom, quake]

    def test_folder_game_under_stored_loose_game_is_new(self) -> None:
        existing = [LibraryEntry(id="custom-1", title="Doom", install_dir="C:/Games", exe_path="C:/Games/Doom.exe")]
        hades = ManualScanResult(
            original_name="Hades", install_path="C:/Games/Hades", exe_path="C:/Games/Hades/Hades.exe"
        )
        result = Reconciler(_always(True)).reconcile([hades], existing)
        assert result.new_games == [hades]
        assert result.known == []

    def test_manual_scan_of_mixed_root(self, tmp_path: Path) -> None:
        for rel in ("Doom.exe", "Quake.exe", "Hades/Hades.exe"):
            path = tmp_path / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"MZ")
        scanned = ManualScanner().scan(tmp_path)

        result = Reconciler(_always(True)).reconcile(scanned, [])
        assert sorted(r.original_name for r in result.new_games) == ["Doom", "Hades", "Quake"]

    def test_moved_executable_still_matches_by_directory(self) -> None:
        existing = [
            LibraryEntry(id="custom-1", title="Hades", install_dir="C:/Games/Hades", exe_path="C:/Games/Hades/Hades.exe")
        ]
        moved = ManualScanResult(
            original_name="Hades", install_path="C:/Games/Hades", exe_path="C:/Games/Hades/x64/Hades.exe"
        )
        matched = Reconciler().match_existing(moved, existing)
        assert matched is not None
        assert matched[1] == MatchRule.INSTALL_DIR
