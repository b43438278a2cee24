"""Tests for installation analysis."""

import threading
from pathlib import Path

import pytest

from builders import ba2_bytes, make_installation, version_catalog, write_module
from cm_toolkit.core import session as session_module
from cm_toolkit.core.problems import ProblemType, Severity
from cm_toolkit.core.session import AnalysisSession, analyze
from cm_toolkit.errors import AnalysisInProgressError


@pytest.fixture
def ini_dir(tmp_path):
    directory = tmp_path / "My Games"
    directory.mkdir()
    (directory / "Fallout4.ini").write_text("[Archive]\nbInvalidateOlderFiles=0\n")
    (directory / "Fallout4Prefs.ini").write_text("[Archive]\nbInvalidateOlderFiles=1\n")
    return directory


def test_analyze_installation(tmp_path, ini_dir) -> None:
    root = make_installation(tmp_path)
    data = root / "Data"
    write_module(data, "Fallout4.esm")
    write_module(data, "b_mod.esp", masters=["Fallout4.esm"])
    write_module(data, "A_Mod.esp", masters=["fallout4.esm", "Missing.esm"])
    (data / "Mod - Textures.ba2").write_bytes(ba2_bytes(b"DX10", 5))
    (data / "Broken.esp").write_bytes(b"NOPE")
    (data / "readme.txt").write_text("ignored")

    result = AnalysisSession(ini_directory=ini_dir, catalog=version_catalog()).analyze(root)

    assert [m.file_name for m in result.modules] == ["A_Mod.esp", "b_mod.esp", "Fallout4.esm"]
    assert [a.file_name for a in result.archives] == ["Mod - Textures.ba2"]
    assert result.configuration["Archive.bInvalidateOlderFiles"] == "1"
    assert [p.type for p in result.problems] == [ProblemType.MISSING_MASTER, ProblemType.UNREADABLE_FILE]
    assert result.problems[1].file_path.name == "Broken.esp"
    assert result.problems[1].severity == Severity.WARNING
    assert result.has_errors


def test_missing_data_directory_is_reported(tmp_path, ini_dir) -> None:
    root = tmp_path / "Fallout 4"
    root.mkdir()

    result = analyze(root, ini_directory=ini_dir)

    assert result.modules == ()
    assert result.archives == ()
    assert [p.type for p in result.problems] == [ProblemType.INSTALLATION]
    assert result.problems[0].severity == Severity.ERROR


def test_missing_root_is_reported(tmp_path, ini_dir) -> None:
    result = analyze(tmp_path / "nowhere", ini_directory=ini_dir)
    assert [p.type for p in result.problems] == [ProblemType.INSTALLATION]


def test_last_result_and_rescan(tmp_path, ini_dir) -> None:
    root = make_installation(tmp_path)
    session = AnalysisSession(ini_directory=ini_dir, catalog=version_catalog())
    assert session.scan_problems() == ()

    result = session.analyze(root)

    assert session.last_result is result
    assert session.scan_problems() == ()


def test_concurrent_analyze_is_rejected(tmp_path, ini_dir, monkeypatch) -> None:
    root = make_installation(tmp_path)
    started = threading.Event()
    release = threading.Event()
    real_loader = session_module.load_game_configuration

    def blocking_loader(directory):
        started.set()
        release.wait(timeout=10)
        return real_loader(directory)

    monkeypatch.setattr(session_module, "load_game_configuration", blocking_loader)
    session = AnalysisSession(ini_directory=ini_dir, catalog=version_catalog())
    results = []
    worker = threading.Thread(target=lambda: results.append(session.analyze(root)))
    worker.start()

    try:
        assert started.wait(timeout=10)
        with pytest.raises(AnalysisInProgressError):
            session.analyze(root)
    finally:
        release.set()
        worker.join(timeout=10)

    assert len(results) == 1
    assert results[0].root == root


def test_unlistable_data_directory_is_reported(tmp_path, ini_dir, monkeypatch) -> None:
    root = make_installation(tmp_path)
    real_iterdir = Path.iterdir

    def locked_iterdir(self):
        if self.name == "Data":
            raise PermissionError(13, "Permission denied", str(self))
        return real_iterdir(self)

    monkeypatch.setattr(Path, "iterdir", locked_iterdir)

    result = AnalysisSession(ini_directory=ini_dir, catalog=version_catalog()).analyze(root)

    assert result.modules == ()
    assert [p.type for p in result.problems] == [ProblemType.INSTALLATION]
    assert result.problems[0].severity == Severity.ERROR
    assert result.problems[0].description.startswith("Error analyzing data directory")


@pytest.mark.parametrize("executable, description", [
    (b"next-gen executable", "Unsupported game version: 1.10.980"),
    (b"patched by hand", "Could not determine game version"),
])
def test_game_version_warnings(tmp_path, ini_dir, executable, description) -> None:
    root = make_installation(tmp_path, executable=executable)

    result = AnalysisSession(ini_directory=ini_dir, catalog=version_catalog()).analyze(root)

    assert [p.type for p in result.problems] == [ProblemType.GAME_VERSION]
    assert result.problems[0].severity == Severity.WARNING
    assert result.problems[0].description == description
    assert not result.has_errors


def test_missing_executable_gives_version_warning(tmp_path, ini_dir) -> None:
    root = make_installation(tmp_path)
    (root / "Fallout4.exe").unlink()

    result = AnalysisSession(ini_directory=ini_dir, catalog=version_catalog()).analyze(root)

    assert [p.type for p in result.problems] == [ProblemType.GAME_VERSION]
    assert result.problems[0].description.startswith("Could not determine game version:")
