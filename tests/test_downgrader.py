"""Tests for the downgrade pipeline, backup and restore."""

import collections
import threading

import bsdiff4
import httpx
import pytest

from builders import make_installation
from cm_toolkit.core.catalog import GameVersionDescriptor, VersionCatalog
from cm_toolkit.core.downgrader import Downgrader, PipelineState, installation_lock, restore_backup
from cm_toolkit.core import downgrader as downgrader_module
from cm_toolkit.core.integrity import checksum_bytes, checksum_file
from cm_toolkit.core.patch_source import PatchSource
from cm_toolkit.errors import (
    ArgumentInvalidError,
    BackupError,
    CommitError,
    NotFoundError,
    OperationCancelledError,
    PatchInProgressError,
    PatchSourceUnavailableError,
    ToolkitIOError,
    UnknownSourceVersionError,
    VerificationFailedError,
)

SOURCE = b"Fallout4 next-gen executable body " * 300
TARGET = b"Fallout4 original executable body " * 280 + b"trailer"
PATCH = bsdiff4.diff(SOURCE, TARGET)
PATCH_URL = "https://patches.example/1.10.163.bsdiff4"


def _catalog(patch_url: str = PATCH_URL, target_crc32: int = None) -> VersionCatalog:
    return VersionCatalog([
        GameVersionDescriptor(
            version="1.10.980",
            display_name="Next-Gen",
            description="",
            patch_url="",
            expected_crc32=checksum_bytes(SOURCE),
            expected_size=len(SOURCE),
            is_next_gen=True,
        ),
        GameVersionDescriptor(
            version="1.10.163",
            display_name="Original",
            description="",
            patch_url=patch_url,
            expected_crc32=checksum_bytes(TARGET) if target_crc32 is None else target_crc32,
            expected_size=len(TARGET),
            is_original=True,
            is_downgrade=True,
        ),
    ])


class _Server:
    """MockTransport handler that serves the patch and records requests."""

    def __init__(self, status_code: int = 200, content: bytes = PATCH):
        self.status_code = status_code
        self.content = content
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, content=self.content)

    def source(self) -> PatchSource:
        return PatchSource(client=httpx.Client(transport=httpx.MockTransport(self)))


@pytest.fixture
def root(tmp_path):
    return make_installation(tmp_path, SOURCE)


def test_downgrade_over_http(root) -> None:
    server = _Server()
    progress = []
    downgrader = Downgrader(root, catalog=_catalog(), patch_source=server.source())

    result = downgrader.downgrade("1.10.163", progress.append)

    assert result.version == "1.10.163"
    assert (root / "Fallout4.exe").read_bytes() == TARGET
    assert (root.parent / "CMT_Backup" / "Fallout4.exe").read_bytes() == SOURCE
    assert not (root / "Fallout4.exe.tmp").exists()
    assert downgrader.state == PipelineState.DONE
    assert [str(r.url) for r in server.requests] == [PATCH_URL]

    percentages = [p.percentage for p in progress]
    assert percentages == sorted(percentages)
    assert percentages[-1] == 100


def test_downgrade_from_local_patch_file(root, tmp_path) -> None:
    patch_file = tmp_path / "1.10.163.bsdiff4"
    patch_file.write_bytes(PATCH)

    Downgrader(root, catalog=_catalog(str(patch_file)), create_backup=False).downgrade("1.10.163")

    assert (root / "Fallout4.exe").read_bytes() == TARGET
    assert not (root.parent / "CMT_Backup").exists()


def test_auxiliary_files_are_backed_up(root) -> None:
    (root / "steam_api64.dll").write_bytes(b"steam")

    Downgrader(root, catalog=_catalog(), patch_source=_Server().source()).downgrade("1.10.163")

    backup = root.parent / "CMT_Backup"
    assert (backup / "steam_api64.dll").read_bytes() == b"steam"
    assert not (backup / "Fallout4Launcher.exe").exists()


def test_existing_backup_is_not_overwritten(root) -> None:
    backup = root.parent / "CMT_Backup"
    backup.mkdir()
    (backup / "Fallout4.exe").write_bytes(b"earlier backup")
    progress = []

    Downgrader(root, catalog=_catalog(), patch_source=_Server().source()).downgrade("1.10.163", progress.append)

    assert (backup / "Fallout4.exe").read_bytes() == b"earlier backup"
    assert any("already present" in p.message for p in progress)


def test_unknown_source_touches_nothing(tmp_path) -> None:
    root = make_installation(tmp_path, b"some other build")
    server = _Server()

    with pytest.raises(UnknownSourceVersionError) as exc_info:
        Downgrader(root, catalog=_catalog(), patch_source=server.source()).downgrade("1.10.163")

    assert exc_info.value.state == "validating-source"
    assert server.requests == []
    assert not (root.parent / "CMT_Backup").exists()
    assert (root / "Fallout4.exe").read_bytes() == b"some other build"


def test_already_at_target_finishes_without_changes(tmp_path) -> None:
    root = make_installation(tmp_path, TARGET)
    server = _Server()
    progress = []

    Downgrader(root, catalog=_catalog(), patch_source=server.source()).downgrade("1.10.163", progress.append)

    assert server.requests == []
    assert not (root.parent / "CMT_Backup").exists()
    assert progress[-1].percentage == 100


def test_unknown_target_version(root) -> None:
    with pytest.raises(ArgumentInvalidError):
        Downgrader(root, catalog=_catalog()).downgrade("9.9.9")


def test_empty_locator_is_unavailable(root) -> None:
    with pytest.raises(PatchSourceUnavailableError) as exc_info:
        Downgrader(root, catalog=_catalog(patch_url="")).downgrade("1.10.163")

    assert exc_info.value.state == "downloading"
    assert (root / "Fallout4.exe").read_bytes() == SOURCE


@pytest.mark.parametrize("status_code, content", [(404, b"not found"), (200, b"")])
def test_download_failures(root, status_code, content) -> None:
    server = _Server(status_code, content)

    with pytest.raises(PatchSourceUnavailableError):
        Downgrader(root, catalog=_catalog(), patch_source=server.source()).downgrade("1.10.163")

    assert (root / "Fallout4.exe").read_bytes() == SOURCE


def test_transport_error_is_chained(root) -> None:
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    source = PatchSource(client=httpx.Client(transport=httpx.MockTransport(refuse)))
    with pytest.raises(PatchSourceUnavailableError) as exc_info:
        Downgrader(root, catalog=_catalog(), patch_source=source).downgrade("1.10.163")

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_verification_failure_keeps_original(root) -> None:
    catalog = _catalog(target_crc32=checksum_bytes(TARGET) ^ 0xFFFF)

    with pytest.raises(VerificationFailedError) as exc_info:
        Downgrader(root, catalog=catalog, patch_source=_Server().source()).downgrade("1.10.163")

    assert exc_info.value.state == "verifying"
    assert (root / "Fallout4.exe").read_bytes() == SOURCE
    assert not (root / "Fallout4.exe.tmp").exists()


def test_unreadable_patched_file_is_a_verification_failure(root, monkeypatch) -> None:
    def flaky_checksum(path):
        if path.suffix == ".tmp":
            raise ToolkitIOError("Cannot read file: locked", path=path)
        return checksum_file(path)

    monkeypatch.setattr(downgrader_module, "checksum_file", flaky_checksum)

    with pytest.raises(VerificationFailedError) as exc_info:
        Downgrader(root, catalog=_catalog(), patch_source=_Server().source()).downgrade("1.10.163")

    assert exc_info.value.state == "verifying"
    assert isinstance(exc_info.value.__cause__, ToolkitIOError)
    assert (root / "Fallout4.exe").read_bytes() == SOURCE
    assert not (root / "Fallout4.exe.tmp").exists()


def test_commit_failure_restores_from_backup(root, monkeypatch) -> None:
    def broken_replace(src, dst):
        # Simulate a replace that damaged the destination before failing
        with open(dst, "wb") as f:
            f.write(b"half written")
        raise OSError("disk full")

    monkeypatch.setattr("cm_toolkit.core.downgrader.os.replace", broken_replace)

    with pytest.raises(CommitError) as exc_info:
        Downgrader(root, catalog=_catalog(), patch_source=_Server().source()).downgrade("1.10.163")

    assert exc_info.value.state == "committing"
    assert (root / "Fallout4.exe").read_bytes() == SOURCE
    assert not (root / "Fallout4.exe.tmp").exists()


def test_insufficient_space_fails_before_download(root, monkeypatch) -> None:
    usage = collections.namedtuple("usage", "total used free")
    monkeypatch.setattr("cm_toolkit.core.downgrader.shutil.disk_usage", lambda path: usage(1, 1, 0))
    server = _Server()

    with pytest.raises(BackupError) as exc_info:
        Downgrader(root, catalog=_catalog(), patch_source=server.source()).downgrade("1.10.163")

    assert exc_info.value.state == "backing-up"
    assert server.requests == []
    assert (root / "Fallout4.exe").read_bytes() == SOURCE


def test_cancellation(root) -> None:
    cancel = threading.Event()
    cancel.set()
    downgrader = Downgrader(root, catalog=_catalog(), patch_source=_Server().source(), cancel_event=cancel)

    with pytest.raises(OperationCancelledError):
        downgrader.downgrade("1.10.163")

    assert downgrader.state == PipelineState.ABORTED
    assert (root / "Fallout4.exe").read_bytes() == SOURCE


def test_concurrent_operation_is_rejected(root) -> None:
    with installation_lock(root):
        with pytest.raises(PatchInProgressError):
            Downgrader(root, catalog=_catalog()).downgrade("1.10.163")


def test_restore_backup_reports_each_file(root) -> None:
    backup = root.parent / "CMT_Backup"
    backup.mkdir()
    (backup / "Fallout4.exe").write_bytes(b"backed up exe")
    (backup / "steam_api64.dll").write_bytes(b"backed up dll")
    progress = []

    restored = restore_backup(root, progress.append)

    assert sorted(p.name for p in restored) == ["Fallout4.exe", "steam_api64.dll"]
    assert (root / "Fallout4.exe").read_bytes() == b"backed up exe"
    assert (root / "steam_api64.dll").read_bytes() == b"backed up dll"
    assert [p.percentage for p in progress] == [0, 50, 100, 100]


def test_restore_without_backup(root) -> None:
    with pytest.raises(NotFoundError):
        restore_backup(root)
