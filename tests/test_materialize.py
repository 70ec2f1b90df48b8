from __future__ import annotations

import io
import tarfile
import zipfile
from pathlib import Path

import pytest

from external_assets.errors import FetchError
from external_assets.extract import PythonArchiveBackend
from external_assets.resolver import Outcome, is_provisioned, materialize_all
from external_assets.specs import AssetSpec, DestinationKind

PY_ONLY = [PythonArchiveBackend()]


class FakeDownloader:
    """Serves bytes from a url -> payload map; unknown urls fail like a 404."""

    def __init__(self, payloads: dict[str, bytes]) -> None:
        self.payloads = payloads
        self.calls: list[str] = []

    def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        try:
            return self.payloads[url]
        except KeyError:
            raise FetchError(f"HTTP 404 while downloading {url}: Not Found") from None


class ExplodingDownloader:
    def fetch(self, url: str) -> bytes:
        raise RuntimeError("boom")


def _zip_bytes(files: dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buf.getvalue()


def _tar_gz_bytes(files: dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def _snapshot(root: Path) -> dict[str, bytes]:
    return {p.relative_to(root).as_posix(): p.read_bytes() for p in root.rglob("*") if p.is_file()}


@pytest.fixture(autouse=True)
def _scratch_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    scratch = tmp_path / "scratch"
    monkeypatch.setenv("EXTERNAL_ASSETS_SCRATCH_DIR", str(scratch))
    return scratch


def test_file_destination_uses_exact_name(tmp_path: Path) -> None:
    base = tmp_path / "pkg"
    dl = FakeDownloader({"https://example.com/jquery.autocomplete-1.5.0.min.js": b"// v1.5.0"})

    results = materialize_all(
        base,
        {"a/b/name.js": "https://example.com/jquery.autocomplete-1.5.0.min.js"},
        downloader=dl,
    )

    assert [r.outcome for r in results] == [Outcome.INSTALLED]
    assert (base / "a" / "b" / "name.js").read_bytes() == b"// v1.5.0"
    assert not (base / "a" / "b" / "jquery.autocomplete-1.5.0.min.js").exists()
    assert results[0].path == base / "a" / "b" / "name.js"


def test_directory_plus_plain_file_keeps_source_name(tmp_path: Path) -> None:
    dl = FakeDownloader({"https://example.com/helper.js": b"// Helper script"})

    results = materialize_all(tmp_path, {"a/b/": "https://example.com/helper.js"}, downloader=dl)

    assert results[0].outcome is Outcome.INSTALLED
    assert (tmp_path / "a" / "b" / "helper.js").read_bytes() == b"// Helper script"


def test_file_target_with_archive_source_is_not_extracted(tmp_path: Path) -> None:
    payload = _zip_bytes({"x.js": "x"})
    dl = FakeDownloader({"https://example.com/lib.zip": payload})

    materialize_all(tmp_path, {"vendor/lib.zip": "https://example.com/lib.zip"}, downloader=dl)

    assert (tmp_path / "vendor" / "lib.zip").read_bytes() == payload
    assert not (tmp_path / "vendor" / "x.js").exists()


def test_single_root_archive_is_stripped(tmp_path: Path) -> None:
    dl = FakeDownloader(
        {
            "https://github.com/vendor/lib/releases/download/v1.0/lib.zip": _zip_bytes(
                {"lib-1.0/x.js": "x", "lib-1.0/sub/y.js": "y"}
            )
        }
    )

    results = materialize_all(
        tmp_path,
        {"a/b/": "https://github.com/vendor/lib/releases/download/v1.0/lib.zip"},
        downloader=dl,
        backends=PY_ONLY,
    )

    assert results[0].outcome is Outcome.INSTALLED
    assert _snapshot(tmp_path / "a" / "b") == {"x.js": b"x", "sub/y.js": b"y"}
    assert not (tmp_path / "a" / "b" / "lib-1.0").exists()


def test_multi_root_archive_is_not_stripped(tmp_path: Path) -> None:
    dl = FakeDownloader({"https://example.com/lib.tar.gz": _tar_gz_bytes({"x.js": "x", "y.css": "y"})})

    materialize_all(tmp_path, {"a/b/": "https://example.com/lib.tar.gz"}, downloader=dl, backends=PY_ONLY)

    assert _snapshot(tmp_path / "a" / "b") == {"x.js": b"x", "y.css": b"y"}


def test_scratch_is_removed_after_archive_install(tmp_path: Path, _scratch_dir: Path) -> None:
    dl = FakeDownloader({"https://example.com/lib.tgz": _tar_gz_bytes({"pkg/x.js": "x"})})

    materialize_all(tmp_path / "pkg", {"lib/": "https://example.com/lib.tgz"}, downloader=dl, backends=PY_ONLY)

    assert list(_scratch_dir.iterdir()) == []


def test_scratch_is_removed_after_corrupt_archive(tmp_path: Path, _scratch_dir: Path) -> None:
    dl = FakeDownloader({"https://example.com/lib.zip": b"not a zip"})

    results = materialize_all(
        tmp_path / "pkg", {"lib/": "https://example.com/lib.zip"}, downloader=dl, backends=PY_ONLY
    )

    assert results[0].outcome is Outcome.FAILED
    assert "zip" in (results[0].reason or "")
    assert list(_scratch_dir.iterdir()) == []
    assert not (tmp_path / "pkg" / "lib").exists()


def test_second_run_skips_everything_and_changes_nothing(tmp_path: Path) -> None:
    mapping = {
        "asset/vendor/lib1.min.js": "https://example.com/lib1.js",
        "asset/css/": "https://example.com/styles.css",
        "asset/vendor/library/": "https://example.com/library-1.0.0.zip",
    }
    dl = FakeDownloader(
        {
            "https://example.com/lib1.js": b"// Lib 1",
            "https://example.com/styles.css": b"/* Styles */",
            "https://example.com/library-1.0.0.zip": _zip_bytes(
                {"library-1.0.0/lib.min.js": "// Library code", "library-1.0.0/dist/bundle.js": "// Bundle"}
            ),
        }
    )

    first = materialize_all(tmp_path, mapping, downloader=dl, backends=PY_ONLY)
    assert [r.outcome for r in first] == [Outcome.INSTALLED] * 3
    assert len(dl.calls) == 3
    before = _snapshot(tmp_path)

    second = materialize_all(tmp_path, mapping, downloader=dl, backends=PY_ONLY)

    assert [r.outcome for r in second] == [Outcome.SKIPPED] * 3
    assert len(dl.calls) == 3
    assert _snapshot(tmp_path) == before


def test_force_refetches_everything(tmp_path: Path) -> None:
    mapping = {
        "asset/a.js": "https://example.com/a.js",
        "asset/lib/": "https://example.com/lib.zip",
    }
    (tmp_path / "asset" / "lib").mkdir(parents=True)
    (tmp_path / "asset" / "a.js").write_bytes(b"old")
    (tmp_path / "asset" / "lib" / "x.js").write_bytes(b"old x")
    dl = FakeDownloader(
        {
            "https://example.com/a.js": b"new",
            "https://example.com/lib.zip": _zip_bytes({"x.js": "new x", "y.js": "y"}),
        }
    )

    results = materialize_all(tmp_path, mapping, force=True, downloader=dl, backends=PY_ONLY)

    assert [r.outcome for r in results] == [Outcome.INSTALLED, Outcome.INSTALLED]
    assert dl.calls == ["https://example.com/a.js", "https://example.com/lib.zip"]
    assert (tmp_path / "asset" / "a.js").read_bytes() == b"new"
    assert (tmp_path / "asset" / "lib" / "x.js").read_bytes() == b"new x"
    assert (tmp_path / "asset" / "lib" / "y.js").read_bytes() == b"y"


def test_partial_failure_is_isolated(tmp_path: Path) -> None:
    dl = FakeDownloader({"https://example.com/exists.js": b"// OK"})

    results = materialize_all(
        tmp_path,
        {
            "asset/vendor/exists.js": "https://example.com/exists.js",
            "asset/vendor/missing.js": "https://example.com/missing.js",
        },
        downloader=dl,
    )

    assert [r.outcome for r in results] == [Outcome.INSTALLED, Outcome.FAILED]
    assert "404" in (results[1].reason or "")
    assert not results[1].ok
    assert (tmp_path / "asset" / "vendor" / "exists.js").read_bytes() == b"// OK"
    assert not (tmp_path / "asset" / "vendor" / "missing.js").exists()


def test_failure_is_logged_as_warning(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("WARNING", logger="external_assets.resolver"):
        results = materialize_all(
            tmp_path, {"asset/missing.js": "https://example.com/missing.js"}, downloader=FakeDownloader({})
        )

    assert results[0].outcome is Outcome.FAILED
    assert "https://example.com/missing.js" in caplog.text
    assert "asset/missing.js" in caplog.text


def test_unexpected_downloader_exception_becomes_failure(tmp_path: Path) -> None:
    results = materialize_all(
        tmp_path, {"asset/a.js": "https://example.com/a.js"}, downloader=ExplodingDownloader()
    )

    assert results[0].outcome is Outcome.FAILED
    assert "boom" in (results[0].reason or "")


def test_unwritable_destination_is_filesystem_failure(tmp_path: Path) -> None:
    # A plain file where a directory is needed.
    (tmp_path / "asset").write_bytes(b"i am a file")
    dl = FakeDownloader({"https://example.com/a.js": b"a"})

    results = materialize_all(tmp_path, {"asset/vendor/a.js": "https://example.com/a.js"}, downloader=dl)

    assert results[0].outcome is Outcome.FAILED
    assert "Cannot write" in (results[0].reason or "")


@pytest.mark.parametrize("bad_destination", ["a\x00b.js", "x" * 300 + "/y.js"])
def test_unusable_destination_path_fails_only_that_entry(tmp_path: Path, bad_destination: str) -> None:
    # Embedded NUL raises ValueError, an over-long name raises ENAMETOOLONG.
    dl = FakeDownloader({"https://example.com/a.js": b"a"})

    results = materialize_all(
        tmp_path,
        {bad_destination: "https://example.com/a.js", "ok.js": "https://example.com/a.js"},
        downloader=dl,
    )

    assert [r.outcome for r in results] == [Outcome.FAILED, Outcome.INSTALLED]
    assert "Cannot write" in (results[0].reason or "")
    assert (tmp_path / "ok.js").read_bytes() == b"a"


def test_leading_separator_stays_inside_base_dir(tmp_path: Path) -> None:
    base = tmp_path / "pkg"
    dl = FakeDownloader({"https://example.com/a.js": b"a"})

    materialize_all(base, {"/asset/a.js": "https://example.com/a.js"}, downloader=dl)

    assert (base / "asset" / "a.js").read_bytes() == b"a"


def test_nested_directories_are_created(tmp_path: Path) -> None:
    dl = FakeDownloader({"https://example.com/deep.js": b"// Deep file"})

    materialize_all(
        tmp_path, {"asset/vendor/very/deep/nested/path/file.js": "https://example.com/deep.js"}, downloader=dl
    )

    assert (tmp_path / "asset" / "vendor" / "very" / "deep" / "nested" / "path" / "file.js").exists()


def test_empty_mapping_does_nothing(tmp_path: Path) -> None:
    assert materialize_all(tmp_path, {}, downloader=FakeDownloader({})) == []
    assert list(tmp_path.iterdir()) == []


def test_accepts_asset_specs(tmp_path: Path) -> None:
    dl = FakeDownloader({"https://example.com/a.js": b"a"})

    results = materialize_all(tmp_path, [AssetSpec("x/a.js", "https://example.com/a.js")], downloader=dl)

    assert results[0].destination == "x/a.js"
    assert results[0].source == "https://example.com/a.js"


def test_empty_directory_target_is_not_provisioned(tmp_path: Path) -> None:
    target = tmp_path / "lib"
    assert not is_provisioned(target, DestinationKind.DIRECTORY)

    target.mkdir()
    assert not is_provisioned(target, DestinationKind.DIRECTORY)

    (target / "stray.txt").write_text("anything", encoding="utf-8")
    assert is_provisioned(target, DestinationKind.DIRECTORY)


def test_directory_with_any_entry_is_skipped(tmp_path: Path) -> None:
    (tmp_path / "lib").mkdir()
    (tmp_path / "lib" / "stray.txt").write_text("unrelated", encoding="utf-8")
    dl = FakeDownloader({})

    results = materialize_all(tmp_path, {"lib/": "https://example.com/lib.zip"}, downloader=dl)

    assert results[0].outcome is Outcome.SKIPPED
    assert dl.calls == []


def test_existing_file_is_skipped_regardless_of_content(tmp_path: Path) -> None:
    (tmp_path / "a.js").write_bytes(b"")
    dl = FakeDownloader({})

    results = materialize_all(tmp_path, {"a.js": "https://example.com/a.js"}, downloader=dl)

    assert results[0].outcome is Outcome.SKIPPED
    assert dl.calls == []
