"""Tests for the acquisition pipeline.

These tests use mocked HTTP responses and temporary directories.
"""

import hashlib
import struct
import threading

import httpx
import pytest
import respx

from quickget.catalog.models import (
    AdditiveConfig,
    BasicReleases,
    CatalogEntry,
    FormatURL,
    FunctionURL,
    OverwriteConfig,
    PostVerifyChecksum,
    PrefetchChecksum,
)
from quickget.catalog.resolver import resolve
from quickget.errors import (
    CHECKSUM_MISMATCH,
    VERIFICATION_FAILED,
    ConfigEmissionError,
    DownloadError,
    SourceError,
    VerificationError,
)
from quickget.fetch.chunklist import verify_chunklist_paths
from quickget.fetch.pipeline import acquire, download_targets, verify_after, vm_dir_name
from quickget.types import FetchTarget, VerificationResult

IMAGE = b"neon image bytes"
IMAGE_SHA256 = hashlib.sha256(IMAGE).hexdigest()


def neon(**overrides) -> CatalogEntry:
    fields = {
        "name": "neon",
        "pretty_name": "Neon",
        "homepage": "https://example.com/",
        "releases": BasicReleases(["a", "b"]),
        "url": FormatURL("https://x/{RELEASE}.iso"),
    }
    fields.update(overrides)
    return CatalogEntry(**fields)


class TestVmDirName:
    """Tests for vm_dir_name function."""

    def test_without_edition(self):
        """The edition part should be omitted when empty."""
        assert vm_dir_name("ubuntu", "24.04") == "ubuntu-24.04"

    def test_with_edition(self):
        """The edition should be appended."""
        assert vm_dir_name("zorin", "17", "core64") == "zorin-17-core64"


class TestNeonScenario:
    """End-to-end acquisition of a basic entry without checksum."""

    @respx.mock
    def test_resolve_and_acquire(self, tmp_path):
        """One target, no checksum, default config."""
        route = respx.get("https://x/a.iso").mock(
            return_value=httpx.Response(200, content=IMAGE)
        )
        entry = neon()
        assert resolve([entry], "neon", "a", "", "x86_64") is entry

        destination = tmp_path / vm_dir_name("neon", "a")
        with httpx.Client() as client:
            result = acquire(
                client, entry, "a", "", "x86_64", destination, shebang=""
            )

        assert route.call_count == 1
        assert result.targets == [FetchTarget("https://x/a.iso", "a.iso")]
        assert result.paths == [destination / "a.iso"]
        assert result.paths[0].read_bytes() == IMAGE
        assert result.checksum.result == VerificationResult.SKIPPED
        assert result.config_path == tmp_path / "neon-a.conf"
        assert result.config_path.read_text() == (
            'guest_os="linux"\n'
            'disk_img="neon-a/disk.qcow2"\n'
            'iso="neon-a/a.iso"\n'
            'arch="x86_64"\n'
        )


class TestPrefetchChecksum:
    """Tests for checksum comparison against the first download."""

    @respx.mock
    def test_match(self, tmp_path):
        """A matching digest should be reported."""
        respx.get("https://x/a.iso").mock(return_value=httpx.Response(200, content=IMAGE))
        entry = neon(checksum=PrefetchChecksum(lambda r, e, a: IMAGE_SHA256.upper()))

        with httpx.Client() as client:
            result = acquire(client, entry, "a", "", "x86_64", tmp_path / "vm", shebang="")

        assert result.checksum.result == VerificationResult.MATCH
        assert result.checksum.algorithm == "sha256"
        assert result.config_path is not None

    @respx.mock
    def test_mismatch_strict(self, tmp_path):
        """A mismatch should abort before the config; files are kept."""
        respx.get("https://x/a.iso").mock(return_value=httpx.Response(200, content=IMAGE))
        entry = neon(checksum=PrefetchChecksum(lambda r, e, a: "0" * 64))
        destination = tmp_path / "neon-a"

        with httpx.Client() as client:
            with pytest.raises(VerificationError) as exc_info:
                acquire(client, entry, "a", "", "x86_64", destination, shebang="")

        assert exc_info.value.code == CHECKSUM_MISMATCH
        assert (destination / "a.iso").exists()
        assert not (tmp_path / "neon-a.conf").exists()

    @respx.mock
    def test_mismatch_lenient(self, tmp_path):
        """Without strict mode the mismatch is reported and the config written."""
        respx.get("https://x/a.iso").mock(return_value=httpx.Response(200, content=IMAGE))
        entry = neon(checksum=PrefetchChecksum(lambda r, e, a: "0" * 32))

        with httpx.Client() as client:
            result = acquire(
                client, entry, "a", "", "x86_64", tmp_path / "neon-a",
                strict=False, shebang="",
            )

        assert result.checksum.result == VerificationResult.MISMATCH
        assert result.checksum.algorithm == "md5"
        assert result.config_path.exists()

    @respx.mock
    def test_lookup_failure_degrades(self, tmp_path):
        """A failing digest lookup should warn and continue."""
        respx.get("https://x/a.iso").mock(return_value=httpx.Response(200, content=IMAGE))

        def lookup(release, edition, arch):
            raise SourceError("HTTP error fetching sums: 404 Not Found")

        warnings = []
        entry = neon(checksum=PrefetchChecksum(lookup))

        with httpx.Client() as client:
            result = acquire(
                client, entry, "a", "", "x86_64", tmp_path / "neon-a",
                warn=warnings.append, shebang="",
            )

        assert result.checksum.result == VerificationResult.UNAVAILABLE
        assert len(warnings) == 1
        assert "Unable to verify" in warnings[0]
        assert result.config_path.exists()

    @respx.mock
    def test_unknown_algorithm_degrades(self, tmp_path):
        """A digest of unknown length should be unverifiable, not fatal."""
        respx.get("https://x/a.iso").mock(return_value=httpx.Response(200, content=IMAGE))
        entry = neon(checksum=PrefetchChecksum(lambda r, e, a: "abc"))

        with httpx.Client() as client:
            result = acquire(client, entry, "a", "", "x86_64", tmp_path / "vm", shebang="")

        assert result.checksum.result == VerificationResult.UNAVAILABLE
        assert "Can't guess hash algorithm" in result.checksum.message

    @respx.mock
    def test_only_first_file_checked(self, tmp_path):
        """Later targets should not be compared against the digest."""
        respx.get("https://x/a.iso").mock(return_value=httpx.Response(200, content=IMAGE))
        respx.get("https://x/a.sig").mock(return_value=httpx.Response(200, content=b"sig"))
        entry = neon(
            url=FunctionURL(lambda r, e, a: [f"https://x/{r}.iso", f"https://x/{r}.sig"]),
            checksum=PrefetchChecksum(lambda r, e, a: IMAGE_SHA256),
        )

        with httpx.Client() as client:
            result = acquire(client, entry, "a", "", "x86_64", tmp_path / "vm", shebang="")

        assert result.checksum.result == VerificationResult.MATCH
        assert [p.name for p in result.paths] == ["a.iso", "neon-a.iso"]


class TestDownloadTargets:
    """Tests for ordered downloads."""

    @respx.mock
    def test_order_preserved(self, tmp_path):
        """Paths should follow target order."""
        for name in ("one", "two", "three"):
            respx.get(f"https://x/{name}.img").mock(
                return_value=httpx.Response(200, content=name.encode())
            )
        targets = [FetchTarget(f"https://x/{n}.img", f"{n}.img") for n in ("one", "two", "three")]

        with httpx.Client() as client:
            paths, outcome = download_targets(
                client, neon(), targets, "a", "", "x86_64", tmp_path
            )

        assert [p.name for p in paths] == ["one.img", "two.img", "three.img"]
        assert outcome.result == VerificationResult.SKIPPED

    @respx.mock
    def test_digest_looked_up_during_first_download(self, tmp_path):
        """The digest lookup should run while the first file downloads."""
        download_started = threading.Event()
        lookup_done = threading.Event()

        def stream():
            download_started.set()
            lookup_done.wait(timeout=5)
            yield IMAGE

        respx.get("https://x/a.iso").mock(
            return_value=httpx.Response(200, content=stream())
        )

        def lookup(release, edition, arch):
            download_started.wait(timeout=5)
            lookup_done.set()
            return IMAGE_SHA256

        entry = neon(checksum=PrefetchChecksum(lookup))
        targets = [FetchTarget("https://x/a.iso", "a.iso")]

        with httpx.Client() as client:
            _, outcome = download_targets(
                client, entry, targets, "a", "", "x86_64", tmp_path
            )

        assert download_started.is_set()
        assert outcome.result == VerificationResult.MATCH

    @respx.mock
    def test_failure_stops_later_targets(self, tmp_path):
        """A failed download should prevent later downloads."""
        respx.get("https://x/one.img").mock(return_value=httpx.Response(500))
        later = respx.get("https://x/two.img").mock(return_value=httpx.Response(200))
        targets = [
            FetchTarget("https://x/one.img", "one.img"),
            FetchTarget("https://x/two.img", "two.img"),
        ]

        with httpx.Client() as client:
            with pytest.raises(DownloadError):
                download_targets(client, neon(), targets, "a", "", "x86_64", tmp_path)

        assert later.call_count == 0

    @respx.mock
    def test_progress_factory_per_target(self, tmp_path):
        """Each target should get its own progress callback."""
        respx.get("https://x/a.iso").mock(return_value=httpx.Response(200, content=IMAGE))
        seen = []

        def factory(target):
            seen.append(target.filename)
            return lambda received, total: None

        with httpx.Client() as client:
            download_targets(
                client, neon(), [FetchTarget("https://x/a.iso", "a.iso")],
                "a", "", "x86_64", tmp_path, progress_factory=factory,
            )

        assert seen == ["a.iso"]


def chunklist_for(image: bytes, chunk_size: int = 4, chunk_offset: int = 36) -> bytes:
    chunks = [image[i : i + chunk_size] for i in range(0, len(image), chunk_size)]
    table = b"".join(
        struct.pack("<I32s", len(c), hashlib.sha256(c).digest()) for c in chunks
    )
    header = struct.pack(
        "<IIBBBBQQQ", 0x4C4B4E43, 36, 1, 1, 1, 0, len(chunks), chunk_offset, 36 + len(table)
    )
    return header + table


class TestPostVerify:
    """Tests for post-download verification."""

    def macos(self, overrides=None):
        fields = {
            "name": "macos",
            "releases": BasicReleases(["monterey"]),
            "url": FunctionURL(
                lambda r, e, a: [
                    "https://cdn.example.com/BaseSystem.dmg",
                    "https://cdn.example.com/BaseSystem.chunklist",
                ]
            ),
            "checksum": PostVerifyChecksum(verify_chunklist_paths),
            "config": AdditiveConfig(
                lambda paths, release, edition, arch: f"macos_release={release}"
            ),
        }
        fields.update(overrides or {})
        return neon(**fields)

    @respx.mock
    def test_valid_chunklist(self, tmp_path):
        """A valid chunklist should verify and write the additive config."""
        respx.get("https://cdn.example.com/BaseSystem.dmg").mock(
            return_value=httpx.Response(200, content=IMAGE)
        )
        respx.get("https://cdn.example.com/BaseSystem.chunklist").mock(
            return_value=httpx.Response(200, content=chunklist_for(IMAGE))
        )
        destination = tmp_path / "macos-monterey"

        with httpx.Client() as client:
            result = acquire(
                client, self.macos(), "monterey", "", "x86_64", destination, shebang=""
            )

        assert result.checksum.result == VerificationResult.MATCH
        text = result.config_path.read_text()
        assert 'img="macos-monterey/BaseSystem.dmg"' in text
        assert text.endswith("macos_release=monterey\n")

    @respx.mock
    def test_corrupt_image(self, tmp_path):
        """A corrupt image should fail verification in strict mode."""
        respx.get("https://cdn.example.com/BaseSystem.dmg").mock(
            return_value=httpx.Response(200, content=IMAGE[::-1])
        )
        respx.get("https://cdn.example.com/BaseSystem.chunklist").mock(
            return_value=httpx.Response(200, content=chunklist_for(IMAGE))
        )

        with httpx.Client() as client:
            with pytest.raises(VerificationError) as exc_info:
                acquire(
                    client, self.macos(), "monterey", "", "x86_64",
                    tmp_path / "macos-monterey", shebang="",
                )

        assert exc_info.value.code == VERIFICATION_FAILED

    def test_bad_table_offset_is_a_mismatch(self, tmp_path):
        """A chunklist with an unseekable table offset should fail verification."""
        image = tmp_path / "BaseSystem.dmg"
        chunklist = tmp_path / "BaseSystem.chunklist"
        image.write_bytes(IMAGE)
        chunklist.write_bytes(chunklist_for(IMAGE, chunk_offset=2**63))

        outcome = verify_after(self.macos(), [image, chunklist], "sonoma", "", "x86_64")

        assert outcome.result == VerificationResult.MISMATCH

    @respx.mock
    def test_verifier_receives_all_paths(self, tmp_path):
        """The verifier should get every path in target order."""
        respx.get("https://cdn.example.com/BaseSystem.dmg").mock(
            return_value=httpx.Response(200, content=b"1")
        )
        respx.get("https://cdn.example.com/BaseSystem.chunklist").mock(
            return_value=httpx.Response(200, content=b"2")
        )
        received = []

        def verify(paths, release, edition, arch):
            received.extend(p.name for p in paths)
            return True

        entry = self.macos({"checksum": PostVerifyChecksum(verify)})
        with httpx.Client() as client:
            acquire(client, entry, "monterey", "", "x86_64", tmp_path / "m", shebang="")

        assert received == ["BaseSystem.dmg", "BaseSystem.chunklist"]


class TestAcquireFailures:
    """Tests for fatal acquisition failures."""

    def test_url_failure_is_fatal(self, tmp_path):
        """A failing URL strategy should abort before any download."""

        def lookup(release, edition, arch):
            raise SourceError("no mirrors")

        with httpx.Client() as client:
            with pytest.raises(SourceError):
                acquire(client, neon(url=FunctionURL(lookup)), "a", "", "x86_64", tmp_path)

        assert list(tmp_path.iterdir()) == []

    @respx.mock
    def test_overwrite_failure_keeps_files(self, tmp_path):
        """Config failures should surface and keep the downloads."""
        respx.get("https://x/a.iso").mock(return_value=httpx.Response(200, content=IMAGE))

        def broken(paths, release, edition, arch):
            raise ValueError("malformed")

        destination = tmp_path / "neon-a"
        with httpx.Client() as client:
            with pytest.raises(ConfigEmissionError):
                acquire(
                    client, neon(config=OverwriteConfig(broken)), "a", "", "x86_64",
                    destination, shebang="",
                )

        assert (destination / "a.iso").exists()
