"""Tests for the per-archive pipeline and batch driver."""

import pytest

from docker_tz_creator.exceptions import (
    ArtifactNotFoundError,
    ExportError,
    ExtractionError,
    TzCreatorError,
)
from docker_tz_creator.pipeline import (
    archive_stem,
    find_image_archives,
    process_directory,
    process_image_archive,
)
from tests.helpers import (
    JAR_BYTES,
    FakeBackend,
    app_layer,
    base_layer,
    write_corrupt_archive,
    write_image_archive,
)


def test_archive_stem(tmp_path):
    """Test default names derived from archive file names."""
    assert archive_stem(tmp_path / "billing.tar") == "billing"
    assert archive_stem(tmp_path / "billing-service.TAR") == "billing-service"
    assert archive_stem(tmp_path / "v1.2.tar") == "v1.2"
    assert archive_stem(tmp_path / "Billing.tar") == "billing"


def test_archive_stem_empty(tmp_path):
    """Test that a file named only .tar cannot supply an image name."""
    with pytest.raises(TzCreatorError, match="image name"):
        archive_stem(tmp_path / ".tar")


def test_find_image_archives(tmp_path):
    """Test that only *.tar files are picked up, in name order."""
    (tmp_path / "b.tar").write_bytes(b"")
    (tmp_path / "a.TAR").write_bytes(b"")
    (tmp_path / "notes.txt").write_text("")
    (tmp_path / "dir.tar").mkdir()

    assert [p.name for p in find_image_archives(tmp_path)] == ["a.TAR", "b.tar"]


@pytest.mark.asyncio
async def test_process_image_archive_with_manifest(tmp_path, output_dir, config, temp_root):
    """Test conversion using the name and tag from manifest.json."""
    archive = write_image_archive(
        tmp_path / "export.tar", [base_layer(), app_layer()], repo_tags=["myapp:v2"]
    )
    backend = FakeBackend()

    output_path = await process_image_archive(archive, output_dir, backend, config)

    assert output_path == output_dir / "myapp-tz-v2.tar"
    assert output_path.exists()
    assert backend.builds[0]["image_ref"] == "myapp-tz:v2"
    assert backend.builds[0]["artifact"] == JAR_BYTES
    assert list(temp_root.iterdir()) == []


@pytest.mark.asyncio
async def test_process_image_archive_without_manifest(tmp_path, output_dir, config, temp_root):
    """Test that the file name stem and "latest" are used as defaults."""
    archive = write_image_archive(
        tmp_path / "orders-service.tar", [app_layer()], with_manifest=False
    )
    backend = FakeBackend()

    output_path = await process_image_archive(archive, output_dir, backend, config)

    assert output_path == output_dir / "orders-service-tz-latest.tar"
    assert backend.builds[0]["image_ref"] == "orders-service-tz:latest"
    assert list(temp_root.iterdir()) == []


@pytest.mark.asyncio
async def test_process_image_archive_tag_defaults_to_latest(
    tmp_path, output_dir, config
):
    """Test a RepoTags entry without a tag."""
    archive = write_image_archive(tmp_path / "x.tar", [app_layer()], repo_tags=["myapp"])

    output_path = await process_image_archive(archive, output_dir, FakeBackend(), config)

    assert output_path.name == "myapp-tz-latest.tar"


@pytest.mark.asyncio
async def test_process_image_archive_oci_layout(tmp_path, output_dir, config, temp_root):
    """Test conversion of an OCI layout docker save archive."""
    archive = write_image_archive(
        tmp_path / "oci.tar",
        [base_layer(), app_layer()],
        repo_tags=["registry.local:5000/shop/cart:2.1"],
        layout="oci",
    )

    output_path = await process_image_archive(archive, output_dir, FakeBackend(), config)

    assert output_path.name == "registry.local:5000_shop_cart-tz-2.1.tar"
    assert list(temp_root.iterdir()) == []


@pytest.mark.asyncio
async def test_process_image_archive_artifact_not_found(
    tmp_path, output_dir, config, temp_root
):
    """Test that a missing artifact fails without output or leftovers."""
    archive = write_image_archive(
        tmp_path / "noapp.tar", [base_layer()], repo_tags=["noapp:1"]
    )
    backend = FakeBackend()

    with pytest.raises(ArtifactNotFoundError):
        await process_image_archive(archive, output_dir, backend, config)

    assert backend.builds == []
    assert list(output_dir.iterdir()) == []
    assert list(temp_root.iterdir()) == []


@pytest.mark.asyncio
async def test_process_image_archive_corrupt(tmp_path, output_dir, config, temp_root):
    """Test that a corrupt archive raises ExtractionError and cleans up."""
    archive = write_corrupt_archive(tmp_path / "broken.tar")

    with pytest.raises(ExtractionError):
        await process_image_archive(archive, output_dir, FakeBackend(), config)

    assert list(temp_root.iterdir()) == []


@pytest.mark.asyncio
async def test_process_directory_isolates_failures(tmp_path, output_dir, config, temp_root):
    """Test that one corrupt archive does not stop the batch."""
    input_dir = tmp_path / "old_tars"
    input_dir.mkdir()
    write_image_archive(input_dir / "1-first.tar", [app_layer()], repo_tags=["first:1"])
    write_corrupt_archive(input_dir / "2-second.tar")
    write_image_archive(input_dir / "3-third.tar", [app_layer()], repo_tags=["third:3"])
    backend = FakeBackend()

    summary = await process_directory(input_dir, output_dir, backend, config)

    assert summary.total == 3
    assert summary.succeeded == 2
    assert summary.failed == 1
    assert not summary.ok
    assert summary.failures[0].archive.name == "2-second.tar"
    assert summary.failures[0].reason
    assert sorted(p.name for p in output_dir.iterdir()) == [
        "first-tz-1.tar",
        "third-tz-3.tar",
    ]
    assert list(temp_root.iterdir()) == []


@pytest.mark.asyncio
async def test_process_directory_records_backend_failures(
    tmp_path, output_dir, config, temp_root
):
    """Test that backend failures are recorded per archive."""
    input_dir = tmp_path / "old_tars"
    input_dir.mkdir()
    write_image_archive(input_dir / "a.tar", [app_layer()], repo_tags=["a:1"])
    write_image_archive(input_dir / "b.tar", [app_layer()], repo_tags=["b:1"])

    summary = await process_directory(
        input_dir, output_dir, FakeBackend(build_status=2), config
    )

    assert summary.succeeded == 0
    assert summary.failed == 2
    assert all("exit code: 2" in failure.reason for failure in summary.failures)
    assert list(output_dir.iterdir()) == []
    assert list(temp_root.iterdir()) == []


@pytest.mark.asyncio
async def test_process_directory_unexpected_error(tmp_path, output_dir, config):
    """Test that errors outside the package hierarchy are also isolated."""

    class BrokenBackend(FakeBackend):
        async def build(self, context_dir, image_ref):
            raise RuntimeError("unexpected")

    input_dir = tmp_path / "old_tars"
    input_dir.mkdir()
    write_image_archive(input_dir / "a.tar", [app_layer()], repo_tags=["a:1"])

    summary = await process_directory(input_dir, output_dir, BrokenBackend(), config)

    assert summary.failed == 1
    assert summary.failures[0].reason == "unexpected"


@pytest.mark.asyncio
async def test_process_directory_empty(tmp_path, output_dir, config):
    """Test an input directory without archives."""
    input_dir = tmp_path / "old_tars"
    input_dir.mkdir()

    summary = await process_directory(input_dir, output_dir, FakeBackend(), config)

    assert summary.total == 0
    assert summary.ok


@pytest.mark.asyncio
async def test_process_image_archive_export_failure_keeps_existing_output(
    tmp_path, output_dir, config, temp_root
):
    """Test that a failed export does not remove an earlier archive's output."""
    existing = output_dir / "myapp-tz-v1.tar"
    existing.write_bytes(b"earlier export")
    archive = write_image_archive(tmp_path / "b.tar", [app_layer()], repo_tags=["myapp:v1"])

    with pytest.raises(ExportError):
        await process_image_archive(
            archive, output_dir, FakeBackend(export_status=1), config
        )

    assert existing.read_bytes() == b"earlier export"
    assert list(output_dir.iterdir()) == [existing]
    assert list(temp_root.iterdir()) == []


@pytest.mark.asyncio
async def test_process_directory_rejects_duplicate_output(
    tmp_path, output_dir, config, temp_root
):
    """Test that two archives resolving to the same output keep the first one."""
    input_dir = tmp_path / "old_tars"
    input_dir.mkdir()
    write_image_archive(input_dir / "a.tar", [app_layer()], repo_tags=["myapp:v1"])
    write_image_archive(input_dir / "b.tar", [app_layer()], repo_tags=["myapp:v1"])
    backend = FakeBackend()

    summary = await process_directory(input_dir, output_dir, backend, config)

    assert summary.succeeded == 1
    assert summary.failed == 1
    assert summary.failures[0].archive.name == "b.tar"
    assert "already produced" in summary.failures[0].reason
    assert len(backend.builds) == 1
    assert all(path.exists() for path in summary.outputs)
    assert [p.name for p in output_dir.iterdir()] == ["myapp-tz-v1.tar"]
    assert list(temp_root.iterdir()) == []
