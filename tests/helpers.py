"""Test helpers for building synthetic docker save archives."""

import hashlib
import io
import json
import tarfile
from pathlib import Path

JAR_BYTES = b"PK\x03\x04 fake jar payload \x00\x01\x02"


def make_tar_bytes(files: dict[str, bytes], directories: tuple[str, ...] = ()) -> bytes:
    """Create an uncompressed tar holding the given directories and files."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        for directory in directories:
            dir_info = tarfile.TarInfo(directory)
            dir_info.type = tarfile.DIRTYPE
            dir_info.mode = 0o755
            tar.addfile(dir_info)

        for name, content in files.items():
            file_info = tarfile.TarInfo(name)
            file_info.size = len(content)
            tar.addfile(file_info, fileobj=io.BytesIO(content))
    return buffer.getvalue()


def app_layer(content: bytes = JAR_BYTES, path: str = "opt/app/app.jar") -> dict[str, bytes]:
    return {path: content}


def base_layer() -> dict[str, bytes]:
    return {"etc/os-release": b"NAME=Alpine Linux\n", "bin/busybox": b"\x7fELF"}


def write_image_archive(
    tar_path: Path,
    layers: list[dict[str, bytes]],
    repo_tags: list[str] | None = None,
    layout: str = "legacy",
    with_manifest: bool = True,
) -> Path:
    """Write a docker save style archive.

    Args:
        tar_path: Output path
        layers: File maps, one per layer, bottom layer first
        repo_tags: RepoTags of the manifest entry
        layout: "legacy" (<id>/layer.tar), "flat" (<id>.tar) or "oci"
            (blobs/sha256/<digest>)
        with_manifest: Whether to include manifest.json
    """
    config_content = json.dumps({"architecture": "amd64", "os": "linux"}).encode("utf-8")
    config_hash = hashlib.sha256(config_content).hexdigest()

    members: dict[str, bytes] = {}
    layer_paths = []
    for layer_files in layers:
        layer_content = make_tar_bytes(layer_files)
        layer_hash = hashlib.sha256(layer_content).hexdigest()

        if layout == "legacy":
            layer_path = f"{layer_hash}/layer.tar"
            members[f"{layer_hash}/VERSION"] = b"1.0"
            members[f"{layer_hash}/json"] = json.dumps({"id": layer_hash}).encode("utf-8")
        elif layout == "flat":
            layer_path = f"{layer_hash}.tar"
        elif layout == "oci":
            layer_path = f"blobs/sha256/{layer_hash}"
        else:
            raise ValueError(f"Unknown layout: {layout}")

        members[layer_path] = layer_content
        layer_paths.append(layer_path)

    if layout == "oci":
        config_path = f"blobs/sha256/{config_hash}"
        members["oci-layout"] = b'{"imageLayoutVersion": "1.0.0"}'
    else:
        config_path = f"{config_hash}.json"
    members[config_path] = config_content

    if with_manifest:
        manifest = [
            {
                "Config": config_path,
                "RepoTags": repo_tags if repo_tags is not None else [],
                "Layers": layer_paths,
            }
        ]
        members["manifest.json"] = json.dumps(manifest).encode("utf-8")

    Path(tar_path).write_bytes(make_tar_bytes(members))
    return Path(tar_path)


def write_corrupt_archive(tar_path: Path) -> Path:
    Path(tar_path).write_bytes(b"this is definitely not a tar archive " * 40)
    return Path(tar_path)


class FakeBackend:
    """In-memory build backend recording every call."""

    def __init__(self, build_status: int = 0, export_status: int = 0):
        self.build_status = build_status
        self.export_status = export_status
        self.builds: list[dict] = []
        self.exports: list[tuple[str, Path]] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass

    async def build(self, context_dir: Path, image_ref: str) -> int:
        self.builds.append(
            {
                "image_ref": image_ref,
                "context_dir": context_dir,
                "files": sorted(p.name for p in context_dir.iterdir()),
                "dockerfile": (context_dir / "Dockerfile").read_text(encoding="utf-8"),
                "artifact": (context_dir / "app.jar").read_bytes(),
            }
        )
        return self.build_status

    async def export(self, image_ref: str, destination: Path) -> int:
        self.exports.append((image_ref, destination))
        # A failing export may still leave a partial file behind
        destination.write_bytes(f"exported {image_ref}".encode("utf-8"))
        return self.export_status
