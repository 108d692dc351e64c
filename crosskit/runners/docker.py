"""
Container-backed QEMU runner script.

macOS hosts cannot execute the Linux qemu-user binaries directly, so Linux
targets are run inside a throwaway container: the script copies qemu, the
target sysroot and the binary into a fresh container, runs the binary under
qemu there and removes the container on exit.
"""

import logging
from pathlib import Path
from typing import Optional

from crosskit.core.filesystem import write_executable

logger = logging.getLogger(__name__)

MUSL_IMAGE = "alpine:latest"
GLIBC_IMAGE = "ubuntu:latest"

RUNNER_SCRIPT_TEMPLATE = """\
#!/bin/bash
set -e

# Runs a Linux binary under qemu-user inside a disposable container
QEMU_PATH="{qemu_path}"
QEMU_BINARY="{qemu_binary}"
SYSROOT="{sysroot}"
DOCKER_IMAGE="{image}"

if [[ $# -lt 1 ]]; then
    echo "Usage: $0 <binary> [args...]" >&2
    exit 1
fi

BINARY="$1"
shift

if [[ ! -f "$BINARY" ]]; then
    echo "Error: Binary not found: $BINARY" >&2
    exit 1
fi

BINARY_NAME=$(basename "$BINARY")

CONTAINER_ID=$(docker create --rm -i "$DOCKER_IMAGE" /bin/sh -c "sleep infinity")

cleanup() {{
    docker rm -f "$CONTAINER_ID" >/dev/null 2>&1 || true
}}
trap cleanup EXIT

docker start "$CONTAINER_ID" >/dev/null

docker cp "$QEMU_PATH" "$CONTAINER_ID:/usr/bin/$QEMU_BINARY" >/dev/null
docker exec "$CONTAINER_ID" chmod +x "/usr/bin/$QEMU_BINARY"

if [[ -n "$SYSROOT" && -d "$SYSROOT/lib" ]]; then
    docker cp "$SYSROOT" "$CONTAINER_ID:/sysroot" >/dev/null
fi

docker cp "$BINARY" "$CONTAINER_ID:/tmp/$BINARY_NAME" >/dev/null
docker exec "$CONTAINER_ID" chmod +x "/tmp/$BINARY_NAME"

docker exec "$CONTAINER_ID" "/usr/bin/$QEMU_BINARY" -L /sysroot "/tmp/$BINARY_NAME" "$@"
"""


def container_image(libc: Optional[str]) -> str:
    """Base image whose loader layout matches the target libc."""
    return MUSL_IMAGE if libc == "musl" else GLIBC_IMAGE


def render_runner_script(
    qemu_path: Path, qemu_binary: str, sysroot: Optional[Path], image: str
) -> str:
    """Render the runner script text."""
    return RUNNER_SCRIPT_TEMPLATE.format(
        qemu_path=qemu_path,
        qemu_binary=qemu_binary,
        sysroot=sysroot or "",
        image=image,
    )


def write_runner_script(
    cache_root: Path,
    arch: str,
    libc: Optional[str],
    qemu_path: Path,
    sysroot: Optional[Path],
) -> Path:
    """
    Write the container runner script for a target.

    Args:
        cache_root: Toolchain cache root the script is written to
        arch: Target architecture
        libc: Target libc ('musl' or 'gnu')
        qemu_path: Linux qemu-user binary to copy into the container
        sysroot: Target sysroot to copy into the container, if any

    Returns:
        Path to docker-qemu-runner-<arch>-<libc>.sh (mode 0755)
    """
    libc_name = libc or "gnu"
    script = Path(cache_root) / f"docker-qemu-runner-{arch}-{libc_name}.sh"
    image = container_image(libc)
    write_executable(
        script, render_runner_script(qemu_path, qemu_path.name, sysroot, image)
    )
    logger.debug(f"Wrote container runner script {script} (image {image})")
    return script
