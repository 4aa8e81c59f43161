"""Engine artifact helpers: vendoring the embedder header and library checks."""

from __future__ import annotations

import os
import shutil
import warnings
from pathlib import Path

from engineshell.errors import ProvisionError
from engineshell.models import EMBEDDER_HEADER_PATH, ENGINE_LIBRARY


class EngineLibraryWarning(UserWarning):
    """Warning raised when FLUTTER_ENGINE has no engine shared library."""


def copy_embedder_header(source_root: Path, destination: Path) -> Path:
    """Copy the engine's embedder header to *destination*, replacing any existing file.

    Sources checked out from a store may be read-only, so the destination is
    unlinked first and made writable afterwards.
    """
    header = source_root / EMBEDDER_HEADER_PATH
    if not header.is_file():
        raise ProvisionError(
            "Engine source does not contain the embedder header.",
            hint="Check that the engine input points at the engine repository.",
            context={"operation": "copy_header", "expected": str(header)},
        )
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        if destination.is_symlink() or destination.exists():
            destination.unlink()
        shutil.copyfile(header, destination)
        os.chmod(destination, 0o644)
    except OSError as exc:
        raise ProvisionError(
            "Failed to copy the embedder header.",
            hint="Check write permissions on the working directory.",
            context={
                "operation": "copy_header",
                "source": str(header),
                "destination": str(destination),
                "error": exc.strerror or str(exc),
            },
        ) from exc
    return destination


def check_engine_library(engine_dir: Path) -> bool:
    """Warn when *engine_dir* lacks the engine shared library the bindings link to."""
    if (engine_dir / ENGINE_LIBRARY).exists():
        return True
    warnings.warn(
        f"FLUTTER_ENGINE ({engine_dir}) does not contain {ENGINE_LIBRARY}.",
        EngineLibraryWarning,
        stacklevel=2,
    )
    return False
