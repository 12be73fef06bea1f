"""
Working-directory manager.

Every compile runs inside its own temporary directory. The directory is
created immediately before use, populated with the static assets and the
request's images, and removed on every exit path: success, tool failure,
or task cancellation.

Working directories are never shared between compiles or requests.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Mapping

from typst_pdf.app.config import Settings
from typst_pdf.app.services.errors import ResourceError

logger = logging.getLogger("typst_pdf.workdir")

WORKDIR_PREFIX = "typst-pdf-"


def _materialize_assets(workdir: Path, assets_dir: Path) -> None:
    for asset in sorted(assets_dir.iterdir()):
        if asset.is_file():
            shutil.copyfile(asset, workdir / asset.name)


def _write_images(workdir: Path, images: Mapping[str, bytes]) -> None:
    for filename, content in images.items():
        target = (workdir / filename).resolve()
        # Filenames are validated upstream; re-check containment here.
        if target.parent != workdir.resolve():
            raise ResourceError(f"Image path escapes working directory: {filename}")
        target.write_bytes(content)


@contextmanager
def working_directory(
    settings: Settings,
    images: Mapping[str, bytes] | None = None,
) -> Iterator[Path]:
    """
    Yield a fresh, populated working directory and remove it afterwards.

    Raises:
        ResourceError:
            If the directory cannot be created or the assets and images
            cannot be written into it.
    """
    try:
        tmp = tempfile.TemporaryDirectory(prefix=WORKDIR_PREFIX)
    except OSError as exc:
        raise ResourceError(f"Failed to create working directory: {exc}") from exc

    with tmp as raw:
        workdir = Path(raw)
        try:
            _materialize_assets(workdir, settings.assets_dir)
            _write_images(workdir, images or {})
        except OSError as exc:
            raise ResourceError(
                f"Failed to materialize working directory assets: {exc}"
            ) from exc

        logger.debug(
            "workdir_created",
            extra={"workdir": str(workdir), "images": len(images or {})},
        )
        yield workdir
