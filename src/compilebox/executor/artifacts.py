from __future__ import annotations
import io
import posixpath
import re
import tarfile
from typing import Iterable, Iterator, Optional

import structlog

from ..core.models import ArtifactSet

log = structlog.get_logger()

# case-sensitive on purpose: "b.CSS" is not an artifact
OUTPUT_EXT_RE = re.compile(r"\.(js|css|html|map)$")


class ChunkReader(io.RawIOBase):
    """Readable file object over an iterator of byte chunks."""

    def __init__(self, chunks: Iterable[bytes]):
        self._it: Iterator[bytes] = iter(chunks)
        self._buf = b""

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        while not self._buf:
            try:
                self._buf = next(self._it)
            except StopIteration:
                return 0
        n = min(len(b), len(self._buf))
        b[:n] = self._buf[:n]
        self._buf = self._buf[n:]
        return n


def is_artifact(name: str) -> bool:
    return bool(OUTPUT_EXT_RE.search(name))


def collect_artifacts(chunks: Iterable[bytes], source: Optional[str] = None) -> ArtifactSet:
    """
    Read a tar stream and return {base name: utf-8 text} for regular files
    with an output extension. Directory structure is flattened, so a later
    entry with the same base name wins. A broken archive returns {}.
    """
    files: ArtifactSet = {}
    try:
        with tarfile.open(fileobj=io.BufferedReader(ChunkReader(chunks)), mode="r|*") as tar:
            for member in tar:
                if not member.isreg():
                    continue
                filename = posixpath.basename(member.name)
                if not is_artifact(filename):
                    continue
                fh = tar.extractfile(member)
                if fh is None:
                    continue
                files[filename] = fh.read().decode("utf-8", errors="replace")
    except (tarfile.TarError, OSError, EOFError) as e:
        log.warning("artifact_extraction_failed", path=source, error=str(e))
        return {}

    log.info("artifacts_extracted", path=source, count=len(files))
    return files
