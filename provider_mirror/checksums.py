import base64
import hashlib
import logging
import zipfile
from pathlib import Path

from .config import CHUNK_SIZE

logger = logging.getLogger(__name__)

H1_PREFIX = "h1:"


def calculate_sha256(data: bytes) -> str:
    """Hex SHA256 of an in-memory payload."""
    return hashlib.sha256(data).hexdigest()


def hash_zip(zip_path: Path) -> str:
    """
    Computes the 'h1:' hash of a zip archive's contents.

    Each entry contributes a line '<sha256 hex>  <name>\\n' and the lines are
    hashed in sorted name order, so entry order, timestamps and permissions
    inside the archive do not matter. Raises ValueError for entry names
    containing a newline and zipfile.BadZipFile/OSError for unreadable files.
    """
    summary = hashlib.sha256()
    with zipfile.ZipFile(zip_path) as archive:
        # Every listed name contributes a line; duplicate names all read the last entry
        entries = {info.filename: info for info in archive.infolist()}
        for name in sorted(info.filename for info in archive.infolist()):
            if "\n" in name:
                raise ValueError(f"Zip entry name contains a newline: {name!r}")
            file_hasher = hashlib.sha256()
            with archive.open(entries[name]) as member:
                while True:
                    chunk = member.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    file_hasher.update(chunk)
            summary.update(f"{file_hasher.hexdigest()}  {name}\n".encode())
    return H1_PREFIX + base64.b64encode(summary.digest()).decode("ascii")


def digests_match(expected: str, actual: str) -> bool:
    """Hex digest comparison, case-insensitive."""
    return expected.strip().lower() == actual.strip().lower()
