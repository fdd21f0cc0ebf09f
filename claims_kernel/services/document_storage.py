"""
LocalDocumentStorage -- claim attachment content on the local filesystem.

Responsibility:
    Writes uploaded attachment bytes under generated opaque names, reads
    them back for download, and deletes them when the submission that
    stored them fails to persist.

Architecture position:
    Kernel > Services -- imperative shell.  Used by ClaimWorkflowService;
    the document metadata row lives in the database, the bytes live here.

Invariants enforced:
    - Stored names are ``uuid4().hex`` plus a sanitized extension, so the
      caller-supplied file name can never collide with another upload or
      address a path outside the storage root.
    - Every resolved path is checked to be inside the root before any
      read, write or delete.
    - Content larger than ``max_bytes`` is never written.

Failure modes:
    - ValidationError: upload exceeds ``max_bytes``.
    - DocumentNotFoundError: ``open`` on a storage name with no file.
    - ValueError: a storage name that resolves outside the root.
"""

import re
from pathlib import Path
from uuid import uuid4

from claims_kernel.domain.claim import MAX_ATTACHMENT_BYTES, AttachmentUpload
from claims_kernel.exceptions import DocumentNotFoundError, ValidationError
from claims_kernel.logging_config import get_logger

logger = get_logger("services.document_storage")

_EXTENSION_RE = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


def sanitized_extension(file_name: str) -> str:
    """
    Lower-cased extension of ``file_name`` if it is short and alphanumeric,
    else the empty string.
    """
    suffix = Path(file_name.replace("\\", "/")).suffix
    if _EXTENSION_RE.match(suffix):
        return suffix.lower()
    return ""


class LocalDocumentStorage:
    """
    Attachment content store rooted at a single directory.

    Non-goals:
        - Does NOT record metadata; that is ``DocumentModel``.
        - Does NOT participate in the database transaction.  The workflow
          service deletes stored files itself when a flush fails.
    """

    def __init__(self, root: str | Path, max_bytes: int = MAX_ATTACHMENT_BYTES):
        self._root = Path(root).resolve()
        self._max_bytes = max_bytes
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def _path_for(self, storage_name: str) -> Path:
        path = (self._root / storage_name).resolve()
        if path.parent != self._root:
            raise ValueError(f"Storage name escapes storage root: {storage_name!r}")
        return path

    def check_size(self, upload: AttachmentUpload) -> None:
        """Raise ValidationError if ``upload`` is over the size limit."""
        if upload.size > self._max_bytes:
            raise ValidationError({
                "attachments": (
                    f"{upload.file_name!r} is {upload.size} bytes; "
                    f"the limit is {self._max_bytes} bytes"
                ),
            })

    def store(self, upload: AttachmentUpload) -> str:
        """
        Write ``upload`` under a new opaque name and return that name.

        Raises:
            ValidationError: If the upload exceeds ``max_bytes``.
        """
        self.check_size(upload)

        storage_name = uuid4().hex + sanitized_extension(upload.file_name)
        path = self._path_for(storage_name)
        with open(path, "xb") as f:
            f.write(upload.content)

        logger.info(
            "document_stored",
            extra={
                "storage_name": storage_name,
                "file_size": upload.size,
                "content_type": upload.content_type,
            },
        )
        return storage_name

    def open(self, storage_name: str) -> bytes:
        """
        Read back the content stored under ``storage_name``.

        Raises:
            DocumentNotFoundError: If no file exists under that name.
        """
        path = self._path_for(storage_name)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            logger.warning(
                "document_content_missing",
                extra={"storage_name": storage_name},
            )
            raise DocumentNotFoundError(storage_name) from None

    def delete(self, storage_name: str) -> None:
        """Remove stored content.  Missing files are ignored."""
        path = self._path_for(storage_name)
        path.unlink(missing_ok=True)
        logger.info("document_deleted", extra={"storage_name": storage_name})

    def exists(self, storage_name: str) -> bool:
        return self._path_for(storage_name).is_file()
