# Overview: Filesystem storage for uploaded payment proofs.

from __future__ import annotations

import os
import uuid

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from ..errors import ValidationError


class ArtifactStore:
    """
    Stores uploaded files under <root>/<tenant_id>/ and hands back an opaque
    reference. The reference is all the engine keeps; the bytes are never read
    back by the transaction code.
    """

    def __init__(self, root: str, allowed_extensions):
        self.root = root
        self.allowed_extensions = {ext.lower() for ext in allowed_extensions}

    def _extension(self, filename: str) -> str:
        if "." not in filename:
            return ""
        return filename.rsplit(".", 1)[1].lower()

    def store(self, file: FileStorage | None, *, tenant_id: int) -> str:
        if file is None or not file.filename:
            raise ValidationError("A file is required")

        filename = secure_filename(file.filename)
        ext = self._extension(filename)
        if ext not in self.allowed_extensions:
            allowed = ", ".join(sorted(self.allowed_extensions))
            raise ValidationError(f"File type not allowed (allowed: {allowed})")

        ref = f"{tenant_id}/{uuid.uuid4().hex}.{ext}"
        path = os.path.join(self.root, ref)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        file.save(path)
        return ref

    def path_for(self, ref: str) -> str:
        return os.path.join(self.root, ref)

    def discard(self, ref: str) -> None:
        """Remove a stored file that never got attached to anything."""
        path = self.path_for(ref)
        if os.path.exists(path):
            os.remove(path)
