"""Upload gate: decides whether a selected or dropped file may be submitted."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

ACCEPTED_MEDIA_TYPES: frozenset[str] = frozenset({"image/png", "image/jpeg", "image/jpg", "image/webp"})

_DROP_PAYLOAD_PATTERN = re.compile(r"image.*")


class SelectionSource(StrEnum):
    PICKER = "picker"
    DROP = "drop"


@dataclass(frozen=True)
class CandidateImage:
    """An image chosen by the user, held only until its upload completes."""

    data: bytes
    file_name: str
    media_type: str

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class AcceptedFile:
    candidate: CandidateImage
    source: SelectionSource


@dataclass(frozen=True)
class Rejected:
    """A file filtered out before submission. Not an error."""

    file_name: str
    reason: str


class UploadGate:
    """Filters candidate files by media type, source and size.

    ``media_types`` is the picker's accept list. Drops must additionally
    carry an image payload, whatever the accept list allows.
    """

    def __init__(
        self,
        max_file_size: int | None = None,
        media_types: frozenset[str] = ACCEPTED_MEDIA_TYPES,
    ) -> None:
        self._max_file_size = max_file_size
        self._media_types = frozenset(t.lower() for t in media_types)

    def accept(self, file: CandidateImage, source: SelectionSource) -> AcceptedFile | Rejected:
        media_type = file.media_type.lower()
        if media_type not in self._media_types:
            return Rejected(file.file_name, f"unsupported media type: {file.media_type or '<none>'}")
        if source is SelectionSource.DROP and not _DROP_PAYLOAD_PATTERN.search(media_type):
            return Rejected(file.file_name, "dropped payload is not an image")
        if self._max_file_size is not None and file.size > self._max_file_size:
            return Rejected(file.file_name, f"file exceeds {self._max_file_size} bytes")
        return AcceptedFile(candidate=file, source=source)

    def accept_selection(
        self,
        files: Sequence[CandidateImage],
        source: SelectionSource,
        *,
        disabled: bool = False,
    ) -> AcceptedFile | Rejected | None:
        """Apply the gate to the first file of a picker selection or drop.

        Returns None when there is nothing to decide: an empty selection, or
        a drop while the uploader is disabled.
        """
        if not files:
            return None
        if disabled and source is SelectionSource.DROP:
            return None
        return self.accept(files[0], source)
