"""
Attachment reconciliation.

An editor form submits the full list of attachments the user wants to keep,
each entry carrying an `id` (already stored), a new `file`, or both:

- a stored attachment missing from the submission is deleted (row and blob)
- an entry with an `id` updates that row's alt text; with a `file` as well
  the blob is replaced under a freshly generated name and the old blob is
  removed
- an entry without an `id` but with a `file` creates a row and a blob
- an entry with neither is dropped, as is an `id` the record does not own

`plan_attachments` computes this as pure data. `AttachmentReconciler` applies
a plan for one owner type: row changes go through the caller's upsert
callback and are committed first, then every blob write and delete of the
request is dispatched together and awaited as a batch. A crash between the
two steps can orphan a row or a blob; nothing reconciles that afterwards.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
)

from pydantic import field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from core.forms import FilePayload, check_file_size
from core.metrics import track_attachment_plan, track_minio_operation
from core.schema_base import HTTPSchemaModel
from db.models import Attachment, generate_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AttachmentFieldSet(HTTPSchemaModel):
    """One attachment entry of an editor form."""

    id: Optional[str] = None
    file: Optional[FilePayload] = None
    alt_text: Optional[str] = None

    @field_validator("file")
    @classmethod
    def validate_file_size(cls, v: Optional[FilePayload]) -> Optional[FilePayload]:
        return check_file_size(v)


class StoredAttachment(Protocol):
    id: str
    file_name: str
    extension: str


class BlobStore(Protocol):
    """The storage operations reconciliation needs (see services.blob_storage)."""

    async def upload_file(
        self,
        container: str,
        directory: str,
        file_name: str,
        extension: str,
        content: bytes,
        content_type: str = ...,
    ) -> str: ...

    async def delete_file(
        self, container: str, directory: str, file_name: str, extension: str
    ) -> bool: ...

    async def delete_directory(self, container: str, directory: str) -> int: ...

    async def download_file(
        self, container: str, directory: str, file_name: str, extension: str
    ) -> Optional[bytes]: ...


@dataclass(frozen=True)
class AttachmentCreate:
    id: str
    file_name: str
    file: FilePayload
    alt_text: Optional[str] = None


@dataclass(frozen=True)
class AttachmentUpdate:
    """
    Row update for a kept attachment.

    When `file` is set this is a replacement: the row keeps `id` but points at
    the new blob `file_name`; `previous_file_name`/`previous_extension` name
    the blob to remove.
    """

    id: str
    alt_text: Optional[str] = None
    file: Optional[FilePayload] = None
    file_name: Optional[str] = None
    previous_file_name: Optional[str] = None
    previous_extension: Optional[str] = None

    @property
    def is_replace(self) -> bool:
        return self.file is not None


@dataclass(frozen=True)
class AttachmentDelete:
    id: str
    file_name: str
    extension: str


@dataclass(frozen=True)
class AttachmentPlan:
    to_delete: List[AttachmentDelete] = field(default_factory=list)
    to_update: List[AttachmentUpdate] = field(default_factory=list)
    to_create: List[AttachmentCreate] = field(default_factory=list)

    @property
    def replacements(self) -> List[AttachmentUpdate]:
        return [u for u in self.to_update if u.is_replace]

    @property
    def kept_ids(self) -> List[str]:
        return [u.id for u in self.to_update] + [c.id for c in self.to_create]


def plan_attachments(
    existing: Sequence[StoredAttachment],
    submitted: Sequence[AttachmentFieldSet],
    id_factory: Callable[[], str] = generate_id,
) -> AttachmentPlan:
    """
    Partition a submission against the stored attachments of one record.

    Args:
        existing: Attachments currently stored for the record
        submitted: Entries from the form, in form order
        id_factory: Source of fresh row ids and blob names

    Returns:
        Disjoint delete/update/create lists
    """
    stored: Dict[str, StoredAttachment] = {a.id: a for a in existing}
    seen: set = set()
    to_update: List[AttachmentUpdate] = []
    to_create: List[AttachmentCreate] = []

    for entry in submitted:
        if entry.id:
            current = stored.get(entry.id)
            if current is None:
                logger.warning(f"Ignoring attachment not owned by record | Id: {entry.id}")
                continue
            if entry.id in seen:
                continue
            seen.add(entry.id)
            if entry.file is not None:
                to_update.append(
                    AttachmentUpdate(
                        id=entry.id,
                        alt_text=entry.alt_text,
                        file=entry.file,
                        file_name=id_factory(),
                        previous_file_name=current.file_name,
                        previous_extension=current.extension,
                    )
                )
            else:
                to_update.append(AttachmentUpdate(id=entry.id, alt_text=entry.alt_text))
        elif entry.file is not None:
            to_create.append(
                AttachmentCreate(
                    id=id_factory(),
                    file_name=id_factory(),
                    file=entry.file,
                    alt_text=entry.alt_text or entry.file.filename,
                )
            )

    to_delete = [
        AttachmentDelete(id=a.id, file_name=a.file_name, extension=a.extension)
        for a in existing
        if a.id not in seen
    ]
    return AttachmentPlan(to_delete=to_delete, to_update=to_update, to_create=to_create)


def apply_plan_to_rows(
    attachments: List[Attachment],
    plan: AttachmentPlan,
    attachment_type: str,
) -> None:
    """
    Mutate an owner's `attachments` collection in place to match `plan`.

    Removed rows are dropped from the collection (delete-orphan removes them
    on flush); new rows are appended, which sets the owner foreign key.
    """
    delete_ids = {d.id for d in plan.to_delete}
    by_id = {a.id: a for a in attachments}

    for attachment in [a for a in attachments if a.id in delete_ids]:
        attachments.remove(attachment)

    for update in plan.to_update:
        row = by_id.get(update.id)
        if row is None:
            continue
        row.alt_text = update.alt_text
        if update.is_replace:
            row.file_name = update.file_name
            row.extension = update.file.extension
            row.content_type = update.file.content_type

    for create in plan.to_create:
        attachments.append(
            Attachment(
                id=create.id,
                file_name=create.file_name,
                extension=create.file.extension,
                content_type=create.file.content_type,
                alt_text=create.alt_text,
                type=attachment_type,
            )
        )


class AttachmentReconciler(Generic[T]):
    """
    Applies attachment plans for one owner type.

    Args:
        container: Blob container for the owner type, e.g. "incidents"
        directory_key: Maps a saved owner to its blob directory (its serial number)
        storage: Blob store
    """

    def __init__(
        self,
        container: str,
        directory_key: Callable[[T], str],
        storage: BlobStore,
    ):
        self.container = str(getattr(container, "value", container))
        self.directory_key = directory_key
        self.storage = storage

    async def save(
        self,
        db: AsyncSession,
        existing: Sequence[StoredAttachment],
        submitted: Sequence[AttachmentFieldSet],
        upsert: Callable[[AttachmentPlan], Awaitable[T]],
    ) -> T:
        """
        Plan, write rows, commit, then run the blob batch.

        `upsert` receives the plan, creates or updates the owner (typically
        calling `apply_plan_to_rows` on its attachments) and returns it
        without committing.
        """
        plan = plan_attachments(existing, submitted)
        owner = await upsert(plan)
        await db.commit()

        directory = self.directory_key(owner)
        track_attachment_plan(
            self.container,
            creates=len(plan.to_create),
            updates=len(plan.to_update) - len(plan.replacements),
            replaces=len(plan.replacements),
            deletes=len(plan.to_delete),
        )
        logger.info(
            f"Attachments reconciled | Container: {self.container} | Directory: {directory} | "
            f"Created: {len(plan.to_create)} | Updated: {len(plan.to_update)} | "
            f"Replaced: {len(plan.replacements)} | Deleted: {len(plan.to_delete)}"
        )
        await self.apply_blobs(plan, directory)
        return owner

    def _blob_operations(self, plan: AttachmentPlan, directory: str) -> List[Awaitable[Any]]:
        ops: List[Awaitable[Any]] = []
        for create in plan.to_create:
            ops.append(self._timed("upload", self.storage.upload_file(
                self.container,
                directory,
                create.file_name,
                create.file.extension,
                create.file.data,
                create.file.content_type,
            )))
        for update in plan.replacements:
            ops.append(self._timed("upload", self.storage.upload_file(
                self.container,
                directory,
                update.file_name,
                update.file.extension,
                update.file.data,
                update.file.content_type,
            )))
            ops.append(self._timed("delete", self.storage.delete_file(
                self.container,
                directory,
                update.previous_file_name,
                update.previous_extension or "",
            )))
        for deleted in plan.to_delete:
            ops.append(self._timed("delete", self.storage.delete_file(
                self.container,
                directory,
                deleted.file_name,
                deleted.extension,
            )))
        return ops

    async def apply_blobs(self, plan: AttachmentPlan, directory: str) -> None:
        """
        Run every blob write and delete of `plan` concurrently.

        All operations run to completion; the first failure is re-raised
        after the others finished.
        """
        ops = self._blob_operations(plan, directory)
        if not ops:
            return
        results = await asyncio.gather(*ops, return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        for failure in failures:
            logger.error(
                f"Blob operation failed | Container: {self.container} | "
                f"Directory: {directory} | Error: {failure}"
            )
        if failures:
            raise failures[0]

    async def delete_directory(self, directory: str) -> int:
        """Remove every blob of a deleted owner."""
        return await self._timed(
            "delete_directory", self.storage.delete_directory(self.container, directory)
        )

    @staticmethod
    async def _timed(operation: str, awaitable: Awaitable[Any]) -> Any:
        started = time.perf_counter()
        try:
            result = await awaitable
        except Exception:
            track_minio_operation(operation, False, (time.perf_counter() - started) * 1000)
            raise
        track_minio_operation(operation, True, (time.perf_counter() - started) * 1000)
        return result
