"""Business logic for folder operations."""

import dataclasses
import logging
import uuid
from collections import defaultdict
from typing import TYPE_CHECKING, final

from django.core.exceptions import ValidationError
from django.core.files.storage import default_storage
from django.db import DatabaseError, transaction

from vault.apps.files.cancellation import NEVER_CANCELLED, CancellationToken
from vault.apps.files.exceptions import (
    MetadataTransactionError,
    ObjectNotFoundError,
    OperationCancelledError,
    StorageError,
)
from vault.apps.files.models import FileRecord, Folder

if TYPE_CHECKING:
    from vault.apps.files.infrastructure.storage import FileStorage

logger = logging.getLogger(__name__)


@final
@dataclasses.dataclass(frozen=True)
class BreadcrumbItem:
    """One step of the path from a root folder."""

    id: uuid.UUID
    name: str


@final
@dataclasses.dataclass(frozen=True)
class FolderDetail:
    """Folder with its breadcrumb and direct contents."""

    folder: Folder
    breadcrumb: list[BreadcrumbItem]
    sub_folders: list[Folder]
    files: list[FileRecord]


@final
@dataclasses.dataclass(frozen=True)
class RootContents:
    """Folders without a parent and files without a folder."""

    folders: list[Folder]
    files: list[FileRecord]


def _get_storage() -> 'FileStorage':
    return default_storage  # type: ignore[return-value]


def create_folder(name: str, parent_id: uuid.UUID | None = None) -> Folder:
    """Create a folder.

    Args:
        name: Folder name.
        parent_id: Optional parent folder; None creates a root folder.

    Returns:
        Created Folder instance.

    Raises:
        ValidationError: If the name is empty.
        Folder.DoesNotExist: If the parent folder does not exist.
    """
    name = (name or '').strip()
    if not name:
        raise ValidationError('Folder name is required')

    if parent_id is not None and not Folder.objects.filter(id=parent_id).exists():
        raise Folder.DoesNotExist(f'Parent folder not found: {parent_id}')

    folder = Folder.objects.create(name=name, parent_id=parent_id)
    logger.info(
        'Folder created: %s (ID: %s, parent: %s)',
        name,
        folder.id,
        parent_id,
    )
    return folder


def get_breadcrumb(folder: Folder) -> list[BreadcrumbItem]:
    """Build the ancestor path of a folder.

    Walks ``parent`` links up to a root folder, one query per level.

    Args:
        folder: Folder to build the path for.

    Returns:
        Items ordered from the root down to ``folder`` itself.
    """
    breadcrumb = [BreadcrumbItem(id=folder.id, name=folder.name)]
    seen = {folder.id}
    parent_id = folder.parent_id

    while parent_id is not None:
        if parent_id in seen:
            logger.warning('Cycle in folder tree at folder %s', parent_id)
            break
        seen.add(parent_id)
        parent = Folder.objects.filter(id=parent_id).values(
            'id',
            'name',
            'parent_id',
        ).first()
        if parent is None:
            break
        breadcrumb.append(BreadcrumbItem(id=parent['id'], name=parent['name']))
        parent_id = parent['parent_id']

    breadcrumb.reverse()
    return breadcrumb


def get_folder(folder_id: uuid.UUID) -> FolderDetail:
    """Get a folder with breadcrumb, sub-folders and files.

    Files in the trash are not listed.

    Args:
        folder_id: ID of the folder.

    Returns:
        FolderDetail for the folder.

    Raises:
        Folder.DoesNotExist: If folder not found.
    """
    folder = Folder.objects.get(id=folder_id)
    return FolderDetail(
        folder=folder,
        breadcrumb=get_breadcrumb(folder),
        sub_folders=list(folder.sub_folders.all()),
        files=list(folder.files.all()),
    )


def get_root_contents() -> RootContents:
    """Get root folders and root-level files."""
    return RootContents(
        folders=list(Folder.objects.filter(parent__isnull=True)),
        files=list(FileRecord.objects.filter(folder__isnull=True)),
    )


def delete_folder(
    folder_id: uuid.UUID,
    cancel_token: CancellationToken = NEVER_CANCELLED,
) -> None:
    """Delete a folder, all its descendants and every file they own.

    Metadata removal is all-or-nothing: every row is deleted inside one
    transaction, children before parents. Object deletion is best
    effort: a failed or missing object is logged and its row is
    removed anyway, leaving the object for manual cleanup. Objects
    already deleted stay deleted if the transaction rolls back;
    deleting them again later is a no-op.

    Args:
        folder_id: ID of the folder to delete.
        cancel_token: Caller's cancellation token.

    Raises:
        Folder.DoesNotExist: If folder not found.
        MetadataTransactionError: If the database rejected a change;
            nothing was removed from the database.
        OperationCancelledError: If cancelled; nothing was removed from
            the database.
    """
    if not Folder.objects.filter(id=folder_id).exists():
        raise Folder.DoesNotExist(f'Folder not found: {folder_id}')

    try:
        with transaction.atomic():
            cancel_token.raise_if_cancelled()
            levels = _collect_subtree(folder_id)
            # Deepest level first: every child is gone before its parent
            for level in reversed(levels):
                _delete_level(level, cancel_token)
    except OperationCancelledError:
        logger.info('Folder deletion cancelled, rolled back: %s', folder_id)
        raise
    except DatabaseError as error:
        logger.exception('Failed to delete folder %s', folder_id)
        raise MetadataTransactionError(
            f'Failed to delete folder {folder_id}',
        ) from error
    except Exception:
        logger.exception('Failed to delete folder %s', folder_id)
        raise

    logger.info(
        'Folder deleted: %s (%d folders)',
        folder_id,
        sum(len(level) for level in levels),
    )


def _collect_subtree(folder_id: uuid.UUID) -> list[list[uuid.UUID]]:
    """Collect folder IDs of a subtree level by level.

    Uses one query per tree level instead of recursion, so deep trees
    cannot exhaust the call stack.

    Args:
        folder_id: Root of the subtree.

    Returns:
        Lists of folder IDs; index 0 holds only ``folder_id``.
    """
    levels = [[folder_id]]
    seen = {folder_id}

    while True:
        child_ids = [
            child_id
            for child_id in Folder.objects.filter(
                parent_id__in=levels[-1],
            ).values_list('id', flat=True)
            if child_id not in seen
        ]
        if not child_ids:
            return levels
        seen.update(child_ids)
        levels.append(child_ids)


def _delete_level(
    folder_ids: list[uuid.UUID],
    cancel_token: CancellationToken,
) -> None:
    files_by_folder: dict[uuid.UUID, list[FileRecord]] = defaultdict(list)
    for file_record in FileRecord.all_objects.filter(folder_id__in=folder_ids):
        files_by_folder[file_record.folder_id].append(file_record)

    for folder_id in folder_ids:
        for file_record in files_by_folder[folder_id]:
            _delete_object_best_effort(file_record, cancel_token)
            FileRecord.all_objects.filter(id=file_record.id).delete()
        cancel_token.raise_if_cancelled()
        Folder.objects.filter(id=folder_id).delete()


def _delete_object_best_effort(
    file_record: FileRecord,
    cancel_token: CancellationToken,
) -> None:
    try:
        _get_storage().delete_object(
            file_record.bucket,
            file_record.object_key,
            cancel_token,
        )
    except ObjectNotFoundError:
        logger.info(
            'Object already gone from storage: %s (ID: %s, folder: %s)',
            file_record.object_key,
            file_record.id,
            file_record.folder_id,
        )
    except StorageError as error:
        logger.warning(
            'Failed to delete object %s (ID: %s, folder: %s): %s',
            file_record.object_key,
            file_record.id,
            file_record.folder_id,
            error.reason,
        )
