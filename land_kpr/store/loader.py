"""Strict loader for the storage directory and the storage layout initialiser."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from land_kpr.exceptions import (
    MalformedJSONError,
    MissingDirectoryError,
    MissingMetaOrItemsError,
    UnreadableFileError,
)
from land_kpr.store.collections import (
    REQUIRED_COLLECTIONS,
    SUPPORT_TICKETS_PATH,
    RawCollection,
    Snapshot,
    empty_meta,
    file_name,
)

logger = logging.getLogger(__name__)


def read_collection(path: Path) -> RawCollection:
    """Read and validate one ``{meta, items}`` collection file.

    Parameters
    ----------
    path : Path
        Collection file to read.

    Returns
    -------
    RawCollection
        Parsed collection with items re-encoded individually.

    Raises
    ------
    UnreadableFileError
        If the file is missing or cannot be read.
    MalformedJSONError
        If the file is not valid JSON.
    MissingMetaOrItemsError
        If the document lacks a ``meta`` or ``items`` object.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise UnreadableFileError(f"cannot read {path}: {exc}") from exc

    try:
        document: Any = json.loads(content)
    except json.JSONDecodeError as exc:
        raise MalformedJSONError(f"invalid JSON in {path}: {exc}") from exc

    if not isinstance(document, dict):
        raise MissingMetaOrItemsError(f"{path} is not a JSON object")
    meta = document.get("meta")
    items = document.get("items")
    if not isinstance(meta, dict) or not isinstance(items, dict):
        raise MissingMetaOrItemsError(f"{path} must contain meta and items objects")

    return RawCollection.from_document(meta, items)


def load(directory: str | Path) -> Snapshot:
    """Load every required collection from ``directory`` into a snapshot.

    Loading is all-or-nothing: the first missing or invalid collection aborts
    the load and no snapshot is produced.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise MissingDirectoryError(f"storage directory not found: {directory}")

    raw = {name: read_collection(directory / file_name(name)) for name in REQUIRED_COLLECTIONS}

    tickets_path = directory.joinpath(*SUPPORT_TICKETS_PATH)
    tickets = read_collection(tickets_path) if tickets_path.exists() else None

    logger.debug(
        "Loaded %d collections from %s (%d items)",
        len(raw),
        directory,
        sum(len(coll) for coll in raw.values()),
    )
    return Snapshot.build(raw, loaded_at=datetime.now(timezone.utc), support_tickets=tickets)


def init_storage(directory: str | Path) -> list[Path]:
    """Create ``directory`` and any missing collection files.

    Existing files are left untouched.

    Returns
    -------
    list[Path]
        Files that were created.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    created = []
    for name in REQUIRED_COLLECTIONS:
        path = directory / file_name(name)
        if path.exists():
            continue
        document = {"meta": empty_meta(), "items": {}}
        path.write_text(json.dumps(document, indent=2) + "\n", encoding="utf-8")
        created.append(path)

    if created:
        logger.info("Initialised %d collection files in %s", len(created), directory)
    return created
