"""
Saved rules repository.

Persists named rule trees and a folder hierarchy in an opaque key-value store.
Rules and folders live under two keys, each holding a JSON array:

    rules:   [{"id", "name", "description"?, "tags", "folderId"?, "tree",
               "createdAt", "updatedAt"}, ...]
    folders: [{"id", "name", "description"?, "parentId"?, "color"?,
               "createdAt", "updatedAt"}, ...]

Two stores are provided: an in-memory one and a filesystem one (one JSON file
per key). Corrupt stored data raises ValidationError; unknown ids return None
or False.
"""

import json
import logging
import os
import re
import tempfile
import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from rule_builder.core.config import settings
from rule_builder.core.errors import ConflictError, NotFoundError, ValidationError
from rule_builder.domain.models import Group, count_conditions, count_groups, upgrade_legacy_tree

logger = logging.getLogger(__name__)

BUNDLE_VERSION = "2.0"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Shapes
# =============================================================================


class _SavedModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class SavedRule(_SavedModel):
    id: str = Field(default_factory=_new_id)
    name: str
    description: str | None = None
    tags: tuple[str, ...] = ()
    folder_id: str | None = None
    tree: Group = Field(validation_alias=AliasChoices("tree", "rule"))
    created_at: datetime
    updated_at: datetime


class SavedRuleFolder(_SavedModel):
    id: str = Field(default_factory=_new_id)
    name: str
    description: str | None = None
    parent_id: str | None = None
    color: str | None = None
    created_at: datetime
    updated_at: datetime


class SavedRuleMetadata(_SavedModel):
    """Listing view of a saved rule, without its tree."""

    id: str
    name: str
    description: str | None = None
    tags: tuple[str, ...] = ()
    folder_id: str | None = None
    created_at: datetime
    updated_at: datetime
    condition_count: int
    group_count: int

    @classmethod
    def from_rule(cls, rule: SavedRule) -> "SavedRuleMetadata":
        return cls(
            id=rule.id,
            name=rule.name,
            description=rule.description,
            tags=rule.tags,
            folder_id=rule.folder_id,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
            condition_count=count_conditions(rule.tree),
            group_count=count_groups(rule.tree),
        )


class FolderTreeItem(_SavedModel):
    id: str
    name: str
    type: Literal["folder", "rule"]
    parent_id: str | None = None
    children: tuple["FolderTreeItem", ...] | None = None
    data: SavedRuleFolder | SavedRuleMetadata
    expanded: bool = False


class ImportResult(_SavedModel):
    imported: int = 0
    skipped: int = 0
    errors: tuple[str, ...] = ()


class StorageInfo(_SavedModel):
    rule_count: int
    folder_count: int
    storage_size: int
    last_modified: datetime | None = None


_RULES_ADAPTER = TypeAdapter(list[SavedRule])
_FOLDERS_ADAPTER = TypeAdapter(list[SavedRuleFolder])


# =============================================================================
# Key-value stores
# =============================================================================


@runtime_checkable
class KeyValueStore(Protocol):
    """Opaque string store keyed by a caller-chosen key."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    """Process-local store, mainly for tests and short-lived sessions."""

    def __init__(self, initial: Mapping[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileSystemStore:
    """
    One JSON file per key under ``base_dir``.

    Writes go to a temporary file that replaces the target, so a crash never
    leaves a half-written value behind.
    """

    def __init__(self, base_dir: str | Path | None = None):
        self.base_dir = Path(base_dir if base_dir is not None else settings.saved_rules_dir)

    def _path(self, key: str) -> Path:
        safe_key = re.sub(r"[^A-Za-z0-9._-]", "_", key)
        return self.base_dir / f"{safe_key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


# =============================================================================
# Repository
# =============================================================================


class SavedRuleRepository:
    """
    Saved rules and folders over a key-value store.

    Args:
        store: Backing store
        rules_key: Key holding the rules array (defaults to settings)
        folders_key: Key holding the folders array (defaults to settings)
        clock: Source of timestamps (timezone-aware UTC by default)
    """

    def __init__(
        self,
        store: KeyValueStore,
        rules_key: str | None = None,
        folders_key: str | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.rules_key = rules_key or settings.saved_rules_key
        self.folders_key = folders_key or settings.saved_folders_key
        self._clock = clock

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _read(self, key: str, adapter: TypeAdapter) -> list[Any]:
        raw = self.store.get(key)
        if not raw:
            return []
        try:
            return adapter.validate_json(raw)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Stored data under '{key}' is corrupt",
                details={"key": key, "errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def _write(self, key: str, items: Iterable[_SavedModel]) -> None:
        payload = [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in items]
        self.store.set(key, json.dumps(payload, ensure_ascii=False))

    def _load_rules(self) -> list[SavedRule]:
        return self._read(self.rules_key, _RULES_ADAPTER)

    def _load_folders(self) -> list[SavedRuleFolder]:
        return self._read(self.folders_key, _FOLDERS_ADAPTER)

    def _store_rules(self, rules: Iterable[SavedRule]) -> None:
        self._write(self.rules_key, rules)

    def _store_folders(self, folders: Iterable[SavedRuleFolder]) -> None:
        self._write(self.folders_key, folders)

    def _require_folder(self, folder_id: str | None, folders: list[SavedRuleFolder]) -> None:
        if folder_id is not None and not any(folder.id == folder_id for folder in folders):
            raise NotFoundError("Folder not found", details={"folder_id": folder_id})

    @staticmethod
    def _normalize_updates(model_cls: type[_SavedModel], updates: Mapping[str, Any]) -> dict:
        """Map snake_case or camelCase keys to field names; id and createdAt never change."""
        aliases = {info.alias: name for name, info in model_cls.model_fields.items() if info.alias}
        normalized = {}
        for key, value in updates.items():
            name = key if key in model_cls.model_fields else aliases.get(key)
            if name is None:
                raise ValidationError(
                    f"Unknown field '{key}' for {model_cls.__name__}",
                    details={"field": key, "model": model_cls.__name__},
                )
            if name in ("id", "created_at", "updated_at"):
                continue
            normalized[name] = value
        return normalized

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def save(
        self,
        tree: Group,
        name: str,
        description: str | None = None,
        tags: Iterable[str] = (),
        folder_id: str | None = None,
    ) -> SavedRule:
        """Store a tree under a new id."""
        if folder_id is not None:
            self._require_folder(folder_id, self._load_folders())

        now = self._clock()
        saved = SavedRule(
            name=name,
            description=description,
            tags=tuple(tags),
            folder_id=folder_id,
            tree=tree,
            created_at=now,
            updated_at=now,
        )
        self._store_rules([*self._load_rules(), saved])
        logger.info("Saved rule %s (%s)", saved.id, name)
        return saved

    def update(self, rule_id: str, updates: Mapping[str, Any]) -> SavedRule | None:
        """
        Update a saved rule.

        Args:
            rule_id: Saved rule id
            updates: Field values by name (snake_case or camelCase); id and
                     timestamps are ignored, ``updated_at`` is refreshed

        Returns:
            Updated rule, or None when the id is unknown
        """
        rules = self._load_rules()
        for index, rule in enumerate(rules):
            if rule.id == rule_id:
                break
        else:
            return None

        fields = self._normalize_updates(SavedRule, updates)
        if fields.get("folder_id") is not None:
            self._require_folder(fields["folder_id"], self._load_folders())

        merged = {name: getattr(rule, name) for name in SavedRule.model_fields}
        merged.update(fields)
        merged["updated_at"] = self._clock()
        try:
            updated = SavedRule.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid saved rule update",
                details={"rule_id": rule_id, "errors": e.errors(include_url=False)},
            ) from e

        rules[index] = updated
        self._store_rules(rules)
        return updated

    def get(self, rule_id: str) -> SavedRule | None:
        return next((rule for rule in self._load_rules() if rule.id == rule_id), None)

    def list_rules(self) -> list[SavedRule]:
        return self._load_rules()

    def list_metadata(self) -> list[SavedRuleMetadata]:
        return [SavedRuleMetadata.from_rule(rule) for rule in self._load_rules()]

    def delete(self, rule_id: str) -> bool:
        rules = self._load_rules()
        remaining = [rule for rule in rules if rule.id != rule_id]
        if len(remaining) == len(rules):
            return False
        self._store_rules(remaining)
        logger.info("Deleted saved rule %s", rule_id)
        return True

    def search(self, query: str) -> list[SavedRuleMetadata]:
        """Case-insensitive match on name, description or any tag."""
        needle = query.lower()
        return [
            metadata
            for metadata in self.list_metadata()
            if needle in metadata.name.lower()
            or (metadata.description is not None and needle in metadata.description.lower())
            or any(needle in tag.lower() for tag in metadata.tags)
        ]

    def move_to_folder(self, rule_id: str, folder_id: str | None) -> bool:
        """Move a rule into a folder (None for the root). False for an unknown rule."""
        return self.update(rule_id, {"folder_id": folder_id}) is not None

    def rules_in_folder(self, folder_id: str | None) -> list[SavedRuleMetadata]:
        return [metadata for metadata in self.list_metadata() if metadata.folder_id == folder_id]

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    def create_folder(
        self,
        name: str,
        description: str | None = None,
        parent_id: str | None = None,
        color: str | None = None,
    ) -> SavedRuleFolder:
        folders = self._load_folders()
        self._require_folder(parent_id, folders)

        now = self._clock()
        folder = SavedRuleFolder(
            name=name,
            description=description,
            parent_id=parent_id,
            color=color,
            created_at=now,
            updated_at=now,
        )
        self._store_folders([*folders, folder])
        logger.info("Created folder %s (%s)", folder.id, name)
        return folder

    def get_folder(self, folder_id: str) -> SavedRuleFolder | None:
        return next((folder for folder in self._load_folders() if folder.id == folder_id), None)

    def list_folders(self) -> list[SavedRuleFolder]:
        return self._load_folders()

    def update_folder(self, folder_id: str, updates: Mapping[str, Any]) -> SavedRuleFolder | None:
        """
        Update a folder.

        Returns:
            Updated folder, or None when the id is unknown

        Raises:
            NotFoundError: If the new parent does not exist
            ConflictError: If the new parent is the folder itself or a descendant
        """
        folders = self._load_folders()
        for index, folder in enumerate(folders):
            if folder.id == folder_id:
                break
        else:
            return None

        fields = self._normalize_updates(SavedRuleFolder, updates)
        new_parent = fields.get("parent_id")
        if new_parent is not None:
            self._require_folder(new_parent, folders)
            if new_parent == folder_id or new_parent in self._descendant_ids(folder_id, folders):
                raise ConflictError(
                    "A folder cannot be moved under itself or its descendants",
                    details={"folder_id": folder_id, "parent_id": new_parent},
                )

        merged = {name: getattr(folder, name) for name in SavedRuleFolder.model_fields}
        merged.update(fields)
        merged["updated_at"] = self._clock()
        try:
            updated = SavedRuleFolder.model_validate(merged)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid folder update",
                details={"folder_id": folder_id, "errors": e.errors(include_url=False)},
            ) from e

        folders[index] = updated
        self._store_folders(folders)
        return updated

    @staticmethod
    def _descendant_ids(folder_id: str, folders: list[SavedRuleFolder]) -> set[str]:
        descendants: set[str] = set()
        frontier = [folder_id]
        while frontier:
            current = frontier.pop()
            for folder in folders:
                if folder.parent_id == current and folder.id not in descendants:
                    descendants.add(folder.id)
                    frontier.append(folder.id)
        return descendants

    def delete_folder(self, folder_id: str, move_contents_to_parent: bool = True) -> bool:
        """
        Delete a folder.

        Args:
            folder_id: Folder to delete
            move_contents_to_parent: Re-parent child folders and rules to the
                deleted folder's parent when True, delete them recursively
                otherwise

        Returns:
            False when the folder does not exist
        """
        folders = self._load_folders()
        target = next((folder for folder in folders if folder.id == folder_id), None)
        if target is None:
            return False

        rules = self._load_rules()
        now = self._clock()

        if move_contents_to_parent:
            removed = {folder_id}
            folders = [
                folder.model_copy(update={"parent_id": target.parent_id, "updated_at": now})
                if folder.parent_id == folder_id
                else folder
                for folder in folders
            ]
            rules = [
                rule.model_copy(update={"folder_id": target.parent_id, "updated_at": now})
                if rule.folder_id == folder_id
                else rule
                for rule in rules
            ]
        else:
            removed = {folder_id} | self._descendant_ids(folder_id, folders)
            rules = [rule for rule in rules if rule.folder_id not in removed]

        self._store_folders(folder for folder in folders if folder.id not in removed)
        self._store_rules(rules)
        logger.info("Deleted folder %s (%d folders removed)", folder_id, len(removed))
        return True

    def build_folder_tree(self) -> list[FolderTreeItem]:
        """
        Folders and rules as a tree for explorer views.

        Items whose parent is unknown are placed at the root. Siblings are
        ordered folders first, then alphabetically by name.
        """
        folders = self._load_folders()
        metadata = self.list_metadata()
        folder_ids = {folder.id for folder in folders}

        children: dict[str | None, list[tuple[str, Any]]] = {}
        for folder in folders:
            parent = folder.parent_id if folder.parent_id in folder_ids else None
            children.setdefault(parent, []).append(("folder", folder))
        for rule in metadata:
            parent = rule.folder_id if rule.folder_id in folder_ids else None
            children.setdefault(parent, []).append(("rule", rule))

        def build(parent_id: str | None, seen: frozenset[str]) -> tuple[FolderTreeItem, ...]:
            entries = sorted(
                children.get(parent_id, []),
                key=lambda entry: (entry[0] != "folder", entry[1].name.casefold()),
            )
            items = []
            for kind, data in entries:
                if kind == "folder":
                    if data.id in seen:
                        continue
                    items.append(
                        FolderTreeItem(
                            id=data.id,
                            name=data.name,
                            type="folder",
                            parent_id=data.parent_id,
                            children=build(data.id, seen | {data.id}),
                            data=data,
                        )
                    )
                else:
                    items.append(
                        FolderTreeItem(
                            id=data.id,
                            name=data.name,
                            type="rule",
                            parent_id=data.folder_id,
                            data=data,
                        )
                    )
            return tuple(items)

        return list(build(None, frozenset()))

    # ------------------------------------------------------------------
    # Bundles
    # ------------------------------------------------------------------

    def export_bundle(self) -> dict[str, Any]:
        """All rules and folders as ``{exportedAt, version, rules, folders}``."""
        return {
            "exportedAt": self._clock().isoformat(),
            "version": BUNDLE_VERSION,
            "rules": [
                rule.model_dump(mode="json", by_alias=True, exclude_none=True)
                for rule in self._load_rules()
            ],
            "folders": [
                folder.model_dump(mode="json", by_alias=True, exclude_none=True)
                for folder in self._load_folders()
            ],
        }

    def import_bundle(self, bundle: Mapping[str, Any] | str) -> ImportResult:
        """
        Import an exported bundle.

        Imported items get fresh ids; folder references are remapped to the new
        ids. Items whose name already exists are skipped with a message.

        Raises:
            ValidationError: If the bundle is not JSON or has no rules array
        """
        if isinstance(bundle, str):
            try:
                bundle = json.loads(bundle)
            except json.JSONDecodeError as e:
                raise ValidationError(
                    "Bundle is not valid JSON", details={"error": str(e)}
                ) from e

        if not isinstance(bundle, Mapping) or not isinstance(bundle.get("rules"), list):
            raise ValidationError("Invalid bundle format: missing rules array")

        rules = self._load_rules()
        folders = self._load_folders()
        rule_names = {rule.name for rule in rules}
        folder_names = {folder.name for folder in folders}
        folder_id_map: dict[str, str] = {}
        imported = skipped = 0
        errors: list[str] = []
        now = self._clock()

        # Assign every new id first; a child may be listed before its parent.
        accepted: list[tuple[Mapping[str, Any], str]] = []
        raw_folders = bundle.get("folders")
        for raw in raw_folders if isinstance(raw_folders, list) else []:
            name = raw.get("name") if isinstance(raw, Mapping) else None
            if not name:
                errors.append("Skipped folder: missing name")
                skipped += 1
                continue
            if name in folder_names:
                errors.append(f'Skipped folder "{name}": name already exists')
                skipped += 1
                continue

            new_id = _new_id()
            if raw.get("id"):
                folder_id_map[raw["id"]] = new_id
            accepted.append((raw, new_id))
            folder_names.add(name)

        for raw, new_id in accepted:
            folders.append(
                SavedRuleFolder(
                    id=new_id,
                    name=raw["name"],
                    description=raw.get("description"),
                    parent_id=folder_id_map.get(raw.get("parentId")),
                    color=raw.get("color"),
                    created_at=now,
                    updated_at=now,
                )
            )
            imported += 1

        for raw in bundle["rules"]:
            name = raw.get("name") if isinstance(raw, Mapping) else None
            tree_data = (raw.get("tree") or raw.get("rule")) if isinstance(raw, Mapping) else None
            if not name or not isinstance(tree_data, Mapping):
                errors.append("Skipped rule: missing name or rule data")
                skipped += 1
                continue
            if name in rule_names:
                errors.append(f'Skipped rule "{name}": name already exists')
                skipped += 1
                continue

            try:
                tree = Group.model_validate(upgrade_legacy_tree(dict(tree_data)))
            except (ValidationError, PydanticValidationError) as e:
                errors.append(f'Error importing rule "{name}": {e}')
                skipped += 1
                continue

            rules.append(
                SavedRule(
                    name=name,
                    description=raw.get("description"),
                    tags=tuple(raw.get("tags") or ()),
                    folder_id=folder_id_map.get(raw.get("folderId")),
                    tree=tree,
                    created_at=now,
                    updated_at=now,
                )
            )
            rule_names.add(name)
            imported += 1

        self._store_folders(folders)
        self._store_rules(rules)
        logger.info("Imported %d items, skipped %d", imported, skipped)
        return ImportResult(imported=imported, skipped=skipped, errors=tuple(errors))

    def clear(self) -> None:
        """Remove all saved rules and folders."""
        self.store.delete(self.rules_key)
        self.store.delete(self.folders_key)

    def storage_info(self) -> StorageInfo:
        rules = self._load_rules()
        folders = self._load_folders()
        raw_size = len((self.store.get(self.rules_key) or "").encode("utf-8")) + len(
            (self.store.get(self.folders_key) or "").encode("utf-8")
        )
        timestamps = [rule.updated_at for rule in rules] + [folder.updated_at for folder in folders]
        return StorageInfo(
            rule_count=len(rules),
            folder_count=len(folders),
            storage_size=raw_size,
            last_modified=max(timestamps) if timestamps else None,
        )
