"""Saved templates, profiles, field categories and upload sessions.

Everything here sits on top of an injected :class:`~pdfformkit.storage.KeyValueStore`;
the extractor and filler neither require nor call it.
"""

from __future__ import annotations

import base64
import json
import re
import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from rapidfuzz import fuzz

from . import config
from .models import ParseResult
from .storage import KeyValueStore, read_json, write_json
from .utils import configure_logger

logger = configure_logger(__name__)

TEMPLATES_KEY = "pdf-form-templates"
MODELS_KEY = "pdf-organization-models"
SESSION_KEY = "pdf-session"

NOT_ASSIGNED_ID = "not-assigned"
NOT_ASSIGNED_NAME = "Not Assigned"
DEFAULT_FILENAME_PATTERN = "document_[client_name]_[date].pdf"

# Words naming different people; a match across two of them is almost always wrong
_CONFLICT_WORDS = frozenset({
    "father", "mother", "brother", "sister", "son", "daughter",
    "husband", "wife", "parent", "spouse", "guardian",
    "first", "last", "middle", "maiden", "grandfather", "grandmother",
})


class LibraryError(Exception):
    """A saved template, profile or model could not be used."""
    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def categories_key(pdf_name: str) -> str:
    return f"pdf-categories-{pdf_name}"


def file_key(file_name: str) -> str:
    return f"pdf-file-{file_name}"


def values_key(file_name: str) -> str:
    return f"pdf-field-values-{file_name}"


def _safe_stem(name: str, keep_spaces: bool = False) -> str:
    pattern = r"[^a-z0-9\s]" if keep_spaces else r"[^a-z0-9]"
    return re.sub(pattern, "_", name.strip(), flags=re.IGNORECASE)


@dataclass(frozen=True)
class FieldTemplate:
    id: str
    name: str
    fields: Dict[str, str]
    created_at: str
    document_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "fields": dict(self.fields),
            "createdAt": self.created_at,
            "documentName": self.document_name,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FieldTemplate":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            fields={str(k): str(v) for k, v in dict(data.get("fields") or {}).items()},
            created_at=str(data.get("createdAt", "")),
            document_name=str(data.get("documentName", "")),
        )


class TemplateLibrary:
    """Named snapshots of a value map, newest first."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def list(self) -> List[FieldTemplate]:
        raw = read_json(self._store, TEMPLATES_KEY, [])
        templates: List[FieldTemplate] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                templates.append(FieldTemplate.from_dict(item))
            except (KeyError, TypeError) as e:
                logger.warning("Skipping malformed template entry: %s", e)
        return templates

    def _write(self, templates: Sequence[FieldTemplate]) -> None:
        write_json(self._store, TEMPLATES_KEY, [t.to_dict() for t in templates])

    def save(self, name: str, values: Mapping[str, str], document_name: str) -> FieldTemplate:
        if not name.strip():
            raise LibraryError("Template name must not be empty")
        template = FieldTemplate(
            id=uuid.uuid4().hex,
            name=name.strip(),
            fields=dict(values),
            created_at=_now(),
            document_name=document_name,
        )
        self._write([template, *self.list()])
        logger.info("Saved template '%s' with %d values", template.name, len(template.fields))
        return template

    def get(self, template_id: str) -> FieldTemplate:
        for template in self.list():
            if template.id == template_id:
                return template
        raise LibraryError(f"Unknown template: {template_id}")

    def delete(self, template_id: str) -> None:
        self._write([t for t in self.list() if t.id != template_id])

    def export(self, template_id: str) -> Tuple[str, str]:
        """(download file name, JSON text) for one template."""

        template = self.get(template_id)
        return f"{_safe_stem(template.name)}_template.json", json.dumps(template.to_dict(), indent=2)


@dataclass
class Profile:
    output_dir: str = ""
    filename_pattern: str = DEFAULT_FILENAME_PATTERN
    aliases: Dict[str, str] = field(default_factory=dict)
    defaults: Dict[str, str] = field(default_factory=dict)
    field_organization: Dict[str, List[str]] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2, ensure_ascii=False)


def build_profile(values: Mapping[str, str], categories: Iterable["Category"]) -> Profile:
    return Profile(
        defaults=dict(values),
        field_organization={c.name: list(c.fields) for c in categories},
    )


def profile_filename(profile_name: str) -> str:
    if not profile_name.strip():
        raise LibraryError("Profile name must not be empty")
    return f"{_safe_stem(profile_name, keep_spaces=True)}_profile.json"


def parse_profile(text: str) -> Profile:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise LibraryError(f"Invalid profile JSON: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("defaults"), dict):
        raise LibraryError("Invalid profile format: missing defaults")
    organization = data.get("field_organization") or {}
    return Profile(
        output_dir=str(data.get("output_dir", "")),
        filename_pattern=str(data.get("filename_pattern", DEFAULT_FILENAME_PATTERN)),
        aliases={str(k): str(v) for k, v in dict(data.get("aliases") or {}).items()},
        defaults={str(k): str(v) for k, v in data["defaults"].items()},
        field_organization={str(k): [str(f) for f in v] for k, v in dict(organization).items()},
    )


def match_score(field_name: str, stored_name: str) -> float:
    """0-100 similarity between two field names.

    Averages token-set and token-sort ratios, boosts containment and sinks
    pairs naming different people ("Father Name" vs "Mother Name").
    """

    left, right = field_name.lower(), stored_name.lower()
    score = (fuzz.token_set_ratio(left, right) + fuzz.token_sort_ratio(left, right)) / 2

    if left and left in right and len(left) / len(right) > 0.4:
        score = max(score, 85)

    left_words = set(re.sub(r"['\-_.]", " ", left).split())
    right_words = set(re.sub(r"['\-_.]", " ", right).split())
    left_conflicts = left_words & _CONFLICT_WORDS
    right_conflicts = right_words & _CONFLICT_WORDS
    if left_conflicts and right_conflicts and left_conflicts.isdisjoint(right_conflicts):
        score *= 0.2
    return score


def suggest_value(
    field_name: str,
    defaults: Mapping[str, str],
    aliases: Optional[Mapping[str, str]] = None,
    threshold: Optional[float] = None,
) -> Optional[str]:
    """Saved value for ``field_name``: exact name, then alias, then fuzzy match."""

    if field_name in defaults:
        return defaults[field_name]
    alias = (aliases or {}).get(field_name)
    if alias is not None and alias in defaults:
        return defaults[alias]

    cutoff = config.FUZZY_THRESHOLD if threshold is None else threshold
    best: Optional[Tuple[float, str]] = None
    for stored_name in defaults:
        score = match_score(field_name, stored_name)
        if best is None or score > best[0]:
            best = (score, stored_name)
    if best is not None and best[0] >= cutoff:
        logger.debug("Fuzzy match for '%s': '%s' (score: %.1f)", field_name, best[1], best[0])
        return defaults[best[1]]
    return None


def apply_defaults(
    values: Mapping[str, str],
    defaults: Mapping[str, str],
    aliases: Optional[Mapping[str, str]] = None,
    fuzzy: bool = True,
) -> Dict[str, str]:
    """Fill ``values`` from saved ``defaults``, never adding unknown names."""

    updated = dict(values)
    for name in updated:
        if fuzzy:
            suggestion = suggest_value(name, defaults, aliases)
        else:
            suggestion = defaults.get(name)
        if suggestion is not None:
            updated[name] = suggestion
    return updated


@dataclass
class Category:
    id: str
    name: str
    fields: List[str] = field(default_factory=list)
    is_default: bool = False
    is_readonly: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "fields": list(self.fields),
            "isDefault": self.is_default,
            "isReadonly": self.is_readonly,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Category":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            fields=[str(f) for f in data.get("fields", [])],
            is_default=bool(data.get("isDefault", False)),
            is_readonly=bool(data.get("isReadonly", False)),
        )


@dataclass(frozen=True)
class OrganizationModel:
    pdf_name: str
    organization: Dict[str, List[str]]
    model_name: str
    created_at: str = ""
    pdf_path: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OrganizationModel":
        try:
            organization = {str(k): [str(f) for f in v] for k, v in dict(data["organization"]).items()}
            return cls(
                pdf_name=str(data["pdf_name"]),
                organization=organization,
                model_name=str(data.get("model_name", "")),
                created_at=str(data.get("created_at", "")),
                pdf_path=str(data.get("pdf_path", "")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise LibraryError(f"Invalid organization model: {e}") from e


def _not_assigned(fields: Iterable[str]) -> Category:
    return Category(id=NOT_ASSIGNED_ID, name=NOT_ASSIGNED_NAME, fields=list(fields), is_default=True)


class CategoryBoard:
    """User-defined grouping of one document's fields, persisted per PDF name.

    Every field lives in exactly one category; fields start in
    "Not Assigned", which cannot be deleted.
    """

    def __init__(self, store: KeyValueStore, pdf_name: str, field_names: Sequence[str]) -> None:
        self._store = store
        self.pdf_name = pdf_name
        self.field_names = list(field_names)
        saved = read_json(store, categories_key(pdf_name))
        if isinstance(saved, list) and saved:
            try:
                self.categories = [Category.from_dict(item) for item in saved]
            except (KeyError, TypeError) as e:
                logger.warning("Ignoring saved categories for '%s': %s", pdf_name, e)
                self.categories = [_not_assigned(self.field_names)]
        else:
            self.categories = [_not_assigned(self.field_names)]

    def save(self) -> None:
        write_json(self._store, categories_key(self.pdf_name), [c.to_dict() for c in self.categories])

    def get(self, category_id: str) -> Category:
        for category in self.categories:
            if category.id == category_id:
                return category
        raise LibraryError(f"Unknown category: {category_id}")

    def category_of(self, field_name: str) -> str:
        for category in self.categories:
            if field_name in category.fields:
                return category.name
        return NOT_ASSIGNED_NAME

    def create(self, name: str) -> Category:
        if not name.strip():
            raise LibraryError("Category name must not be empty")
        category = Category(id=f"category-{uuid.uuid4().hex[:12]}", name=name.strip())
        self.categories.append(category)
        self.save()
        return category

    def rename(self, category_id: str, name: str) -> None:
        if not name.strip():
            raise LibraryError("Category name must not be empty")
        self.get(category_id).name = name.strip()
        self.save()

    def delete(self, category_id: str) -> bool:
        """Remove a custom category, returning its fields to "Not Assigned"."""

        category = self.get(category_id)
        if category.is_default:
            return False
        self._ensure_not_assigned().fields.extend(category.fields)
        self.categories = [c for c in self.categories if c.id != category_id]
        self.save()
        return True

    def move_fields(self, field_names: Sequence[str], target_id: str) -> None:
        target = self.get(target_id)
        if target.is_readonly:
            raise LibraryError(f"Category '{target.name}' is read-only")
        moving = [f for f in field_names if f not in target.fields]
        for category in self.categories:
            if category is not target and not category.is_readonly:
                category.fields = [f for f in category.fields if f not in field_names]
        target.fields.extend(moving)
        self.save()

    def move_up(self, category_id: str, field_name: str) -> None:
        self._swap(category_id, field_name, -1)

    def move_down(self, category_id: str, field_name: str) -> None:
        self._swap(category_id, field_name, 1)

    def _swap(self, category_id: str, field_name: str, step: int) -> None:
        fields = self.get(category_id).fields
        if field_name not in fields:
            return
        index = fields.index(field_name)
        other = index + step
        if 0 <= other < len(fields):
            fields[index], fields[other] = fields[other], fields[index]
            self.save()

    def _ensure_not_assigned(self) -> Category:
        for category in self.categories:
            if category.id == NOT_ASSIGNED_ID:
                return category
        category = _not_assigned([])
        self.categories.insert(0, category)
        return category

    def organization(self) -> Dict[str, List[str]]:
        return {c.name: list(c.fields) for c in self.categories if not c.is_readonly}

    def apply_organization(self, organization: Mapping[str, Sequence[str]]) -> None:
        """Rebuild categories from a saved name → fields mapping.

        Names the current document lacks are dropped; fields the mapping
        does not mention land in "Not Assigned".
        """

        known = set(self.field_names)
        not_assigned = _not_assigned([])
        rebuilt = [not_assigned]
        placed: set = set()
        for index, (name, fields) in enumerate(organization.items(), start=1):
            kept = [f for f in fields if f in known and f not in placed]
            placed.update(kept)
            if name == NOT_ASSIGNED_NAME:
                not_assigned.fields.extend(kept)
                continue
            rebuilt.append(Category(id=f"category-{index}", name=name, fields=kept))
        not_assigned.fields.extend(f for f in self.field_names if f not in placed)
        self.categories = rebuilt
        self.save()

    def saved_models(self) -> List[OrganizationModel]:
        raw = read_json(self._store, MODELS_KEY, [])
        models: List[OrganizationModel] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                models.append(OrganizationModel.from_dict(item))
            except LibraryError as e:
                logger.warning("Skipping malformed organization model: %s", e)
        return models

    def save_model(self, model_name: str) -> OrganizationModel:
        if not model_name.strip():
            raise LibraryError("Model name must not be empty")
        model = OrganizationModel(
            pdf_name=self.pdf_name,
            organization=self.organization(),
            model_name=model_name.strip(),
            created_at=_now(),
        )
        models = self.saved_models() + [model]
        write_json(self._store, MODELS_KEY, [asdict(m) for m in models])
        return model

    def load_model(self, model: OrganizationModel) -> None:
        if model.pdf_name != self.pdf_name:
            raise LibraryError("This model was created for a different PDF")
        self.apply_organization(model.organization)

    def export_model(self) -> Tuple[str, str]:
        """(download file name, JSON text) for the current organisation."""

        date = datetime.now(timezone.utc).date().isoformat()
        model = OrganizationModel(
            pdf_name=self.pdf_name,
            organization=self.organization(),
            model_name=f"{self.pdf_name}_organization_{date}",
            created_at=_now(),
        )
        return f"{self.pdf_name}_organization.json", json.dumps(asdict(model), indent=2, ensure_ascii=False)

    def import_model(self, text: str) -> OrganizationModel:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise LibraryError("Invalid JSON file format.") from e
        if not isinstance(data, dict):
            raise LibraryError("Invalid JSON file format.")
        model = OrganizationModel.from_dict(data)
        self.load_model(model)
        return model


@dataclass(frozen=True)
class SessionRecord:
    file_name: str
    file_size: int
    file_type: str
    pdf_data: ParseResult
    upload_time: float


def save_session(
    store: KeyValueStore,
    file_name: str,
    pdf_bytes: bytes,
    result: ParseResult,
    file_type: str = config.PDF_CONTENT_TYPE,
) -> SessionRecord:
    record = SessionRecord(
        file_name=file_name,
        file_size=len(pdf_bytes),
        file_type=file_type,
        pdf_data=result,
        upload_time=time.time(),
    )
    write_json(store, SESSION_KEY, {
        "fileName": record.file_name,
        "fileSize": record.file_size,
        "fileType": record.file_type,
        "pdfData": result.to_dict(),
        "uploadTime": record.upload_time,
    })
    store.set(file_key(file_name), base64.b64encode(pdf_bytes))
    logger.info("Session saved for '%s'", file_name)
    return record


def restore_session(store: KeyValueStore) -> Optional[Tuple[SessionRecord, bytes]]:
    """The last saved upload, or None. Incomplete sessions are cleared."""

    raw = read_json(store, SESSION_KEY)
    if not isinstance(raw, dict):
        return None
    try:
        file_name = str(raw["fileName"])
        record = SessionRecord(
            file_name=file_name,
            file_size=int(raw.get("fileSize", 0)),
            file_type=str(raw.get("fileType", config.PDF_CONTENT_TYPE)),
            pdf_data=ParseResult.from_dict(raw["pdfData"]),
            upload_time=float(raw.get("uploadTime", 0.0)),
        )
        encoded = store.get(file_key(file_name))
        if encoded is None:
            raise LibraryError(f"Stored file missing for '{file_name}'")
        return record, base64.b64decode(encoded)
    except (KeyError, TypeError, ValueError, LibraryError) as e:
        logger.warning("Discarding unusable session: %s", e)
        clear_session(store)
        return None


def clear_session(store: KeyValueStore) -> None:
    raw = read_json(store, SESSION_KEY)
    if isinstance(raw, dict) and raw.get("fileName"):
        store.remove(file_key(str(raw["fileName"])))
    store.remove(SESSION_KEY)


def save_field_values(store: KeyValueStore, file_name: str, values: Mapping[str, str]) -> None:
    write_json(store, values_key(file_name), dict(values))


def load_field_values(store: KeyValueStore, file_name: str) -> Dict[str, str]:
    raw = read_json(store, values_key(file_name), {})
    if not isinstance(raw, dict):
        return {}
    return {str(k): str(v) for k, v in raw.items()}


__all__ = [
    "Category",
    "CategoryBoard",
    "FieldTemplate",
    "LibraryError",
    "OrganizationModel",
    "Profile",
    "SessionRecord",
    "TemplateLibrary",
    "apply_defaults",
    "build_profile",
    "clear_session",
    "load_field_values",
    "match_score",
    "parse_profile",
    "profile_filename",
    "restore_session",
    "save_field_values",
    "save_session",
    "suggest_value",
]
