# src/listing_notes/tasks/editor.py

from __future__ import annotations

import logging
from dataclasses import replace

from ..core.listing import ListingRecord, RentOrSale, parse_number, parse_price
from .task_models import SuccessTask
from .task_store import TaskStore

logger = logging.getLogger(__name__)

# Field name -> form label, in form order.
FIELD_LABELS: dict[str, str] = {
    "community_name": "小区 / 大厦名称",
    "price": "价格 (元)",
    "rent_or_sale": "类型",
    "layout": "户型",
    "area": "面积 (㎡)",
    "floor": "楼层",
    "orientation": "朝向",
    "contact_name": "联系人",
    "contact_phone": "联系电话",
    "additional_notes": "备注说明",
}

_ALIASES: dict[str, str] = {
    "communityname": "community_name",
    "community": "community_name",
    "name": "community_name",
    "小区": "community_name",
    "价格": "price",
    "rentorsale": "rent_or_sale",
    "type": "rent_or_sale",
    "类型": "rent_or_sale",
    "户型": "layout",
    "面积": "area",
    "楼层": "floor",
    "朝向": "orientation",
    "contactname": "contact_name",
    "contact": "contact_name",
    "联系人": "contact_name",
    "contactphone": "contact_phone",
    "phone": "contact_phone",
    "电话": "contact_phone",
    "additionalnotes": "additional_notes",
    "notes": "additional_notes",
    "备注": "additional_notes",
}


def resolve_field(name: str) -> str:
    key = (name or "").strip()
    if key in FIELD_LABELS:
        return key
    lowered = key.lower().replace("-", "_")
    if lowered in FIELD_LABELS:
        return lowered
    resolved = _ALIASES.get(lowered.replace("_", "")) or _ALIASES.get(key)
    if resolved is None:
        raise KeyError(name)
    return resolved


class FormEditor:
    """
    Edits one success task's record at a time.

    open() copies the task's record into a draft; set_field() changes the
    draft only; save() writes it back through the task store and closes.
    """

    def __init__(self, store: TaskStore) -> None:
        self._store = store
        self._task_id: str | None = None
        self._draft: ListingRecord | None = None

    @property
    def active(self) -> bool:
        return self._task_id is not None

    @property
    def task_id(self) -> str | None:
        return self._task_id

    @property
    def draft(self) -> ListingRecord | None:
        return self._draft

    def open(self, task_id: str) -> ListingRecord | None:
        task = self._store.get(task_id)
        if not isinstance(task, SuccessTask):
            return None
        self._task_id = task.id
        self._draft = task.extracted_data
        logger.debug("Editing task %s", task.id)
        return self._draft

    def set_field(self, name: str, value: str) -> ListingRecord:
        """Raises RuntimeError when nothing is open, KeyError for unknown fields."""
        if self._draft is None:
            raise RuntimeError("No listing is being edited.")
        field = resolve_field(name)

        coerced: object
        if field == "price":
            coerced = parse_price(value)
        elif field == "area":
            coerced = parse_number(value)
        elif field == "rent_or_sale":
            coerced = RentOrSale.parse(value)
        else:
            coerced = str(value)

        self._draft = replace(self._draft, **{field: coerced})
        return self._draft

    def save(self, *, as_template: bool = False) -> SuccessTask | None:
        """No-op (None) when no task is being edited."""
        if self._task_id is None or self._draft is None:
            return None
        updated = self._store.edit_and_save(self._task_id, self._draft, as_template=as_template)
        self.close()
        return updated

    def close(self) -> None:
        self._task_id = None
        self._draft = None
