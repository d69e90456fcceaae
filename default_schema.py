"""Built-in entity schema used when the metadata document cannot be loaded."""

from __future__ import annotations

import copy
from typing import Any, Dict, List


DEFAULT_ENTITY_NAMES = (
    "user",
    "role",
    "customer",
    "technician",
    "contract",
    "invoice",
    "inventory",
    "work_order",
)

_IDENTITY = {
    "user": "email",
    "customer": "email",
    "technician": "email",
    "role": "name",
    "work_order": "title",
    "contract": "title",
    "invoice": "invoice_number",
    "inventory": "name",
}

_REQUIRED = {
    "user": ["email", "role_id"],
    "role": ["name"],
    "customer": ["email"],
    "technician": ["user_id"],
    "work_order": ["title", "customer_id"],
    "contract": ["title", "customer_id"],
    "invoice": ["customer_id"],
    "inventory": ["name"],
}

_SEARCHABLE = {
    "user": ["email", "first_name", "last_name"],
    "role": ["name", "description"],
    "customer": ["email", "company_name", "phone"],
    "technician": ["specialty"],
    "work_order": ["title", "description"],
    "contract": ["title", "description"],
    "invoice": ["invoice_number"],
    "inventory": ["name", "description", "sku"],
}

_TABLES = {"inventory": "inventory"}

_UNIVERSAL_FIELDS: Dict[str, Dict[str, Any]] = {
    "id": {"type": "integer", "readonly": True},
    "is_active": {"type": "boolean", "default": True},
    "created_at": {"type": "timestamp", "readonly": True},
    "updated_at": {"type": "timestamp", "readonly": True},
}

_ENTITY_FIELDS: Dict[str, Dict[str, Dict[str, Any]]] = {
    "user": {
        "email": {"type": "email", "required": True, "maxLength": 255},
        "first_name": {"type": "string", "maxLength": 100},
        "last_name": {"type": "string", "maxLength": 100},
        "role_id": {"type": "foreignKey", "required": True, "relatedEntity": "role", "displayField": "name"},
    },
    "role": {
        "name": {"type": "string", "required": True, "maxLength": 50},
        "description": {"type": "text"},
        "priority": {"type": "integer", "min": 1},
    },
    "customer": {
        "email": {"type": "email", "required": True, "maxLength": 255},
        "phone": {"type": "phone", "maxLength": 50},
        "company_name": {"type": "string", "maxLength": 255},
        "status": {"type": "enum", "values": ["pending", "active", "suspended"], "default": "pending"},
    },
    "technician": {
        "user_id": {"type": "foreignKey", "required": True, "relatedEntity": "user", "displayField": "email"},
        "specialty": {"type": "string", "maxLength": 100},
        "hourly_rate": {"type": "decimal", "min": 0},
    },
    "work_order": {
        "title": {"type": "string", "required": True, "maxLength": 255},
        "description": {"type": "text"},
        "customer_id": {"type": "foreignKey", "required": True, "relatedEntity": "customer", "displayField": "email"},
        "status": {"type": "enum", "values": ["pending", "assigned", "in_progress", "completed", "cancelled"], "default": "pending"},
    },
    "contract": {
        "title": {"type": "string", "required": True, "maxLength": 255},
        "description": {"type": "text"},
        "customer_id": {"type": "foreignKey", "required": True, "relatedEntity": "customer", "displayField": "email"},
        "start_date": {"type": "date"},
        "end_date": {"type": "date"},
    },
    "invoice": {
        "invoice_number": {"type": "string", "maxLength": 50},
        "customer_id": {"type": "foreignKey", "required": True, "relatedEntity": "customer", "displayField": "email"},
        "amount": {"type": "decimal", "min": 0},
        "status": {"type": "enum", "values": ["draft", "sent", "paid", "void"], "default": "draft"},
    },
    "inventory": {
        "name": {"type": "string", "required": True, "maxLength": 255},
        "description": {"type": "text"},
        "sku": {"type": "string", "maxLength": 100},
        "quantity": {"type": "integer", "min": 0},
    },
}


def _entity_document(name: str) -> Dict[str, Any]:
    fields: Dict[str, Any] = copy.deepcopy(_UNIVERSAL_FIELDS)
    fields.update(copy.deepcopy(_ENTITY_FIELDS.get(name, {})))
    identity = _IDENTITY.get(name, "id")
    filterable: List[str] = ["id", "is_active", "created_at"]
    if "status" in fields:
        filterable.append("status")
    return {
        "tableName": _TABLES.get(name, f"{name}s"),
        "primaryKey": "id",
        "identityField": identity,
        "displayField": identity,
        "rlsResource": _TABLES.get(name, f"{name}s"),
        "requiredFields": list(_REQUIRED.get(name, [])),
        "immutableFields": [],
        "searchableFields": list(_SEARCHABLE.get(name, [])),
        "filterableFields": filterable,
        "sortableFields": ["id", identity, "created_at", "updated_at"] if identity != "id" else ["id", "created_at", "updated_at"],
        "defaultSort": {"field": "created_at", "order": "DESC"},
        "fields": fields,
    }


def default_schema_document() -> Dict[str, Any]:
    """Return a fresh copy of the built-in metadata document."""
    return {
        "title": "Built-in entity metadata",
        "version": "builtin",
        **{name: _entity_document(name) for name in DEFAULT_ENTITY_NAMES},
    }
