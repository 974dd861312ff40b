from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from .models import Bug, Product, Record, display_user

_IMG_SRC = re.compile(r"""<img[^>]+src\s*=\s*["']([^"']+)["'][^>]*>""", re.IGNORECASE)


def extract_images_from_html(html: Any) -> list[str]:
    """Absolute image URLs referenced by ``<img>`` tags in an HTML fragment."""
    if not isinstance(html, str) or not html:
        return []
    return [src for src in _IMG_SRC.findall(html) if src.startswith("http")]


def summarize_product(product: Record) -> dict[str, Any]:
    return {"id": product.id, "name": product.title}


def summarize_bug(bug: Record) -> dict[str, Any]:
    # prefer the real name over the account when the API sent a user object
    assignee = display_user(bug.raw.get("assignedTo")) or bug.assigned_to
    return {
        "id": bug.id,
        "title": bug.title,
        "severity": bug.severity if isinstance(bug, Bug) else bug.raw.get("severity"),
        "status": bug.status.label if bug.status else None,
        "assigned_to": assignee,
    }


def summarize_detail(raw: Mapping[str, Any]) -> dict[str, Any]:
    steps = raw.get("steps")
    return {
        "id": raw.get("id"),
        "title": raw.get("title"),
        "severity": raw.get("severity"),
        "priority": raw.get("pri"),
        "status": raw.get("status"),
        "steps": steps,
        "steps_images": extract_images_from_html(steps),
        "assigned_to": raw.get("assignedTo"),
        "opened_by": raw.get("openedBy"),
        "product": raw.get("product"),
        "type": raw.get("type"),
    }


def summarize(record: Record) -> dict[str, Any]:
    if isinstance(record, Product):
        return summarize_product(record)
    return summarize_bug(record)


__all__ = [
    "extract_images_from_html",
    "summarize_product",
    "summarize_bug",
    "summarize_detail",
    "summarize",
]
