"""Utility helpers for the EditorsChoice service."""

from __future__ import annotations

import re


SCRIPT_ROUTE = "/editorschoice/script"

STALE_TAG_RE = re.compile(
    r'<script[^>]*plugin="EditorsChoice"[^>]*></script>'
    r'(<style plugin="EditorsChoice">.*?</style>)?',
    re.DOTALL,
)
BODY_CLOSE_RE = re.compile(r"(</body>)", re.IGNORECASE)


def normalize_base_path(value: str | None) -> str:
    """Return ``/segment`` for a configured base URL, or ``""`` for the root."""

    if not value:
        return ""
    trimmed = value.strip().strip("/").strip()
    if not trimmed:
        return ""
    return f"/{trimmed}"


def script_tag(base_path: str, marker: str) -> str:
    """Return the client script element flagged with ``marker="true"``."""

    return (
        f'<script {marker}="true" plugin="EditorsChoice" defer="defer" '
        f'src="{base_path}{SCRIPT_ROUTE}"></script>'
    )


def strip_script_tags(html: str) -> str:
    """Remove previously injected EditorsChoice script and style elements."""

    return STALE_TAG_RE.sub("", html)


def insert_before_last_body(html: str, element: str) -> str | None:
    """Insert ``element`` before the final ``</body>``; ``None`` if absent."""

    matches = list(BODY_CLOSE_RE.finditer(html))
    if not matches:
        return None
    position = matches[-1].start()
    return html[:position] + element + html[position:]


def insert_before_body(html: str, element: str) -> str:
    """Insert ``element`` before every ``</body>`` regardless of case."""

    return BODY_CLOSE_RE.sub(lambda match: element + match.group(1), html)
