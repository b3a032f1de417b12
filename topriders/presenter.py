"""Render ranked results and placeholder states into a display target."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from jinja2 import Environment, PackageLoader, select_autoescape

from .constants import CSS_CLASSES, ERROR_MESSAGES
from .errors import RenderError
from .models import Category, Entry, ResultSet

LEAGUE_COLUMNS = ["Position", "Rider", "Points", "Club"]
PRIME_COLUMNS = ["Rank", "Rider", "Prime Points"]

SECTION_TITLES = {
    Category.MAIN_LEAGUE: "Main League - Top {n}",
    Category.DEVELOPMENT_LEAGUE: "Development League - Top {n}",
    Category.PRIME_1: "Prime Competition 1 - Top {n}",
    Category.PRIME_2: "Prime Competition 2 - Top {n}",
}


class DisplayTarget:
    """Mount point that holds the latest rendered fragment."""

    def __init__(self, selector: str):
        self.selector = selector
        self._lock = threading.Lock()
        self.html = ""
        self.state = "empty"
        self.message: Optional[str] = None
        self.retry = False

    def mount(self, html: str, state: str, message: Optional[str] = None, retry: bool = False) -> None:
        with self._lock:
            self.html = html
            self.state = state
            self.message = message
            self.retry = retry

    def clear(self) -> None:
        """Release the fragment when its widget stops owning this target."""
        self.mount("", "idle")

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {"selector": self.selector, "state": self.state, "message": self.message, "retry": self.retry, "html": self.html}


def _format_score(score: float) -> str:
    return str(int(score)) if float(score).is_integer() else f"{score:g}"


def _league_rows(entries: Sequence[Entry]) -> List[Dict[str, Any]]:
    rows = []
    for idx, entry in enumerate(entries, start=1):
        position = entry.rank_hint or idx
        rows.append({
            "cells": [position, entry.name, _format_score(entry.score), entry.affiliation or "-"],
            "jersey": "yellow" if position == 1 else None,
        })
    return rows


def _prime_rows(entries: Sequence[Entry]) -> List[Dict[str, Any]]:
    return [
        {"cells": [idx, entry.name, _format_score(entry.score)], "jersey": "green" if idx == 1 else None}
        for idx, entry in enumerate(entries, start=1)
    ]


def build_view(result: ResultSet, limits: Optional[Dict[Category, int]] = None) -> Dict[str, Any]:
    """Display structure for a ResultSet; categories without entries are left out."""
    limits = limits or {}
    leagues = []
    primes = []
    for category in Category:
        entries = result.for_category(category)
        if not entries:
            continue
        is_prime = category in (Category.PRIME_1, Category.PRIME_2)
        section = {
            "category": category.value,
            "title": SECTION_TITLES[category].format(n=limits.get(category, len(entries))),
            "columns": PRIME_COLUMNS if is_prime else LEAGUE_COLUMNS,
            "rows": _prime_rows(entries) if is_prime else _league_rows(entries),
        }
        (primes if is_prime else leagues).append(section)
    computed_at: datetime = result.computed_at
    return {
        "title": "Top Riders",
        "leagues": leagues,
        "primes": primes,
        "last_updated": computed_at.strftime("%d/%m/%Y, %H:%M:%S") if computed_at else None,
    }


class Presenter:
    def __init__(self, env: Optional[Environment] = None, limits: Optional[Dict[Category, int]] = None):
        self.env = env or Environment(
            loader=PackageLoader("topriders", "templates"),
            autoescape=select_autoescape(["html"]),
        )
        self.env.globals["css"] = CSS_CLASSES
        self.limits = limits

    def _render(self, template: str, **context) -> str:
        return self.env.get_template(template).render(**context)

    def render(self, target: DisplayTarget, result: ResultSet, from_cache: bool = False) -> None:
        if result.is_empty():
            self.show_empty(target)
            return
        try:
            html = self._render("_top_riders.html", view=build_view(result, self.limits), from_cache=from_cache)
        except Exception as e:  # pylint: disable=broad-except
            raise RenderError(f"Error rendering top riders section: {e}") from e
        target.mount(html, "rendered")

    def show_loading(self, target: DisplayTarget) -> None:
        target.mount(self._render("_loading.html"), "loading")

    def show_error(self, target: DisplayTarget, message: Optional[str] = None, retry: bool = True) -> None:
        message = message or ERROR_MESSAGES["generic"]
        target.mount(self._render("_error.html", message=message, retry=retry), "error", message=message, retry=retry)

    def show_empty(self, target: DisplayTarget) -> None:
        target.mount(self._render("_empty.html"), "empty")
