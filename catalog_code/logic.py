"""
Catalog code allocation (persistent, sequential, per company).

Catalog entries created from records that carry no supplier code get an
internal code like "AUTO00001000". The "next number to allocate" counter is
kept per company in a JSON state file (CATALOG_CODE_STATE, by default
`<project_root>/data/catalog_codes.json`), so allocations stay consistent
across runs.

Key behaviors:
- A company without a counter starts from `start_next`.
- `allocate(company_id, count)` returns `count` sequential codes and persists
  the incremented counter.
- `peek_next(company_id)` returns the next code without incrementing.
- State is written to a temporary file and then replaced to reduce corruption risk.
- `taken` lets callers skip numbers already used as codes in the catalog.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from config import CATALOG_CODE_STATE


@dataclass(frozen=True)
class CatalogCodeConfig:
    prefix: str = "AUTO"
    width: int = 8
    start_next: int = 1000


class CatalogCodeError(RuntimeError):
    """Raised when the catalog code state is invalid or allocation fails."""
    pass


_lock = threading.Lock()


def _load_state(state_path: Path) -> Dict[str, int]:
    """Load and validate the persisted per-company counters."""
    if not state_path.exists():
        return {}

    try:
        raw = json.loads(state_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise CatalogCodeError(f"Failed to read/parse state file: {state_path}") from e

    if not isinstance(raw, dict):
        raise CatalogCodeError(
            f"Invalid state format in {state_path}. Expected {{\"<company_id>\": <int>}}"
        )

    for company_id, nxt in raw.items():
        if not isinstance(nxt, int) or nxt < 0:
            raise CatalogCodeError(f"Invalid counter for company {company_id!r} in {state_path}: {nxt}")

    return raw


def _save_state(state_path: Path, state: Dict[str, int]) -> None:
    state_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = state_path.with_suffix(".tmp")

    tmp_path.write_text(json.dumps(state, ensure_ascii=False, indent=2, sort_keys=True), encoding="utf-8")
    tmp_path.replace(state_path)


def format_catalog_code(n: int, cfg: CatalogCodeConfig = CatalogCodeConfig()) -> str:
    """Format an integer as a catalog code string like 'AUTO00001000'."""
    if n < 0:
        raise CatalogCodeError(f"Cannot format negative catalog code: {n}")
    return f"{cfg.prefix}{n:0{cfg.width}d}"


def allocate(
    company_id: str,
    count: int = 1,
    cfg: CatalogCodeConfig = CatalogCodeConfig(),
    state_path: Optional[Path] = None,
    taken: Optional[Callable[[str], bool]] = None,
) -> List[str]:
    """
    Allocate `count` sequential catalog codes for a company and persist the counter.

    Example:
        allocate("acme", 2) -> ["AUTO00001000", "AUTO00001001"]
    """
    if not company_id:
        raise CatalogCodeError("company_id is required")
    if not isinstance(count, int) or count <= 0:
        raise CatalogCodeError(f"count must be a positive integer, got: {count}")

    path = Path(state_path) if state_path is not None else CATALOG_CODE_STATE

    with _lock:
        state = _load_state(path)
        current = state.get(company_id, cfg.start_next)

        allocated: List[str] = []
        while len(allocated) < count:
            code = format_catalog_code(current, cfg)
            current += 1
            if taken is not None and taken(code):
                continue
            allocated.append(code)

        state[company_id] = current
        _save_state(path, state)

    return allocated


def peek_next(
    company_id: str,
    cfg: CatalogCodeConfig = CatalogCodeConfig(),
    state_path: Optional[Path] = None,
) -> str:
    """Return the next catalog code that would be allocated, without incrementing."""
    path = Path(state_path) if state_path is not None else CATALOG_CODE_STATE
    state = _load_state(path)
    return format_catalog_code(state.get(company_id, cfg.start_next), cfg)
