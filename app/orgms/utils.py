from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from flask import current_app, jsonify, request


@dataclass(frozen=True)
class ValidationError:
    field: str
    message: str


def validation_response(errors: list[ValidationError]):
    return jsonify({"errors": [{"field": e.field, "message": e.message} for e in errors]}), 400


def request_payload() -> dict[str, Any]:
    """JSON body if present, otherwise form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def normalize_text(s: Any) -> str:
    if s is None:
        return ""
    return str(s).strip()


def parse_date(s: Any) -> date | None:
    """Parse a YYYY-MM-DD string (or an ISO datetime) into a date. Empty -> None."""
    if isinstance(s, date) and not isinstance(s, datetime):
        return s
    v = normalize_text(s)
    if not v:
        return None
    if len(v) > 10:
        return datetime.fromisoformat(v.replace("Z", "+00:00")).date()
    return date.fromisoformat(v)


def parse_decimal(s: Any) -> Decimal | None:
    v = normalize_text(s)
    if not v:
        return None
    try:
        d = Decimal(v)
    except InvalidOperation as e:
        raise ValueError(f"Invalid number: {v!r}") from e
    if not d.is_finite():
        raise ValueError(f"Invalid number: {v!r}")
    return d


CENT = Decimal("0.01")
# money columns are Numeric(14, 2): at most 12 integer digits
MONEY_LIMIT = Decimal("1000000000000")


def parse_money(s: Any) -> Decimal | None:
    """Parse an amount rounded to cents. Empty -> None; ValueError for junk or out-of-range values."""
    try:
        d = parse_decimal(s)
    except ValueError as e:
        raise ValueError("Must be a number.") from e
    if d is None:
        return None
    if abs(d) >= MONEY_LIMIT:
        raise ValueError(f"Must be less than {MONEY_LIMIT:,}.")
    return d.quantize(CENT)


def parse_int(s: Any) -> int | None:
    v = normalize_text(s)
    if not v:
        return None
    return int(v)


def decimal_to_json(d: Decimal | None) -> str | None:
    return None if d is None else format(d, "f")


def iso(dt: date | datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def set_if_changed(obj: Any, attr: str, new: Any, changes: dict[str, dict[str, Any]]) -> None:
    """Assign obj.attr = new, recording {"old", "new"} in changes when the value differs."""
    old = getattr(obj, attr)
    if old == new:
        return
    changes[attr] = {"old": old, "new": new}
    setattr(obj, attr, new)


def like_pattern(search: str) -> str:
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@dataclass(frozen=True)
class Page:
    items: list
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def meta(self) -> dict[str, int]:
        return {"page": self.page, "limit": self.limit, "total": self.total, "pages": self.pages}


def parse_pagination(args: Mapping[str, Any]) -> tuple[int, int]:
    """Read ?page=&limit= with config defaults; bad values fall back instead of erroring."""
    default_limit = int(current_app.config.get("PAGE_SIZE") or 10)
    max_limit = int(current_app.config.get("MAX_PAGE_SIZE") or 100)
    try:
        page = int(args.get("page") or 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get("limit") or default_limit)
    except (TypeError, ValueError):
        limit = default_limit
    page = max(page, 1)
    limit = min(max(limit, 1), max_limit)
    return page, limit


def paginate(q, page: int, limit: int) -> Page:
    total = q.order_by(None).count()
    items = q.offset((page - 1) * limit).limit(limit).all()
    return Page(items=items, page=page, limit=limit, total=total)


def parse_id_list(raw: Any) -> list[int]:
    """Bulk endpoints accept a list of ids; anything non-numeric is dropped, order kept, dupes removed."""
    if not isinstance(raw, (list, tuple)):
        return []
    out: list[int] = []
    for item in raw:
        try:
            v = int(str(item).strip())
        except (TypeError, ValueError):
            continue
        if v > 0 and v not in out:
            out.append(v)
    return out


def parse_optional_id(raw: Any) -> int | None:
    """Foreign-key style id from a payload; blank or non-numeric -> None."""
    try:
        v = parse_int(raw)
    except ValueError:
        return None
    return v if v and v > 0 else None
