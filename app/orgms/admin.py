import csv
import io
from datetime import date, datetime, time, timedelta

from flask import Blueprint, g, jsonify, request, send_file
from sqlalchemy import func

from app.orgms.audit import event_to_dict, record_event
from app.orgms.constants import ENTITY_STATUSES
from app.orgms.db import db_session
from app.orgms.models import AuditEvent, User
from app.orgms.modules.approvals.registry import ENTITIES
from app.orgms.modules.approvals.service import count_pending
from app.orgms.modules.finance.service import finance_summary
from app.orgms.rbac import require_permission
from app.orgms.utils import ValidationError, like_pattern, paginate, parse_date, parse_pagination, validation_response

bp = Blueprint("admin", __name__)

EXPORT_LIMIT = 10000


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/")
@require_permission("admin.view")
def index():
    s = db_session()
    records: dict[str, dict[str, int]] = {}
    for entity_type, spec in ENTITIES.items():
        counts = {st: 0 for st in ENTITY_STATUSES}
        rows = s.query(spec.model.status, func.count(spec.model.id)).group_by(spec.model.status).all()
        for status, count in rows:
            counts[status] = count
        counts["total"] = sum(counts.values())
        records[entity_type] = counts

    pending = count_pending(s)
    return jsonify(
        {
            "records": records,
            "pending_approvals": {"total": sum(pending.values()), "by_entity_type": pending},
            "finance": finance_summary(s),
        }
    )


def _parse_activity_filters() -> tuple[dict, list[ValidationError]]:
    errors: list[ValidationError] = []
    filters = {
        "action": (request.args.get("action") or "").strip(),
        "entity_type": (request.args.get("entity_type") or "").strip(),
        "actor_email": (request.args.get("actor_email") or "").strip().lower(),
        "start_date": None,
        "end_date": None,
    }
    for key in ("start_date", "end_date"):
        try:
            filters[key] = parse_date(request.args.get(key))
        except ValueError:
            errors.append(ValidationError(key, f"{key} must be YYYY-MM-DD"))
    return filters, errors


def query_activity(s, filters: dict):
    q = s.query(AuditEvent)
    if filters.get("action"):
        q = q.filter(AuditEvent.action.like(like_pattern(filters["action"]), escape="\\"))
    if filters.get("entity_type"):
        q = q.filter(AuditEvent.entity_type == filters["entity_type"])
    if filters.get("actor_email"):
        q = q.filter(AuditEvent.actor_user_email.ilike(like_pattern(filters["actor_email"]), escape="\\"))
    start: date | None = filters.get("start_date")
    end: date | None = filters.get("end_date")
    if start:
        q = q.filter(AuditEvent.created_at >= datetime.combine(start, time.min))
    if end:
        # inclusive end-date (treat as whole day)
        q = q.filter(AuditEvent.created_at < datetime.combine(end + timedelta(days=1), time.min))
    return q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())


@bp.get("/activity")
@require_permission("activity.view")
def activity_list():
    s = db_session()
    filters, errors = _parse_activity_filters()
    if errors:
        return validation_response(errors)
    page, limit = parse_pagination(request.args)
    pg = paginate(query_activity(s, filters), page, limit)
    return jsonify({"data": [event_to_dict(e) for e in pg.items], "pagination": pg.meta()})


@bp.get("/activity/export")
@require_permission("activity.export")
def activity_export():
    s = db_session()
    u = _current_user()
    filters, errors = _parse_activity_filters()
    if errors:
        return validation_response(errors)

    events = query_activity(s, filters).limit(EXPORT_LIMIT).all()

    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(["Time (UTC)", "Actor", "Action", "Entity Type", "Entity ID", "Reason", "IP", "Request ID", "Details"])
    for e in events:
        w.writerow(
            [
                e.created_at.isoformat() if e.created_at else "",
                e.actor_user_email or "",
                e.action,
                e.entity_type or "",
                e.entity_id or "",
                e.reason or "",
                e.client_ip or "",
                e.request_id or "",
                e.metadata_json or "",
            ]
        )

    record_event(
        s,
        actor=u,
        action="activity.export",
        entity_type="AuditEvent",
        entity_id="export",
        metadata={"filters": filters, "row_count": len(events)},
    )
    s.commit()

    data = out.getvalue().encode("utf-8")
    filename = f"activity_export_{date.today().strftime('%Y%m%d')}.csv"
    return send_file(
        io.BytesIO(data),
        mimetype="text/csv",
        as_attachment=True,
        download_name=filename,
        max_age=0,
    )
