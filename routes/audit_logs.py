from flask import Blueprint, jsonify, request
from models.audit_log import AuditLog, ErrorLog
from security.rbac import ADMIN, require_roles

audit_bp = Blueprint("audit", __name__, url_prefix="/admin")


def _limit() -> int:
    limit = request.args.get("limit", type=int) or 200
    return max(1, min(limit, 500))


@audit_bp.get("/audit-logs")
@require_roles(ADMIN)
def list_audit_logs():
    action = request.args.get("action")
    user_id = request.args.get("user_id")

    q = AuditLog.query
    if action:
        q = q.filter(AuditLog.action == action)
    if user_id:
        q = q.filter(AuditLog.user_id == user_id)

    rows = q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(_limit()).all()
    return jsonify([
        {
            "id": r.id,
            "created_at": r.timestamp.isoformat(),
            "user_id": r.user_id,
            "action": r.action,
            "entity": r.entity,
            "entity_id": r.entity_id,
            "ip": r.ip,
            "user_agent": r.user_agent,
            "metadata": r.metadata_json,
        }
        for r in rows
    ]), 200


@audit_bp.get("/error-logs")
@require_roles(ADMIN)
def list_error_logs():
    q = ErrorLog.query
    user_id = request.args.get("user_id")
    if user_id:
        q = q.filter(ErrorLog.user_id == user_id)

    rows = q.order_by(ErrorLog.created_at.desc(), ErrorLog.id.desc()).limit(_limit()).all()
    return jsonify([
        {
            "id": r.id,
            "created_at": r.created_at.isoformat(),
            "user_id": r.user_id,
            "function_name": r.function_name,
            "error_message": r.error_message,
            "error_stack": r.error_stack,
            "request_data": r.request_data,
        }
        for r in rows
    ]), 200
