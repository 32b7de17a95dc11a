# Overview: Flask API routes for cash sessions; parses input and returns JSON responses.

# backend/smartpos/routes/cash_sessions.py
"""
Cash Session API Routes

Shift lifecycle: open -> close -> reconcile (irreversible).
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import cash_session_service
from ..services.errors import PosError


cash_sessions_bp = Blueprint("cash_sessions", __name__, url_prefix="/api/cash-sessions")


@cash_sessions_bp.post("/open")
def open_session_route():
    """
    Open a new cash session.

    Request body (optional):
    {
        "cashier_name": "Ana"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        session = cash_session_service.open_session(cashier_name=data.get("cashier_name"))
        return jsonify({"session": session.to_dict()}), 201

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open cash session")
        return jsonify({"error": "Internal server error"}), 500


@cash_sessions_bp.post("/<int:session_id>/close")
def close_session_route(session_id: int):
    try:
        session = cash_session_service.close_session(session_id)
        return jsonify({"session": session.to_dict()}), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close cash session")
        return jsonify({"error": "Internal server error"}), 500


@cash_sessions_bp.post("/<int:session_id>/reconcile")
def reconcile_session_route(session_id: int):
    try:
        cash_session_service.reconcile_session(session_id)
        return "", 204

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reconcile cash session")
        return jsonify({"error": "Internal server error"}), 500


@cash_sessions_bp.get("/<int:session_id>")
def get_session_route(session_id: int):
    try:
        session = cash_session_service.get_session(session_id)
        return jsonify({"session": session.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@cash_sessions_bp.get("/pending")
def list_pending_sessions_route():
    sessions = cash_session_service.list_pending_sessions()
    return jsonify({"sessions": [s.to_dict() for s in sessions]}), 200


@cash_sessions_bp.get("/current")
def current_session_route():
    session = cash_session_service.current_open_session()
    return jsonify({"session": session.to_dict() if session else None}), 200
