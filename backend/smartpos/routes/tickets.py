# Overview: Flask API routes for ticket operations; parses input and returns JSON responses.

# backend/smartpos/routes/tickets.py
"""Ticket API routes: create, cancel, bulk adjustment and lookups."""

from flask import Blueprint, request, jsonify, current_app

from ..services import ticket_service
from ..services.errors import PosError, ValidationError
from ..validation import parse_create_ticket, parse_bulk_adjustment, coerce_int, coerce_datetime


tickets_bp = Blueprint("tickets", __name__, url_prefix="/api/tickets")


@tickets_bp.post("/")
@tickets_bp.post("")
def create_ticket_route():
    """
    Create a SALE or RETURN ticket.

    Request body:
    {
        "type": "SALE",
        "customer_id": 3,
        "coupon_code": "WELCOME10",
        "discount_id": 2,
        "lines": [{"product_id": 1, "quantity": 2}]
    }
    """
    try:
        ticket_request = parse_create_ticket(request.get_json(silent=True))
        ticket = ticket_service.create_ticket(ticket_request)
        return jsonify(ticket_service.ticket_summary(ticket)), 201

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create ticket")
        return jsonify({"error": "Internal server error"}), 500


@tickets_bp.get("/<int:ticket_id>")
def get_ticket_route(ticket_id: int):
    try:
        ticket = ticket_service.get_ticket(ticket_id)
        return jsonify(ticket_service.ticket_summary(ticket)), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@tickets_bp.get("/number/<string:number>")
def get_ticket_by_number_route(number: str):
    try:
        ticket = ticket_service.get_ticket_by_number(number)
        return jsonify(ticket_service.ticket_summary(ticket)), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@tickets_bp.get("/customer/<int:customer_id>")
def list_customer_tickets_route(customer_id: int):
    tickets = ticket_service.list_tickets_for_customer(customer_id)
    return jsonify({"tickets": [t.to_dict() for t in tickets]}), 200


@tickets_bp.get("/recent")
def list_recent_tickets_route():
    try:
        limit = coerce_int(request.args.get("limit", "10"), "limit")
        tickets = ticket_service.list_recent_tickets(limit)
        return jsonify({"tickets": [t.to_dict() for t in tickets]}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@tickets_bp.get("/date-range")
def list_tickets_between_route():
    try:
        if not request.args.get("start") or not request.args.get("end"):
            raise ValidationError("start and end are required")
        start = coerce_datetime(request.args["start"], "start")
        end = coerce_datetime(request.args["end"], "end")
        tickets = ticket_service.list_tickets_between(start, end)
        return jsonify({"tickets": [t.to_dict() for t in tickets]}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@tickets_bp.delete("/<int:ticket_id>")
def cancel_ticket_route(ticket_id: int):
    """Cancel a ticket and reverse its stock movements."""
    try:
        ticket_service.cancel_ticket(ticket_id)
        return "", 204

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel ticket")
        return jsonify({"error": "Internal server error"}), 500


@tickets_bp.post("/bulk-adjustment")
def bulk_adjustment_route():
    """
    Apply stock corrections to several products in one transaction.

    Request body:
    {
        "adjustments": {"1": 10, "2": -5},
        "reason": "Physical inventory count correction"
    }
    """
    try:
        adjustments, reason = parse_bulk_adjustment(request.get_json(silent=True))
        ticket = ticket_service.bulk_adjustment(adjustments, reason)
        return jsonify(ticket_service.ticket_summary(ticket)), 201

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply bulk adjustment")
        return jsonify({"error": "Internal server error"}), 500
