"""API routes."""

from flask import Blueprint

from pdf_relay.services import relay_service

api_bp = Blueprint("api", __name__)

api_bp.add_url_rule(
    "/relay",
    endpoint="submit",
    view_func=relay_service.submit,
    methods=["POST"],
)
api_bp.add_url_rule(
    "/status/<job_id>",
    endpoint="get_status",
    view_func=relay_service.get_status,
    methods=["GET"],
)
