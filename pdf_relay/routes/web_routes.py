"""Health and liveness routes."""

from flask import Blueprint

from pdf_relay.services import relay_service

web_bp = Blueprint("web", __name__)


@web_bp.get("/health")
def health():
    return relay_service.health()


@web_bp.get("/wakeup")
def wakeup():
    return relay_service.wakeup()
