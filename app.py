"""Gunicorn entrypoint: ``gunicorn app:app``."""

from pdf_relay import create_app

app = create_app()
