"""Service layer behind the HTTP routes."""
