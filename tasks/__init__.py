"""Celery worker package."""
