"""
Celery tasks package.
Task modules are registered through the ``include`` list in moderation.celery_app.
"""
