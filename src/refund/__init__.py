"""Expense refund back-end: users, sessions, refund requests and receipt uploads.

Serve with ``refund-api`` or ``uvicorn --factory refund.api:create_app``; run the
cleanup worker with ``celery -A refund.worker worker --beat``.
"""
