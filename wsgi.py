"""
WSGI entry point for the practice tracker.

PythonAnywhere imports ``application`` from this file; gunicorn can use it as
``gunicorn wsgi:application``. Configure the app through the environment
before the worker starts:

  SECRET_KEY        session signing key (required outside development)
  DATABASE_URL      SQLAlchemy URL, defaults to practice_tracker.db beside app.py
  TZ_OFFSET_HOURS   local UTC offset used to date entries, defaults to -8
"""
import os
import sys

here = os.path.dirname(os.path.abspath(__file__))
if here not in sys.path:
    sys.path.insert(0, here)

from app import app as application  # noqa: E402,F401
