"""HTTP API for reader sessions.

WHY: Lets non-Python surfaces drive the engine over HTTP.

HOW: app.py holds the FastAPI routes, models.py the Pydantic schemas,
sessions.py the in-memory SessionStore.
"""
