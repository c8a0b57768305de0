"""API Layer — FastAPI routes and error handlers (the presentation boundary).

Invariants:
    - Routes registered explicitly in main.py (no auto-discovery)
    - All endpoints return structured JSON responses or SSE

Design Decisions:
    - Thin routes delegate to the per-person EnrollmentWorkspace
"""
