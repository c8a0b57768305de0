"""Services Layer — async shell around the pure core: pipeline, orchestrator, workspace.

Invariants:
    - Services fetch through Protocols and the FetchPool; decisions stay in core/
    - One EnrollmentWorkspace per person owns every task it starts

Design Decisions:
    - One file per collaborator role for locality (bus, pool, scope, pipeline, orchestrator)
"""
