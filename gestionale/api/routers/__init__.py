"""
FastAPI routers for the association backend.

One module per area (members, ledger entries, accounts, jobs, stats,
dashboards, reports, teachers, auth, user administration); ``gestionale.main`` mounts
them all under ``/api``.
"""
