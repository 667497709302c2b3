"""screening_server — FastAPI REST API for the screening flow SDK.

Exposes the ScreeningEngine as a stateless HTTP API: session management,
step-by-step answering, the external-record fast path, and read-only
program catalogs.
"""
