"""auth/ -- Session core for Scribe: credentials, tokens and the auth orchestrator.

Layer rule: auth/ imports only stdlib, third-party libraries and core.config.
It does NOT import from api/. The single exception is auth/dependencies.py,
which imports fastapi.Request to plug into FastAPI's dependency injection.
api/ imports from auth/, not the other way around.
"""
