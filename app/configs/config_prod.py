"""
Production environment configuration.

These are the baseline defaults. Local overrides live in config_local.py.
"""

# FastAPI docs are disabled in production
DOCS_ENABLED = False

CORS_ORIGINS = [
    "https://topo.party",
    "https://www.topo.party",
]

ALLOWED_HOSTS = [
    "topo.party",
    "www.topo.party",
    "api.topo.party",
    "localhost",
    "127.0.0.1",
    "testserver",
]
