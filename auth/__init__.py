"""auth/ -- Credentials, scoped tokens, and permissions for Marquee.

Layer rule: auth/ imports from core/ and third-party libraries only.
It does NOT import from api/ or movies/. api/ imports from auth/, not the
other way around. (auth/dependencies.py is the FastAPI seam and is the one
module here that imports fastapi.)
"""
