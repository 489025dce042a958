"""
asgi.py -- Application assembly for X Reply Manager.

The only module that imports from both api/ and web/. api/main.py builds the
app (middleware, stores, JSON routes, the Twitter OAuth flow); web/routes.py
adds the HTML dashboard on top. Neither layer imports the other.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app
from web.routes import router as web_router

app.include_router(web_router, tags=["Web UI"])
