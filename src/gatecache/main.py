"""Main application entry point.

Run with ``uvicorn gatecache.main:app``.
"""

from gatecache.core.application import create_application
from gatecache.core.initialization import initialize_application

initialize_application()

app = create_application()
