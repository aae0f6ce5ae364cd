"""
Application configuration and environment variables
"""
import os
from pathlib import Path

# Data directory configuration
DATA_DIR = Path(os.environ.get('DATA_DIR', './data'))

# Database configuration
DATABASE_PATH = DATA_DIR / 'futbol.db'

# Search bounds
MAX_SEARCH_DEPTH = int(os.environ.get('MAX_SEARCH_DEPTH', 10))
SEARCH_TIMEOUT_SECONDS = float(os.environ.get('SEARCH_TIMEOUT_SECONDS', 10.0))

# How the graph builder treats self-loops and malformed teammate records: "skip" or "reject"
INVALID_EDGE_POLICY = os.environ.get('INVALID_EDGE_POLICY', 'skip')

# Build the graph at startup instead of on the first path query
EAGER_GRAPH_BUILD = os.environ.get('EAGER_GRAPH_BUILD', '').lower() in ('1', 'true', 'yes')

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

# API configuration
API_TITLE = "Soccer Teammate Path Finder API"
API_VERSION = "1.0.0"
PATH_RATE_LIMIT = os.environ.get('PATH_RATE_LIMIT', '30/minute')

# CORS origins
CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:8000",
]
