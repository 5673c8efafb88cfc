"""Common utilities: ids, timestamps and path management"""
import os
import uuid
from datetime import datetime, timezone

# ⚠️ DO NOT import settings here - causes circular import with config.py


# ============= Path Management =============

def get_project_root() -> str:
    """Returns the absolute path to the project's root directory."""
    return os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))


def get_log_file_path() -> str:
    """Returns the full log file path under <project root>/log."""
    return os.path.join(get_project_root(), 'log', 'ai_gateway.log')


# ============= Identifiers & Time =============

def new_document_id() -> str:
    """Opaque document identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
