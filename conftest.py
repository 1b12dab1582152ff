"""Global pytest configuration."""

import os

# Set before any settings are loaded
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LLM_API_KEYS", "")
