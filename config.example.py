# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file)
by learn_buddy.config. Do NOT commit real secrets; keep them in .env (local, gitignored).
"""

ENV_VARS = {
    # App / logging
    "LEARNBUDDY_APP_NAME": "App display name (default: Learn Buddy).",
    "LEARNBUDDY_LOG_LEVEL": "Console logging level (default: INFO). The file log is always DEBUG.",
    # LLM / OpenRouter
    "LEARNBUDDY_OPENROUTER_API_KEY": (
        "OpenRouter API key. Without it the offline generation backend is used."
    ),
    "LEARNBUDDY_OPENROUTER_BASE_URL": "OpenAI-compatible base URL (default: https://openrouter.ai/api/v1).",
    "LEARNBUDDY_LLM_MODEL": "The single model used for all generation calls.",
    "LEARNBUDDY_HTTP_REFERER": "Optional OpenRouter metadata header.",
    "LEARNBUDDY_APP_TITLE": "Optional OpenRouter metadata header title.",
    "LEARNBUDDY_LLM_CONNECT_TIMEOUT_SECONDS": "Connect timeout for LLM requests (default: 5).",
    "LEARNBUDDY_LLM_READ_TIMEOUT_SECONDS": "Read timeout for LLM requests (default: 60).",
    # Identity / backends
    "LEARNBUDDY_USER_ID": "Identity signed in at startup (empty => signed out).",
    "LEARNBUDDY_LOCAL_MODE": "Use the local snapshot store while signed out (default: true).",
    # Paths (gitignored)
    "LEARNBUDDY_DATA_DIR": "Local data directory (default: .local/learn_buddy).",
    "LEARNBUDDY_DOCUMENTS_DB_PATH": (
        "Document store SQLite path (default: <data_dir>/documents.sqlite3)."
    ),
    "LEARNBUDDY_LOCAL_STORAGE_PATH": (
        "Local key-value JSON file (default: <data_dir>/local_storage.json)."
    ),
    "LEARNBUDDY_LOCAL_STORAGE_KEY": "Key of the local task snapshot (default: learn_buddy.tasks).",
    # UI timing
    "LEARNBUDDY_NEW_FLAG_DELAY_SECONDS": "How long a fresh task stays marked new (default: 0.6).",
}
