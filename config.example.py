# config.example.py

"""
Documentation-only module (safe to commit).

Process configuration is loaded from environment variables (optionally via a local .env file).
User study preferences (goals, pomodoro lengths, archive thresholds) are not configured here;
they live in the engine's state and are changed with /set.
"""

ENV_VARS = {
    # App / logging
    "STUDYTRACK_APP_NAME": "App display name (default: studytrack).",
    "STUDYTRACK_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Connectors
    "STUDYTRACK_CONSOLE_ENABLED": "Enable the interactive console (true/false, default: true).",
    # Paths (gitignored)
    "STUDYTRACK_DATA_DIR": "Local data directory (default: .local/studytrack).",
    "STUDYTRACK_DB_PATH": "State SQLite path (default: <data_dir>/studytrack.sqlite3).",
    "STUDYTRACK_EXPORT_DIR": "Default directory for /export (default: <data_dir>/exports).",
    # Background loops
    "STUDYTRACK_AUTOSAVE_SECONDS": "Autosave interval; 0 writes after every command (default: 5).",
    "STUDYTRACK_ARCHIVE_CHECK_SECONDS": "How often the archive policy runs when autoArchive is on (default: 3600).",
}
