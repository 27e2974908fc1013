"""Configuration settings for Owl Focus."""

import os
import sys
from pathlib import Path
from dotenv import load_dotenv


APP_NAME = "OwlFocus"


def is_bundled() -> bool:
    """
    Check if the application is running from a PyInstaller bundle.

    Returns:
        True if running from a bundled executable, False otherwise.
    """
    return getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS')


def get_user_data_dir() -> Path:
    """
    Get the directory for user-writable data (session snapshot, preferences).

    For development: the data/ folder next to this file
    For bundled apps: Uses a dedicated folder in the user's home directory
                      so a running session survives app updates.

    Returns:
        Path to the user data directory.
    """
    if is_bundled():
        if sys.platform == 'darwin':
            # macOS: ~/Library/Application Support/OwlFocus
            data_dir = Path.home() / "Library" / "Application Support" / APP_NAME
        elif sys.platform == 'win32':
            appdata = os.environ.get('APPDATA')
            if appdata:
                data_dir = Path(appdata) / APP_NAME
            else:
                data_dir = Path.home() / "AppData" / "Roaming" / APP_NAME
        else:
            # Linux: ~/.local/share/OwlFocus
            data_dir = Path.home() / ".local" / "share" / APP_NAME

        try:
            data_dir.mkdir(parents=True, exist_ok=True)
        except Exception:
            data_dir = Path.home() / ".owlfocus"
            data_dir.mkdir(parents=True, exist_ok=True)

        return data_dir

    # Development mode (overridable so tests and scripts can isolate state)
    override = os.getenv("OWLFOCUS_DATA_DIR", "")
    if override:
        return Path(override)
    return Path(__file__).parent / "data"


# Load environment variables from .env file (only in development)
if not is_bundled():
    _env_path = Path(__file__).parent / ".env"
    load_dotenv(_env_path)

USER_DATA_DIR = get_user_data_dir()

# --- Session timing ---
SESSION_TICK_SECONDS = 1.0  # Countdown re-evaluation interval
WARNING_COOLDOWN_SECONDS = float(os.getenv("WARNING_COOLDOWN_SECONDS", "10"))

# Focus duration presets shown to the user (label, seconds)
DURATION_PRESETS = [
    ("15 min", 900),
    ("25 min", 1500),
    ("45 min", 2700),
    ("60 min", 3600),
    ("90 min", 5400),
]
DEFAULT_DURATION_SECONDS = 1500

# --- Motion detection ---
MOVEMENT_THRESHOLD = 0.25  # User acceleration magnitude in g
MOVEMENT_DEBOUNCE_SECONDS = 1.0
MOTION_SAMPLE_RATE_HZ = 25.0
# Low-pass factor used to separate gravity from user acceleration
GRAVITY_FILTER_ALPHA = 0.8

# --- Quit confirmation ---
HOLD_TICK_SECONDS = 0.1
HOLD_INCREMENT = 0.02  # 50 ticks, i.e. ~5 seconds of continuous hold

CAPTCHA_FIRST_RANGE = (10, 20)
CAPTCHA_SECOND_RANGE = (1, 9)
CAPTCHA_OPERATIONS = ("+", "-")

# Quit methods the user can pick between
QUIT_METHOD_HOLD = "hold"
QUIT_METHOD_CAPTCHA = "captcha"

# --- Persistence ---
STORE_FILE = USER_DATA_DIR / "focus_store.json"
SESSION_DATA_KEY = "focus_session_data"
SESSION_STATE_KEY = "focus_session_state"
ONBOARDING_KEY = "has_seen_onboarding"
SELECTED_DURATION_KEY = "selected_duration"

# --- Feedback / notifications ---
WARNING_PHRASE = "Focus session is running. Please put the phone back down."
SPEECH_RATE = 170  # Words per minute for spoken warnings

SESSION_END_ALERT_ID = "focus_session_end"
SESSION_END_ALERT_TITLE = "Focus Session Complete!"
SESSION_END_ALERT_BODY = "Your {minutes}-minute focus session has ended."

# Live status display snapshot (read by widgets / status bars)
LIVE_ACTIVITY_FILE = USER_DATA_DIR / "live_activity.json"

MOTIVATIONAL_QUOTES = [
    "Discipline is choosing between what you want now and what you want most.",
    "Small daily disciplines compound into remarkable results.",
    "Discipline is the bridge between goals and accomplishment.",
    "The pain of discipline is less than the pain of regret.",
    "Master your minutes, master your life.",
    "Discipline equals freedom.",
    "Routine sets the stage for excellence.",
    "Consistency is the hallmark of discipline.",
    "Daily discipline creates extraordinary results.",
]

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")  # Can override in .env: DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
