import os
from dotenv import load_dotenv

load_dotenv()

# Furthest a schedule window may reach into the future, in days.
SCHEDULE_MAX_WINDOW_DAYS = int(os.getenv("SCHEDULE_MAX_WINDOW_DAYS", "5"))
# Window used when a caller asks for activities without saying how far ahead.
SCHEDULE_DEFAULT_DAYS_AHEAD = int(os.getenv("SCHEDULE_DEFAULT_DAYS_AHEAD", "4"))
# Attempts at a batch write that keeps getting rejected as stale.
SCHEDULE_SAVE_ATTEMPTS = int(os.getenv("SCHEDULE_SAVE_ATTEMPTS", "2"))
DEFAULT_TIME_ZONE = os.getenv("DEFAULT_TIME_ZONE", "UTC")

if SCHEDULE_DEFAULT_DAYS_AHEAD > SCHEDULE_MAX_WINDOW_DAYS:
    raise Exception("SCHEDULE_DEFAULT_DAYS_AHEAD cannot exceed SCHEDULE_MAX_WINDOW_DAYS")
