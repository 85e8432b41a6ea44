import os
from dotenv import load_dotenv
from pymongo import MongoClient

load_dotenv()

# --- Mongo ---
MONGO_URL = os.getenv("MONGO_URL")
MONGO_DB = os.getenv("MONGO_DB")
if not MONGO_URL or not MONGO_DB:
    raise RuntimeError("Missing MONGO_URL/MONGO_DB")

# MongoClient connects lazily; nothing is contacted until the first query.
client = MongoClient(MONGO_URL, tz_aware=True)
db = client[MONGO_DB]
plans_col = db["schedule_plans"]
events_col = db["activity_events"]
surveys_col = db["surveys"]
