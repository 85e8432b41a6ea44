import asyncio
from dotenv import load_dotenv
from pymongo import ASCENDING, DESCENDING
from database import engine  # Ensure DATABASE_URL is set
from models import Base
from mongo import events_col, plans_col, surveys_col
load_dotenv()

async def init_database():
    # Create all tables if they don't exist
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Database schema ensured.")

def init_mongo_indexes():
    plans_col.create_index([("studyId", ASCENDING), ("guid", ASCENDING)])
    # One timestamp per participant and event; re-recording an event overwrites it.
    events_col.create_index([("participantId", ASCENDING), ("eventId", ASCENDING)], unique=True)
    surveys_col.create_index([("guid", ASCENDING), ("createdOn", DESCENDING)])
    print("Mongo indexes ensured.")

async def main():
    await init_database()  # Ensure that the schema is created
    init_mongo_indexes()

if __name__ == "__main__":
    asyncio.run(main())
