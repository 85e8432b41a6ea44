from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise Exception("DATABASE_URL environment variable is not set")

# Set SQL_ECHO=true to log every statement.
engine = create_async_engine(DATABASE_URL, echo=os.getenv("SQL_ECHO", "").lower() == "true")
# Scheduled activity stores open one short-lived session per operation.
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
