from fastapi import FastAPI
import logging
logging.basicConfig(level=logging.INFO)

from routers.activities import router as activities_router

app = FastAPI()

# Include routers from separate modules.
app.include_router(activities_router, prefix="/api")

@app.get("/api/hello")
def read_root():
    return {"message": "Hello from FastAPI"}
