"""
TA Allocation API Server Entry Point

Use this file for deployment:
  uvicorn main:app --host 0.0.0.0 --port $PORT
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ta_allocation import __version__
from ta_allocation.health import router as health_router
from ta_allocation.matching.admin import router as allocation_router

app = FastAPI(
    title="TA Allocation API",
    description="Stable two-round matching of teaching assistants to course positions",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(allocation_router)


@app.get("/")
def root():
    return {"service": "ta-allocation", "version": __version__}


# For local development
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
