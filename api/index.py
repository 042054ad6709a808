from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum

from audit.api import router as audit_router
from common.config import settings
from common.logging_config import setup_logging
from rules.api import router as rules_router
from workflows.api import router as workflows_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield


app = FastAPI(
    title="Intake Decision Engine API",
    description="Rule resolution, workflow execution and audit trail for insurance intake",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rules_router)
app.include_router(workflows_router)
app.include_router(audit_router)


@app.get("/health", tags=["System"])
def health_check():
    return {"status": "healthy", "service": settings.service_name}


handler = Mangum(app)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
