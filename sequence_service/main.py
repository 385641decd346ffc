from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sequence_service.api.routers.sequences import router as sequences_router
from sequence_service.core.config import settings

app = FastAPI(title="ContractNest Sequence Service")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o for o in settings.CORS_ALLOW_ORIGINS.split(",") if o] or ["*"],
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(sequences_router)


@app.get("/health")
def health():
    return {"status": "up"}
