import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from knowledge.api.routes.documents import router as documents_router
from knowledge.api.routes.index import router as index_router
from knowledge.api.routes.query import router as query_router
from knowledge.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Knowledge Sync API",
    description="Tenant-partitioned semantic index for meeting transcripts and summaries",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_origin_regex=r"http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(documents_router)
app.include_router(query_router)
app.include_router(index_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("knowledge.api.main:app", host=settings.api_host, port=settings.api_port)
