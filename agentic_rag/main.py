# Run from project root: uvicorn agentic_rag.main:app --reload

import logging

from fastapi import FastAPI

from agentic_rag.api.routes import router
from agentic_rag.core.config import LOG_LEVEL, validate_config

logging.basicConfig(level=LOG_LEVEL)
validate_config()


app = FastAPI(title="Agentic RAG Backend")
app.include_router(router)
