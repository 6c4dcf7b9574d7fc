from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .settings import settings


def add_cors(app: FastAPI):
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
