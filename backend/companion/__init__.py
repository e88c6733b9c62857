from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from companion.config import settings
from companion.db import init_all_databases


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_all_databases(settings.data_dir)
    yield


def create_app() -> FastAPI:
    application = FastAPI(
        title="Reading Companion Backend", version="0.1.0", lifespan=lifespan
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from companion.routers import health, reviews, translate, vocabulary

    application.include_router(health.router)
    application.include_router(
        vocabulary.router, prefix="/vocabulary", tags=["vocabulary"]
    )
    application.include_router(
        reviews.router, prefix="/reviews", tags=["reviews"]
    )
    application.include_router(
        translate.router, prefix="/translate", tags=["translate"]
    )

    return application


app = create_app()
