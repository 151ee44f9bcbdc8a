"""Application factory for the program advisor FastAPI backend."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_advisor_settings, get_llm_settings
from .logging_config import setup_logging
from .routers import advisor


def create_app() -> FastAPI:
    """Create and configure a FastAPI application instance."""
    setup_logging()
    settings = get_advisor_settings()
    app = FastAPI(
        title="Program Advisor Backend",
        version="0.1.0",
        description="Service recommendation planning for incubation programs.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_origin_regex=r"http://localhost:\d+$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.llm_settings = get_llm_settings()
    app.state.advisor_settings = settings
    app.include_router(advisor.router)
    return app


app = create_app()
