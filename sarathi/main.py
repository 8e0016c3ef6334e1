from fastapi import FastAPI

from sarathi.api.routes import router as api_router
from sarathi.core.config import get_settings
from sarathi.core.logging import configure_logging
from sarathi.server.store import MessageStore, PacketStore


def create_app() -> FastAPI:
    """백엔드 애플리케이션을 생성하고 FastAPI를 설정"""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Sarathi Sync Backend", version=settings.version)
    app.state.packets = PacketStore()
    app.state.messages = MessageStore()
    app.state.telemetry = None
    app.include_router(api_router)
    return app


app = create_app()
