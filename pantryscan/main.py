from prometheus_fastapi_instrumentator import Instrumentator

from .core.config import get_settings
from .core.logging import configure_logging
from . import create_app

settings = get_settings()
configure_logging(settings.LOG_LEVEL)
app = create_app(settings)
Instrumentator().instrument(app).expose(app, include_in_schema=False)


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == "__main__":
    run()
