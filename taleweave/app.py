import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from taleweave.config import get_config
from taleweave.llm import LLM
from taleweave.routes import router
from taleweave.sessions import SessionCache, SessionManager
from taleweave.storage import Storage

load_dotenv(Path(__file__).parent.parent / ".env")

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(data_dir: Path | None = None, llm: LLM | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    store = Storage(resolved)
    config = get_config(resolved)

    app = FastAPI(title="Taleweave")
    app.state.data_dir = resolved
    app.state.llm = llm
    app.state.manager = SessionManager(
        store,
        cache=SessionCache(int(config["max_cached_sessions"])),
        history_limit=int(config["history_limit"]),
    )
    app.include_router(router, prefix="/api")
    logger.info("Taleweave data directory: %s", resolved)
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
