import pytest
from sqlalchemy.orm import sessionmaker

from cache.cache import cache_clear
from pulse.config import Settings, reset_settings
from pulse.database import Base, init_db, make_engine
from pulse.tests.factories import FIXED_NOW

ISOLATED_ENV_VARS = (
    "LLM_PROVIDER",
    "LLM_API_KEY",
    "GEMINI_API_KEY",
    "OPENAI_API_KEY",
    "LLM_MODEL",
    "LLM_TIMEOUT_SECONDS",
    "COMPOSIO_API_KEY",
    "SALES_SHEET_ID",
    "YOUTUBE_SOURCE_HANDLE",
    "YOUTUBE_SOURCE_CHANNEL_ID",
    "COMPOSIO_YT_CHANNEL_ID",
    "REPORT_TIMEZONE",
    "TELEGRAM_CHANNEL_SLUG",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    # keep real model keys and upstream credentials out of every test
    for name in ISOLATED_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    cache_clear()
    reset_settings()
    yield
    cache_clear()
    reset_settings()


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'pulse_test.db'}")
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
