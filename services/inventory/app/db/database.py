from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from app.config import settings
from alembic import command
from alembic.config import Config
import asyncio
import logging
import os

logger = logging.getLogger(__name__)


def engine_options(database_url: str) -> dict:
    """Connection options for the backend named by the URL.

    SQLite (used by tests and local demos) rejects the PostgreSQL connect
    timeout and needs cross-thread access for the request worker pool.
    """
    if make_url(database_url).get_backend_name() == "sqlite":
        return {
            "connect_args": {"check_same_thread": False, "timeout": 30},
        }
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 20,
        "connect_args": {
            "connect_timeout": 5,  # 5 second connection timeout
        },
        "pool_timeout": 10,  # 10 second timeout for getting a connection from pool
    }


engine = create_engine(settings.database_url, **engine_options(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for getting database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def wait_for_database(max_retries=30, retry_delay=2):
    """Wait for database to be available with retry logic"""
    db_url_display = make_url(settings.database_url).render_as_string(hide_password=True)
    if '@' in db_url_display:
        db_url_display = db_url_display.split('@')[-1]

    logger.info(f"Waiting for database connection to {db_url_display}...")

    for attempt in range(1, max_retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            logger.info("Database connection successful")
            return True
        except Exception as e:
            if attempt < max_retries:
                logger.warning(f"Database connection attempt {attempt}/{max_retries} failed: {e}. Retrying in {retry_delay}s...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error(f"Database connection failed after {max_retries} attempts: {e}")
                raise
    return False


def _find_alembic_ini() -> str:
    # In Docker the working directory is the service root; locally fall back
    # to services/inventory/alembic.ini relative to this file
    if os.path.exists("alembic.ini"):
        return "alembic.ini"
    file_dir = os.path.dirname(os.path.abspath(__file__))
    service_root = os.path.dirname(os.path.dirname(file_dir))
    alembic_ini_path = os.path.join(service_root, "alembic.ini")
    if not os.path.exists(alembic_ini_path):
        raise FileNotFoundError(
            f"Could not find alembic.ini. Current directory: {os.getcwd()}, "
            f"Tried: alembic.ini and {alembic_ini_path}"
        )
    return alembic_ini_path


async def init_db():
    """Initialize database by running Alembic migrations"""
    logger.info("Running database migrations...")

    await wait_for_database(max_retries=30, retry_delay=2)

    alembic_ini_path = _find_alembic_ini()
    logger.info(f"Using Alembic config: {os.path.abspath(alembic_ini_path)}")

    alembic_cfg = Config(alembic_ini_path)
    alembic_cfg.set_main_option(
        "script_location",
        os.path.join(os.path.dirname(os.path.abspath(alembic_ini_path)), "alembic"),
    )
    # Override database URL from settings
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    # Keep the service logging configuration instead of the ini one
    alembic_cfg.attributes["configure_logger"] = False

    logger.info("Starting Alembic migration to head...")
    try:
        # Run in a thread to avoid blocking the event loop
        await asyncio.wait_for(
            asyncio.to_thread(command.upgrade, alembic_cfg, "head"),
            timeout=60.0
        )
    except asyncio.TimeoutError:
        logger.error("Database migrations timed out after 60 seconds")
        raise
    except Exception as migration_error:
        logger.error(f"Migration error: {migration_error}", exc_info=True)
        raise

    logger.info("Database migrations completed successfully")
