# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# DESIGN DECISION: Async SQLAlchemy engine only.
# The database serves two async consumers: the pgvector search backend
# (one session per retrieval call, so concurrent strategies never share a
# connection) and the background task that records retrieval telemetry.
# Both run on the FastAPI event loop, so asyncpg is the only driver.
#
# Creating the engine does not open a connection; nothing touches
# PostgreSQL unless vectorstore_type="pgvector" or telemetry is enabled.
#
# COMMIT POLICY:
# Read-only callers (search backend) never commit; writers (telemetry,
# seeding script) commit explicitly.
# =============================================================================

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from business_rag.config import settings

# ---------------------------------------------------------------------------
# Async Engine
# ---------------------------------------------------------------------------
# pool_size bounds concurrent sessions per process. A single request can
# hold one connection per concurrent retrieval strategy, so the overflow
# allowance absorbs bursts of framework-scoped calls.
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=5,
    max_overflow=10,
)

# expire_on_commit=False: ORM attributes stay readable after commit,
# outside the session (lazy refresh would fail in async context).
async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
