from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


def create_session_factory(database_url: str, echo: bool = False) -> tuple[AsyncEngine, async_sessionmaker]:
    """Engine plus session factory for one service database."""
    engine = create_async_engine(database_url, echo=echo)
    return engine, async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
