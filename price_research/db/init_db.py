from price_research.db.session import get_engine
from price_research.db.base import Base


def init_db():
    # register every table on Base.metadata
    import price_research.models  # noqa: F401

    engine = get_engine()
    Base.metadata.create_all(bind=engine)
