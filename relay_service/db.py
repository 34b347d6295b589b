from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from common.settings import settings

def make_engine(url: str = None, **kwargs):
    return create_engine(url or settings.postgres_url, pool_pre_ping=True, **kwargs)

def make_session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)
