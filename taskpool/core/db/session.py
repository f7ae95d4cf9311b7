import sqlalchemy as _sql
import sqlalchemy.orm as _orm

from taskpool.core.config import DATABASE_URL, SQL_ECHO

engine = _sql.create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    pool_recycle=300,
    echo=SQL_ECHO
)

SessionLocal = _orm.sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

Base = _orm.declarative_base()
