"""SQLAlchemy database models for the SQLite row store."""
from sqlalchemy import Column, Integer, String, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBFicheRow(Base):
    """Database model for one flattened note row."""
    __tablename__ = "fiche_rows"
    id = Column(Integer, primary_key=True, autoincrement=True)
    category = Column(String(255), nullable=False, index=True)
    subcategory = Column(String(255), nullable=False)
    concept = Column(String(255), nullable=False)
    # NULL in the 4-level schema
    key_detail = Column(String(255), nullable=True)
    note = Column(Text, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the row."""
        return (
            f"<FicheRow(id={self.id}, category='{self.category}', "
            f"subcategory='{self.subcategory}', concept='{self.concept}')>"
        )


def init_db(db_url: str) -> Engine:
    """Create an engine for ``db_url`` and make sure the schema exists.

    Applies SQLite settings for crash resilience:
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode (good balance of safety vs speed)
    - Pool pre-ping to detect stale connections
    """
    engine = create_engine(db_url, pool_pre_ping=True)

    # Apply WAL mode and other PRAGMA settings on every connection
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


def open_db(db_url: str) -> Engine:
    """Create an engine for reading an existing database.

    Sets no PRAGMAs and creates no tables, so reading never changes the file.
    """
    return create_engine(db_url, pool_pre_ping=True)


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine)
