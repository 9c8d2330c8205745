# marketlens/models/types.py
from sqlalchemy.types import TypeDecorator
from sqlalchemy import JSON


class JSONBCompat(TypeDecorator):
    """
    JSONB on PostgreSQL, generic JSON on SQLite and others.
    Lets the result documents live in the same models under tests (sqlite://)
    and in production (postgresql://).
    """
    impl = JSON
    cache_ok = True

    def __init__(self, **jsonb_kwargs):
        super().__init__()
        self._jsonb_kwargs = jsonb_kwargs

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import JSONB
            return dialect.type_descriptor(JSONB(**self._jsonb_kwargs))
        return dialect.type_descriptor(JSON())
