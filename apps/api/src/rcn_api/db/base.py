from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
    """Declarative base; models default to their lower-cased class name as table."""

    @declared_attr.directive
    def __tablename__(cls) -> str:  # noqa: N805
        return cls.__name__.lower()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
