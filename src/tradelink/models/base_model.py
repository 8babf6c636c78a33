"""Standard column definitions for consistency."""
from sqlalchemy import Column, ForeignKey
from sqlalchemy.dialects.postgresql import UUID


def uuid_fk(table: str, nullable: bool = False, ondelete: str = "CASCADE"):
    return Column(
        UUID(as_uuid=True),
        ForeignKey(f"{table}.id", ondelete=ondelete),
        nullable=nullable,
        index=True
    )
