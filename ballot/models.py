import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    column,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.expression import FunctionElement


class json_array_length(FunctionElement):
    """Length of a JSON array column, spelled per dialect."""

    type = Integer()
    inherit_cache = True


@compiles(json_array_length)
def _json_array_length_default(element, compiler, **kw):
    return "json_array_length(%s)" % compiler.process(element.clauses, **kw)


@compiles(json_array_length, "postgresql")
def _json_array_length_postgresql(element, compiler, **kw):
    return "jsonb_array_length(%s)" % compiler.process(element.clauses, **kw)


class Base(DeclarativeBase):
    pass


class Poll(Base):
    __tablename__ = "polls"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list[str]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    votes: Mapped[list["Vote"]] = relationship(
        back_populates="poll", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        CheckConstraint(func.length(column("title")) > 0, name="ck_polls_title_not_empty"),
        CheckConstraint(
            json_array_length(column("options")) >= 2, name="ck_polls_options_min_two"
        ),
    )


class Vote(Base):
    __tablename__ = "votes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    poll_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("polls.id", ondelete="CASCADE"), nullable=False
    )
    option_index: Mapped[int] = mapped_column(Integer, nullable=False)
    voter_ip: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    poll: Mapped["Poll"] = relationship(back_populates="votes")

    __table_args__ = (
        Index("idx_votes_poll_id", "poll_id"),
        Index("idx_votes_poll_ip", "poll_id", "voter_ip", unique=True),
    )


class Coin(Base):
    __tablename__ = "coins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    symbol: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    price: Mapped[str] = mapped_column(Text, nullable=False)


class CoinVote(Base):
    __tablename__ = "coin_votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    coin_symbol: Mapped[str] = mapped_column(
        Text, ForeignKey("coins.symbol", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("coin_symbol", "user_id", name="coin_votes_coin_symbol_user_id_key"),
    )


class CoinVoteCount(Base):
    __tablename__ = "coin_vote_counts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    symbol: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
