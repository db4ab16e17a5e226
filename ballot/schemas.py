import uuid
from datetime import datetime

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator


class PollCreate(BaseModel):
    title: str = Field(min_length=1)
    options: list[str] = Field(min_length=2)
    expiresAt: AwareDatetime

    @field_validator("title")
    @classmethod
    def _strip_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @field_validator("options")
    @classmethod
    def _check_options(cls, value: list[str]) -> list[str]:
        labels = [label.strip() for label in value]
        if any(not label for label in labels):
            raise ValueError("option labels must not be blank")
        return labels


class PollOut(BaseModel):
    id: uuid.UUID
    title: str
    options: list[str]
    expiresAt: datetime
    createdAt: datetime
    isExpired: bool


class VoteRequest(BaseModel):
    optionIndex: int


class VoteOut(BaseModel):
    voteId: uuid.UUID
    pollId: uuid.UUID
    optionIndex: int
    voterIp: str


class ResultItem(BaseModel):
    optionIndex: int
    label: str
    count: int


class ResultsResponse(BaseModel):
    pollId: uuid.UUID
    totalVotes: int
    results: list[ResultItem]


class CoinOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    symbol: str
    price: str


class CoinSelection(BaseModel):
    symbols: list[str] = Field(min_length=1)

    @field_validator("symbols")
    @classmethod
    def _normalize_symbols(cls, value: list[str]) -> list[str]:
        seen: list[str] = []
        for raw in value:
            symbol = raw.strip().upper()
            if not symbol:
                raise ValueError("symbols must not be blank")
            if symbol not in seen:
                seen.append(symbol)
        return seen


class CoinVoteRequest(BaseModel):
    coin_symbol: str = Field(min_length=1)
    user_id: str = Field(min_length=1)

    @field_validator("coin_symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("coin_symbol must not be blank")
        return value


class CoinPollOut(BaseModel):
    coins: list[CoinOut]
    votes: dict[str, int]


class CoinTally(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    symbol: str
    votes: int


class StatusOut(BaseModel):
    status: str


class PricesRefreshed(BaseModel):
    updated: int
