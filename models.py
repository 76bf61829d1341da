from pydantic import BaseModel, Field
from typing import List, Literal, Optional


class CommitIn(BaseModel):
    provider: Literal["mp", "bs"] = "mp"
    min: int
    max: int
    n: int = Field(1, ge=1, le=10, description="Number of draws")
    k: int = Field(1, ge=1, le=5, description="Number of future blocks")


class BeginIn(BaseModel):
    # empty body: use the prepared commitment
    provider: Optional[Literal["mp", "bs"]] = None
    min: Optional[int] = None
    max: Optional[int] = None
    n: Optional[int] = Field(None, ge=1, le=10)
    k: Optional[int] = Field(None, ge=1, le=5)


class VerifyIn(BaseModel):
    text: str = Field(..., description="Short proof, long proof or commitment as pasted")


class VerifyOut(BaseModel):
    valid: bool
    kind: Literal["proof", "commitment"]


class RecomputeIn(BaseModel):
    hashes: List[str] = Field(..., min_length=1, max_length=5, description="Block hashes in height order (hex)")
    min: int
    max: int
    n: int = Field(1, ge=1, le=10)
