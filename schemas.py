"""
Database Schemas

LazyLotto schemas for MongoDB using Pydantic models.
Each Pydantic model represents a collection in your database.
Model name is converted to snake case for the collection name.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

class Pool(BaseModel):
    """
    Collection: "pool"
    Discovery document written by the pool indexer, one per lottery pool
    """
    pool_id: int = Field(..., ge=0, description="Pool id on the lottery contract")
    name: str = Field(..., description="Pool name, also the ticket collection name")
    status: str = Field(..., description="active | paused | closed")
    win_rate: int = Field(..., ge=0, le=100_000_000, description="Base win rate in 10^-8 units")
    win_rate_display: str = Field(..., description="Win rate as a percentage, e.g. 10%")
    entry_fee: int = Field(..., gt=0, description="Entry fee in the fee token's smallest unit")
    fee_token: str = Field(..., description="Fee token address, zero address for HBAR")
    entry_fee_display: str = Field(..., description="Human readable entry fee")
    prize_count: int = Field(0, ge=0, description="Prize packages still available")
    outstanding_entries: int = Field(0, ge=0, description="Unrolled counter entries")
    ticket_token: str = Field(..., description="Ticket NFT collection address")
    owner: Optional[str] = Field(None, description="Owner of a community pool")
    is_global: bool = Field(True, description="Admin-created pool without an owner")
    indexed_at: Optional[datetime] = Field(None, description="When the indexer last refreshed the pool")

class IndexerState(BaseModel):
    """
    Collection: "indexer_state"
    Checkpoint of the pool indexer
    """
    name: str = Field("pools", description="Indexer name")
    last_seq: int = Field(-1, description="Sequence of the last PoolCreated event processed")
    pool_ids: List[int] = Field(default_factory=list, description="Pools discovered so far")

class Transaction(BaseModel):
    """
    Collection: "transaction"
    Audit record of a state-changing call made through the API
    """
    operation: str = Field(..., description="Contract operation, e.g. LazyLotto.buy_entry")
    caller: str = Field(..., description="Calling account address")
    params: Dict[str, Any] = Field(default_factory=dict, description="Call arguments")
    status: str = Field("success", description="success | reverted")
    error: Optional[str] = Field(None, description="Error code when reverted")
