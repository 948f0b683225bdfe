from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List

from services.polyvagal import TargetState
from services.routine_config import DEFAULT_BLOCK_COUNT
from services.segments import FlowType, Section, SegmentType


# ---------------------------------------------------------------------------
# Blocks and segments
# ---------------------------------------------------------------------------

class BlockResponse(BaseModel):
    id: int
    canonical_name: str
    name: str
    description: Optional[str] = None
    energy_delta: Optional[int] = None
    safety_delta: Optional[int] = None
    media_url: Optional[str] = None
    media_type: Optional[str] = None
    block_type: Optional[str] = None
    active: Optional[bool] = None

    model_config = ConfigDict(from_attributes=True)


class BlockListResponse(BaseModel):
    blocks: List[BlockResponse]


class SegmentResponse(BaseModel):
    """A timeline segment. Block fields are only present on somi_block segments."""
    type: SegmentType
    section: Section
    duration_seconds: int
    somi_block_id: Optional[int] = None
    canonical_name: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    energy_delta: Optional[int] = None
    safety_delta: Optional[int] = None
    url: Optional[str] = None


# ---------------------------------------------------------------------------
# Flows and routines
# ---------------------------------------------------------------------------

class FlowGenerateRequest(BaseModel):
    polyvagal_state: TargetState
    duration_minutes: int = Field(..., ge=1, le=60)
    body_scan_start: bool = False
    body_scan_end: bool = False
    use_ai: bool = False
    local_hour: Optional[int] = Field(default=None, ge=0, le=23)  # client's wall clock, for time-of-day skew


class FlowGenerateResponse(BaseModel):
    segments: List[SegmentResponse]
    actual_duration_seconds: int
    reasoning: Optional[str] = None
    source: str  # 'ai' | 'algorithmic'


class RoutineGenerateRequest(BaseModel):
    routine_type: Optional[str] = None  # 'morning' | 'night'; chosen from local_hour when omitted
    block_count: int = DEFAULT_BLOCK_COUNT
    local_hour: Optional[int] = Field(default=None, ge=0, le=23)


class RoutineGenerateResponse(BaseModel):
    routine_type: str
    segments: List[SegmentResponse]
    actual_duration_seconds: int


# ---------------------------------------------------------------------------
# Chains
# ---------------------------------------------------------------------------

class ChainCreate(BaseModel):
    flow_type: FlowType = FlowType.DAILY_FLOW


class EmbodimentCheckCreate(BaseModel):
    """Client payloads are camelCase."""
    chain_id: int = Field(..., alias="chainId")
    energy_level: Optional[float] = Field(default=None, alias="energyLevel", ge=0, le=100)
    safety_level: Optional[float] = Field(default=None, alias="safetyLevel", ge=0, le=100)
    journal_entry: Optional[str] = Field(default=None, alias="journalEntry")
    tags: Optional[List[str]] = None

    model_config = ConfigDict(populate_by_name=True)


class EmbodimentCheckResponse(BaseModel):
    id: int
    somi_chain_id: int
    energy_level: Optional[int] = None
    safety_level: Optional[int] = None
    journal_entry: Optional[str] = None
    tags: Optional[List[str]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChainEntryCreate(BaseModel):
    chain_id: int = Field(..., alias="chainId")
    block_id: int = Field(..., alias="blockId")
    seconds_elapsed: int = Field(default=0, alias="secondsElapsed", ge=0)
    session_order: int = Field(default=0, alias="sessionOrder", ge=0)
    section: Optional[Section] = None

    model_config = ConfigDict(populate_by_name=True)


class ChainEntryResponse(BaseModel):
    id: int
    somi_chain_id: int
    somi_block_id: int
    seconds_elapsed: int
    order_index: int
    section: Optional[str] = None
    created_at: datetime
    block: Optional[BlockResponse] = None

    model_config = ConfigDict(from_attributes=True)


class ChainResponse(BaseModel):
    id: int
    user_id: str
    flow_type: str
    created_at: datetime
    embodiment_checks: List[EmbodimentCheckResponse] = []
    entries: List[ChainEntryResponse] = []

    model_config = ConfigDict(from_attributes=True)


class ChainEnvelope(BaseModel):
    chain: Optional[ChainResponse] = None


class ChainListResponse(BaseModel):
    chains: List[ChainResponse]


class EmbodimentCheckEnvelope(BaseModel):
    check: EmbodimentCheckResponse


class ChainEntryEnvelope(BaseModel):
    entry: ChainEntryResponse


class DeleteResponse(BaseModel):
    success: bool
