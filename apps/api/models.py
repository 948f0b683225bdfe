from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, Text, JSON, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base


class SomiBlock(Base):
    """One recorded exercise in the catalog. Global content, read-only to users."""
    __tablename__ = "somi_blocks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    canonical_name = Column(Text, unique=True, nullable=False)  # stable key, independent of display name
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    # Signed effect on arousal / felt safety; NULL is treated as 0 by the selection engine
    energy_delta = Column(Integer, nullable=True)
    safety_delta = Column(Integer, nullable=True)
    media_url = Column(Text, nullable=True)
    media_type = Column(Text, default="video", nullable=False)
    block_type = Column(Text, default="vagal_toning", nullable=False)  # 'vagal_toning', 'body_scan'
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_somi_blocks_flow_pool", "active", "media_type", "block_type"),
    )


class SomiChain(Base):
    """Durable record of one finished practice session."""
    __tablename__ = "somi_chains"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, nullable=False, index=True)  # identity provider subject
    flow_type = Column(Text, default="daily_flow", nullable=False)  # 'daily_flow' | 'quick_routine'
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    embodiment_checks = relationship(
        "EmbodimentCheck",
        back_populates="chain",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="EmbodimentCheck.id",
    )
    entries = relationship(
        "SomiChainEntry",
        back_populates="chain",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SomiChainEntry.order_index",
    )


class EmbodimentCheck(Base):
    """Self-reported energy/safety snapshot taken before or after a session."""
    __tablename__ = "embodiment_checks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    somi_chain_id = Column(Integer, ForeignKey("somi_chains.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Text, nullable=False)
    energy_level = Column(Integer, nullable=True)  # 0-100
    safety_level = Column(Integer, nullable=True)  # 0-100
    journal_entry = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    chain = relationship("SomiChain", back_populates="embodiment_checks")


class SomiChainEntry(Base):
    """One completed block within a chain."""
    __tablename__ = "somi_chain_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    somi_chain_id = Column(Integer, ForeignKey("somi_chains.id", ondelete="CASCADE"), nullable=False, index=True)
    somi_block_id = Column(Integer, ForeignKey("somi_blocks.id"), nullable=False)
    user_id = Column(Text, nullable=False)
    seconds_elapsed = Column(Integer, default=0, nullable=False)
    order_index = Column(Integer, default=0, nullable=False)
    section = Column(Text, nullable=True)  # 'warm_up' | 'main' | 'integration'
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    chain = relationship("SomiChain", back_populates="entries")
    block = relationship("SomiBlock")
