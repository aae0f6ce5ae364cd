from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class Player(BaseModel):
    """Display attributes of a player"""
    id: int
    name: str
    image_url: Optional[str] = None
    position: Optional[str] = None
    country: Optional[str] = None
    current_club: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "Player":
        """Build from a players table row"""
        return cls(
            id=row['player_id'],
            name=row['name'],
            image_url=row.get('image_url') or None,
            position=row.get('position') or None,
            country=row.get('country') or None,
            current_club=row.get('current_club_name') or None,
        )


class Connection(BaseModel):
    """How a player is linked to the previous player in a path"""
    club: str = "Teammates"
    season: str = ""


class ConnectionStep(BaseModel):
    """One player in a path, with the connection leading to them (None for the first)"""
    player: Player
    connection: Optional[Connection] = None


class PathResult(BaseModel):
    """Outcome of a shortest path query"""
    found: bool
    degrees: int = Field(default=0, description="Hops along the returned path, len(path) - 1")
    hops: int = Field(default=0, description="Graph distance between the two players")
    path: List[ConnectionStep] = []
    nodes_explored: int = 0
    execution_time_ms: int = 0


class PathResponse(BaseModel):
    """Response envelope for path queries"""
    success: bool
    data: Optional[PathResult] = None
    error: Optional[str] = None


class PlayerSearchResult(BaseModel):
    players: List[Player]
    total: int


class PlayerSearchResponse(BaseModel):
    """Response envelope for player search"""
    success: bool
    data: Optional[PlayerSearchResult] = None
    error: Optional[str] = None


class GraphStats(BaseModel):
    """Teammate graph readiness"""
    loaded: bool
    node_count: int
    edge_count: int
    build_time_ms: Optional[int] = None
    built_at: Optional[datetime] = None
    build_count: int = 0
