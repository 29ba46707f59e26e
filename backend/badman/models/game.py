from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, SQLModel


class GameStatus(str, Enum):
    NORMAL = "NORMAL"
    WALKOVER = "WALKOVER"
    RETIRED = "RETIRED"
    DISQUALIFIED = "DISQUALIFIED"
    NO_MATCH = "NO_MATCH"


class Game(SQLModel, table=True):
    # vendor match codes restart in every draw
    __table_args__ = (SAUniqueConstraint("draw_id", "visual_code", name="uq_game_draw_visual_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    visual_code: str = Field(index=True)
    draw_id: Optional[int] = Field(default=None, foreign_key="tournament_draw.id", index=True)
    played_at: Optional[datetime] = None
    round: Optional[str] = None
    status: GameStatus = Field(default=GameStatus.NORMAL, sa_column=Column(String, nullable=False))
    winner: int = Field(default=0)  # 0 = not decided, 1 = team 1, 2 = team 2

    set1_team1: Optional[int] = None
    set1_team2: Optional[int] = None
    set2_team1: Optional[int] = None
    set2_team2: Optional[int] = None
    set3_team1: Optional[int] = None
    set3_team2: Optional[int] = None

    player1_team1_id: Optional[int] = Field(default=None, foreign_key="player.id")
    player2_team1_id: Optional[int] = Field(default=None, foreign_key="player.id")
    player1_team2_id: Optional[int] = Field(default=None, foreign_key="player.id")
    player2_team2_id: Optional[int] = Field(default=None, foreign_key="player.id")

    last_sync: Optional[datetime] = None

    def team_player_ids(self, team: int) -> frozenset:
        if team == 1:
            ids = (self.player1_team1_id, self.player2_team1_id)
        else:
            ids = (self.player1_team2_id, self.player2_team2_id)
        return frozenset(pid for pid in ids if pid is not None)

    def set_scores(self) -> List[Tuple[int, int]]:
        """(team1, team2) score per played set."""
        sets = [
            (self.set1_team1, self.set1_team2),
            (self.set2_team1, self.set2_team2),
            (self.set3_team1, self.set3_team2),
        ]
        return [(a, b) for a, b in sets if a is not None and b is not None]
