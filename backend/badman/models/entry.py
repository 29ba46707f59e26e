from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from badman.models.draw import TournamentDraw


class Entry(SQLModel, table=True):
    """A team (one or two players) placed in a draw."""

    id: Optional[int] = Field(default=None, primary_key=True)
    draw_id: int = Field(foreign_key="tournament_draw.id", index=True)
    sub_event_id: Optional[int] = Field(default=None, foreign_key="tournament_sub_event.id", index=True)
    player1_id: Optional[int] = Field(default=None, foreign_key="player.id")
    player2_id: Optional[int] = Field(default=None, foreign_key="player.id")
    entry_type: str = Field(default="tournament")

    # Relationships
    draw: "TournamentDraw" = Relationship(back_populates="entries")

    @property
    def player_ids(self) -> frozenset:
        return frozenset(pid for pid in (self.player1_id, self.player2_id) if pid is not None)
