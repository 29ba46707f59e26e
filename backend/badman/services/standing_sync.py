"""
Draw standings computed from synced games.

Standings are rebuilt from scratch on every run: existing rows for the draw's
entries are replaced. Only NORMAL games with a decided winner count.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlmodel import Session, select

from badman.models.draw import TournamentDraw
from badman.models.entry import Entry
from badman.models.game import Game, GameStatus
from badman.models.standing import Standing
from badman.models.sub_event import TournamentSubEvent
from badman.models.tournament import TournamentEvent
from badman.services.structure_sync import get_tournament_by_code
from badman.services.sync_jobs import SyncError

logger = logging.getLogger(__name__)

POINTS_FOR_WIN = 2


@dataclass
class StandingRow:
    entry_id: int
    position: int = 0
    points: int = 0
    played: int = 0
    won: int = 0
    lost: int = 0
    tied: int = 0
    games_won: int = 0
    games_lost: int = 0
    sets_won: int = 0
    sets_lost: int = 0
    total_points_won: int = 0
    total_points_lost: int = 0


def _entry_for(entries: Iterable[Entry], player_ids: frozenset) -> Optional[Entry]:
    if not player_ids:
        return None
    for entry in entries:
        if entry.player_ids == player_ids:
            return entry
    return None


def calculate_standings(entries: List[Entry], games: Iterable[Game]) -> List[StandingRow]:
    """
    Rank entries from their games.

    Teams are matched to entries by their set of player ids. A win is worth 2
    points; undecided games are skipped, so tied stays 0. Ordering: points,
    games won, sets won, total points won, all descending. Entries that played
    nothing are left out.
    """
    rows: Dict[int, StandingRow] = {entry.id: StandingRow(entry_id=entry.id) for entry in entries}

    for game in games:
        if GameStatus(game.status) != GameStatus.NORMAL or game.winner not in (1, 2):
            continue
        team1 = _entry_for(entries, game.team_player_ids(1))
        team2 = _entry_for(entries, game.team_player_ids(2))
        if team1 is None or team2 is None:
            logger.debug(f"Game {game.visual_code}: teams do not match any entry")
            continue

        stats1, stats2 = rows[team1.id], rows[team2.id]
        stats1.played += 1
        stats2.played += 1

        for score1, score2 in game.set_scores():
            stats1.total_points_won += score1
            stats1.total_points_lost += score2
            stats2.total_points_won += score2
            stats2.total_points_lost += score1
            if score1 > score2:
                stats1.sets_won += 1
                stats2.sets_lost += 1
            else:
                stats2.sets_won += 1
                stats1.sets_lost += 1

        winner, loser = (stats1, stats2) if game.winner == 1 else (stats2, stats1)
        winner.games_won += 1
        winner.won += 1
        winner.points += POINTS_FOR_WIN
        loser.games_lost += 1
        loser.lost += 1

    standings = [row for row in rows.values() if row.played > 0]
    standings.sort(key=lambda r: (r.points, r.games_won, r.sets_won, r.total_points_won), reverse=True)
    for position, row in enumerate(standings, start=1):
        row.position = position
    return standings


def find_draw_in_tournament(session: Session, tournament: TournamentEvent, draw_code: str) -> Optional[TournamentDraw]:
    return session.exec(
        select(TournamentDraw)
        .join(TournamentSubEvent, TournamentDraw.sub_event_id == TournamentSubEvent.id)
        .where(
            TournamentDraw.visual_code == draw_code,
            TournamentSubEvent.event_id == tournament.id,
        )
    ).first()


def repair_orphaned_draw(session: Session, tournament: TournamentEvent, draw_code: str) -> Optional[TournamentDraw]:
    """
    Re-link a draw whose sub-event lost its tournament.

    Candidates are draws with this code whose sub-event has no tournament or
    references one that no longer exists. Only an unambiguous single candidate
    is repaired.
    """
    candidates = []
    for draw in session.exec(select(TournamentDraw).where(TournamentDraw.visual_code == draw_code)).all():
        sub_event = session.get(TournamentSubEvent, draw.sub_event_id)
        if sub_event is None:
            continue
        if sub_event.event_id is None or session.get(TournamentEvent, sub_event.event_id) is None:
            candidates.append((draw, sub_event))

    if len(candidates) != 1:
        if candidates:
            logger.warning(f"Draw {draw_code}: {len(candidates)} orphaned candidates, not repairing")
        return None

    draw, sub_event = candidates[0]
    logger.info(
        f"Repairing orphaned sub-event {sub_event.id} for draw {draw_code}: "
        f"event_id {sub_event.event_id} -> {tournament.id}"
    )
    sub_event.event_id = tournament.id
    session.add(sub_event)
    session.flush()
    return draw


def replace_standings(session: Session, draw: TournamentDraw, standings: List[StandingRow]) -> int:
    entry_ids = [e.id for e in session.exec(select(Entry).where(Entry.draw_id == draw.id)).all()]
    if entry_ids:
        for existing in session.exec(select(Standing).where(Standing.entry_id.in_(entry_ids))).all():
            session.delete(existing)
        session.flush()

    for row in standings:
        session.add(
            Standing(
                entry_id=row.entry_id,
                position=row.position,
                size=draw.size,
                points=row.points,
                played=row.played,
                won=row.won,
                lost=row.lost,
                tied=row.tied,
                games_won=row.games_won,
                games_lost=row.games_lost,
                sets_won=row.sets_won,
                sets_lost=row.sets_lost,
                total_points_won=row.total_points_won,
                total_points_lost=row.total_points_lost,
            )
        )
    session.flush()
    return len(standings)


def sync_draw_standings(session: Session, tournament_code: str, draw_code: str) -> Dict:
    """Recompute the standings of one draw of a tournament. Caller commits."""
    tournament = get_tournament_by_code(session, tournament_code)

    repaired = False
    draw = find_draw_in_tournament(session, tournament, draw_code)
    if draw is None:
        draw = repair_orphaned_draw(session, tournament, draw_code)
        repaired = draw is not None
    if draw is None:
        raise SyncError(f"Draw {draw_code} not found for tournament {tournament_code}")

    entries = session.exec(select(Entry).where(Entry.draw_id == draw.id)).all()
    games = session.exec(
        select(Game).where(Game.draw_id == draw.id, Game.status == GameStatus.NORMAL)
    ).all()
    standings = calculate_standings(list(entries), games)

    if standings:
        replace_standings(session, draw, standings)
        logger.info(f"Updated {len(standings)} standings for draw {draw_code}")
    else:
        logger.debug(f"No completed games for draw {draw_code}, standings unchanged")

    return {
        "draw_id": draw.id,
        "standings": len(standings),
        "repaired_sub_event": repaired,
    }
