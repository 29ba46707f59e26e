"""
Tournament game sync.

Upserts games of a tournament's draws by visual code, creating unknown
players on the way. Draws that have no entries yet get them derived from
the teams seen in their games.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlmodel import Session, select

from badman.models.draw import TournamentDraw
from badman.models.entry import Entry
from badman.models.game import Game, GameStatus
from badman.models.sub_event import TournamentSubEvent
from badman.services.structure_sync import get_tournament_by_code, upsert_entry, upsert_player
from badman.services.tournament_api_client import TournamentApiClient, VendorMatch
from badman.utils.dates import utcnow

logger = logging.getLogger(__name__)

# Vendor ScoreStatus codes
SCORE_STATUS_MAP = {
    1: GameStatus.WALKOVER,
    2: GameStatus.RETIRED,
    3: GameStatus.DISQUALIFIED,
    4: GameStatus.NO_MATCH,
}


def map_game_status(match: VendorMatch) -> GameStatus:
    status = SCORE_STATUS_MAP.get(match.score_status)
    if status is not None:
        return status

    # Tournaments that never configure a score status report walkovers as
    # "normal" matches without scores while players are filled in.
    first_set = match.sets[0] if match.sets else {}
    no_score = first_set.get("team1") is None and first_set.get("team2") is None
    has_players = bool(
        (match.team1_player1 and match.team1_player1.member_id)
        or (match.team2_player1 and match.team2_player1.member_id)
    )
    if no_score and has_players:
        return GameStatus.WALKOVER
    return GameStatus.NORMAL


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning(f"Unparseable match time '{value}'")
        return None


def tournament_draws(session: Session, tournament_id: int) -> List[TournamentDraw]:
    return session.exec(
        select(TournamentDraw)
        .join(TournamentSubEvent, TournamentDraw.sub_event_id == TournamentSubEvent.id)
        .where(TournamentSubEvent.event_id == tournament_id)
    ).all()


def upsert_game(session: Session, draw: TournamentDraw, match: VendorMatch) -> Game:
    game = session.exec(
        select(Game).where(Game.draw_id == draw.id, Game.visual_code == match.code)
    ).first()
    if game is None:
        game = Game(visual_code=match.code, draw_id=draw.id)

    game.played_at = _parse_time(match.match_time)
    game.round = match.round_name
    game.status = map_game_status(match)
    game.winner = match.winner or 0

    scores = (match.sets + [{}, {}, {}])[:3]
    game.set1_team1, game.set1_team2 = scores[0].get("team1"), scores[0].get("team2")
    game.set2_team1, game.set2_team2 = scores[1].get("team1"), scores[1].get("team2")
    game.set3_team1, game.set3_team2 = scores[2].get("team1"), scores[2].get("team2")

    players = {
        "player1_team1_id": upsert_player(session, match.team1_player1),
        "player2_team1_id": upsert_player(session, match.team1_player2),
        "player1_team2_id": upsert_player(session, match.team2_player1),
        "player2_team2_id": upsert_player(session, match.team2_player2),
    }
    for attr, player in players.items():
        setattr(game, attr, player.id if player else None)

    game.last_sync = utcnow()
    session.add(game)
    session.flush()
    return game


def create_entries_from_games(session: Session, draw: TournamentDraw) -> int:
    """Derive entries from game teams for a draw that has none. Returns entries created."""
    if session.exec(select(Entry).where(Entry.draw_id == draw.id)).first() is not None:
        return 0

    teams = set()
    for game in session.exec(select(Game).where(Game.draw_id == draw.id)).all():
        for team in (1, 2):
            ids = game.team_player_ids(team)
            if ids:
                teams.add(ids)

    for ids in teams:
        upsert_entry(session, draw, ids)
    if teams:
        logger.info(f"Created {len(teams)} entries from games for draw {draw.visual_code}")
    return len(teams)


def sync_tournament_games(
    session: Session,
    client: TournamentApiClient,
    tournament_code: str,
    draw_codes: Optional[Iterable[str]] = None,
) -> Dict[str, int]:
    """Sync the games of every draw of a tournament (or only draw_codes). Caller commits."""
    tournament = get_tournament_by_code(session, tournament_code)
    wanted = set(draw_codes) if draw_codes else None

    counts = {"draws": 0, "games": 0, "entries_created": 0}
    for draw in tournament_draws(session, tournament.id):
        if wanted is not None and draw.visual_code not in wanted:
            continue
        counts["draws"] += 1
        for match in client.get_draw_matches(tournament_code, draw.visual_code):
            if not match.code:
                logger.warning(f"Skipping match without code in draw {draw.visual_code}")
                continue
            upsert_game(session, draw, match)
            counts["games"] += 1
        counts["entries_created"] += create_entries_from_games(session, draw)

    logger.info(f"Game sync for {tournament_code}: {counts['games']} game(s) in {counts['draws']} draw(s)")
    return counts
