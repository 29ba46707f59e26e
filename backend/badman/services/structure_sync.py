"""
Tournament structure sync: vendor events, draws and draw entries.

Everything is upserted by visual code, so running the same sync twice leaves
the database unchanged.
"""
import logging
from typing import Dict, Iterable, Optional

from sqlmodel import Session, select

from badman.models.draw import DrawType, TournamentDraw
from badman.models.entry import Entry
from badman.models.player import Player
from badman.models.sub_event import GameType, SubEventType, TournamentSubEvent
from badman.models.tournament import TournamentEvent
from badman.services.sync_jobs import SyncError
from badman.services.tournament_api_client import (
    TournamentApiClient,
    VendorDraw,
    VendorEntry,
    VendorEvent,
    VendorPlayer,
)
from badman.utils.dates import utcnow

logger = logging.getLogger(__name__)

GENDER_TO_EVENT_TYPE = {
    1: SubEventType.M,
    2: SubEventType.F,
    3: SubEventType.MX,
}

DRAW_TYPE_MAP = {
    0: DrawType.KO,
    1: DrawType.QUALIFICATION,
    2: DrawType.QUALIFICATION,
    3: DrawType.POULE,
    4: DrawType.KO,
    5: DrawType.QUALIFICATION,
}

VENDOR_GENDER = {1: "M", 2: "F"}


def get_tournament_by_code(session: Session, tournament_code: str) -> TournamentEvent:
    tournament = session.exec(select(TournamentEvent).where(TournamentEvent.visual_code == tournament_code)).first()
    if tournament is None:
        raise SyncError(f"Tournament {tournament_code} not found")
    return tournament


def map_event_type(event: VendorEvent) -> Optional[SubEventType]:
    event_type = GENDER_TO_EVENT_TYPE.get(event.gender_id)
    if event_type is None:
        logger.warning(f"Event {event.code}: unknown gender id {event.gender_id}")
    return event_type


def map_game_type(event: VendorEvent) -> Optional[GameType]:
    if event.game_type_id == 1:
        return GameType.S
    if event.game_type_id == 2:
        return GameType.MX if event.gender_id == 3 else GameType.D
    logger.warning(f"Event {event.code}: unknown game type id {event.game_type_id}")
    return None


def map_draw_type(type_id: Optional[int]) -> DrawType:
    return DRAW_TYPE_MAP.get(type_id, DrawType.KO)


def upsert_player(session: Session, vendor_player: Optional[VendorPlayer]) -> Optional[Player]:
    """Find a player by member id, creating it when unknown. Players without member id are skipped."""
    if vendor_player is None or not vendor_player.member_id:
        return None
    player = session.exec(select(Player).where(Player.member_id == vendor_player.member_id)).first()
    if player is None:
        player = Player(
            member_id=vendor_player.member_id,
            first_name=vendor_player.first_name or "",
            last_name=vendor_player.last_name or "",
            gender=VENDOR_GENDER.get(vendor_player.gender_id),
        )
        session.add(player)
        session.flush()
        logger.info(f"Created player {player.full_name} ({player.member_id})")
    return player


def upsert_sub_event(session: Session, tournament: TournamentEvent, event: VendorEvent) -> TournamentSubEvent:
    sub_event = session.exec(
        select(TournamentSubEvent).where(
            TournamentSubEvent.event_id == tournament.id,
            TournamentSubEvent.visual_code == event.code,
        )
    ).first()
    if sub_event is None:
        sub_event = TournamentSubEvent(event_id=tournament.id, visual_code=event.code, name=event.name or event.code)
        logger.info(f"Creating sub-event {event.code} for tournament {tournament.visual_code}")

    sub_event.name = event.name or sub_event.name
    event_type = map_event_type(event)
    if event_type is not None:
        sub_event.event_type = event_type
    game_type = map_game_type(event)
    if game_type is not None:
        sub_event.game_type = game_type
    if event.level_id is not None:
        sub_event.level = event.level_id
    sub_event.last_sync = utcnow()
    session.add(sub_event)
    session.flush()
    return sub_event


def upsert_draw(session: Session, sub_event: TournamentSubEvent, vendor_draw: VendorDraw) -> TournamentDraw:
    draw = session.exec(
        select(TournamentDraw).where(
            TournamentDraw.sub_event_id == sub_event.id,
            TournamentDraw.visual_code == vendor_draw.code,
        )
    ).first()
    if draw is None:
        draw = TournamentDraw(sub_event_id=sub_event.id, visual_code=vendor_draw.code, name=vendor_draw.name or "")
    draw.name = vendor_draw.name or draw.name
    draw.type = map_draw_type(vendor_draw.type_id)
    draw.size = vendor_draw.size
    draw.last_sync = utcnow()
    session.add(draw)
    session.flush()
    return draw


def find_entry(session: Session, draw_id: int, player_ids: frozenset) -> Optional[Entry]:
    for entry in session.exec(select(Entry).where(Entry.draw_id == draw_id)).all():
        if entry.player_ids == player_ids:
            return entry
    return None


def upsert_entry(session: Session, draw: TournamentDraw, player_ids: Iterable[int]) -> Optional[Entry]:
    """Entry for a team in a draw, matched on its set of players."""
    ids = sorted(set(pid for pid in player_ids if pid is not None))
    if not ids:
        return None
    existing = find_entry(session, draw.id, frozenset(ids))
    if existing is not None:
        return existing
    entry = Entry(
        draw_id=draw.id,
        sub_event_id=draw.sub_event_id,
        player1_id=ids[0],
        player2_id=ids[1] if len(ids) > 1 else None,
    )
    session.add(entry)
    session.flush()
    return entry


def _sync_draw_entries(session: Session, draw: TournamentDraw, vendor_entries: Iterable[VendorEntry]) -> int:
    created = 0
    for vendor_entry in vendor_entries:
        players = [upsert_player(session, vendor_entry.player1), upsert_player(session, vendor_entry.player2)]
        ids = [p.id for p in players if p is not None]
        if not ids:
            continue
        before = find_entry(session, draw.id, frozenset(ids))
        if before is None and upsert_entry(session, draw, ids) is not None:
            created += 1
    return created


def sync_tournament_structure(
    session: Session,
    client: TournamentApiClient,
    tournament_code: str,
    event_codes: Optional[Iterable[str]] = None,
) -> Dict[str, int]:
    """
    Pull events, draws and draw entries for a tournament.

    Only events listed in event_codes are synced when given.
    Returns counts of what was processed. Caller commits.
    """
    tournament = get_tournament_by_code(session, tournament_code)
    wanted = set(event_codes) if event_codes else None

    counts = {"sub_events": 0, "draws": 0, "entries_created": 0}
    for vendor_event in client.get_tournament_events(tournament_code):
        if not vendor_event.code or (wanted is not None and vendor_event.code not in wanted):
            continue
        sub_event = upsert_sub_event(session, tournament, vendor_event)
        counts["sub_events"] += 1

        for vendor_draw in client.get_tournament_draws(tournament_code, vendor_event.code):
            if not vendor_draw.code:
                continue
            draw = upsert_draw(session, sub_event, vendor_draw)
            counts["draws"] += 1
            entries = client.get_draw_entries(tournament_code, vendor_draw.code)
            counts["entries_created"] += _sync_draw_entries(session, draw, entries)

    tournament.last_sync = utcnow()
    session.add(tournament)
    logger.info(
        f"Structure sync for {tournament_code}: {counts['sub_events']} sub-event(s), "
        f"{counts['draws']} draw(s), {counts['entries_created']} new entries"
    )
    return counts
