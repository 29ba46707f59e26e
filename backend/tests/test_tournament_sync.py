"""Structure, game and standing sync against a canned vendor client."""

import pytest
from sqlmodel import Session, select

from badman.models.draw import DrawType, TournamentDraw
from badman.models.entry import Entry
from badman.models.game import Game, GameStatus
from badman.models.player import Player
from badman.models.standing import Standing
from badman.models.sub_event import GameType, SubEventType, TournamentSubEvent
from badman.models.tournament import TournamentEvent
from badman.services.game_sync import map_game_status, sync_tournament_games
from badman.services.standing_sync import calculate_standings, sync_draw_standings
from badman.services.structure_sync import map_draw_type, sync_tournament_structure
from badman.services.sync_jobs import SyncError
from badman.services.tournament_api_client import VendorMatch, VendorPlayer

CODE = "T-SPRING"


def vp(member_id, first="First", last="Last"):
    return VendorPlayer(member_id=member_id, first_name=first, last_name=last, gender_id=1)


def vm(code, team1, team2, winner=1, sets=None, score_status=0):
    team1 = list(team1) + [None, None]
    team2 = list(team2) + [None, None]
    return VendorMatch(
        code=code,
        winner=winner,
        score_status=score_status,
        round_name="Poule",
        match_time="2026-03-14T10:30:00",
        team1_player1=team1[0],
        team1_player2=team1[1],
        team2_player1=team2[0],
        team2_player2=team2[1],
        sets=sets if sets is not None else [{"team1": 21, "team2": 10}, {"team1": 21, "team2": 12}],
    )


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------


class TestStructureSync:
    def test_creates_sub_events_draws_and_entries(self, session: Session, tournament: TournamentEvent, vendor):
        counts = sync_tournament_structure(session, vendor, CODE)
        session.commit()

        assert counts == {"sub_events": 2, "draws": 2, "entries_created": 5}

        sub_events = {
            se.visual_code: se
            for se in session.exec(select(TournamentSubEvent).where(TournamentSubEvent.event_id == tournament.id))
        }
        assert sub_events["1"].game_type == GameType.S
        assert sub_events["1"].event_type == SubEventType.M
        assert sub_events["2"].game_type == GameType.MX
        assert sub_events["2"].event_type == SubEventType.MX
        assert sub_events["2"].level == 3

        poule = session.exec(select(TournamentDraw).where(TournamentDraw.visual_code == "11")).one()
        assert poule.type == DrawType.POULE
        assert poule.size == 3

        pairs = session.exec(select(Entry).where(Entry.draw_id != poule.id)).all()
        assert all(entry.player2_id is not None for entry in pairs)
        assert len(session.exec(select(Player)).all()) == 7
        assert tournament.last_sync is not None

    def test_second_run_changes_nothing(self, session: Session, tournament: TournamentEvent, vendor):
        sync_tournament_structure(session, vendor, CODE)
        session.commit()

        counts = sync_tournament_structure(session, vendor, CODE)
        session.commit()

        assert counts["entries_created"] == 0
        assert len(session.exec(select(TournamentSubEvent)).all()) == 2
        assert len(session.exec(select(TournamentDraw)).all()) == 2
        assert len(session.exec(select(Entry)).all()) == 5

    def test_event_filter(self, session: Session, tournament: TournamentEvent, vendor):
        counts = sync_tournament_structure(session, vendor, CODE, event_codes=["2"])
        assert counts == {"sub_events": 1, "draws": 1, "entries_created": 2}

    def test_unknown_tournament(self, session: Session, vendor):
        with pytest.raises(SyncError, match="NOPE not found"):
            sync_tournament_structure(session, vendor, "NOPE")

    def test_draw_type_mapping(self):
        assert map_draw_type(0) == DrawType.KO
        assert map_draw_type(2) == DrawType.QUALIFICATION
        assert map_draw_type(3) == DrawType.POULE
        assert map_draw_type(None) == DrawType.KO


# ---------------------------------------------------------------------------
# Games
# ---------------------------------------------------------------------------


class TestGameStatus:
    def test_vendor_status_codes(self):
        assert map_game_status(vm("g", [vp("1")], [vp("2")], score_status=1)) == GameStatus.WALKOVER
        assert map_game_status(vm("g", [vp("1")], [vp("2")], score_status=2)) == GameStatus.RETIRED
        assert map_game_status(vm("g", [vp("1")], [vp("2")], score_status=3)) == GameStatus.DISQUALIFIED
        assert map_game_status(vm("g", [vp("1")], [vp("2")], score_status=4)) == GameStatus.NO_MATCH

    def test_normal_match(self):
        assert map_game_status(vm("g", [vp("1")], [vp("2")])) == GameStatus.NORMAL

    def test_scoreless_match_with_players_is_walkover(self):
        match = vm("g", [vp("1")], [vp("2")], sets=[{"team1": None, "team2": None}])
        assert map_game_status(match) == GameStatus.WALKOVER

    def test_scoreless_match_without_players_stays_normal(self):
        match = vm("g", [], [], winner=0, sets=[])
        assert map_game_status(match) == GameStatus.NORMAL


class TestGameSync:
    def test_games_upserted_by_code(self, session: Session, tournament: TournamentEvent, vendor):
        sync_tournament_structure(session, vendor, CODE)
        vendor.matches = {"11": [vm("G1", [vp("101")], [vp("102")]), vm("G2", [vp("101")], [vp("103")], winner=2)]}

        counts = sync_tournament_games(session, vendor, CODE)
        session.commit()
        assert counts == {"draws": 2, "games": 2, "entries_created": 0}

        vendor.matches = {"11": [vm("G1", [vp("101")], [vp("102")], winner=2)]}
        sync_tournament_games(session, vendor, CODE, draw_codes=["11"])
        session.commit()

        games = session.exec(select(Game).order_by(Game.visual_code)).all()
        assert [g.visual_code for g in games] == ["G1", "G2"]
        assert games[0].winner == 2
        assert (games[0].set1_team1, games[0].set1_team2) == (21, 10)
        assert games[0].set3_team1 is None
        assert games[0].played_at.hour == 10

    def test_entries_derived_from_games_for_empty_draw(self, session: Session, tournament: TournamentEvent, vendor):
        vendor.entries = {}
        sync_tournament_structure(session, vendor, CODE)
        vendor.matches = {"21": [vm("G9", [vp("201"), vp("202")], [vp("203"), vp("204")])]}

        counts = sync_tournament_games(session, vendor, CODE, draw_codes=["21"])
        session.commit()

        assert counts["entries_created"] == 2
        draw = session.exec(select(TournamentDraw).where(TournamentDraw.visual_code == "21")).one()
        entries = session.exec(select(Entry).where(Entry.draw_id == draw.id)).all()
        assert len(entries) == 2
        assert all(len(entry.player_ids) == 2 for entry in entries)

    def test_new_players_created_from_matches(self, session: Session, tournament: TournamentEvent, vendor):
        sync_tournament_structure(session, vendor, CODE)
        vendor.matches = {"11": [vm("G1", [vp("101")], [vp("999", "New", "Comer")])]}

        sync_tournament_games(session, vendor, CODE)
        session.commit()

        newcomer = session.exec(select(Player).where(Player.member_id == "999")).one()
        assert newcomer.full_name == "New Comer"

    def test_same_match_code_in_two_tournaments(self, session: Session, tournament: TournamentEvent, vendor):
        """Match codes restart per draw, so each tournament keeps its own game "1"."""
        autumn = TournamentEvent(name="Autumn Open", visual_code="T-AUTUMN")
        session.add(autumn)
        session.commit()
        session.refresh(autumn)

        sync_tournament_structure(session, vendor, CODE)
        sync_tournament_structure(session, vendor, "T-AUTUMN")
        vendor.matches = {"11": [vm("1", [vp("101")], [vp("102")])]}
        sync_tournament_games(session, vendor, CODE, draw_codes=["11"])
        vendor.matches = {"11": [vm("1", [vp("102")], [vp("103")], winner=2)]}
        sync_tournament_games(session, vendor, "T-AUTUMN", draw_codes=["11"])
        session.commit()

        def games_of(t):
            return session.exec(
                select(Game)
                .join(TournamentDraw, Game.draw_id == TournamentDraw.id)
                .join(TournamentSubEvent, TournamentDraw.sub_event_id == TournamentSubEvent.id)
                .where(TournamentSubEvent.event_id == t.id)
            ).all()

        spring_games, autumn_games = games_of(tournament), games_of(autumn)
        assert [g.visual_code for g in spring_games] == ["1"]
        assert [g.visual_code for g in autumn_games] == ["1"]
        assert spring_games[0].winner == 1
        assert autumn_games[0].winner == 2
        assert spring_games[0].draw_id != autumn_games[0].draw_id


# ---------------------------------------------------------------------------
# Standings
# ---------------------------------------------------------------------------


def _poule_with_games(session, vendor, matches):
    sync_tournament_structure(session, vendor, CODE)
    vendor.matches = {"11": matches}
    sync_tournament_games(session, vendor, CODE, draw_codes=["11"])
    session.commit()
    return session.exec(select(TournamentDraw).where(TournamentDraw.visual_code == "11")).one()


def _member_of(session, entry_id):
    entry = session.get(Entry, entry_id)
    return session.get(Player, entry.player1_id).member_id


class TestStandings:
    def test_ranking_by_points_then_games_sets_points(self, session: Session, tournament: TournamentEvent, vendor):
        draw = _poule_with_games(
            session,
            vendor,
            [
                vm("G1", [vp("101")], [vp("102")], winner=1),
                vm(
                    "G2",
                    [vp("102")],
                    [vp("103")],
                    winner=1,
                    sets=[{"team1": 21, "team2": 19}, {"team1": 18, "team2": 21}, {"team1": 21, "team2": 17}],
                ),
                vm("G3", [vp("101")], [vp("103")], winner=1),
            ],
        )

        result = sync_draw_standings(session, CODE, "11")
        session.commit()
        assert result["standings"] == 3
        assert result["repaired_sub_event"] is False

        standings = session.exec(select(Standing).order_by(Standing.position)).all()
        assert [_member_of(session, s.entry_id) for s in standings] == ["101", "102", "103"]

        first, second, third = standings
        assert (first.points, first.won, first.lost, first.played) == (4, 2, 0, 2)
        assert (second.points, second.sets_won, second.sets_lost) == (2, 2, 3)
        assert (third.points, third.sets_won) == (0, 1)
        assert second.total_points_won == 21 + 18 + 21 + 10 + 12
        assert all(s.size == draw.size for s in standings)
        assert all(s.tied == 0 for s in standings)

    def test_non_normal_and_undecided_games_skipped(self, session: Session, tournament: TournamentEvent, vendor):
        _poule_with_games(
            session,
            vendor,
            [
                vm("G1", [vp("101")], [vp("102")], winner=1, score_status=1),
                vm("G2", [vp("101")], [vp("103")], winner=0),
            ],
        )

        result = sync_draw_standings(session, CODE, "11")
        assert result["standings"] == 0
        assert session.exec(select(Standing)).all() == []

    def test_rerun_replaces_rows(self, session: Session, tournament: TournamentEvent, vendor):
        _poule_with_games(session, vendor, [vm("G1", [vp("101")], [vp("102")], winner=1)])
        sync_draw_standings(session, CODE, "11")
        session.commit()
        sync_draw_standings(session, CODE, "11")
        session.commit()

        assert len(session.exec(select(Standing)).all()) == 2

    def test_unknown_draw(self, session: Session, tournament: TournamentEvent):
        with pytest.raises(SyncError, match="Draw 404 not found"):
            sync_draw_standings(session, CODE, "404")

    def test_orphaned_sub_event_is_repaired(self, session: Session, tournament: TournamentEvent, vendor):
        draw = _poule_with_games(session, vendor, [vm("G1", [vp("101")], [vp("102")], winner=1)])
        sub_event = session.get(TournamentSubEvent, draw.sub_event_id)
        sub_event.event_id = None
        session.add(sub_event)
        session.commit()

        result = sync_draw_standings(session, CODE, "11")
        session.commit()

        assert result["repaired_sub_event"] is True
        assert result["standings"] == 2
        session.refresh(sub_event)
        assert sub_event.event_id == tournament.id


def test_calculate_standings_drops_entries_without_games():
    entries = [Entry(id=1, draw_id=1, player1_id=10), Entry(id=2, draw_id=1, player1_id=20), Entry(id=3, draw_id=1, player1_id=30)]
    game = Game(
        visual_code="G",
        draw_id=1,
        winner=2,
        status=GameStatus.NORMAL,
        set1_team1=15,
        set1_team2=21,
        set2_team1=21,
        set2_team2=21,
        player1_team1_id=10,
        player1_team2_id=20,
    )

    standings = calculate_standings(entries, [game])

    assert [row.entry_id for row in standings] == [2, 1]
    # A drawn set counts for team 2
    assert (standings[0].sets_won, standings[1].sets_won) == (2, 0)
