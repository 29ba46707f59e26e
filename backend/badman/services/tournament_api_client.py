"""
Tournament Software API client.

The vendor API speaks XML over HTTP Basic auth. Responses are converted to
plain dicts (attributes merged, repeated children turned into lists, empty
leaves mapped to None) and optionally cached in Redis with a TTL per
resource type.

Configuration (environment):
    TOURNAMENT_API_URL       base URL (default https://api.tournamentsoftware.com)
    TOURNAMENT_API_USERNAME  basic auth user
    TOURNAMENT_API_PASSWORD  basic auth password
    TOURNAMENT_API_TIMEOUT   request timeout in seconds (default 30)
    TOURNAMENT_API_CACHE     "true" to enable the Redis response cache
    REDIS_URL                Redis connection used by the cache
"""
import json
import logging
import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
import redis
from dotenv import load_dotenv
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.tournamentsoftware.com"
DEFAULT_MAX_RETRIES = 3
DEFAULT_MIN_WAIT = 1  # seconds
DEFAULT_MAX_WAIT = 10  # seconds

CACHE_KEY_PREFIX = "tournament-api:"

# Seconds per resource type
CACHE_TTL = {
    "tournaments": 3600,
    "tournamentDetails": 1800,
    "events": 1800,
    "teams": 900,
    "entries": 600,
    "draws": 300,
    "matches": 60,
    "stages": 1800,
}


class TournamentApiError(Exception):
    """Raised when the vendor API cannot be reached or answers with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(f"Tournament API request failed: {message}")
        self.status_code = status_code


# ============================================================================
# XML conversion
# ============================================================================

def _element_to_value(element: ET.Element) -> Any:
    children = list(element)
    text = (element.text or "").strip()

    if not children and not element.attrib:
        return text or None

    result: Dict[str, Any] = dict(element.attrib)
    for child in children:
        value = _element_to_value(child)
        if child.tag in result:
            if not isinstance(result[child.tag], list):
                result[child.tag] = [result[child.tag]]
            result[child.tag].append(value)
        else:
            result[child.tag] = value
    if text and not children:
        result["_text"] = text
    return result


def parse_xml(content: str) -> Dict[str, Any]:
    """Convert an XML document to {root_tag: value}."""
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise TournamentApiError(f"invalid XML response ({e})")
    return {root.tag: _element_to_value(root)}


def as_list(value: Any) -> List[Any]:
    """The converter yields a dict for one child and a list for several; always return a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _result_items(data: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    result = data.get("Result") or {}
    if not isinstance(result, dict):
        return []
    return as_list(result.get(key))


def _to_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ============================================================================
# Vendor records
# ============================================================================

@dataclass
class VendorTournament:
    code: str
    name: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VendorTournament":
        return cls(
            code=data.get("Code"),
            name=data.get("Name"),
            start_date=data.get("StartDate"),
            end_date=data.get("EndDate"),
        )


@dataclass
class VendorEvent:
    code: str
    name: Optional[str] = None
    level_id: Optional[int] = None
    gender_id: Optional[int] = None  # 1 men, 2 women, 3 mixed
    game_type_id: Optional[int] = None  # 1 singles, 2 doubles

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VendorEvent":
        return cls(
            code=data.get("Code"),
            name=data.get("Name"),
            level_id=_to_int(data.get("LevelID")),
            gender_id=_to_int(data.get("GenderID")),
            game_type_id=_to_int(data.get("GameTypeID")),
        )


@dataclass
class VendorPlayer:
    member_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    gender_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["VendorPlayer"]:
        if not isinstance(data, dict):
            return None
        return cls(
            member_id=data.get("MemberID"),
            first_name=data.get("Firstname"),
            last_name=data.get("Lastname"),
            gender_id=_to_int(data.get("GenderID")),
        )


@dataclass
class VendorEntry:
    player1: Optional[VendorPlayer] = None
    player2: Optional[VendorPlayer] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VendorEntry":
        return cls(
            player1=VendorPlayer.from_dict(data.get("Player1")),
            player2=VendorPlayer.from_dict(data.get("Player2")),
        )


@dataclass
class VendorDraw:
    code: str
    event_code: Optional[str] = None
    name: Optional[str] = None
    type_id: Optional[int] = None
    size: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VendorDraw":
        return cls(
            code=data.get("Code"),
            event_code=data.get("EventCode"),
            name=data.get("Name"),
            type_id=_to_int(data.get("TypeID")),
            size=_to_int(data.get("Size")),
        )


@dataclass
class VendorMatch:
    code: str
    winner: Optional[int] = None
    score_status: Optional[int] = None
    round_name: Optional[str] = None
    match_time: Optional[str] = None
    event_code: Optional[str] = None
    draw_code: Optional[str] = None
    team1_player1: Optional[VendorPlayer] = None
    team1_player2: Optional[VendorPlayer] = None
    team2_player1: Optional[VendorPlayer] = None
    team2_player2: Optional[VendorPlayer] = None
    sets: List[Dict[str, Optional[int]]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VendorMatch":
        team1 = data.get("Team1") if isinstance(data.get("Team1"), dict) else {}
        team2 = data.get("Team2") if isinstance(data.get("Team2"), dict) else {}
        sets_node = data.get("Sets") if isinstance(data.get("Sets"), dict) else {}
        sets = [
            {"team1": _to_int(s.get("Team1")), "team2": _to_int(s.get("Team2"))}
            for s in as_list(sets_node.get("Set"))
            if isinstance(s, dict)
        ]
        return cls(
            code=data.get("Code"),
            winner=_to_int(data.get("Winner")),
            score_status=_to_int(data.get("ScoreStatus")),
            round_name=data.get("RoundName"),
            match_time=data.get("MatchTime"),
            event_code=data.get("EventCode"),
            draw_code=data.get("DrawCode"),
            team1_player1=VendorPlayer.from_dict(team1.get("Player1")),
            team1_player2=VendorPlayer.from_dict(team1.get("Player2")),
            team2_player1=VendorPlayer.from_dict(team2.get("Player1")),
            team2_player2=VendorPlayer.from_dict(team2.get("Player2")),
            sets=sets,
        )


# ============================================================================
# Client
# ============================================================================

def get_cache_type(endpoint: str) -> str:
    """Map an endpoint to the cache TTL bucket it belongs to."""
    if "/Tournament?" in endpoint:
        return "tournaments"
    if "/Tournament/" in endpoint:
        if "/Event" in endpoint:
            return "events"
        if "/Team" in endpoint:
            return "teams"
        if "/Entry" in endpoint:
            return "entries"
        if "/Draw" in endpoint:
            return "draws"
    if "/Match" in endpoint or "/Encounter" in endpoint:
        return "matches"
    if "/Stages" in endpoint:
        return "stages"
    return "tournamentDetails"


class TournamentApiClient:
    """
    Synchronous client for the vendor tournament API.

    Usage:
        with TournamentApiClient() as api:
            events = api.get_tournament_events("ABC123")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: Optional[float] = None,
        cache_enabled: Optional[bool] = None,
        cache: Optional[redis.Redis] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = (base_url or os.getenv("TOURNAMENT_API_URL", DEFAULT_BASE_URL)).rstrip("/")
        username = username if username is not None else os.getenv("TOURNAMENT_API_USERNAME", "")
        password = password if password is not None else os.getenv("TOURNAMENT_API_PASSWORD", "")
        timeout = timeout if timeout is not None else float(os.getenv("TOURNAMENT_API_TIMEOUT", "30"))

        if cache_enabled is None:
            cache_enabled = os.getenv("TOURNAMENT_API_CACHE", "false").lower() in ("1", "true", "yes")
        self.cache_enabled = cache_enabled
        self._cache = cache
        if self.cache_enabled and self._cache is None:
            self._cache = redis.Redis.from_url(os.getenv("REDIS_URL", "redis://localhost:6379/0"), decode_responses=True)

        self._client = httpx.Client(
            base_url=self.base_url,
            auth=(username, password),
            headers={"Accept": "application/xml"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def __enter__(self) -> "TournamentApiClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @retry(
        stop=stop_after_attempt(DEFAULT_MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=DEFAULT_MIN_WAIT, max=DEFAULT_MAX_WAIT),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _get(self, endpoint: str) -> httpx.Response:
        return self._client.get(endpoint)

    def request(self, endpoint: str) -> Dict[str, Any]:
        """GET an endpoint and return the converted XML, using the cache when enabled."""
        cache_key = f"{CACHE_KEY_PREFIX}{endpoint}"
        if self.cache_enabled and self._cache is not None:
            try:
                cached = self._cache.get(cache_key)
            except redis.RedisError as e:
                logger.warning(f"Tournament API cache read failed for {endpoint}: {e}")
                cached = None
            if cached:
                logger.debug(f"Cache hit for {endpoint}")
                return json.loads(cached)

        try:
            response = self._get(endpoint)
        except httpx.HTTPError as e:
            logger.error(f"Tournament API request to {endpoint} failed: {e}")
            raise TournamentApiError(str(e))

        if response.status_code >= 400:
            logger.error(f"Tournament API {endpoint} returned {response.status_code}")
            raise TournamentApiError(f"{response.status_code} {response.reason_phrase}", response.status_code)

        data = parse_xml(response.text)

        if self.cache_enabled and self._cache is not None:
            ttl = CACHE_TTL[get_cache_type(endpoint)]
            try:
                self._cache.setex(cache_key, ttl, json.dumps(data))
            except redis.RedisError as e:
                logger.warning(f"Tournament API cache write failed for {endpoint}: {e}")
        return data

    def clear_cache(self, pattern: Optional[str] = None) -> int:
        """Delete cached responses. Returns the number of keys removed."""
        if self._cache is None:
            return 0
        match = f"{CACHE_KEY_PREFIX}{pattern or ''}*"
        keys = list(self._cache.scan_iter(match=match))
        if not keys:
            return 0
        removed = self._cache.delete(*keys)
        logger.info(f"Cleared {removed} tournament API cache key(s)")
        return removed

    def cache_status(self) -> Dict[str, Any]:
        if not self.cache_enabled or self._cache is None:
            return {"enabled": False, "keys": 0}
        keys = sum(1 for _ in self._cache.scan_iter(match=f"{CACHE_KEY_PREFIX}*"))
        return {"enabled": True, "keys": keys, "ttl": dict(CACHE_TTL)}

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def search_tournaments(self, query: Optional[str] = None) -> List[VendorTournament]:
        if query:
            endpoint = f"/1.0/Tournament?q={quote(query)}"
        else:
            endpoint = "/1.0/Tournament?list=1&refdate=2014-01-01&pagesize=100"
        return [VendorTournament.from_dict(t) for t in _result_items(self.request(endpoint), "Tournament")]

    def get_tournament_details(self, code: str) -> Optional[VendorTournament]:
        items = _result_items(self.request(f"/1.0/Tournament/{code}"), "Tournament")
        return VendorTournament.from_dict(items[0]) if items else None

    def get_tournament_events(self, code: str, event_code: Optional[str] = None) -> List[VendorEvent]:
        endpoint = f"/1.0/Tournament/{code}/Event"
        if event_code:
            endpoint += f"/{event_code}"
        return [VendorEvent.from_dict(e) for e in _result_items(self.request(endpoint), "TournamentEvent")]

    def get_event_entries(self, code: str, event_code: str) -> List[VendorEntry]:
        data = self.request(f"/1.0/Tournament/{code}/Event/{event_code}/Entry")
        return [VendorEntry.from_dict(e) for e in _result_items(data, "Entry")]

    def get_tournament_draws(self, code: str, event_code: str, draw_code: Optional[str] = None) -> List[VendorDraw]:
        endpoint = f"/1.0/Tournament/{code}/Event/{event_code}/Draw"
        if draw_code:
            endpoint += f"/{draw_code}"
        return [VendorDraw.from_dict(d) for d in _result_items(self.request(endpoint), "TournamentDraw")]

    def get_draw(self, code: str, draw_code: str) -> Optional[VendorDraw]:
        items = _result_items(self.request(f"/1.0/Tournament/{code}/Draw/{draw_code}"), "TournamentDraw")
        return VendorDraw.from_dict(items[0]) if items else None

    def get_draw_matches(self, code: str, draw_code: str) -> List[VendorMatch]:
        data = self.request(f"/1.0/Tournament/{code}/Draw/{draw_code}/Match")
        return [VendorMatch.from_dict(m) for m in _result_items(data, "Match")]

    def get_matches_by_date(self, code: str, date: str) -> List[VendorMatch]:
        data = self.request(f"/1.0/Tournament/{code}/Match/{date}")
        return [VendorMatch.from_dict(m) for m in _result_items(data, "Match")]

    def get_match_details(self, code: str, match_code: str) -> Optional[VendorMatch]:
        items = _result_items(self.request(f"/1.0/Tournament/{code}/MatchDetail/{match_code}"), "Match")
        return VendorMatch.from_dict(items[0]) if items else None

    def get_stages(self, code: str) -> List[Dict[str, Any]]:
        return _result_items(self.request(f"/1.0/Tournament/{code}/Stages"), "Stage")

    def get_draw_entries(self, code: str, draw_code: str) -> List[VendorEntry]:
        data = self.request(f"/1.0/Tournament/{code}/Draw/{draw_code}/Entry")
        return [VendorEntry.from_dict(e) for e in _result_items(data, "Entry")]
