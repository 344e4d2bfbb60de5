# hltv_tracker/models.py

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

# Hard caps, enforced when a value is written
MAX_UPCOMING = 5
MAX_RESULTS = 3
MAX_STREAMS = 3

DATE_TODAY = 'today'
DATE_TOMORROW = 'tomorrow'
DATE_UNKNOWN = 'TBA'
TIME_UNKNOWN = 'unknown'
UNKNOWN = 'Unknown'
MATCH_FORMATS = ('bo1', 'bo3', 'bo5', 'unknown')


class PollState(Enum):
    IDLE = 'idle'
    MATCH_TODAY = 'match_today'
    LIVE = 'live'


@dataclass(frozen=True)
class Player:
    name: str
    image_url: Optional[str] = None


@dataclass(frozen=True)
class UpcomingMatch:
    date_label: str                 # "today", "tomorrow", "dd/mm/yy" or "TBA"
    time_label: str                 # "HH:MM" or "unknown"
    opponent: str
    tournament: str
    starts_at: Optional[datetime] = None

    @property
    def is_today(self) -> bool:
        return self.date_label == DATE_TODAY

    @property
    def date_unknown(self) -> bool:
        return self.date_label == DATE_UNKNOWN


@dataclass(frozen=True)
class MatchResult:
    score: str                      # "A:B", tracked team first
    opponent: str
    tournament: str
    is_victory: bool


@dataclass(frozen=True)
class MatchRef:
    """A live match of the tracked team as listed on the live-matches index."""
    match_link: str
    opponent: str
    opponent_id: str
    current_map_score: str
    maps_won: str
    tournament: str


@dataclass(frozen=True)
class LiveMatchState:
    opponent: str
    current_map_score: str          # "x-y", tracked team first
    maps_won: str
    tournament: str
    format: str
    match_link: str
    veto_details: Tuple[str, ...] = field(default_factory=tuple)
    stream_links: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if self.format not in MATCH_FORMATS:
            object.__setattr__(self, 'format', 'unknown')
        object.__setattr__(self, 'veto_details', tuple(self.veto_details))
        object.__setattr__(self, 'stream_links', tuple(self.stream_links)[:MAX_STREAMS])
