"""Rule-based extraction of teams, players and topics from news text."""

import re
from dataclasses import dataclass, field

from app.schemas.base import Sport


@dataclass(frozen=True, slots=True)
class Team:
    full_name: str
    nickname: str
    abbreviation: str


@dataclass(slots=True)
class ExtractedEntities:
    teams: list[str] = field(default_factory=list)
    players: list[str] = field(default_factory=list)
    topics: list[str] = field(default_factory=list)


def _teams(rows: list[tuple[str, str, str]]) -> list[Team]:
    return [Team(full_name=f, nickname=n, abbreviation=a) for f, n, a in rows]


SPORT_TEAMS: dict[Sport, list[Team]] = {
    Sport.NFL: _teams([
        ("Arizona Cardinals", "Cardinals", "ARI"),
        ("Atlanta Falcons", "Falcons", "ATL"),
        ("Baltimore Ravens", "Ravens", "BAL"),
        ("Buffalo Bills", "Bills", "BUF"),
        ("Carolina Panthers", "Panthers", "CAR"),
        ("Chicago Bears", "Bears", "CHI"),
        ("Cincinnati Bengals", "Bengals", "CIN"),
        ("Cleveland Browns", "Browns", "CLE"),
        ("Dallas Cowboys", "Cowboys", "DAL"),
        ("Denver Broncos", "Broncos", "DEN"),
        ("Detroit Lions", "Lions", "DET"),
        ("Green Bay Packers", "Packers", "GB"),
        ("Houston Texans", "Texans", "HOU"),
        ("Indianapolis Colts", "Colts", "IND"),
        ("Jacksonville Jaguars", "Jaguars", "JAX"),
        ("Kansas City Chiefs", "Chiefs", "KC"),
        ("Las Vegas Raiders", "Raiders", "LV"),
        ("Los Angeles Chargers", "Chargers", "LAC"),
        ("Los Angeles Rams", "Rams", "LAR"),
        ("Miami Dolphins", "Dolphins", "MIA"),
        ("Minnesota Vikings", "Vikings", "MIN"),
        ("New England Patriots", "Patriots", "NE"),
        ("New Orleans Saints", "Saints", "NO"),
        ("New York Giants", "Giants", "NYG"),
        ("New York Jets", "Jets", "NYJ"),
        ("Philadelphia Eagles", "Eagles", "PHI"),
        ("Pittsburgh Steelers", "Steelers", "PIT"),
        ("San Francisco 49ers", "49ers", "SF"),
        ("Seattle Seahawks", "Seahawks", "SEA"),
        ("Tampa Bay Buccaneers", "Buccaneers", "TB"),
        ("Tennessee Titans", "Titans", "TEN"),
        ("Washington Commanders", "Commanders", "WAS"),
    ]),
    Sport.NBA: _teams([
        ("Atlanta Hawks", "Hawks", "ATL"),
        ("Boston Celtics", "Celtics", "BOS"),
        ("Brooklyn Nets", "Nets", "BKN"),
        ("Charlotte Hornets", "Hornets", "CHA"),
        ("Chicago Bulls", "Bulls", "CHI"),
        ("Cleveland Cavaliers", "Cavaliers", "CLE"),
        ("Dallas Mavericks", "Mavericks", "DAL"),
        ("Denver Nuggets", "Nuggets", "DEN"),
        ("Detroit Pistons", "Pistons", "DET"),
        ("Golden State Warriors", "Warriors", "GSW"),
        ("Houston Rockets", "Rockets", "HOU"),
        ("Indiana Pacers", "Pacers", "IND"),
        ("Los Angeles Clippers", "Clippers", "LAC"),
        ("Los Angeles Lakers", "Lakers", "LAL"),
        ("Memphis Grizzlies", "Grizzlies", "MEM"),
        ("Miami Heat", "Heat", "MIA"),
        ("Milwaukee Bucks", "Bucks", "MIL"),
        ("Minnesota Timberwolves", "Timberwolves", "MIN"),
        ("New Orleans Pelicans", "Pelicans", "NOP"),
        ("New York Knicks", "Knicks", "NYK"),
        ("Oklahoma City Thunder", "Thunder", "OKC"),
        ("Orlando Magic", "Magic", "ORL"),
        ("Philadelphia 76ers", "76ers", "PHI"),
        ("Phoenix Suns", "Suns", "PHX"),
        ("Portland Trail Blazers", "Trail Blazers", "POR"),
        ("Sacramento Kings", "Kings", "SAC"),
        ("San Antonio Spurs", "Spurs", "SAS"),
        ("Toronto Raptors", "Raptors", "TOR"),
        ("Utah Jazz", "Jazz", "UTA"),
        ("Washington Wizards", "Wizards", "WAS"),
    ]),
    Sport.MLB: _teams([
        ("Arizona Diamondbacks", "Diamondbacks", "ARI"),
        ("Atlanta Braves", "Braves", "ATL"),
        ("Baltimore Orioles", "Orioles", "BAL"),
        ("Boston Red Sox", "Red Sox", "BOS"),
        ("Chicago Cubs", "Cubs", "CHC"),
        ("Chicago White Sox", "White Sox", "CWS"),
        ("Cincinnati Reds", "Reds", "CIN"),
        ("Cleveland Guardians", "Guardians", "CLE"),
        ("Colorado Rockies", "Rockies", "COL"),
        ("Detroit Tigers", "Tigers", "DET"),
        ("Houston Astros", "Astros", "HOU"),
        ("Kansas City Royals", "Royals", "KC"),
        ("Los Angeles Angels", "Angels", "LAA"),
        ("Los Angeles Dodgers", "Dodgers", "LAD"),
        ("Miami Marlins", "Marlins", "MIA"),
        ("Milwaukee Brewers", "Brewers", "MIL"),
        ("Minnesota Twins", "Twins", "MIN"),
        ("New York Mets", "Mets", "NYM"),
        ("New York Yankees", "Yankees", "NYY"),
        ("Oakland Athletics", "Athletics", "OAK"),
        ("Philadelphia Phillies", "Phillies", "PHI"),
        ("Pittsburgh Pirates", "Pirates", "PIT"),
        ("San Diego Padres", "Padres", "SD"),
        ("San Francisco Giants", "Giants", "SF"),
        ("Seattle Mariners", "Mariners", "SEA"),
        ("St. Louis Cardinals", "Cardinals", "STL"),
        ("Tampa Bay Rays", "Rays", "TB"),
        ("Texas Rangers", "Rangers", "TEX"),
        ("Toronto Blue Jays", "Blue Jays", "TOR"),
        ("Washington Nationals", "Nationals", "WAS"),
    ]),
    Sport.NHL: _teams([
        ("Anaheim Ducks", "Ducks", "ANA"),
        ("Boston Bruins", "Bruins", "BOS"),
        ("Buffalo Sabres", "Sabres", "BUF"),
        ("Calgary Flames", "Flames", "CGY"),
        ("Carolina Hurricanes", "Hurricanes", "CAR"),
        ("Chicago Blackhawks", "Blackhawks", "CHI"),
        ("Colorado Avalanche", "Avalanche", "COL"),
        ("Columbus Blue Jackets", "Blue Jackets", "CBJ"),
        ("Dallas Stars", "Stars", "DAL"),
        ("Detroit Red Wings", "Red Wings", "DET"),
        ("Edmonton Oilers", "Oilers", "EDM"),
        ("Florida Panthers", "Panthers", "FLA"),
        ("Los Angeles Kings", "Kings", "LAK"),
        ("Minnesota Wild", "Wild", "MIN"),
        ("Montreal Canadiens", "Canadiens", "MTL"),
        ("Nashville Predators", "Predators", "NSH"),
        ("New Jersey Devils", "Devils", "NJD"),
        ("New York Islanders", "Islanders", "NYI"),
        ("New York Rangers", "Rangers", "NYR"),
        ("Ottawa Senators", "Senators", "OTT"),
        ("Philadelphia Flyers", "Flyers", "PHI"),
        ("Pittsburgh Penguins", "Penguins", "PIT"),
        ("San Jose Sharks", "Sharks", "SJS"),
        ("Seattle Kraken", "Kraken", "SEA"),
        ("St. Louis Blues", "Blues", "STL"),
        ("Tampa Bay Lightning", "Lightning", "TBL"),
        ("Toronto Maple Leafs", "Maple Leafs", "TOR"),
        ("Utah Hockey Club", "Hockey Club", "UTA"),
        ("Vancouver Canucks", "Canucks", "VAN"),
        ("Vegas Golden Knights", "Golden Knights", "VGK"),
        ("Washington Capitals", "Capitals", "WSH"),
        ("Winnipeg Jets", "Jets", "WPG"),
    ]),
}

# First Last, First M. Last, hyphenated surnames
_NAME_RE = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z]\.?)?\s+[A-Z][a-z]+(?:-[A-Z][a-z]+)?)\b")

COMMON_PHRASES = frozenset({
    "Breaking News", "Sports Center", "First Take", "Get Up", "Around The",
    "According To", "Sources Say", "Per Sources", "Multiple Sources",
    "League Sources", "Team Sources", "Free Agency", "Trade Deadline",
    "All Star", "Pro Bowl", "Super Bowl", "World Series", "Stanley Cup",
    "United States", "New York", "Los Angeles", "San Francisco", "San Diego",
    "San Antonio", "Las Vegas", "New England", "New Orleans", "New Jersey",
    "Green Bay", "Kansas City", "Tampa Bay", "Golden State", "Oklahoma City",
    "St Louis", "San Jose", "Monday Night", "Sunday Night", "Thursday Night",
})

TOPIC_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(trade|traded|trading|deal)\b", re.I), "trade"),
    (re.compile(r"\b(injur(?:y|ed|ies)|out for|day-to-day|questionable|doubtful|probable)\b", re.I), "injury"),
    (re.compile(r"\b(sign(?:ed|ing|s)?|free agent|contract|extension)\b", re.I), "signing"),
    (re.compile(r"\b(draft(?:ed)?|pick|selection|prospect)\b", re.I), "draft"),
    (re.compile(r"\b(retire(?:d|ment|s)?)\b", re.I), "retirement"),
    (re.compile(r"\b(suspen(?:d|ded|sion))\b", re.I), "suspension"),
    (re.compile(r"\b(fir(?:e|ed|ing)|coach|manag(?:er|ement))\b", re.I), "coaching"),
    (re.compile(r"\b(playoff|postseason|elimination|clinch)\b", re.I), "playoffs"),
    (re.compile(r"\b(champion|title|trophy|ring)\b", re.I), "championship"),
    (re.compile(r"\b(record|milestone|historic|first-ever)\b", re.I), "milestone"),
    (re.compile(r"\b(odds|betting|line|spread|over/under)\b", re.I), "betting"),
    (re.compile(r"\b(mvp|all-star|pro bowl|all-pro)\b", re.I), "awards"),
    (re.compile(r"\b(breakout|emerging|rising|rookie)\b", re.I), "rising-star"),
    (re.compile(r"\b(controversy|scandal|investigation)\b", re.I), "controversy"),
    (re.compile(r"\b(stat(?:s|istics)?|numbers|analytics)\b", re.I), "analytics"),
]


def _word(pattern: str, flags: int = 0) -> re.Pattern[str]:
    return re.compile(rf"(?<![\w]){re.escape(pattern)}(?![\w])", flags)


def extract_teams(text: str, sport: Sport) -> list[str]:
    """Teams named by full name, nickname, or upper-case abbreviation."""
    found: list[str] = []
    for team in SPORT_TEAMS.get(sport, []):
        if (
            _word(team.full_name, re.I).search(text)
            or _word(team.nickname, re.I).search(text)
            or _word(team.abbreviation).search(text)
        ):
            found.append(team.full_name)
    return list(dict.fromkeys(found))


def _is_team_name(name: str, sport: Sport) -> bool:
    lower = name.lower()
    return any(
        lower in (t.full_name.lower(), t.nickname.lower())
        or t.full_name.lower().startswith(lower + " ")
        for t in SPORT_TEAMS.get(sport, [])
    )


def extract_players(text: str, sport: Sport) -> list[str]:
    names = [
        name
        for name in _NAME_RE.findall(text)
        if name not in COMMON_PHRASES and not _is_team_name(name, sport)
    ]
    return list(dict.fromkeys(names))


def extract_topics(text: str) -> list[str]:
    return [topic for pattern, topic in TOPIC_PATTERNS if pattern.search(text)]


def extract_entities(text: str, sport: Sport) -> ExtractedEntities:
    """Teams, players and topics mentioned in a headline plus body."""
    return ExtractedEntities(
        teams=extract_teams(text, sport),
        players=extract_players(text, sport),
        topics=extract_topics(text),
    )
