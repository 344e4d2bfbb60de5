from datetime import date, datetime

from bs4 import BeautifulSoup

from hltv_tracker.models import DATE_TODAY, DATE_TOMORROW, DATE_UNKNOWN, TIME_UNKNOWN, MatchRef, UpcomingMatch
from hltv_tracker.parsers.hltv_parser import HltvParser, is_match_today
from tests.conftest import FIRST_MATCH_UNIX, MATCH_URL, NOW, build_matches_page


class TestRoster:
    def test_parses_players_in_page_order(self, parser, soup):
        roster = parser.extract_roster(soup('team_info.html'))
        assert [p.name for p in roster] == ['FalleN', 'yuurih', 'KSCERATO', 'molodoy', 'YEKINDAR']

    def test_image_fallbacks(self, parser, soup):
        roster = {p.name: p.image_url for p in parser.extract_roster(soup('team_info.html'))}
        assert roster['FalleN'].endswith('fallen.png')
        assert roster['yuurih'].endswith('yuurih.png')        # data-src
        assert roster['KSCERATO'].endswith('kscerato.png')    # bodyshot-team-img
        assert roster['molodoy'] is None

    def test_team_roster_cards_fallback(self, parser):
        html = '''
        <div class="team-roster">
          <a class="col-custom"><div class="nickname">skullz</div></a>
          <a class="col-custom"><div class="nickname">chelo</div></a>
        </div>'''
        roster = parser.extract_roster(BeautifulSoup(html, 'html.parser'))
        assert [p.name for p in roster] == ['skullz', 'chelo']

    def test_empty_page_gives_empty_roster(self, parser):
        assert parser.extract_roster(BeautifulSoup('<html></html>', 'html.parser')) == ()


class TestUpcoming:
    def test_labels_relative_to_today(self, parser, soup):
        matches = parser.extract_upcoming(soup('team_matches.html'))
        assert [m.opponent for m in matches] == ['Vitality', 'MOUZ', 'Natus Vincere', 'TBD']

        first_start = datetime.fromtimestamp(FIRST_MATCH_UNIX)
        assert matches[0].date_label == DATE_TODAY
        assert matches[0].time_label == first_start.strftime('%H:%M')
        assert matches[0].starts_at == first_start
        assert matches[1].date_label == DATE_TOMORROW

        navi_start = datetime.fromtimestamp(1761332400)
        assert matches[2].date_label == navi_start.strftime('%d/%m/%y')

    def test_missing_date_defaults(self, parser, soup):
        tbd = parser.extract_upcoming(soup('team_matches.html'))[3]
        assert tbd.date_label == DATE_UNKNOWN
        assert tbd.time_label == TIME_UNKNOWN
        assert tbd.starts_at is None

    def test_tournament_grouping_skips_headers_without_event(self, parser, soup):
        matches = parser.extract_upcoming(soup('team_matches.html'))
        assert [m.tournament for m in matches] == [
            'IEM Chengdu 2025', 'IEM Chengdu 2025', 'BLAST Open London 2025', 'BLAST Open London 2025',
        ]

    def test_capped_at_five_in_page_order(self, parser):
        unix = FIRST_MATCH_UNIX * 1000
        rows = [(f"Team {i}", '-:-', unix + i * 3600000) for i in range(8)]
        doc = BeautifulSoup(build_matches_page([('Major', rows)]), 'html.parser')
        matches = parser.extract_upcoming(doc)
        assert [m.opponent for m in matches] == ['Team 0', 'Team 1', 'Team 2', 'Team 3', 'Team 4']

    def test_bare_time_means_today(self, parser):
        html = build_matches_page([('Cup', [('Legacy', '-:-', None)])]).replace(
            '<span></span>', '<span>18:30</span>')
        match = parser.extract_upcoming(BeautifulSoup(html, 'html.parser'))[0]
        assert match.date_label == DATE_TODAY
        assert match.time_label == '18:30'


class TestResults:
    def test_results_with_victory_flags(self, parser, soup):
        results = parser.extract_results(soup('team_matches.html'))
        assert [(r.opponent, r.score, r.is_victory) for r in results] == [
            ('Spirit', '13:9', True),
            ('MOUZ', '11:13', False),
            ('G2', '2:0', True),
        ]
        assert results[2].tournament == 'ESL Pro League Season 22'

    def test_fallback_table_selector(self, parser):
        html = build_matches_page([('Cup', [('paiN', '1:2', None)])]).replace(
            'table-container match-table', 'match-table')
        results = parser.extract_results(BeautifulSoup(html, 'html.parser'))
        assert results[0].opponent == 'paiN'
        assert results[0].is_victory is False


class TestLive:
    def test_finds_tracked_team_as_second_team(self, parser, soup):
        ref = parser.extract_live(soup('live_index.html'), '8297')
        assert ref == MatchRef(
            match_link=MATCH_URL,
            opponent='Vitality',
            opponent_id='9565',
            current_map_score='12-9',
            maps_won='1-0',
            tournament='IEM Chengdu 2025',
        )

    def test_other_team_first(self, parser, soup):
        ref = parser.extract_live(soup('live_index.html'), '4608')
        assert ref.opponent == 'G2'
        assert ref.current_map_score == '5-7'
        assert ref.maps_won == '1-0'

    def test_team_not_live(self, parser, soup):
        assert parser.extract_live(soup('live_index_empty.html'), '8297') is None

    def test_missing_scores_default_to_zero(self, parser, soup):
        ref = parser.extract_live(soup('live_index_empty.html'), '5995')
        assert ref.current_map_score == '0-0'
        assert ref.opponent == 'Natus Vincere'

    def test_live_detail(self, parser, soup):
        ref = parser.extract_live(soup('live_index.html'), '8297')
        live = parser.extract_live_detail(soup('match_detail.html'), ref)
        assert live.format == 'bo3'
        assert live.current_map_score == '12-9'
        assert live.veto_details == (
            '1. FURIA removed Anubis',
            '2. Vitality removed Ancient',
            '3. FURIA picked Mirage',
            '4. Vitality picked Inferno',
            '7. Nuke was left over',
        )
        assert live.stream_links == (
            'https://www.twitch.tv/gaules',
            'https://www.twitch.tv/eslcs',
            'https://www.hltv.org/live?matchId=2385000',
        )

    def test_live_detail_defaults_on_empty_page(self, parser, soup):
        ref = parser.extract_live(soup('live_index.html'), '8297')
        live = parser.extract_live_detail(BeautifulSoup('<html></html>', 'html.parser'), ref)
        assert live.format == 'unknown'
        assert live.veto_details == ()
        assert live.stream_links == ()
        assert live.opponent == 'Vitality'


class TestMatchToday:
    def test_today_and_unknown_count(self):
        today = NOW.date()
        assert is_match_today(UpcomingMatch(DATE_TODAY, '20:00', 'A', 'T'), today)
        assert is_match_today(UpcomingMatch(DATE_UNKNOWN, TIME_UNKNOWN, 'A', 'T'), today)
        assert not is_match_today(UpcomingMatch(DATE_TOMORROW, '20:00', 'A', 'T'), today)

    def test_literal_date(self):
        match = UpcomingMatch('24/10/25', 'unknown', 'A', 'T')
        assert is_match_today(match, date(2025, 10, 24))
        assert not is_match_today(match, date(2025, 10, 23))

    def test_start_time_wins_over_stale_label(self):
        # Label was computed yesterday; the start time is authoritative
        match = UpcomingMatch(DATE_TOMORROW, '20:00', 'A', 'T', starts_at=datetime(2025, 10, 20, 20, 0))
        assert is_match_today(match, date(2025, 10, 20))

    def test_parser_is_stateless(self, soup):
        doc = soup('team_matches.html')
        parser = HltvParser(now=lambda: NOW)
        assert parser.extract_upcoming(doc) == parser.extract_upcoming(doc)
