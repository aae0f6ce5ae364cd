"""Pytest configuration and fixtures"""
import pytest
from fastapi.testclient import TestClient
from teammate_graph import database
from teammate_graph.graph import GraphCache
from teammate_graph.main import app, limiter
from teammate_graph.pathfinder import PlayerPathFinder

PLAYERS = [
    {'player_id': 1, 'name': 'Lionel Messi', 'position': 'Attack', 'country': 'Argentina',
     'image_url': 'https://img.example/1.jpg', 'current_club_id': 100, 'current_club_name': 'Inter Miami'},
    {'player_id': 2, 'name': 'Neymar', 'position': 'Attack', 'country': 'Brazil'},
    {'player_id': 3, 'name': 'Luis Suárez', 'position': 'Attack', 'country': 'Uruguay',
     'current_club_name': 'Inter Miami'},
    {'player_id': 4, 'name': 'Kylian Mbappé', 'position': 'Attack', 'country': 'France'},
    {'player_id': 5, 'name': 'Cristiano Ronaldo', 'position': 'Attack', 'country': 'Portugal'},
    {'player_id': 6, 'name': 'Karim Benzema', 'position': 'Attack', 'country': 'France'},
    {'player_id': 7, 'name': 'Isolated Player'},
    {'player_id': 8, 'name': 'Gérard Piqué', 'position': 'Defender', 'country': 'Spain'},
    {'player_id': 10, 'name': 'Rodri', 'position': 'Midfield', 'country': 'Spain'},
]

# 99 has teammates but no players row; (2, 1) repeats (1, 2) reversed
TEAMMATES = [
    (1, 2, 120.0),
    (2, 1, 120.0),
    (1, 3, 180.0),
    (1, 8, 300.0),
    (2, 4, 90.0),
    (4, 6, 40.0),
    (6, 5, 250.0),
    (5, 99, 12.0),
]


def fake_player(player_id):
    return {
        'player_id': player_id,
        'name': f'Player {player_id}',
        'position': None,
        'country': None,
        'image_url': None,
        'current_club_id': None,
        'current_club_name': None,
    }


@pytest.fixture
def make_finder():
    """Build a path finder over in-memory edges; `known` limits which ids resolve"""
    def _make(edges, known=None, **kwargs):
        cache = GraphCache(edge_loader=lambda: list(edges))

        def lookup(player_id):
            if known is not None and player_id not in known:
                return None
            return fake_player(player_id)

        return PlayerPathFinder(cache, player_lookup=lookup, **kwargs)
    return _make


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    """Temporary SQLite database seeded with a small teammate network"""
    path = tmp_path / 'data' / 'futbol.db'
    monkeypatch.setattr(database, 'DATABASE_NAME', str(path))
    database.init_db()
    database.save_players(PLAYERS)
    database.save_teammates(TEAMMATES)
    return path


@pytest.fixture
def client(db_path, monkeypatch):
    """Test client for the FastAPI app, backed by the seeded database"""
    cache = GraphCache()
    monkeypatch.setattr(app.state, 'graph_cache', cache)
    monkeypatch.setattr(app.state, 'path_finder', PlayerPathFinder(cache))
    monkeypatch.setattr(limiter, 'enabled', False)
    return TestClient(app)
