"""Mini-games: fair randomness, outcome rules and settlement."""

from .catalog import GAMES, GameOutcome, get_game, list_games
from .settlement import list_history, settle_round

__all__ = [
    "GAMES",
    "GameOutcome",
    "get_game",
    "list_games",
    "list_history",
    "settle_round",
]
