from . import admin, genres, leagues, songs, stats

__all__ = ["admin", "genres", "leagues", "songs", "stats"]
