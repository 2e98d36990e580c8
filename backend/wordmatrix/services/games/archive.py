import logging
import time

from sqlalchemy.exc import SQLAlchemyError

from wordmatrix.errors import StoreUnavailable

logger = logging.getLogger(__name__)


def archive_final_standings(store, room, players, completed_at=None) -> int:
    """Write one result row per participant; returns how many were written.

    Rows are committed one at a time so a bad row only loses itself.
    """
    completed_at = completed_at or time.time()
    room_code, rounds_played = room.code, room.total_rounds
    rows = [(p.display_name, p.total_points) for p in players]
    written = 0
    for display_name, total_points in rows:
        try:
            store.archive_result(room_code, display_name, total_points, rounds_played, completed_at)
        except (StoreUnavailable, SQLAlchemyError):
            logger.exception('[archive-failed] room=%s player=%s', room_code, display_name)
            continue
        written += 1
    logger.info('[archive] room=%s wrote %d/%d results', room_code, written, len(rows))
    return written
