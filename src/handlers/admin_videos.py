"""
Lambda handler for administrator video maintenance.
"""

from typing import Any, Dict

try:  # pragma: no cover
    from utils.auth import require_admin
    from utils.db import execute, fetch_one, get_connection
    from utils.http import Router, json_response
    from utils.logging import get_correlation_id, get_logger
except ModuleNotFoundError:  # pragma: no cover
    from ..utils.auth import require_admin
    from ..utils.db import execute, fetch_one, get_connection
    from ..utils.http import Router, json_response
    from ..utils.logging import get_correlation_id, get_logger


router = Router()
logger = get_logger(__name__)


@router.route("DELETE", r"/admin/delete-all-videos")
def delete_all_videos(event: Dict[str, Any]) -> Dict[str, Any]:
    """Remove every video row. S3 objects are left to the bucket lifecycle."""
    admin_sub = require_admin(event)

    with get_connection() as connection:
        result = execute(connection, "DELETE FROM videos")
        remaining = fetch_one(connection, "SELECT COUNT(*) AS count FROM videos") or {}

    logger.warning("Deleted all videos", admin=admin_sub, deleted_count=result.rowcount)
    return json_response(
        200,
        {
            "success": True,
            "message": "All videos deleted",
            "deleted_count": max(result.rowcount, 0),
            "remaining_videos": int(remaining.get("count") or 0),
        },
    )


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    return router.dispatch(event, get_logger(__name__, get_correlation_id(event)))
