"""
User-activity logging.

``ActivityLogger`` formats one log record per user-visible action on the
``blogcms.activity`` logger.  It holds no per-request state; routers get
it through the ``get_activity_logger`` dependency so tests can swap in a
recording implementation via ``app.dependency_overrides``.
"""
import logging

logger = logging.getLogger("blogcms.activity")


class ActivityLogger:
    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def log_login(self, username: str, success: bool, ip_address: str | None, reason: str | None = None) -> None:
        status = "success" if success else "failure"
        if reason:
            self._log.info("Login %s: user=%s ip=%s reason=%s", status, username, ip_address, reason)
        else:
            self._log.info("Login %s: user=%s ip=%s", status, username, ip_address)

    def log_user_action(self, username: str, action: str, details: str = "", ip_address: str | None = None) -> None:
        self._log.info("User action %s: user=%s ip=%s %s", action, username, ip_address, details)

    def log_article_action(self, action: str, article_id: int, username: str, title: str) -> None:
        self._log.info(
            "Article %s: id=%d title=%r user=%s", action, article_id, title, username
        )

    def log_comment_action(self, action: str, comment_id: int, username: str, article_id: int) -> None:
        self._log.info(
            "Comment %s: id=%d article=%d user=%s", action, comment_id, article_id, username
        )

    def log_tag_action(self, action: str, tag_id: int, username: str, name: str) -> None:
        self._log.info("Tag %s: id=%d name=%r user=%s", action, tag_id, name, username)

    def log_error(self, message: str, exc: BaseException, username: str | None = None) -> None:
        self._log.error(
            "%s (user=%s)", message, username or "anonymous", exc_info=(type(exc), exc, exc.__traceback__)
        )


activity_logger = ActivityLogger()


def get_activity_logger() -> ActivityLogger:
    return activity_logger
