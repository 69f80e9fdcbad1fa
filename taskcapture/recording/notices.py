"""Publishes user-facing notices and state changes over pypubsub."""

import logging
from pubsub import pub

from ..models.events import Notice, NoticeLevel, StateChange

logger = logging.getLogger(__name__)

NOTICE_TOPIC = "recording_notices"
STATE_TOPIC = "recording_state_changes"


def _notice_spec(notice: Notice):
    """Message data: the :class:`Notice` shown to the user."""


def _state_spec(change: StateChange):
    """Message data: the :class:`StateChange` of one session."""


class NoticePublisher:
    """Publishes notices and state changes for one or more sessions."""

    def __init__(self, notice_topic: str = NOTICE_TOPIC, state_topic: str = STATE_TOPIC):
        """Initialize publisher.

        Args:
            notice_topic: Pub/sub topic for user-facing notices
            state_topic: Pub/sub topic for session state changes
        """
        self.notice_topic = notice_topic
        self.state_topic = state_topic

        topic_manager = pub.getDefaultTopicMgr()
        topic_manager.getOrCreateTopic(notice_topic, _notice_spec)
        topic_manager.getOrCreateTopic(state_topic, _state_spec)
        logger.info(f"NoticePublisher initialized with topics: {notice_topic}, {state_topic}")

    def publish(self, notice: Notice) -> None:
        log = logger.warning if notice.level in (NoticeLevel.WARNING, NoticeLevel.ERROR) else logger.info
        log(f"Notice [{notice.code}]: {notice.message}")
        pub.sendMessage(self.notice_topic, notice=notice)

    def notify(self, level: NoticeLevel, code: str, message: str, session_id: str = None) -> Notice:
        notice = Notice(level=level, code=code, message=message, session_id=session_id)
        self.publish(notice)
        return notice

    def notify_submitted(self, public_reference: str, session_id: str = None) -> Notice:
        return self.notify(NoticeLevel.SUCCESS, "submission.completed",
                           "Recording submitted for AI review", session_id=session_id)

    def notify_upload_failed(self, error: Exception, session_id: str = None) -> Notice:
        message = getattr(error, "message", str(error))
        return self.notify(NoticeLevel.ERROR, "error.upload_failed", message, session_id=session_id)

    def publish_state_change(self, change: StateChange) -> None:
        pub.sendMessage(self.state_topic, change=change)
