"""
Application Constants

This module contains all magic strings and numbers used throughout the application.
Centralizing constants makes the codebase more maintainable and easier to update.
"""

# ============================================================================
# Discovery / Swipe Constants
# ============================================================================

DEFAULT_POTENTIAL_MATCHES_LIMIT = 20
MAX_POTENTIAL_MATCHES_LIMIT = 100

DEFAULT_INTERACTIONS_PAGE_SIZE = 20
MAX_INTERACTIONS_PAGE_SIZE = 100

# Analytics windows accepted by get_analytics, in hours
ANALYTICS_PERIODS_HOURS = {
    "24h": 24,
    "7d": 24 * 7,
    "30d": 24 * 30,
}
DEFAULT_ANALYTICS_PERIOD = "30d"

# ============================================================================
# Match Constants
# ============================================================================

MIN_MATCH_SCORE = 0
MAX_MATCH_SCORE = 100

# Matches table stores only a short preview of the last message
LAST_MESSAGE_PREVIEW_LENGTH = 200

# ============================================================================
# Messaging Constants
# ============================================================================

MIN_MESSAGE_LENGTH = 1
MAX_MESSAGE_LENGTH = 1000
MAX_MEDIA_URL_LENGTH = 500
MAX_REACTION_LENGTH = 10

DEFAULT_MESSAGES_PAGE_SIZE = 50
MAX_MESSAGES_PAGE_SIZE = 100

DEFAULT_CONVERSATIONS_PAGE_SIZE = 20
MAX_CONVERSATIONS_PAGE_SIZE = 50

# Legacy secondary chat PIN (kept for client compatibility, never enforced)
CHAT_PIN_MIN = 1000
CHAT_PIN_MAX = 9999

# ============================================================================
# Real-time Channels
# ============================================================================

CONVERSATION_CHANNEL_PREFIX = "conversation"
USER_CHANNEL_PREFIX = "user"
NEW_MESSAGE_EVENT = "new_message"

# ============================================================================
# Notification Texts
# ============================================================================

NEW_MATCH_TITLE = "New Match!"
NEW_MATCH_TEXT = "You have a new match!"
NEW_MESSAGE_TITLE = "New Message"
MESSAGE_REQUEST_TITLE = "Message Request"
NEW_FOLLOWER_TITLE = "New Follower"
UNKNOWN_SENDER_NAME = "Someone"
