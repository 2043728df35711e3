from .user import User, MessagePrivacy, UserStatus
from .interaction import Interaction, InteractionType, InteractionContext, interaction_weight
from .match import Match, MatchOrigin
from .conversation import Conversation, ConsentState
from .message import Message, MessageType
from .notification import Notification, NotificationType
