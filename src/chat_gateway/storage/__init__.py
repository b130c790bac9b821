from chat_gateway.storage.conversations import ConversationStore
from chat_gateway.storage.ledger import UsageLedger
from chat_gateway.storage.models import ConversationTurn, RateLimitPolicy, UsageRecord
from chat_gateway.storage.policies import PolicyStore
from chat_gateway.storage.store import GatewayStore

__all__ = [
    "ConversationStore",
    "ConversationTurn",
    "GatewayStore",
    "PolicyStore",
    "RateLimitPolicy",
    "UsageLedger",
    "UsageRecord",
]
