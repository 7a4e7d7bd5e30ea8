CHAT_MESSAGE_RECEIVED = "chat.message.received"
TRANSACTION_INPUT_RECEIVED = "transaction.input.received"
GOAL_INPUT_RECEIVED = "goal.input.received"

EVENT_TOPIC = "arthagent.events"

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_STEP_TIMEOUT = 30.0
DEFAULT_RUN_TIMEOUT = 60.0

MAX_CLARIFYING_QUESTIONS = 3
RECENT_TRANSACTION_MONTHS = 6
