"""
Domain constants - message types, queue names and other static data.
"""

# === Domain event types (routing key is "event.<type>") ===
PARTICIPANT_JOINED = "participant.joined"
WAITING_ADDED = "waiting.added"
PARTICIPANT_CANCELLED = "participant.cancelled"
SLOT_OPENED = "capacity.slot.opened"
WAITLIST_PROMOTED = "waitlist.promoted"
SETTLEMENT_ISSUE = "settlement.issue"

ROUTING_PREFIX = "event."


def routing_key(event_type: str) -> str:
    return f"{ROUTING_PREFIX}{event_type}"


# === Consumer queues ===
CAPACITY_QUEUE = "events.capacity.worker"
CAPACITY_BINDINGS = [
    routing_key(PARTICIPANT_JOINED),
    routing_key(PARTICIPANT_CANCELLED),
    routing_key(WAITLIST_PROMOTED),
]
CAPACITY_PREFETCH = 10

WAITLIST_QUEUE = "events.waitlist.promoter"
WAITLIST_BINDINGS = [routing_key(SLOT_OPENED)]

# === Capacity ledger adjustment directions ===
SEAT_TAKEN = "taken"
SEAT_RELEASED = "released"

# === Scheduler ===
DEFAULT_POLL_INTERVAL_SECONDS = 60
MIN_POLL_INTERVAL_SECONDS = 15

# === Registration ===
TIME_FORMAT_PATTERN = r"^([01][0-9]|2[0-3]):[0-5][0-9]$"
ADMIN_ROLE = "admin"

# === Settlement ===
SETTLEMENT_TYPE = "event_settlement"
