class Emojis:
    STORE = "🛍️"
    SUCCESS = "✅"
    ERROR = "❌"
    WARNING = "⚠️"
    INFO = "ℹ️"
    ROCKET = "🚀"
    ADMIN = "⚙️"
    MONEY = "💰"
    CARD = "💳"
    PACKAGE = "📦"
    BACK = "🔙"
    PENDING = "⏳"
    PROCESSING = "🔄"
    CANCELLED = "🚫"
    EXPIRED = "⌛"
    DOWNLOAD = "📥"
    UPLOAD = "📤"
    USER = "👤"
    STATS = "📊"
    HISTORY = "📜"


class Colors:
    PRIMARY = 0x5865F2
    SECONDARY = 0x2B2D31
    SUCCESS = 0x57F287
    WARNING = 0xFEE75C
    ERROR = 0xED4245
    INFO = 0x3498DB


ORDER_STATUS_LABELS = {
    "pending": f"{Emojis.PENDING} Pending",
    "processing": f"{Emojis.PROCESSING} Processing",
    "completed": f"{Emojis.SUCCESS} Completed",
    "cancelled": f"{Emojis.ERROR} Cancelled",
}

DEPOSIT_STATUS_EMOJI = {
    "pending": Emojis.PENDING,
    "completed": Emojis.SUCCESS,
    "rejected": Emojis.ERROR,
    "expired": Emojis.EXPIRED,
    "cancelled": Emojis.CANCELLED,
}
