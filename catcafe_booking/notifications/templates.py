"""Email subjects and HTML bodies for booking and package notifications.

Bodies are Jinja2 templates under `email_templates/`; every kind renders in
English or Traditional Chinese and autoescaping covers interpolated values.
"""
import os

from jinja2 import Environment, FileSystemLoader, select_autoescape

BRAND = "Ofcoz Family"
SUPPORTED_LANGUAGES = ("en", "zh")
DEFAULT_LANGUAGE = "zh"

SUBJECTS = {
    "booking_created": {
        "en": "Your Booking Has Been Created - Pending Payment Confirmation",
        "zh": "您的預約已建立 - 待付款確認",
    },
    "confirmation": {
        "en": "Your Ofcoz Family Booking is Confirmed! - {room_name}",
        "zh": "您的 Ofcoz Family 預約已確認！ - {room_name}",
    },
    "cancellation": {
        "en": "Booking Cancellation Confirmation - Ofcoz Family",
        "zh": "預約已取消確認 - Ofcoz Family",
    },
    "receipt_received": {
        "en": "Payment Receipt Received - Pending Confirmation",
        "zh": "收據已收到 - 待確認",
    },
    "payment_confirmed": {
        "en": "Booking Confirmed - Payment Approved!",
        "zh": "預約已確認 - 付款已批准！",
    },
    "package_assigned": {
        "en": "Package Assigned - Your Account Updated",
        "zh": "套票已分配 - 您的帳戶已更新",
    },
}

HEADINGS = {
    "booking_created": {
        "en": ("Booking Created!", "Your booking has been received. Please complete payment and upload your receipt so we can confirm it."),
        "zh": ("預約已建立！", "我們已收到您的預約。請完成付款並上傳收據，以便我們確認。"),
    },
    "confirmation": {
        "en": ("Booking Confirmed!", "You have successfully booked {room_name}. Please present this email for registration on the day of service."),
        "zh": ("預約已確認！", "恭喜您已成功預約 {room_name}！請於服務當日出示此電郵以作登記。"),
    },
    "cancellation": {
        "en": ("Booking Cancelled", "Your booking has been cancelled. If you paid with a package, the balance has been returned to your account."),
        "zh": ("預約取消確認", "您的預約已取消。如使用套票付款，餘額已退回您的帳戶。"),
    },
    "receipt_received": {
        "en": ("Receipt Received", "We have received your payment receipt. Our team will review it shortly."),
        "zh": ("收據已收到", "我們已收到您的付款收據，團隊將盡快審核。"),
    },
    "payment_confirmed": {
        "en": ("Payment Approved!", "Your payment has been approved and your booking is confirmed."),
        "zh": ("付款已批准！", "您的付款已獲批准，預約已確認。"),
    },
    "package_assigned": {
        "en": ("Package Assigned!", "Good news! A package has been added to your account."),
        "zh": ("套票已分配！", "好消息！套票已添加到您的帳戶。"),
    },
}

GREETINGS = {"en": "Hello {name},", "zh": "您好 {name}，"}
THANKS = {"en": "Thank you for using our services,", "zh": "感謝您使用我們的服務，"}

LABELS = {
    "en": {
        "booking_id": "Order Number",
        "room_name": "Service",
        "date": "Date",
        "time": "Time",
        "payment_method": "Payment Method",
        "total_cost": "Total",
        "guests": "Guests",
        "purpose": "Purpose",
        "special_requests": "Notes",
        "cancellation_reason": "Cancellation Reason",
        "refunded": "Refund",
        "confirmed_at": "Confirmed On",
        "package_type": "Package",
        "amount": "Amount",
        "expiry": "Expiry",
    },
    "zh": {
        "booking_id": "訂單編號",
        "room_name": "服務",
        "date": "日期",
        "time": "時間",
        "payment_method": "付款方式",
        "total_cost": "總額",
        "guests": "人數",
        "purpose": "用途",
        "special_requests": "備註",
        "cancellation_reason": "取消原因",
        "refunded": "退款",
        "confirmed_at": "確認日期",
        "package_type": "套票",
        "amount": "數量",
        "expiry": "到期日",
    },
}

# Rows shown per kind, in order; rows whose value is missing are skipped
ROWS = {
    "booking_created": ("booking_id", "room_name", "date", "time", "guests", "payment_method", "total_cost", "purpose", "special_requests"),
    "confirmation": ("booking_id", "room_name", "date", "time", "guests", "payment_method", "total_cost", "purpose", "special_requests"),
    "cancellation": ("booking_id", "room_name", "date", "time", "payment_method", "total_cost", "cancellation_reason", "refunded"),
    "receipt_received": ("booking_id", "room_name", "date", "time", "payment_method", "total_cost"),
    "payment_confirmed": ("booking_id", "room_name", "date", "time", "total_cost", "confirmed_at"),
    "package_assigned": ("package_type", "amount", "expiry"),
}

TEMPLATES = {"package_assigned": "package.html"}

env = Environment(
    loader=FileSystemLoader(os.path.join(os.path.dirname(__file__), "email_templates")),
    autoescape=select_autoescape(["html"]),
)


def normalize_language(language: str | None) -> str:
    return language if language in SUPPORTED_LANGUAGES else DEFAULT_LANGUAGE


def render_subject(kind: str, context: dict, language: str | None = None) -> str:
    language = normalize_language(language)
    return SUBJECTS[kind][language].format(room_name=context.get("room_name") or "")


def render_html(kind: str, context: dict, language: str | None = None) -> str:
    language = normalize_language(language)
    labels = LABELS[language]
    heading, intro = HEADINGS[kind][language]

    rows = []
    for key in ROWS[kind]:
        value = context.get(key)
        if value is None or value == "":
            continue
        rows.append((labels[key], value))

    template = env.get_template(TEMPLATES.get(kind, "booking.html"))
    return template.render(
        lang=language,
        heading=heading,
        greeting=GREETINGS[language].format(name=context.get("name") or ""),
        intro=intro.format(room_name=context.get("room_name") or ""),
        rows=rows,
        thanks=THANKS[language],
        brand=BRAND,
    )


def render(kind: str, context: dict, language: str | None = None) -> tuple[str, str]:
    """Return `(subject, html)` for a notification kind."""
    if kind not in SUBJECTS:
        raise KeyError(f"Unknown notification kind: {kind}")
    return render_subject(kind, context, language), render_html(kind, context, language)
