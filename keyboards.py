from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup, KeyboardButton, ReplyKeyboardMarkup

from engine.payments import PREMIUM_PLANS, REVEAL_PRICE
from texts_ui import t

REPORT_REASONS = {"spam": "Spam/Ads", "abuse": "Insults/Abuse", "adult": "Adult content", "scam": "Scam/Fraud"}


def kb_main(lang: str, searching=False, in_chat=False):
    if searching:
        return ReplyKeyboardMarkup(
            keyboard=[[KeyboardButton(text=t(lang, "btn_stop_search"))]],
            resize_keyboard=True
        )
    if in_chat:
        return ReplyKeyboardMarkup(
            keyboard=[[KeyboardButton(text=t(lang, "btn_end_chat"))], [KeyboardButton(text=t(lang, "btn_next"))]],
            resize_keyboard=True
        )
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text=t(lang, "btn_random"))],
            [KeyboardButton(text=t(lang, "btn_find_girl")), KeyboardButton(text=t(lang, "btn_find_boy"))],
            [KeyboardButton(text=t(lang, "btn_profile")), KeyboardButton(text=t(lang, "btn_premium"))],
            [KeyboardButton(text=t(lang, "btn_safemode"))],
        ],
        resize_keyboard=True
    )


def kb_gender(lang: str):
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=t(lang, "gender_male")), KeyboardButton(text=t(lang, "gender_female"))]],
        resize_keyboard=True, one_time_keyboard=True
    )


def kb_premium_inline(lang: str):
    unit = "дн." if lang == "ru" else "d"
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text=f"💎 {days} {unit} — {price}⭐", callback_data=f"buy_premium_{days}")]
        for days, price in sorted(PREMIUM_PLANS.items())
    ])


def kb_chat_inline(lang: str, partner_id: int):
    """Shown when a session starts: report + paid identity reveal."""
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text=t(lang, "reveal_offer", price=REVEAL_PRICE), callback_data=f"reveal_{partner_id}")],
        [InlineKeyboardButton(text="🚫 " + ("Report" if lang == "en" else "Пожаловаться"),
                              callback_data=f"complain_{partner_id}")],
    ])


def kb_report_reasons(target_id: int):
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text=label, callback_data=f"rep_{key}_{target_id}")]
        for key, label in REPORT_REASONS.items()
    ])
