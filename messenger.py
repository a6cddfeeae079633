# messenger.py
# Telegram side of delivery (aiogram 3): inbound message -> InboundMessage, and back out via bot.send_*

import logging
from typing import Optional

from aiogram import Bot, types
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError

from engine.models import InboundMessage, MessageKind

log = logging.getLogger(__name__)


def inbound_from_message(msg: types.Message) -> Optional[InboundMessage]:
    """None for types that are never relayed (location, contact, polls...)."""
    if msg.text is not None:
        return InboundMessage(MessageKind.TEXT, text=msg.text)
    if msg.photo:
        return InboundMessage(MessageKind.PHOTO, file_id=msg.photo[-1].file_id, caption=msg.caption)
    if msg.sticker:
        return InboundMessage(MessageKind.STICKER, file_id=msg.sticker.file_id)
    if msg.voice:
        return InboundMessage(MessageKind.VOICE, file_id=msg.voice.file_id, caption=msg.caption)
    if msg.audio:
        return InboundMessage(MessageKind.AUDIO, file_id=msg.audio.file_id, caption=msg.caption)
    if msg.animation:
        return InboundMessage(MessageKind.ANIMATION, file_id=msg.animation.file_id, caption=msg.caption)
    if msg.video:
        return InboundMessage(MessageKind.VIDEO, file_id=msg.video.file_id, caption=msg.caption)
    if msg.video_note:
        return InboundMessage(MessageKind.VIDEO_NOTE, file_id=msg.video_note.file_id)
    if msg.document:
        return InboundMessage(MessageKind.DOCUMENT, file_id=msg.document.file_id, caption=msg.caption)
    # location / contact are never relayed
    return None


class TelegramMessenger:
    """send/forward return False when the recipient blocked the bot; the caller ends the session."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(self, user_id: int, text: str, **kw) -> bool:
        try:
            await self.bot.send_message(user_id, text, **kw)
            return True
        except TelegramForbiddenError:
            log.warning("[forbidden] %s blocked the bot", user_id)
            return False

    async def forward(self, to_user_id: int, message: InboundMessage) -> bool:
        # user content goes out without parse_mode so "<b>" stays literal
        bot, fid, cap = self.bot, message.file_id, message.caption
        try:
            kind = message.kind
            if kind is MessageKind.TEXT:
                await bot.send_message(to_user_id, message.text or "", parse_mode=None)
            elif kind is MessageKind.PHOTO:
                await bot.send_photo(to_user_id, fid, caption=cap, parse_mode=None)
            elif kind is MessageKind.STICKER:
                await bot.send_sticker(to_user_id, fid)
            elif kind is MessageKind.VOICE:
                await bot.send_voice(to_user_id, fid, caption=cap, parse_mode=None)
            elif kind is MessageKind.AUDIO:
                await bot.send_audio(to_user_id, fid, caption=cap, parse_mode=None)
            elif kind is MessageKind.ANIMATION:
                await bot.send_animation(to_user_id, fid, caption=cap, parse_mode=None)
            elif kind is MessageKind.VIDEO:
                await bot.send_video(to_user_id, fid, caption=cap, parse_mode=None)
            elif kind is MessageKind.VIDEO_NOTE:
                await bot.send_video_note(to_user_id, fid)
            elif kind is MessageKind.DOCUMENT:
                await bot.send_document(to_user_id, fid, caption=cap, parse_mode=None)
            return True
        except TelegramForbiddenError:
            log.warning("[forbidden] relay target %s blocked the bot", to_user_id)
            return False

    async def answer_payment(self, payment_id: str, ok: bool, error_message: Optional[str] = None) -> bool:
        await self.bot.answer_pre_checkout_query(payment_id, ok=ok, error_message=error_message)
        return True


async def safe_edit_kb(message: types.Message, reply_markup=None, **kwargs):
    try:
        return await message.edit_reply_markup(reply_markup=reply_markup, **kwargs)
    except TelegramBadRequest as e:
        if "message is not modified" in str(e).lower():
            return message
        raise
