# setup_commands.py: set_my_commands for RU/EN
import logging
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import BotCommand

COMMANDS = {
    "ru": [
        ("start", "Запустить бота"),
        ("chat", "Найти собеседника"),
        ("stop", "Остановить поиск / Завершить"),
        ("next", "Завершить и искать нового"),
        ("profile", "Мой профиль"),
        ("safemode", "Безопасный режим"),
        ("premium", "Premium"),
        ("history", "История покупок"),
        ("rules", "Правила"),
    ],
    "en": [
        ("start", "Start the bot"),
        ("chat", "Find a partner"),
        ("stop", "Stop search / End chat"),
        ("next", "End & find new"),
        ("profile", "My profile"),
        ("safemode", "Safe mode"),
        ("premium", "Premium"),
        ("history", "Purchase history"),
        ("rules", "Rules"),
    ],
}


async def ensure_bot_commands(bot: Bot):
    ru = [BotCommand(command=c, description=d) for c, d in COMMANDS["ru"]]
    en = [BotCommand(command=c, description=d) for c, d in COMMANDS["en"]]
    try:
        await bot.set_my_commands(ru, language_code="ru")
        await bot.set_my_commands(en, language_code="en")
        # default scope (no language)
        await bot.set_my_commands(en)
    except TelegramAPIError as e:
        logging.warning("setup_commands skipped: %s", e)
