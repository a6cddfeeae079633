# RU/EN texts; keys line up with engine outcome codes where one exists
T = {
    "ru": {
        # кнопки
        "btn_random": "🎯 Случайный собеседник",
        "btn_find_girl": "👩 Поиск девушки",
        "btn_find_boy": "👨 Поиск парня",
        "btn_profile": "👁 Профиль",
        "btn_premium": "💎 Premium",
        "btn_safemode": "🛡 Безопасный режим",
        "btn_stop_search": "⛔ Остановить поиск",
        "btn_end_chat": "🚫 Завершить диалог",
        "btn_next": "🔄 Завершить и искать нового",
        "gender_male": "Парень",
        "gender_female": "Девушка",

        # регистрация
        "welcome": "💫 Добро пожаловать в анонимный чат — давай настроим профиль.",
        "ask_gender": "Выбери пол:",
        "ask_nickname": "✏️ Придумай ник (2–20 символов):",
        "err_nickname": "Этот ник не подходит. Попробуй другой:",
        "registered": "✅ Профиль готов, <b>{nickname}</b>!",
        "need_start": "Сначала нажми /start и заполни профиль.",
        "menu_title": "💬 Главное меню:",
        "rules": (
            "📜 <b>Правила</b>\n"
            "1) Не раскрывай личные данные.\n"
            "2) Без спама, ссылок и оскорблений.\n"
            "3) Нарушения ведут к бану."
        ),

        # профиль
        "profile": (
            "👤 <b>Твой профиль</b>\n"
            "🪪 ID: <code>{id}</code>\n"
            "Ник: <b>{nickname}</b>\n"
            "Пол: <b>{gender}</b>\n"
            "Статус: {status}\n"
            "Безопасный режим: {safe}"
        ),
        "premium_until": "💎 Premium (до {date})",
        "premium_free": "🆓 Базовый",
        "on": "вкл",
        "off": "выкл",
        "safemode_on": "🛡 Безопасный режим включён: медиа от собеседника скрываются.",
        "safemode_off": "🔓 Безопасный режим выключен: медиа будут доставляться.",

        # поиск / чат
        "waiting": "🌠 Ищем собеседника…",
        "matched": "🌟 <b>Собеседник найден!</b>\n\n/stop — завершить\n/next — следующий собеседник",
        "chat_tools": "👇 Действия в диалоге:",
        "already_in_session": "🔍 Ты уже в чате.",
        "banned": "⛔ Твой аккаунт заблокирован.",
        "banned_reason": "⛔ Ты заблокирован. Причина: <b>{reason}</b>",
        "search_stopped": "🛑 Поиск остановлен.",
        "no_active_chat": "❗ У тебя нет активного диалога. Нажми /chat.",
        "chat_ended": "💬 Диалог завершён.",
        "partner_left": "😔 Собеседник завершил диалог.",
        "session_ended_restriction": "💬 Диалог завершён: собеседник недоступен.",
        "filtered_and_relayed": "⚠️ Часть сообщения скрыта фильтром.",
        "blocked_by_safe_mode": "🛡 Собеседник включил безопасный режим, медиа не доставлено.",
        "media_hidden": "🛡 Собеседник отправил {kind}. Скрыто безопасным режимом (/safemode).",
        "unsupported": "📎 Этот тип сообщений не пересылается.",
        "gender_pref_premium": "💎 Выбор пола доступен только с Premium. Ищем любого собеседника.",

        # жалобы
        "report_ask": "Почему жалуешься?",
        "report_recorded": "🚫 Жалоба отправлена.",
        "already_reported": "Ты уже жаловался на этого пользователя.",
        "premium_immune": "На Premium-пользователей жаловаться нельзя.",
        "self_report": "Нельзя пожаловаться на себя.",
        "unknown_user": "Пользователь не найден.",
        "auto_banned": "🚫 Жалоба отправлена. Пользователь заблокирован.",

        # оплата
        "premium_text": (
            "💎 <b>Premium</b>\n"
            "• Приоритет в поиске\n"
            "• Выбор пола собеседника\n"
            "• Без антиспам-ограничений и жалоб\n\n"
            "Выбери срок:"
        ),
        "premium_activated": "💎 Premium активирован до {date}!",
        "reveal_offer": "🔍 Узнать, кто твой собеседник — {price}⭐",
        "reveal_result": "🔍 Твой собеседник: <b>{nickname}</b> {username}\n🆔 <code>{id}</code>",
        "reveal_partner": "🎁 Собеседник оплатил раскрытие личностей.\nЭто <b>{nickname}</b> {username}\n🆔 <code>{id}</code>",
        "reveal_failed": "Диалог уже завершён, раскрытие невозможно.",
        "reveal_refunded": "Диалог уже завершён. Звёзды возвращены.",
        "refund_failed": "Диалог уже завершён. Возврат не прошёл, напиши в поддержку.",
        "premium_granted": "🎉 Администратор выдал тебе Premium на {days} дн. (до {date}).",
        "history_title": "🧾 <b>История покупок</b>",
        "history_empty": "Покупок пока нет.",
        "history_premium": "Premium {days} дн.",
        "history_reveal": "Раскрытие личностей",
        "unbanned": "✅ Блокировка снята. Нажми /chat, чтобы продолжить.",
        "announcement": "📢 Объявление",
        "payment_error": "⚠️ Ошибка создания платежа. Попробуй позже.",
        "checkout_session_ended": "Диалог уже завершён.",
        "checkout_invalid": "Неверный платёж.",
    },
    "en": {
        "btn_random": "🎯 Random",
        "btn_find_girl": "👩 Find a girl",
        "btn_find_boy": "👨 Find a boy",
        "btn_profile": "👁 Profile",
        "btn_premium": "💎 Premium",
        "btn_safemode": "🛡 Safe mode",
        "btn_stop_search": "⛔ Stop search",
        "btn_end_chat": "🚫 End dialog",
        "btn_next": "🔄 End & next",
        "gender_male": "Boy",
        "gender_female": "Girl",

        "welcome": "💫 Welcome to the anonymous chat — let’s set up your profile.",
        "ask_gender": "Choose your gender:",
        "ask_nickname": "✏️ Pick a nickname (2–20 characters):",
        "err_nickname": "That nickname is not allowed. Try another one:",
        "registered": "✅ Profile ready, <b>{nickname}</b>!",
        "need_start": "Press /start and fill in your profile first.",
        "menu_title": "💬 Main menu:",
        "rules": (
            "📜 <b>Rules</b>\n"
            "1) Don’t share personal data.\n"
            "2) No spam, links or insults.\n"
            "3) Violations lead to a ban."
        ),

        "profile": (
            "👤 <b>Your profile</b>\n"
            "🪪 ID: <code>{id}</code>\n"
            "Nickname: <b>{nickname}</b>\n"
            "Gender: <b>{gender}</b>\n"
            "Status: {status}\n"
            "Safe mode: {safe}"
        ),
        "premium_until": "💎 Premium (until {date})",
        "premium_free": "🆓 Basic",
        "on": "on",
        "off": "off",
        "safemode_on": "🛡 Safe mode on: media from your partner is hidden.",
        "safemode_off": "🔓 Safe mode off: media will be delivered.",

        "waiting": "🌠 Looking for a partner…",
        "matched": "🌟 <b>Partner found!</b>\n\n/stop — end dialog\n/next — next partner",
        "chat_tools": "👇 Dialog actions:",
        "already_in_session": "🔍 You’re already in a chat.",
        "banned": "⛔ Your account is banned.",
        "banned_reason": "⛔ You have been banned. Reason: <b>{reason}</b>",
        "search_stopped": "🛑 Search stopped.",
        "no_active_chat": "❗ You have no active dialog. Press /chat.",
        "chat_ended": "💬 Dialog ended.",
        "partner_left": "😔 Your partner ended the dialog.",
        "session_ended_restriction": "💬 Dialog ended: your partner is unavailable.",
        "filtered_and_relayed": "⚠️ Part of your message was hidden by the filter.",
        "blocked_by_safe_mode": "🛡 Your partner has safe mode on, media not delivered.",
        "media_hidden": "🛡 Your partner sent a {kind}. Hidden by safe mode (/safemode).",
        "unsupported": "📎 This message type is not relayed.",
        "gender_pref_premium": "💎 Gender choice is a Premium feature. Searching for anyone.",

        "report_ask": "Why are you reporting?",
        "report_recorded": "🚫 Report submitted.",
        "already_reported": "You already reported this user.",
        "premium_immune": "Premium users cannot be reported.",
        "self_report": "You cannot report yourself.",
        "unknown_user": "User not found.",
        "auto_banned": "🚫 Report submitted. The user has been banned.",

        "premium_text": (
            "💎 <b>Premium</b>\n"
            "• Priority matching\n"
            "• Choose your partner’s gender\n"
            "• No anti-spam limits, cannot be reported\n\n"
            "Choose a plan:"
        ),
        "premium_activated": "💎 Premium active until {date}!",
        "reveal_offer": "🔍 Reveal who your partner is — {price}⭐",
        "reveal_result": "🔍 Your partner: <b>{nickname}</b> {username}\n🆔 <code>{id}</code>",
        "reveal_partner": "🎁 Your partner paid to reveal identities.\nThey are <b>{nickname}</b> {username}\n🆔 <code>{id}</code>",
        "reveal_failed": "The dialog has already ended, cannot reveal.",
        "reveal_refunded": "The dialog has already ended. Your Stars were refunded.",
        "refund_failed": "The dialog has already ended. The refund failed, please contact support.",
        "premium_granted": "🎉 An admin granted you {days} day(s) of Premium (until {date}).",
        "history_title": "🧾 <b>Purchase history</b>",
        "history_empty": "No purchases yet.",
        "history_premium": "Premium {days} day(s)",
        "history_reveal": "Identity reveal",
        "unbanned": "✅ You have been unbanned. Press /chat to continue.",
        "announcement": "📢 Announcement",
        "payment_error": "⚠️ Error creating payment. Try later.",
        "checkout_session_ended": "The dialog has already ended.",
        "checkout_invalid": "Invalid payment.",
    },
}


def lang_of(user) -> str:
    code = (getattr(user, "language_code", None) or "").lower()
    return "ru" if code.startswith(("ru", "uk", "be")) else "en"


def t(lang: str, key: str, **kw) -> str:
    lang = lang if lang in T else "en"
    text = T[lang].get(key, key)
    return text.format(**kw) if kw else text
