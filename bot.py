# bot.py: anonymous 1:1 chat (aiogram 3): registration, matching, relay, reports, Stars payments, admin commands
import asyncio
import html
import logging
import sys
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from aiogram import Bot, Dispatcher, F, types
from aiogram.client.default import DefaultBotProperties
from aiogram.exceptions import TelegramAPIError, TelegramForbiddenError
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.fsm.storage.memory import MemoryStorage
from aiogram.types import LabeledPrice, PreCheckoutQuery
from aiogram.types.error_event import ErrorEvent

import config
from engine.abuse import AbusePolicy
from engine.core import ChatCore, build_core
from engine.database import open_store
from engine.models import AdminStatus, Gender, InboundMessage, MatchStatus, Preference, RelayStatus, ReportStatus, UserRef
from engine.payments import PREMIUM_PLANS, REVEAL_PRICE, parse_payload, premium_payload, reveal_payload
from engine.ports import Messenger
from keyboards import REPORT_REASONS, kb_chat_inline, kb_gender, kb_main, kb_premium_inline, kb_report_reasons
from messenger import TelegramMessenger, inbound_from_message, safe_edit_kb
from setup_commands import ensure_bot_commands
from stats_api import start_stats_server
from texts_ui import lang_of, t

log = logging.getLogger("bot")
dp = Dispatcher(storage=MemoryStorage())

USERS_PAGE = 10
BROADCAST_PAGE = 500
# pause between broadcast sends, keeps under the per-bot rate limit
BROADCAST_DELAY = 0.05

# set in main()
core: Optional[ChatCore] = None
messenger: Optional[Messenger] = None


class Reg(StatesGroup):
    gender = State()
    nickname = State()


class AdminFlow(StatesGroup):
    broadcast = State()


def _buttons(key: str) -> set:
    return {t("ru", key), t("en", key)}


def _fmt_date(ts: Optional[float]) -> str:
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M") if ts else "-"


async def _lang(uid: int, fallback: Optional[types.User] = None) -> str:
    u = await core.store.get(uid)
    if u is not None:
        return u.language
    return lang_of(fallback) if fallback else "en"


async def _notify(uid: int, key: str, reply_markup=None, **kw) -> bool:
    l = await _lang(uid)
    return await messenger.send(uid, t(l, key, **kw), reply_markup=reply_markup)


async def _notify_admins(text: str):
    for aid in config.ADMIN_IDS:
        await messenger.send(aid, text)


async def _drop_blocked(uid: int):
    """uid blocked the bot: end whatever it was part of and tell the other side."""
    pid = await core.engine.force_terminate(uid, "blocked_bot")
    if pid is not None:
        l = await _lang(pid)
        await messenger.send(pid, t(l, "session_ended_restriction"), reply_markup=kb_main(l))


# ===================== REGISTRATION =====================
@dp.message(CommandStart())
async def start_cmd(message: types.Message, state: FSMContext):
    uid = message.from_user.id
    user = await core.store.get(uid)
    if user:
        await state.clear()
        await message.answer(t(user.language, "menu_title"), reply_markup=kb_main(user.language))
        return
    l = lang_of(message.from_user)
    await state.set_state(Reg.gender)
    await message.answer(t(l, "welcome"))
    await message.answer(t(l, "ask_gender"), reply_markup=kb_gender(l))


@dp.message(Reg.gender, F.text.in_(_buttons("gender_male") | _buttons("gender_female")))
async def reg_gender_ok(message: types.Message, state: FSMContext):
    l = lang_of(message.from_user)
    gender = Gender.MALE if message.text in _buttons("gender_male") else Gender.FEMALE
    await state.update_data(gender=gender.value)
    await state.set_state(Reg.nickname)
    await message.answer(t(l, "ask_nickname"), reply_markup=types.ReplyKeyboardRemove())


@dp.message(Reg.gender)
async def reg_gender_retry(message: types.Message):
    l = lang_of(message.from_user)
    await message.answer(t(l, "ask_gender"), reply_markup=kb_gender(l))


@dp.message(Reg.nickname, F.text)
async def reg_nickname(message: types.Message, state: FSMContext):
    l = lang_of(message.from_user)
    nick = message.text.strip()
    if not core.filter.is_valid_nickname(nick):
        await message.answer(t(l, "err_nickname"))
        return
    data = await state.get_data()
    await core.store.save(UserRef(
        user_id=message.from_user.id,
        gender=Gender(data["gender"]),
        nickname=nick,
        username=message.from_user.username,
        language=l,
    ))
    await state.clear()
    log.info("registered %s as %r", message.from_user.id, nick)
    await message.answer(t(l, "registered", nickname=html.escape(nick)), reply_markup=kb_main(l))


@dp.message(Command("rules"))
async def show_rules(message: types.Message):
    await message.answer(t(await _lang(message.from_user.id, message.from_user), "rules"))


@dp.message(Command("profile"))
@dp.message(F.text.in_(_buttons("btn_profile")))
async def show_profile(message: types.Message):
    user = await core.store.get(message.from_user.id)
    if user is None:
        await message.answer(t(lang_of(message.from_user), "need_start"))
        return
    l = user.language
    now = core.engine.clock()
    status = t(l, "premium_until", date=_fmt_date(user.premium_expires_at)) if user.premium_active(now) else t(l, "premium_free")
    await message.answer(t(
        l, "profile",
        id=user.user_id,
        nickname=html.escape(user.nickname),
        gender=t(l, "gender_male" if user.gender is Gender.MALE else "gender_female"),
        status=status,
        safe=t(l, "on" if user.safe_mode else "off"),
    ))


@dp.message(Command("safemode"))
@dp.message(F.text.in_(_buttons("btn_safemode")))
async def toggle_safe_mode(message: types.Message):
    def _flip(u: UserRef) -> None:
        u.safe_mode = not u.safe_mode

    user = await core.store.update(message.from_user.id, _flip)
    if user is None:
        await message.answer(t(lang_of(message.from_user), "need_start"))
        return
    await message.answer(t(user.language, "safemode_on" if user.safe_mode else "safemode_off"))


# ===================== SEARCH / SESSION =====================
async def _start_search(message: types.Message, pref: Preference):
    uid = message.from_user.id
    user = await core.store.get(uid)
    l = user.language if user else lang_of(message.from_user)
    if user and pref is not Preference.ANY and not user.premium_active(core.engine.clock()):
        await message.answer(t(l, "gender_pref_premium"), reply_markup=kb_premium_inline(l))

    res = await core.engine.request_match(uid, pref)
    if res.status is MatchStatus.MATCHED:
        await _on_chat_started(uid, res.partner_id)
    elif res.status is MatchStatus.WAITING:
        await message.answer(t(l, "waiting"), reply_markup=kb_main(l, searching=True))
    elif res.status is MatchStatus.NOT_REGISTERED:
        await message.answer(t(l, "need_start"))
    elif res.status is MatchStatus.BANNED:
        await message.answer(t(l, "banned"))
    else:
        await message.answer(t(l, "already_in_session"), reply_markup=kb_main(l, in_chat=True))


async def _on_chat_started(uid: int, pid: int):
    for me, other in ((uid, pid), (pid, uid)):
        l = await _lang(me)
        ok = await messenger.send(me, t(l, "matched"), reply_markup=kb_main(l, in_chat=True))
        if not ok:
            await _drop_blocked(me)
            return
        await messenger.send(me, t(l, "chat_tools"), reply_markup=kb_chat_inline(l, other))


@dp.message(Command("chat", "search"))
@dp.message(F.text.in_(_buttons("btn_random")))
async def start_search_random(message: types.Message):
    await _start_search(message, Preference.ANY)


@dp.message(F.text.in_(_buttons("btn_find_girl") | _buttons("btn_find_boy")))
async def start_search_gendered(message: types.Message):
    pref = Preference.FEMALE if message.text in _buttons("btn_find_girl") else Preference.MALE
    await _start_search(message, pref)


@dp.message(Command("stop"))
@dp.message(F.text.in_(_buttons("btn_stop_search") | _buttons("btn_end_chat")))
async def stop_cmd(message: types.Message):
    uid = message.from_user.id
    l = await _lang(uid, message.from_user)
    pid = await core.engine.end_session(uid)
    if pid is not None:
        await _notify(pid, "partner_left", reply_markup=kb_main(await _lang(pid)))
        await message.answer(t(l, "chat_ended"), reply_markup=kb_main(l))
    elif await core.engine.cancel_search(uid):
        await message.answer(t(l, "search_stopped"), reply_markup=kb_main(l))
    else:
        await message.answer(t(l, "no_active_chat"), reply_markup=kb_main(l))


@dp.message(Command("next", "restart"))
@dp.message(F.text.in_(_buttons("btn_next")))
async def next_cmd(message: types.Message):
    pid = await core.engine.end_session(message.from_user.id)
    if pid is not None:
        await _notify(pid, "partner_left", reply_markup=kb_main(await _lang(pid)))
    await _start_search(message, Preference.ANY)


# ===================== REPORTS =====================
@dp.callback_query(F.data.startswith("complain_"))
async def complain(callback: types.CallbackQuery):
    target = int(callback.data.split("_")[-1])
    l = await _lang(callback.from_user.id, callback.from_user)
    await callback.message.answer(t(l, "report_ask"), reply_markup=kb_report_reasons(target))
    await callback.answer()


@dp.callback_query(F.data.startswith("rep_"))
async def process_report(callback: types.CallbackQuery):
    _, reason, target = callback.data.split("_")
    reporter = callback.from_user.id
    target = int(target)
    l = await _lang(reporter, callback.from_user)
    res = await core.moderator.record_report(reporter, target, REPORT_REASONS.get(reason, "Other"))
    await safe_edit_kb(callback.message, None)
    if res.status is ReportStatus.AUTO_BANNED:
        if res.partner_id is not None and res.partner_id != reporter:
            await _notify(res.partner_id, "session_ended_restriction", reply_markup=kb_main(await _lang(res.partner_id)))
        await _notify_admins(f"🚫 Auto-ban {target}: {res.total} reports")
    await callback.message.answer(t(l, res.status.value if res.status is not ReportStatus.RECORDED else "report_recorded"))
    await callback.answer("OK")


# ===================== PREMIUM / PAYMENTS =====================
@dp.message(Command("premium", "vip"))
@dp.message(F.text.in_(_buttons("btn_premium")))
async def show_premium(message: types.Message):
    l = await _lang(message.from_user.id, message.from_user)
    await message.answer(t(l, "premium_text"), reply_markup=kb_premium_inline(l))


@dp.message(Command("history"))
async def show_history(message: types.Message):
    l = await _lang(message.from_user.id, message.from_user)
    rows = await core.store.list_purchases(message.from_user.id)
    if not rows:
        await message.answer(t(l, "history_empty"))
        return
    lines = [t(l, "history_title")]
    for r in rows:
        what = t(l, "history_premium", days=r["days"]) if r["kind"] == "premium" else t(l, "history_reveal")
        lines.append(f"{_fmt_date(r['created_at'])} · {what} · {r['amount']} ⭐")
    await message.answer("\n".join(lines))


async def _send_invoice(callback: types.CallbackQuery, title: str, description: str, payload: str, amount: int):
    l = await _lang(callback.from_user.id, callback.from_user)
    try:
        await callback.bot.send_invoice(
            chat_id=callback.from_user.id,
            title=title,
            description=description,
            payload=payload,
            provider_token="",  # Stars
            currency="XTR",
            prices=[LabeledPrice(label=title, amount=amount)],
        )
        await callback.answer()
    except TelegramAPIError as e:
        log.error("invoice error: %s", e)
        await callback.message.answer(t(l, "payment_error"))


@dp.callback_query(F.data.startswith("buy_premium_"))
async def buy_premium(callback: types.CallbackQuery):
    days = int(callback.data.split("_")[-1])
    if days not in PREMIUM_PLANS:
        await callback.answer()
        return
    await _send_invoice(callback, "Premium", f"Premium for {days} day(s)", premium_payload(days), PREMIUM_PLANS[days])


@dp.callback_query(F.data.startswith("reveal_"))
async def buy_reveal(callback: types.CallbackQuery):
    pid = int(callback.data.split("_")[-1])
    if core.engine.partner_of(callback.from_user.id) != pid:
        await callback.answer(t(await _lang(callback.from_user.id), "reveal_failed"), show_alert=True)
        return
    await _send_invoice(callback, "Identity reveal", "Reveal your current partner", reveal_payload(pid), REVEAL_PRICE)


@dp.pre_checkout_query()
async def pre_checkout_handler(q: PreCheckoutQuery):
    err = await core.payments.validate_checkout(q.from_user.id, q.invoice_payload, q.total_amount)
    if err is None:
        await messenger.answer_payment(q.id, ok=True)
        return
    log.info("pre_checkout rejected for %s: %s (%s)", q.from_user.id, err, q.invoice_payload)
    l = await _lang(q.from_user.id, q.from_user)
    key = "checkout_session_ended" if err == "session_ended" else "checkout_invalid"
    await messenger.answer_payment(q.id, ok=False, error_message=t(l, key))


async def _refund(bot: Bot, uid: int, charge_id: str) -> bool:
    try:
        await bot.refund_star_payment(user_id=uid, telegram_payment_charge_id=charge_id)
    except TelegramAPIError as e:
        log.error("[pay] refund of %s for %s failed: %s", charge_id, uid, e)
        return False
    log.info("[pay] refunded %s to %s", charge_id, uid)
    return True


def _who(user: UserRef) -> dict:
    return {
        "nickname": html.escape(user.nickname),
        "username": f"@{html.escape(user.username)}" if user.username else "",
        "id": user.user_id,
    }


@dp.message(F.successful_payment)
async def payment_success(message: types.Message):
    sp = message.successful_payment
    uid = message.from_user.id
    charge = sp.telegram_payment_charge_id
    l = await _lang(uid, message.from_user)
    purchase = parse_payload(sp.invoice_payload)
    if purchase is None:
        log.error("payment with unknown payload %r from %s", sp.invoice_payload, uid)
        await _refund(message.bot, uid, charge)
        return

    if purchase.kind == "premium":
        user = await core.payments.on_premium_purchased(uid, purchase.value, sp.total_amount, charge_id=charge)
        if user is None:
            await _refund(message.bot, uid, charge)
            return
        await message.answer(t(l, "premium_activated", date=_fmt_date(user.premium_expires_at)))
        await _notify_admins(
            f"💰 Premium purchase\n{html.escape(user.nickname)} ({uid})\n"
            f"Plan: {purchase.value} day(s), {sp.total_amount}⭐\nTransaction: <code>{html.escape(charge)}</code>"
        )
        return

    pair = await core.payments.on_identity_reveal_purchased(uid, purchase.value, charge_id=charge)
    if pair is None:
        refunded = await _refund(message.bot, uid, charge)
        await message.answer(t(l, "reveal_refunded" if refunded else "refund_failed"))
        return
    user, partner = pair
    await message.answer(t(l, "reveal_result", **_who(partner)))
    await _notify(partner.user_id, "reveal_partner", **_who(user))
    await _notify_admins(
        f"🎁 Identity reveal\nBuyer: {html.escape(user.nickname)} ({uid})\n"
        f"Partner: {html.escape(partner.nickname)} ({partner.user_id})\n"
        f"{sp.total_amount}⭐, transaction: <code>{html.escape(charge)}</code>"
    )


# ===================== ADMIN =====================
def _is_admin(message: types.Message) -> bool:
    return message.from_user.id in config.ADMIN_IDS


def _args(command: CommandObject) -> List[str]:
    return (command.args or "").split()


@dp.message(Command("ban"), F.func(_is_admin))
async def admin_ban(message: types.Message, command: CommandObject):
    args = _args(command)
    if not args or not args[0].isdigit():
        await message.answer("Usage: /ban &lt;user_id&gt; [days] [reason]")
        return
    target = int(args[0])
    days = int(args[1]) if len(args) > 1 and args[1].isdigit() else None
    reason = " ".join(args[2:] if days else args[1:]) or "Banned by admin"
    res = await core.moderator.admin_ban(target, reason, days)
    if res.status is AdminStatus.DONE:
        await _notify(target, "banned_reason", reason=html.escape(reason))
        if res.partner_id is not None:
            await _notify(res.partner_id, "session_ended_restriction", reply_markup=kb_main(await _lang(res.partner_id)))
    await message.answer(f"ban {target}: {res.status.value}")


@dp.message(Command("unban"), F.func(_is_admin))
async def admin_unban(message: types.Message, command: CommandObject):
    args = _args(command)
    if not args or not args[0].isdigit():
        await message.answer("Usage: /unban &lt;user_id&gt;")
        return
    res = await core.moderator.admin_unban(int(args[0]))
    if res.status is AdminStatus.DONE:
        await _notify(int(args[0]), "unbanned")
    await message.answer(f"unban {args[0]}: {res.status.value}")


@dp.message(Command("end"), F.func(_is_admin))
async def admin_end(message: types.Message, command: CommandObject):
    args = _args(command)
    if not args or not args[0].isdigit():
        await message.answer("Usage: /end &lt;user_id&gt;")
        return
    target = int(args[0])
    res = await core.moderator.admin_force_end(target)
    if res.partner_id is not None:
        for uid in (target, res.partner_id):
            await _notify(uid, "chat_ended", reply_markup=kb_main(await _lang(uid)))
    await message.answer(f"end {target}: {res.status.value}")


@dp.message(Command("warn"), F.func(_is_admin))
async def admin_warn(message: types.Message, command: CommandObject):
    args = _args(command)
    if not args or not args[0].isdigit():
        await message.answer("Usage: /warn &lt;user_id&gt; [reason]")
        return
    target = int(args[0])
    res, banned = await core.moderator.warn(target, " ".join(args[1:]))
    if banned:
        await _notify(target, "banned_reason", reason=banned)
        if res.partner_id is not None:
            await _notify(res.partner_id, "session_ended_restriction", reply_markup=kb_main(await _lang(res.partner_id)))
    count = res.user.warning_count if res.user else 0
    await message.answer(f"warn {target}: {res.status.value}, warnings={count}" + (f", banned ({banned})" if banned else ""))


@dp.message(Command("grantpremium"), F.func(_is_admin))
async def admin_grant_premium(message: types.Message, command: CommandObject):
    args = _args(command)
    if len(args) < 2 or not (args[0].isdigit() and args[1].isdigit()):
        await message.answer("Usage: /grantpremium &lt;user_id&gt; &lt;days&gt;")
        return
    res = await core.moderator.grant_premium(int(args[0]), int(args[1]))
    until = _fmt_date(res.user.premium_expires_at) if res.user else "-"
    if res.status is AdminStatus.DONE:
        await _notify(res.user.user_id, "premium_granted", days=args[1], date=until)
    await message.answer(f"premium {args[0]}: {res.status.value}, until {until}")


@dp.message(Command("stats"), F.func(_is_admin))
async def admin_stats(message: types.Message):
    s = await core.snapshot()
    lines = [f"{k}: <b>{v}</b>" for k, v in s.items() if not isinstance(v, dict)]
    await message.answer("📊 Stats\n" + "\n".join(lines))


@dp.message(Command("reports"), F.func(_is_admin))
async def admin_reports(message: types.Message):
    rows = await core.moderator.recent_reports(10)
    if not rows:
        await message.answer("No reports.")
        return
    lines = [
        f"#{r['id']} {r['reporter_id']} → {r['target_id']}: {html.escape(r['reason'] or '')}"
        f"{' ✔' if r['resolved'] else ''} ({_fmt_date(r['created_at'])})"
        for r in rows
    ]
    await message.answer("\n".join(lines) + "\n\n/resolve &lt;id&gt; | /ban &lt;user_id&gt;")


@dp.message(Command("resolve"), F.func(_is_admin))
async def admin_resolve(message: types.Message, command: CommandObject):
    args = _args(command)
    if not args or not args[0].isdigit():
        await message.answer("Usage: /resolve &lt;report_id&gt;")
        return
    res = await core.moderator.resolve_report(int(args[0]))
    tail = f", open reports on {res.user.user_id}: {res.user.report_total}" if res.user else ""
    await message.answer(f"resolve #{args[0]}: {res.status.value}{tail}")


@dp.message(Command("users"), F.func(_is_admin))
async def admin_users(message: types.Message, command: CommandObject):
    args = _args(command)
    page = max(1, int(args[0])) if args and args[0].isdigit() else 1
    total = await core.store.count_users()
    pages = max(1, -(-total // USERS_PAGE))
    rows = await core.store.list_users((page - 1) * USERS_PAGE, USERS_PAGE)
    if not rows:
        await message.answer(f"No users on page {page}/{pages}.")
        return
    now = core.engine.clock()
    lines = [f"👥 Users ({page}/{pages}, total {total})", ""]
    for u in rows:
        mark = ("✅" if u.is_active else "🚫") + ("⭐" if u.premium_active(now) else "")
        lines.append(f"{mark} {html.escape(u.nickname)} ({u.gender.value}) <code>{u.user_id}</code>, joined {_fmt_date(u.joined_at)}")
    if page < pages:
        lines.append(f"\n/users {page + 1} for the next page")
    await message.answer("\n".join(lines))


async def _broadcast(inbound: InboundMessage) -> Tuple[int, int]:
    targets: Dict[int, str] = {}
    offset = 0
    while True:
        batch = await core.store.list_users(offset, BROADCAST_PAGE, active_only=True)
        if not batch:
            break
        targets.update((u.user_id, u.language) for u in batch)
        offset += len(batch)

    sent = failed = 0
    for uid, lang in targets.items():
        head = t(lang, "announcement")
        if inbound.is_text:
            out = replace(inbound, text=f"{head}\n\n{inbound.text}")
        else:
            out = replace(inbound, caption=f"{head}\n\n{inbound.caption}" if inbound.caption else head)
        try:
            ok = await messenger.forward(uid, out)
        except TelegramAPIError as e:
            log.warning("[broadcast] %s: %s", uid, e)
            ok = False
        if ok:
            sent += 1
        else:
            failed += 1
        await asyncio.sleep(BROADCAST_DELAY)
    return sent, failed


@dp.message(Command("broadcast"), F.func(_is_admin))
async def admin_broadcast(message: types.Message, state: FSMContext):
    await state.set_state(AdminFlow.broadcast)
    await message.answer("📢 Send the message to broadcast (text, photo, video or document).\n/cancel to abort.")


@dp.message(Command("cancel"), AdminFlow.broadcast)
async def admin_broadcast_cancel(message: types.Message, state: FSMContext):
    await state.clear()
    await message.answer("Broadcast cancelled.")


@dp.message(AdminFlow.broadcast, F.func(_is_admin))
async def admin_broadcast_send(message: types.Message, state: FSMContext):
    inbound = inbound_from_message(message)
    if inbound is None:
        await message.answer("This message type cannot be broadcast. Send another one or /cancel.")
        return
    await state.clear()
    await message.answer(f"📢 Broadcasting to {await core.store.count_users(active_only=True)} users…")
    sent, failed = await _broadcast(inbound)
    log.info("[broadcast] by %s: sent=%d failed=%d", message.from_user.id, sent, failed)
    await message.answer(f"✅ Broadcast complete\nSent: {sent}\nFailed: {failed}")


# ===================== ERRORS =====================
@dp.error()
async def _errors_handler(event: ErrorEvent):
    exc = event.exception
    if isinstance(exc, TelegramForbiddenError):
        uid = None
        upd = event.update
        if getattr(upd, "message", None):
            uid = upd.message.chat.id
        elif getattr(upd, "callback_query", None):
            uid = upd.callback_query.from_user.id
        log.warning("[forbidden] user=%s blocked bot, cleanup", uid)
        if uid:
            await _drop_blocked(uid)
        return True
    log.error("[aiogram-error] %s: %s", type(exc).__name__, exc, exc_info=exc)


# ===================== RELAY =====================
@dp.message()
async def relay_any(message: types.Message):
    uid = message.from_user.id
    if message.text is not None and message.text.startswith("/"):
        return
    l = await _lang(uid, message.from_user)
    inbound = inbound_from_message(message)
    if inbound is None:
        await message.answer(t(l, "unsupported"))
        return

    outcome = await core.relay.relay(uid, inbound)
    st, pid = outcome.status, outcome.partner_id
    if st is RelayStatus.NO_SESSION:
        await message.answer(t(l, "no_active_chat"), reply_markup=kb_main(l))
    elif st is RelayStatus.SESSION_ENDED_RESTRICTION:
        await message.answer(t(l, "session_ended_restriction"), reply_markup=kb_main(l))
        if pid is not None:
            await _notify(pid, "chat_ended", reply_markup=kb_main(await _lang(pid)))
    elif st is RelayStatus.AUTO_BANNED:
        await message.answer(t(l, "banned_reason", reason=outcome.reason), reply_markup=types.ReplyKeyboardRemove())
        if pid is not None:
            await _notify(pid, "session_ended_restriction", reply_markup=kb_main(await _lang(pid)))
        await _notify_admins(f"🚫 Auto-ban {uid}: {outcome.reason}")
    elif st is RelayStatus.BLOCKED_BY_SAFE_MODE:
        if not await _notify(pid, "media_hidden", kind=outcome.reason):
            await _drop_blocked(pid)
            return
        await message.answer(t(l, "blocked_by_safe_mode"))
    else:
        if not await messenger.forward(pid, outcome.message):
            await _drop_blocked(pid)
            return
        if st is RelayStatus.FILTERED_AND_RELAYED:
            await message.answer(t(l, "filtered_and_relayed"))


# ===================== MAIN =====================
async def main():
    global core, messenger
    logging.basicConfig(level=config.LOG_LEVEL, format="%(levelname)s:%(name)s:%(message)s")
    if not config.TOKEN:
        raise RuntimeError("TOKEN is not set")

    store = await open_store(
        config.STORE_BACKEND,
        sqlite_path=config.SQLITE_PATH,
        pg_dsn=config.PG_DSN,
        pg_min=config.PG_POOL_MIN,
        pg_max=config.PG_POOL_MAX,
        pg_timeout=config.PG_TIMEOUT,
    )
    policy = AbusePolicy(
        flood_limit=config.FLOOD_LIMIT,
        flood_window=config.FLOOD_WINDOW_SECONDS,
        repeat_limit=config.REPEAT_LIMIT,
        repeat_window=config.REPEAT_WINDOW,
        bad_word_limit=config.BAD_WORD_LIMIT,
        link_spam_limit=config.LINK_SPAM_LIMIT,
        report_limit=config.REPORT_LIMIT,
        warning_limit=config.WARNING_LIMIT,
    )
    core = build_core(store, policy, config.BAD_WORDS or None)

    bot = Bot(token=config.TOKEN, default=DefaultBotProperties(parse_mode="HTML"))
    messenger = TelegramMessenger(bot)
    await ensure_bot_commands(bot)

    if config.STATS_ENABLED:
        asyncio.create_task(start_stats_server(core, host=config.STATS_HOST, port=config.STATS_PORT))

    log.info("💫 bot started (store=%s, admins=%d)", config.STORE_BACKEND, len(config.ADMIN_IDS))
    try:
        await dp.start_polling(bot)
    finally:
        await store.close()
        await bot.session.close()


if __name__ == "__main__":
    # Windows event loop policy fix (prevents WinError 64 on asyncio sockets)
    if sys.platform.startswith("win"):
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(main())
