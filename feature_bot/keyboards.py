from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from feature_bot.models.feature_models import Feature, Submenu
from feature_bot.routing import action_token, feature_token, submenu_token

KEYBOARD_STYLES: Dict[str, Dict[str, object]] = {
    "classic": {"main_menu_rows": 2, "sub_menu_rows": 3, "use_emojis": True},
    "compact": {"main_menu_rows": 3, "sub_menu_rows": 4, "use_emojis": True},
    "modern": {"main_menu_rows": 2, "sub_menu_rows": 2, "use_emojis": True},
    "elegant": {"main_menu_rows": 1, "sub_menu_rows": 2, "use_emojis": False},
    "minimalist": {"main_menu_rows": 4, "sub_menu_rows": 4, "use_emojis": False},
}
DEFAULT_STYLE = "modern"


def _style(name: Optional[str]) -> Dict[str, object]:
    return KEYBOARD_STYLES.get(name or DEFAULT_STYLE, KEYBOARD_STYLES[DEFAULT_STYLE])


def _label(emoji: str, name: str, use_emojis: bool = True) -> str:
    return f"{emoji} {name}" if use_emojis and emoji else name


def chunk(buttons: Sequence[InlineKeyboardButton], size: int) -> List[List[InlineKeyboardButton]]:
    size = max(int(size), 1)
    return [list(buttons[i:i + size]) for i in range(0, len(buttons), size)]


def back_button(destination: str = "main_menu", label: str = "🔙 Back") -> List[InlineKeyboardButton]:
    return [InlineKeyboardButton(label, callback_data=destination)]


def markup(rows: Iterable[Iterable[Tuple[str, str]]]) -> InlineKeyboardMarkup:
    """Клавиатура из вложенных списков пар (текст, callback_data)"""
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(text, callback_data=data) for text, data in row]
        for row in rows
    ])


def main_menu_keyboard(
        features: Iterable[Feature],
        style: Optional[str] = None,
        is_admin: bool = False) -> InlineKeyboardMarkup:
    opts = _style(style)
    buttons = [
        InlineKeyboardButton(
            _label(f.emoji, f.name, opts["use_emojis"]),
            callback_data=feature_token(f.id))
        for f in features if f.enabled
    ]
    keyboard = chunk(buttons, opts["main_menu_rows"])
    if not buttons:
        keyboard.append([InlineKeyboardButton(
            "📭 No features available", callback_data="no_features")])
    keyboard.append([InlineKeyboardButton("⚙️ Settings", callback_data="settings")])
    if is_admin:
        keyboard.append([InlineKeyboardButton("🔧 Admin Panel", callback_data="admin")])
    return InlineKeyboardMarkup(keyboard)


def feature_keyboard(feature: Feature, style: Optional[str] = None) -> InlineKeyboardMarkup:
    opts = _style(style)
    keyboard = []
    submenu_buttons = [
        InlineKeyboardButton(
            _label(s.emoji, s.name, opts["use_emojis"]),
            callback_data=submenu_token(feature.id, s.id))
        for s in feature.submenus
    ]
    keyboard.extend(chunk(submenu_buttons, opts["sub_menu_rows"]))
    action_buttons = [
        InlineKeyboardButton(
            _label(a.emoji, a.name, opts["use_emojis"]),
            callback_data=action_token(feature.id, a.id))
        for a in feature.actions
    ]
    keyboard.extend(chunk(action_buttons, opts["sub_menu_rows"]))
    keyboard.append(back_button("main_menu"))
    return InlineKeyboardMarkup(keyboard)


def submenu_keyboard(feature: Feature, submenu: Submenu) -> InlineKeyboardMarkup:
    buttons = [
        InlineKeyboardButton(
            _label(a.emoji, a.name),
            callback_data=action_token(feature.id, a.id))
        for a in submenu.actions
    ]
    keyboard = chunk(buttons, 2)
    keyboard.append(back_button(feature_token(feature.id), "🔙 Back to Feature"))
    return InlineKeyboardMarkup(keyboard)


def settings_keyboard() -> InlineKeyboardMarkup:
    return markup([
        [("🎨 Keyboard Style", "settings:keyboard_style"),
         ("🔔 Notification Style", "settings:notification_style")],
        [("🌐 Language", "settings:language"),
         ("📊 Statistics", "settings:stats")],
        [("🔙 Back to Main Menu", "main_menu")],
    ])


def option_selector(
        option: str,
        values: Dict[str, str],
        current: Optional[str],
        prefix: str = "settings",
        back: str = "settings") -> InlineKeyboardMarkup:
    """Выбор значения настройки: <prefix>:<option>:<value>"""
    buttons = [
        InlineKeyboardButton(
            f"✅ {label}" if value == current else label,
            callback_data=f"{prefix}:{option}:{value}")
        for value, label in values.items()
    ]
    keyboard = chunk(buttons, 2)
    keyboard.append(back_button(back))
    return InlineKeyboardMarkup(keyboard)


def admin_keyboard() -> InlineKeyboardMarkup:
    return markup([
        [("🧩 Features", "admin:features"),
         ("✨ Add New Feature", "admin:add_feature")],
        [("👥 Users", "admin:users"),
         ("📣 Broadcast", "admin:broadcast")],
        [("📊 Analytics", "admin:analytics"),
         ("⚙️ Bot Settings", "admin:bot_settings")],
        [("🔄 Reload Handlers", "admin:reload")],
        [("🔙 Back to Main Menu", "main_menu")],
    ])


def feature_generator_keyboard(ai_enabled: bool) -> InlineKeyboardMarkup:
    first_row = [("✨ Create from Template", "admin:gen_template")]
    if ai_enabled:
        first_row.append(("🤖 AI-Assisted Creation", "admin:gen_ai"))
    return markup([
        first_row,
        [("📋 Import from JSON", "admin:gen_import")],
        [("🔙 Back to Admin Menu", "admin")],
    ])


def admin_features_keyboard(features: Iterable[Feature]) -> InlineKeyboardMarkup:
    rows = []
    for f in features:
        state = "🟢" if f.enabled else "🔴"
        rows.append([
            (f"{state} {f.emoji} {f.name}", f"admin:feature:{f.id}"),
            ("Disable" if f.enabled else "Enable", f"admin:toggle:{f.id}"),
        ])
    rows.append([("🔙 Back to Admin", "admin")])
    return markup(rows)


def admin_feature_detail_keyboard(feature: Feature) -> InlineKeyboardMarkup:
    return markup([
        [("Disable" if feature.enabled else "Enable", f"admin:toggle:{feature.id}"),
         ("♻️ Regenerate Handler", f"admin:regenerate:{feature.id}")],
        [("🗑 Delete", f"admin:delete:{feature.id}")],
        [("🔙 Back to Features", "admin:features")],
    ])


def admin_users_keyboard(users: Iterable[dict]) -> InlineKeyboardMarkup:
    rows = [
        [(f"{'🚫 ' if u.get('banned') else ''}{u.get('first_name') or u['id']} ({u['id']})",
          f"admin:user:{u['id']}")]
        for u in users
    ]
    rows.append([("🔙 Back to Admin", "admin")])
    return markup(rows)


def admin_user_keyboard(user: dict, rate_limited: bool = False) -> InlineKeyboardMarkup:
    user_id = user["id"]
    rows = [[
        ("✅ Unban", f"admin:unban:{user_id}") if user.get("banned")
        else ("🚫 Ban", f"admin:ban:{user_id}"),
    ]]
    if rate_limited:
        rows[0].append(("🔓 Reset Rate Limit", f"admin:unblock:{user_id}"))
    rows.append([("🔙 Back to Users", "admin:users")])
    return markup(rows)


def bot_settings_keyboard(debug_mode: bool) -> InlineKeyboardMarkup:
    return markup([
        [("🎨 Default Keyboard", "admin:default_keyboard_style"),
         ("🔔 Default Notifications", "admin:default_notification_style")],
        [("🌐 Default Language", "admin:default_language")],
        [(f"🐛 Debug Mode: {'on' if debug_mode else 'off'}", "admin:toggle_debug")],
        [("🔙 Back to Admin", "admin")],
    ])


def broadcast_confirm_keyboard() -> InlineKeyboardMarkup:
    return markup([
        [("✅ Yes, send it", "admin:broadcast_confirm"),
         ("❌ Cancel", "admin:broadcast_cancel")],
    ])


def back_to(destination: str, label: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([back_button(destination, label)])
