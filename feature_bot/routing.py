"""
Разбор callback_data в маршрут.

Формат: ASCII-строка, поля разделены двоеточием::

    main_menu | settings[:opt[:value]] | admin[:opt[:id]]
    feature:<id> | submenu:<id>:<id> | action:<id>:<id>
    <id>:<rest>  -- пространство имён конкретной функции
"""

import re
from dataclasses import dataclass
from typing import Optional, Union

from feature_bot.errors import TokenParseError

ID_RE = re.compile(r"^[a-z0-9_]+$")


@dataclass(frozen=True)
class MainMenu:
    pass


@dataclass(frozen=True)
class SettingsRoute:
    option: Optional[str] = None
    value: Optional[str] = None


@dataclass(frozen=True)
class AdminRoute:
    option: Optional[str] = None
    argument: Optional[str] = None


@dataclass(frozen=True)
class FeatureRoute:
    feature_id: str


@dataclass(frozen=True)
class SubmenuRoute:
    feature_id: str
    submenu_id: str


@dataclass(frozen=True)
class ActionRoute:
    feature_id: str
    action_id: str


@dataclass(frozen=True)
class DynamicRoute:
    token: str


RouteToken = Union[
    MainMenu, SettingsRoute, AdminRoute, FeatureRoute,
    SubmenuRoute, ActionRoute, DynamicRoute,
]


def is_valid_id(value: str) -> bool:
    return bool(ID_RE.match(value or ""))


def _ids(token: str, parts, count: int):
    args = parts[1:]
    if len(args) != count:
        raise TokenParseError(
            f"{token!r}: expected {count} argument(s), got {len(args)}")
    for arg in args:
        if not is_valid_id(arg):
            raise TokenParseError(f"{token!r}: invalid id {arg!r}")
    return args


def _builtin_args(token: str, parts):
    args = parts[1:]
    if len(args) > 2 or any(not arg for arg in args):
        raise TokenParseError(f"{token!r}: malformed arguments")
    return (args + [None, None])[:2]


def parse_token(data: str) -> RouteToken:
    if data is None:
        raise TokenParseError("empty callback data")
    parts = data.split(":")
    head = parts[0]

    if head == "main_menu" and len(parts) == 1:
        return MainMenu()
    if head == "settings":
        option, value = _builtin_args(data, parts)
        return SettingsRoute(option, value)
    if head == "admin":
        option, argument = _builtin_args(data, parts)
        return AdminRoute(option, argument)
    if head == "feature":
        (feature_id,) = _ids(data, parts, 1)
        return FeatureRoute(feature_id)
    if head == "submenu":
        feature_id, submenu_id = _ids(data, parts, 2)
        return SubmenuRoute(feature_id, submenu_id)
    if head == "action":
        feature_id, action_id = _ids(data, parts, 2)
        return ActionRoute(feature_id, action_id)
    return DynamicRoute(data)


def feature_token(feature_id: str) -> str:
    return f"feature:{feature_id}"


def submenu_token(feature_id: str, submenu_id: str) -> str:
    return f"submenu:{feature_id}:{submenu_id}"


def action_token(feature_id: str, action_id: str) -> str:
    return f"action:{feature_id}:{action_id}"
