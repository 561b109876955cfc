"""Widget library for the Textual UI."""

from __future__ import annotations

from .menu_view import MenuView
from .prompts import ConfirmScreen, PromptScreen
from .status_bar import StatusBar

__all__ = ["ConfirmScreen", "MenuView", "PromptScreen", "StatusBar"]
