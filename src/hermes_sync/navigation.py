"""Workflow navigation for the interactive menu.

Screens and the events that move between them form an explicit finite
state machine.  ``transition`` looks the pair up in ``TRANSITIONS``; an
unknown pair leaves the current screen unchanged.
"""

from __future__ import annotations

from enum import Enum


class Screen(str, Enum):
    MAIN_MENU = "main_menu"
    SYNC_OPTIONS = "sync_options"
    SYNC_PROGRESS = "sync_progress"
    MERGE_FORM = "merge_form"
    MERGE_PROGRESS = "merge_progress"
    DIFF_FORM = "diff_form"
    DIFF_RESULT = "diff_result"
    LOGS = "logs"
    EXIT = "exit"


class Event(str, Enum):
    CHOOSE_SYNC = "choose_sync"
    CHOOSE_MERGE = "choose_merge"
    CHOOSE_DIFF = "choose_diff"
    CHOOSE_LOGS = "choose_logs"
    SUBMIT = "submit"
    FINISHED = "finished"
    BACK = "back"
    QUIT = "quit"


TRANSITIONS: dict[tuple[Screen, Event], Screen] = {
    (Screen.MAIN_MENU, Event.CHOOSE_SYNC): Screen.SYNC_OPTIONS,
    (Screen.MAIN_MENU, Event.CHOOSE_MERGE): Screen.MERGE_FORM,
    (Screen.MAIN_MENU, Event.CHOOSE_DIFF): Screen.DIFF_FORM,
    (Screen.MAIN_MENU, Event.CHOOSE_LOGS): Screen.LOGS,
    (Screen.MAIN_MENU, Event.QUIT): Screen.EXIT,
    (Screen.SYNC_OPTIONS, Event.SUBMIT): Screen.SYNC_PROGRESS,
    (Screen.SYNC_OPTIONS, Event.BACK): Screen.MAIN_MENU,
    (Screen.SYNC_PROGRESS, Event.FINISHED): Screen.LOGS,
    (Screen.MERGE_FORM, Event.SUBMIT): Screen.MERGE_PROGRESS,
    (Screen.MERGE_FORM, Event.BACK): Screen.MAIN_MENU,
    (Screen.MERGE_PROGRESS, Event.FINISHED): Screen.LOGS,
    (Screen.DIFF_FORM, Event.SUBMIT): Screen.DIFF_RESULT,
    (Screen.DIFF_FORM, Event.BACK): Screen.MAIN_MENU,
    (Screen.DIFF_RESULT, Event.BACK): Screen.MAIN_MENU,
    (Screen.LOGS, Event.BACK): Screen.MAIN_MENU,
}

# Every screen except EXIT can quit.
for _screen in Screen:
    if _screen is not Screen.EXIT:
        TRANSITIONS.setdefault((_screen, Event.QUIT), Screen.EXIT)

MENU_CHOICES: dict[str, Event] = {
    "1": Event.CHOOSE_SYNC,
    "2": Event.CHOOSE_MERGE,
    "3": Event.CHOOSE_DIFF,
    "4": Event.CHOOSE_LOGS,
    "q": Event.QUIT,
}


def transition(screen: Screen, event: Event) -> Screen:
    """Return the screen reached from *screen* on *event*."""
    return TRANSITIONS.get((screen, event), screen)


def parse_menu_choice(raw: str) -> Event | None:
    """Map a typed main-menu answer to its event, if any."""
    return MENU_CHOICES.get(raw.strip().lower())
