"""
View state for the flashcard client.

The client keeps a local mirror of the user's cards, a search term, the
ordering of cards that match it, and a cursor into that ordering. All of it
lives in one immutable ViewState; every user action is a small action object
and update(state, action) returns the next state. Nothing here talks to the
network, so the cursor rules can be tested without a server or UI.

Usage:
    state = update(ViewState(), CardsLoaded(cards))
    state = update(state, SearchChanged('verb'))
    state = update(state, Next())
    print(state.front, state.position, state.total_in_view)
"""

import random
from collections import namedtuple
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Tuple

Status = namedtuple('Status', ['message', 'level'])

EMPTY_FRONT = "No cards match search/filter."
EMPTY_BACK = "Add cards or clear search."
LOGGED_OUT_FRONT = "Please log in."


@dataclass(frozen=True)
class ViewState:
    """
    Snapshot of what the client shows.

    Attributes:
        cards: Local mirror of the user's cards (dicts with id/question/answer)
        search_term: Active search text
        order: Indices into `cards` of the cards in view, in display order
        cursor: Position in `order` of the displayed card, None when nothing is in view
        answer_first: Show the answer on the front of the card
        flipped: The back of the current card is showing
        authenticated: A user is signed in
        status: Last informational/error message for the user
    """
    cards: Tuple[dict, ...] = ()
    search_term: str = ''
    order: Tuple[int, ...] = ()
    cursor: Optional[int] = None
    answer_first: bool = False
    flipped: bool = False
    authenticated: bool = False
    status: Optional[Status] = None

    @property
    def current_card(self) -> Optional[dict]:
        if self.cursor is None:
            return None
        return self.cards[self.order[self.cursor]]

    @property
    def is_empty(self) -> bool:
        return self.cursor is None

    @property
    def front(self) -> str:
        card = self.current_card
        if card is None:
            return EMPTY_FRONT if self.authenticated else LOGGED_OUT_FRONT
        return card['answer'] if self.answer_first else card['question']

    @property
    def back(self) -> str:
        card = self.current_card
        if card is None:
            return EMPTY_BACK if self.authenticated else ''
        return card['question'] if self.answer_first else card['answer']

    @property
    def position(self) -> int:
        """1-based position of the current card, 0 when nothing is in view."""
        return 0 if self.cursor is None else self.cursor + 1

    @property
    def total_in_view(self) -> int:
        return len(self.order)

    @property
    def progress(self) -> float:
        if not self.order:
            return 0.0
        return self.position / len(self.order) * 100

    @property
    def progress_text(self) -> str:
        return f"Card {self.position} / {self.total_in_view}"

    @property
    def can_go_previous(self) -> bool:
        return self.cursor is not None and self.cursor > 0

    @property
    def can_go_next(self) -> bool:
        return self.cursor is not None and self.cursor < len(self.order) - 1


# --- Actions ---

@dataclass(frozen=True)
class CardsLoaded:
    """Server returned the full card list (login, reload, after import)."""
    cards: Tuple[dict, ...]


@dataclass(frozen=True)
class SearchChanged:
    term: str


@dataclass(frozen=True)
class Next:
    pass


@dataclass(frozen=True)
class Previous:
    pass


@dataclass(frozen=True)
class RandomCard:
    rng: Any = field(default=random, compare=False)


@dataclass(frozen=True)
class Shuffle:
    rng: Any = field(default=random, compare=False)


@dataclass(frozen=True)
class Flip:
    pass


@dataclass(frozen=True)
class AnswerFirstToggled:
    enabled: bool


@dataclass(frozen=True)
class CardAdded:
    card: dict


@dataclass(frozen=True)
class CardUpdated:
    card: dict


@dataclass(frozen=True)
class CardsRemoved:
    ids: frozenset


@dataclass(frozen=True)
class AllCardsRemoved:
    pass


@dataclass(frozen=True)
class StatusShown:
    message: str
    level: str = 'info'


@dataclass(frozen=True)
class SessionCleared:
    """Logout or an expired token: drop everything."""
    pass


# --- Reducer ---

def matching_indices(cards, search_term):
    """Indices of cards whose question or answer contains search_term, ignoring case."""
    needle = search_term.lower()
    if not needle:
        return tuple(range(len(cards)))
    return tuple(
        index for index, card in enumerate(cards)
        if needle in card['question'].lower() or needle in card['answer'].lower()
    )


def _rebuild(state, cards=None, search_term=None, focus_id=None):
    """
    Recompute the ordering after cards or the search term changed.

    The cursor stays on the card with focus_id (default: the current card)
    when it is still in view, otherwise it goes back to the first card.
    """
    cards = state.cards if cards is None else tuple(cards)
    search_term = state.search_term if search_term is None else search_term

    if focus_id is None and state.current_card is not None:
        focus_id = state.current_card['id']

    order = matching_indices(cards, search_term)
    cursor = None
    if order:
        cursor = 0
        for position, index in enumerate(order):
            if cards[index]['id'] == focus_id:
                cursor = position
                break

    return replace(state, cards=cards, search_term=search_term, order=order,
                   cursor=cursor, flipped=False)


def _move_to(state, cursor):
    return replace(state, cursor=cursor, flipped=False)


def update(state: ViewState, action) -> ViewState:
    """Returns the state after applying action. Never mutates state."""
    if isinstance(action, CardsLoaded):
        return replace(_rebuild(state, cards=action.cards), authenticated=True)

    if isinstance(action, SearchChanged):
        return _rebuild(state, search_term=action.term)

    if isinstance(action, Next):
        if state.can_go_next:
            return _move_to(state, state.cursor + 1)
        return state

    if isinstance(action, Previous):
        if state.can_go_previous:
            return _move_to(state, state.cursor - 1)
        return state

    if isinstance(action, RandomCard):
        count = len(state.order)
        if count > 1:
            # Pick uniformly among the other positions
            choice = action.rng.randrange(count - 1)
            if choice >= state.cursor:
                choice += 1
            return _move_to(state, choice)
        if count == 1:
            return replace(state, status=Status("Only one card in view.", 'info'))
        return replace(state, status=Status("No cards available.", 'info'))

    if isinstance(action, Shuffle):
        if len(state.order) < 2:
            return replace(state, status=Status("Need at least 2 cards in view to shuffle.", 'info'))
        order = list(state.order)
        action.rng.shuffle(order)  # Fisher-Yates
        return replace(state, order=tuple(order), cursor=0, flipped=False,
                       status=Status("Cards shuffled.", 'info'))

    if isinstance(action, Flip):
        if state.current_card is None:
            return state
        return replace(state, flipped=not state.flipped)

    if isinstance(action, AnswerFirstToggled):
        return replace(state, answer_first=action.enabled, flipped=False)

    if isinstance(action, CardAdded):
        # Show the new card if it matches the search, otherwise stay put
        new_state = _rebuild(state, cards=state.cards + (action.card,), focus_id=action.card['id'])
        if new_state.current_card is None or new_state.current_card['id'] != action.card['id']:
            new_state = _rebuild(state, cards=state.cards + (action.card,))
        return new_state

    if isinstance(action, CardUpdated):
        cards = tuple(
            action.card if card['id'] == action.card['id'] else card
            for card in state.cards
        )
        return _rebuild(state, cards=cards)

    if isinstance(action, CardsRemoved):
        cards = tuple(card for card in state.cards if card['id'] not in action.ids)
        return _rebuild(state, cards=cards)

    if isinstance(action, AllCardsRemoved):
        return _rebuild(state, cards=())

    if isinstance(action, StatusShown):
        return replace(state, status=Status(action.message, action.level))

    if isinstance(action, SessionCleared):
        return ViewState()

    raise TypeError(f"Unknown action: {action!r}")
