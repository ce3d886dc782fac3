"""
Client for the flashcard API

Two layers:
- FlashcardApiClient: thin requests wrapper, one method per REST route
- FlashcardSession: what the browser UI drives. It owns the ViewState,
  persists the token, and turns every user action into API calls plus a
  state update. A 401 (or a 403 that is not the card limit) from any call
  ends the session, because retrying with the same token cannot succeed.

Usage:
    api = FlashcardApiClient("http://localhost:3000")
    session = FlashcardSession(api, TokenStore())
    if not session.restore():
        session.login("alice", "secret123")

    session.add_card("2+2", "4")
    session.search("2+")
    session.flush_search()
    print(session.state.front, session.state.progress_text)

    session.logout()
"""

import os
import html
import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

import requests

from view_state import (
    AllCardsRemoved,
    AnswerFirstToggled,
    CardAdded,
    CardsLoaded,
    CardsRemoved,
    CardUpdated,
    Flip,
    Next,
    Previous,
    RandomCard,
    SearchChanged,
    SessionCleared,
    Shuffle,
    StatusShown,
    ViewState,
    update,
)

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_PATH = os.path.join(os.path.expanduser('~'), '.flashcards', 'session.json')
DEFAULT_EXPORT_FILENAME = 'flashcards_export.json'
SEARCH_DELAY = 0.3  # seconds to wait after the last keystroke before searching

# 403 responses with this code are quota errors, not authentication failures
LIMIT_EXCEEDED = 'LIMIT_EXCEEDED'


def _plain_card(card: Dict) -> Dict:
    """Card with the server's markup escaping undone, as the user typed it."""
    return dict(card, question=html.unescape(card['question']), answer=html.unescape(card['answer']))


class ApiError(Exception):
    """Raised when an API call fails or returns an unexpected status code."""

    def __init__(self, status_code: Optional[int], message: str, code: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.code = code
        super().__init__(message)


class SessionExpiredError(ApiError):
    """Raised when the server rejects the token (missing, invalid or expired)."""
    pass


class FlashcardApiClient:
    """
    HTTP client for the flashcard REST API.

    Attributes:
        base_url: The base URL of the API server (e.g., "http://localhost:3000")
        token: Bearer token sent with protected requests (None when signed out)
        session: The requests.Session used for all calls
        timeout: Request timeout in seconds
    """

    def __init__(self, base_url: str, token: Optional[str] = None,
                 session: Optional[requests.Session] = None, timeout: int = 10):
        self.base_url = base_url.rstrip('/')  # Remove trailing slash
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        return headers

    def _make_request(self, method: str, endpoint: str, json_data=None,
                      expected_status=(200,)) -> requests.Response:
        """
        Make an HTTP request and map failures to ApiError.

        Raises:
            SessionExpiredError: 401, or 403 for anything but the card limit
            ApiError: Any other unexpected status, or a network failure
        """
        url = f"{self.base_url}{endpoint}"
        logger.debug(f"→ {method} {endpoint}")

        try:
            response = self.session.request(
                method=method,
                url=url,
                json=json_data,
                headers=self._headers(),
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Request failed: {method} {endpoint}: {e}")
            raise ApiError(None, "Network error. Please try again.") from e

        logger.debug(f"← {response.status_code} {method} {endpoint}")

        if response.status_code in expected_status:
            return response

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get('error') or f"Request failed (status: {response.status_code})"
        code = body.get('code')

        if response.status_code == 401 or (response.status_code == 403 and code != LIMIT_EXCEEDED):
            logger.warning(f"Auth error ({response.status_code}) on {method} {endpoint}")
            raise SessionExpiredError(response.status_code, message, code)

        raise ApiError(response.status_code, message, code)

    # ==================== Authentication ====================

    def register(self, username: str, password: str) -> Dict:
        response = self._make_request('POST', '/auth/register',
                                      {'username': username, 'password': password},
                                      expected_status=(201,))
        return response.json()

    def login(self, username: str, password: str) -> str:
        """Returns the token. Does not store it; see FlashcardSession.login."""
        response = self._make_request('POST', '/auth/login',
                                      {'username': username, 'password': password})
        token = response.json().get('token')
        if not token:
            raise ApiError(200, "Login successful, but no token received from server.")
        return token

    def me(self) -> Dict:
        return self._make_request('GET', '/auth/me').json()

    # ==================== Cards ====================

    def list_cards(self) -> List[Dict]:
        data = self._make_request('GET', '/cards').json()
        if not isinstance(data, list) or not all(
                isinstance(item, dict) and {'id', 'question', 'answer'} <= item.keys()
                for item in data):
            raise ApiError(200, "Invalid data format from server.")
        return [_plain_card(card) for card in data]

    def create_card(self, question: str, answer: str) -> Dict:
        response = self._make_request('POST', '/cards',
                                      {'question': question, 'answer': answer},
                                      expected_status=(201,))
        return _plain_card(response.json())

    def update_card(self, card_id: int, question: str, answer: str) -> Dict:
        response = self._make_request('PUT', f'/cards/{card_id}',
                                      {'question': question, 'answer': answer})
        return _plain_card(response.json())

    def delete_card(self, card_id: int) -> None:
        self._make_request('DELETE', f'/cards/{card_id}', expected_status=(204,))

    def delete_all_cards(self) -> None:
        self._make_request('DELETE', '/cards/all', expected_status=(204,))

    def bulk_import(self, cards: List[Dict]) -> int:
        response = self._make_request('POST', '/cards/bulk', cards, expected_status=(201,))
        return response.json().get('importedCount', len(cards))

    # ==================== Admin ====================

    def admin_list_users(self) -> List[Dict]:
        return self._make_request('GET', '/admin/users').json()

    def admin_delete_user(self, user_id: int) -> None:
        self._make_request('DELETE', f'/admin/users/{user_id}', expected_status=(204,))

    def admin_list_user_cards(self, user_id: int) -> List[Dict]:
        cards = self._make_request('GET', f'/admin/users/{user_id}/cards').json()
        return [_plain_card(card) for card in cards]

    def admin_delete_card(self, card_id: int) -> None:
        self._make_request('DELETE', f'/admin/cards/{card_id}', expected_status=(204,))


class TokenStore:
    """Keeps the session token in a JSON file between runs."""

    def __init__(self, path: str = DEFAULT_TOKEN_PATH):
        self.path = path

    def load(self) -> Optional[str]:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                return json.load(f).get('token')
        except FileNotFoundError:
            return None
        except (ValueError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable token file {self.path}: {e}")
            return None

    def save(self, token: str) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump({'token': token}, f)

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)


class FlashcardSession:
    """
    Client-side controller: user actions in, ViewState out.

    Mutations go to the server first; the local mirror only changes after
    the server confirmed them. The current state is always `self.state`.
    """

    def __init__(self, api: FlashcardApiClient, token_store: TokenStore,
                 search_delay: float = SEARCH_DELAY, on_change=None):
        self.api = api
        self.token_store = token_store
        self.search_delay = search_delay
        self.on_change = on_change
        self.state = ViewState()
        self._lock = threading.RLock()
        self._search_timer = None
        self._pending_search = None

    # ---- state plumbing ----

    def _dispatch(self, action) -> ViewState:
        with self._lock:
            self.state = update(self.state, action)
            state = self.state
        if self.on_change:
            self.on_change(state)
        return state

    def _status(self, message: str, level: str = 'info') -> None:
        self._dispatch(StatusShown(message, level))

    @property
    def is_logged_in(self) -> bool:
        return self.api.token is not None

    def _teardown(self, message: str = "Session expired. Please log in again.") -> None:
        """Forget the token and every card; back to the signed-out view."""
        self._cancel_search()
        self.api.token = None
        self.token_store.clear()
        self._dispatch(SessionCleared())
        self._status(message, 'error')
        logger.info("Session cleared")

    def _call(self, label: str, fn, *args):
        """
        Run one API call for a user action.

        Returns:
            tuple: (ok, result). On SessionExpiredError the session is torn down;
            on other ApiErrors an error status is shown and state is untouched.
        """
        try:
            return True, fn(*args)
        except SessionExpiredError as e:
            logger.warning(f"{label}: authentication failed ({e.status_code}), logging out")
            self._teardown()
            return False, None
        except ApiError as e:
            logger.error(f"{label} failed: {e.message}")
            self._status(f"Error {label}: {e.message}", 'error')
            return False, None

    # ---- authentication ----

    def register(self, username: str, password: str) -> bool:
        username, password = username.strip(), password.strip()
        if not username or not password:
            self._status("Username and password are required.", 'error')
            return False
        try:
            self.api.register(username, password)
        except ApiError as e:
            self._status(f"Registration failed: {e.message}", 'error')
            return False
        self._status("Registration successful! Please log in.", 'success')
        return True

    def login(self, username: str, password: str) -> bool:
        username, password = username.strip(), password.strip()
        if not username or not password:
            self._status("Username and password are required.", 'error')
            return False
        try:
            token = self.api.login(username, password)
        except ApiError as e:
            self._status(f"Login failed: {e.message}", 'error')
            return False

        self.api.token = token
        self.token_store.save(token)
        logger.info(f"Logged in as {username}")
        return self.reload()

    def restore(self) -> bool:
        """Resume a session from the stored token, if it is still accepted."""
        token = self.token_store.load()
        if not token:
            return False
        self.api.token = token
        ok, _ = self._call("restoring session", self.api.me)
        if not ok:
            return False
        return self.reload()

    def logout(self) -> None:
        self._cancel_search()
        self.api.token = None
        self.token_store.clear()
        self._dispatch(SessionCleared())
        logger.info("User logged out")

    # ---- loading and searching ----

    def reload(self, reset: bool = False) -> bool:
        """
        Fetch the card list from the server.

        Args:
            reset: Also clear the search term and the answer-first toggle
        """
        if not self.is_logged_in:
            return False
        if reset:
            self._cancel_search()
            self._dispatch(SearchChanged(''))
            self._dispatch(AnswerFirstToggled(False))

        ok, cards = self._call("loading cards", self.api.list_cards)
        if not ok:
            return False
        self._dispatch(CardsLoaded(tuple(cards)))
        logger.info(f"Loaded {len(cards)} cards")
        if reset:
            self._status("Reloaded your cards from server.")
        return True

    def search(self, term: str) -> None:
        """Debounced: the ordering is recomputed search_delay after the last call."""
        with self._lock:
            self._pending_search = term
            if self._search_timer is not None:
                self._search_timer.cancel()
            self._search_timer = threading.Timer(self.search_delay, self.flush_search)
            self._search_timer.daemon = True
            self._search_timer.start()

    def flush_search(self) -> None:
        """Apply a pending search term now."""
        with self._lock:
            if self._search_timer is not None:
                self._search_timer.cancel()
                self._search_timer = None
            term, self._pending_search = self._pending_search, None
        if term is not None and self.is_logged_in:
            self._dispatch(SearchChanged(term))

    def _cancel_search(self) -> None:
        with self._lock:
            if self._search_timer is not None:
                self._search_timer.cancel()
                self._search_timer = None
            self._pending_search = None

    # ---- navigation ----

    def next_card(self) -> ViewState:
        return self._dispatch(Next())

    def previous_card(self) -> ViewState:
        return self._dispatch(Previous())

    def random_card(self, rng=None) -> ViewState:
        return self._dispatch(RandomCard(rng) if rng else RandomCard())

    def shuffle(self, rng=None) -> ViewState:
        return self._dispatch(Shuffle(rng) if rng else Shuffle())

    def flip(self) -> ViewState:
        return self._dispatch(Flip())

    def set_answer_first(self, enabled: bool) -> ViewState:
        return self._dispatch(AnswerFirstToggled(enabled))

    # ---- mutations ----

    def add_card(self, question: str, answer: str) -> bool:
        question, answer = question.strip(), answer.strip()
        if not question or not answer:
            self._status("Enter question and answer.", 'error')
            return False

        ok, card = self._call("adding card", self.api.create_card, question, answer)
        if not ok:
            return False
        self._dispatch(CardAdded(card))
        self._status("Card added.", 'success')
        return True

    def edit_card(self, question: str, answer: str, card_id: Optional[int] = None) -> bool:
        """Save new text for card_id (default: the card on display)."""
        if card_id is None:
            current = self.state.current_card
            if current is None:
                self._status("No card selected.")
                return False
            card_id = current['id']

        question, answer = question.strip(), answer.strip()
        if not question or not answer:
            self._status("Question and answer cannot be empty.", 'error')
            return False

        ok, card = self._call("updating card", self.api.update_card, card_id, question, answer)
        if not ok:
            return False
        self._dispatch(CardUpdated(card))
        self._status("Card updated.", 'success')
        return True

    def delete_current_card(self) -> bool:
        current = self.state.current_card
        if current is None:
            self._status("No card selected.")
            return False

        ok, _ = self._call("deleting card", self.api.delete_card, current['id'])
        if not ok:
            return False
        self._dispatch(CardsRemoved(frozenset([current['id']])))
        self._status("Card deleted.")
        return True

    def delete_selected(self, card_ids) -> int:
        """
        Delete several cards with parallel requests.

        Only the deletions the server confirmed are removed from the mirror;
        the rest are reported as failed.

        Returns:
            int: Number of cards deleted
        """
        card_ids = list(card_ids)
        if not card_ids:
            self._status("No cards selected to delete.")
            return 0

        def delete_one(card_id):
            try:
                self.api.delete_card(card_id)
                return card_id, None
            except ApiError as e:
                return card_id, e

        with ThreadPoolExecutor(max_workers=min(8, len(card_ids))) as executor:
            results = list(executor.map(delete_one, card_ids))

        deleted = frozenset(card_id for card_id, error in results if error is None)
        failed = [(card_id, error) for card_id, error in results if error is not None]
        for card_id, error in failed:
            logger.warning(f"Failed to delete card {card_id}: {error.message}")

        if deleted:
            self._dispatch(CardsRemoved(deleted))

        if any(isinstance(error, SessionExpiredError) for _, error in failed):
            self._teardown()
            return len(deleted)

        message = f"{len(deleted)} card(s) deleted."
        if failed:
            message += f" {len(failed)} failed or not found."
        self._status(message, 'warning' if failed else 'success')
        return len(deleted)

    def delete_all(self) -> bool:
        if not self.state.cards:
            self._status("No cards to delete.")
            return False

        ok, _ = self._call("deleting all cards", self.api.delete_all_cards)
        if not ok:
            return False
        self._dispatch(AllCardsRemoved())
        self._status("All cards deleted.", 'success')
        return True

    # ---- import / export ----

    def import_json(self, text: str) -> int:
        """
        Import cards from a JSON array of {question, answer} objects.

        Entries without a non-empty question and answer are dropped before
        the request and reported in the status message.

        Returns:
            int: Number of cards imported (0 on failure)
        """
        text = text.strip()
        if not text:
            self._status("Import Error: Please paste JSON data.", 'error')
            return 0
        try:
            items = json.loads(text)
        except ValueError as e:
            self._status(f"Import Error: Invalid JSON format. {e}", 'error')
            return 0
        if not isinstance(items, list):
            self._status("Import Error: JSON must be an array.", 'error')
            return 0

        valid = []
        invalid_count = 0
        for index, item in enumerate(items):
            if (isinstance(item, dict)
                    and isinstance(item.get('question'), str) and item['question'].strip()
                    and isinstance(item.get('answer'), str) and item['answer'].strip()):
                valid.append({'question': item['question'].strip(), 'answer': item['answer'].strip()})
            else:
                logger.warning(f"Invalid item at index {index}: {item!r}")
                invalid_count += 1

        if not valid:
            message = "Import Error: No valid cards found."
            if invalid_count:
                message += f" {invalid_count} invalid entries ignored."
            self._status(message, 'error')
            return 0

        ok, imported_count = self._call("importing cards", self.api.bulk_import, valid)
        if not ok:
            return 0

        self.reload()
        message = f"{imported_count} card(s) imported."
        if invalid_count:
            message += f" {invalid_count} invalid entries ignored locally."
        self._status(message, 'success')
        return imported_count

    def export_json(self) -> str:
        """The mirror as a JSON array of {question, answer}, indented for humans."""
        data = [{'question': card['question'], 'answer': card['answer']} for card in self.state.cards]
        return json.dumps(data, indent=2, ensure_ascii=False)

    def export_to_file(self, path: str = DEFAULT_EXPORT_FILENAME) -> Optional[str]:
        if not self.state.cards:
            self._status("No cards to export.")
            return None
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.export_json())
        self._status("Exported cards to JSON.")
        return path
