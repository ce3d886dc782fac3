"""
Client session against a live server: login, mirror updates, debounced
search, bulk delete/import/export and session teardown.
"""

import json
import random
import time

import pytest

from conftest import TEST_PASSWORD
from flashcard_client import (
    ApiError,
    FlashcardApiClient,
    FlashcardSession,
    SessionExpiredError,
    TokenStore,
)
from view_state import ViewState


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def token_path(tmp_path):
    return str(tmp_path / 'session.json')


@pytest.fixture
def session(live_server, token_path):
    return FlashcardSession(FlashcardApiClient(live_server), TokenStore(token_path),
                            search_delay=0.05)


@pytest.fixture
def signed_in(session):
    assert session.register('alice', TEST_PASSWORD)
    assert session.login('alice', TEST_PASSWORD)
    return session


def questions_in_view(state):
    return [state.cards[i]['question'] for i in state.order]


# --- Authentication ---

def test_login_loads_empty_deck(signed_in, token_path):
    state = signed_in.state

    assert state.authenticated
    assert state.cards == ()
    assert state.front == 'No cards match search/filter.'
    assert TokenStore(token_path).load() == signed_in.api.token


def test_register_then_login_with_wrong_password(session):
    session.register('bob_user', TEST_PASSWORD)

    assert session.login('bob_user', 'wrong-password') is False
    assert not session.is_logged_in
    assert session.state.status.message.startswith('Login failed')


def test_blank_credentials_never_reach_server(session):
    assert session.login('   ', TEST_PASSWORD) is False
    assert session.state.status.message == 'Username and password are required.'


def test_restore_resumes_stored_session(signed_in, live_server, token_path):
    signed_in.add_card('2+2', '4')

    resumed = FlashcardSession(FlashcardApiClient(live_server), TokenStore(token_path))

    assert resumed.restore() is True
    assert questions_in_view(resumed.state) == ['2+2']


def test_restore_with_rejected_token_tears_down(live_server, token_path):
    store = TokenStore(token_path)
    store.save('not.a.valid.token')
    session = FlashcardSession(FlashcardApiClient(live_server), store)

    assert session.restore() is False
    assert not session.is_logged_in
    assert store.load() is None
    assert session.state.cards == ()
    assert session.state.status.message == 'Session expired. Please log in again.'


def test_restore_without_token_does_nothing(session):
    assert session.restore() is False
    assert session.state == ViewState()


def test_logout_clears_everything(signed_in, token_path):
    signed_in.add_card('q', 'a')

    signed_in.logout()

    assert signed_in.state == ViewState()
    assert TokenStore(token_path).load() is None


# --- Cards ---

def test_add_card_shows_it(signed_in):
    assert signed_in.add_card('  Capital of France?  ', 'Paris')

    state = signed_in.state
    assert state.front == 'Capital of France?'
    assert state.progress_text == 'Card 1 / 1'


def test_add_card_requires_both_fields(signed_in):
    assert signed_in.add_card('question only', '  ') is False
    assert signed_in.state.cards == ()


def test_card_limit_does_not_log_out(app, signed_in):
    app.config['CARD_LIMIT'] = 1
    assert signed_in.add_card('first', 'a')

    assert signed_in.add_card('second', 'b') is False

    assert signed_in.is_logged_in
    assert signed_in.state.status.level == 'error'
    assert questions_in_view(signed_in.state) == ['first']


def test_edit_current_card(signed_in):
    signed_in.add_card('old question', 'old answer')

    assert signed_in.edit_card('new question', 'new answer')

    assert signed_in.state.current_card['question'] == 'new question'
    assert len(signed_in.state.cards) == 1


def test_delete_current_card(signed_in):
    signed_in.add_card('one', '1')
    signed_in.add_card('two', '2')

    assert signed_in.delete_current_card()

    assert questions_in_view(signed_in.state) == ['one']
    assert signed_in.api.list_cards()[0]['question'] == 'one'


def test_delete_selected_reports_partial_failure(signed_in):
    for i in range(3):
        signed_in.add_card(f'q{i}', f'a{i}')
    ids = [card['id'] for card in signed_in.state.cards]

    deleted = signed_in.delete_selected([ids[0], ids[2], 987654])

    assert deleted == 2
    assert questions_in_view(signed_in.state) == ['q1']
    assert signed_in.state.status.message == '2 card(s) deleted. 1 failed or not found.'
    assert [c['question'] for c in signed_in.api.list_cards()] == ['q1']


def test_delete_all(signed_in):
    signed_in.add_card('a', 'b')
    signed_in.add_card('c', 'd')

    assert signed_in.delete_all()

    assert signed_in.state.cards == ()
    assert signed_in.api.list_cards() == []


# --- Search ---

def test_search_is_debounced(signed_in):
    signed_in.add_card('2+2', '4')
    signed_in.add_card('3+3', '6')

    signed_in.search('3')
    signed_in.search('4')
    assert signed_in.state.search_term == ''

    assert wait_for(lambda: signed_in.state.search_term == '4')
    assert questions_in_view(signed_in.state) == ['2+2']


def test_flush_search_applies_immediately(signed_in):
    signed_in.add_card('2+2', '4')
    signed_in.add_card('3+3', '6')
    signed_in.search_delay = 60

    signed_in.search('6')
    signed_in.flush_search()

    assert questions_in_view(signed_in.state) == ['3+3']

    signed_in.search('')
    signed_in.flush_search()
    assert questions_in_view(signed_in.state) == ['2+2', '3+3']


def test_reload_with_reset_clears_search(signed_in):
    signed_in.add_card('alpha', 'a')
    signed_in.add_card('beta', 'b')
    signed_in.search('alpha')
    signed_in.flush_search()
    signed_in.set_answer_first(True)

    assert signed_in.reload(reset=True)

    assert signed_in.state.search_term == ''
    assert signed_in.state.answer_first is False
    assert signed_in.state.total_in_view == 2


def test_navigation(signed_in):
    for i in range(3):
        signed_in.add_card(f'q{i}', f'a{i}')
    assert signed_in.state.front == 'q2'  # last added card is on display

    signed_in.previous_card()
    assert signed_in.state.front == 'q1'
    signed_in.flip()
    assert signed_in.state.flipped
    signed_in.previous_card()
    assert signed_in.state.front == 'q0'
    assert not signed_in.state.flipped
    signed_in.random_card(random.Random(0))
    assert signed_in.state.cursor in (1, 2)
    signed_in.shuffle(random.Random(0))
    assert signed_in.state.cursor == 0


# --- Import / export ---

def test_import_skips_invalid_entries(signed_in):
    payload = json.dumps([
        {'question': 'Hola', 'answer': 'Hello'},
        {'question': 'no answer'},
        {'question': '   ', 'answer': 'blank question'},
        'not an object',
        {'question': 'Adios', 'answer': 'Goodbye'},
    ])

    imported = signed_in.import_json(payload)

    assert imported == 2
    assert questions_in_view(signed_in.state) == ['Hola', 'Adios']
    assert signed_in.state.status.message == '2 card(s) imported. 3 invalid entries ignored locally.'


@pytest.mark.parametrize('text,message', [
    ('', 'Import Error: Please paste JSON data.'),
    ('{"question": "q", "answer": "a"}', 'Import Error: JSON must be an array.'),
    ('[{"question": "q"}]', 'Import Error: No valid cards found. 1 invalid entries ignored.'),
])
def test_import_rejects_bad_input_locally(signed_in, text, message):
    assert signed_in.import_json(text) == 0
    assert signed_in.state.status.message == message
    assert signed_in.api.list_cards() == []


def test_import_invalid_json(signed_in):
    assert signed_in.import_json('[{"question": ') == 0
    assert signed_in.state.status.message.startswith('Import Error: Invalid JSON format.')


def test_import_over_limit_keeps_session(app, signed_in):
    app.config['CARD_LIMIT'] = 2
    payload = json.dumps([{'question': f'q{i}', 'answer': 'a'} for i in range(3)])

    assert signed_in.import_json(payload) == 0

    assert signed_in.is_logged_in
    assert signed_in.api.list_cards() == []


def test_export_contains_only_question_and_answer(signed_in, tmp_path):
    signed_in.add_card('Olá', 'Hello')
    signed_in.add_card('Tchau', 'Bye')

    exported = json.loads(signed_in.export_json())
    assert exported == [{'question': 'Olá', 'answer': 'Hello'},
                        {'question': 'Tchau', 'answer': 'Bye'}]

    path = signed_in.export_to_file(str(tmp_path / 'export.json'))
    with open(path, encoding='utf-8') as f:
        assert json.load(f) == exported


def test_text_with_markup_characters_reads_as_typed(signed_in):
    signed_in.add_card('Is 2 < 3?', 'R&D yes')

    assert signed_in.state.front == 'Is 2 < 3?'
    assert signed_in.state.back == 'R&D yes'

    signed_in.search('2 < 3')
    signed_in.flush_search()
    assert questions_in_view(signed_in.state) == ['Is 2 < 3?']

    assert json.loads(signed_in.export_json()) == [{'question': 'Is 2 < 3?', 'answer': 'R&D yes'}]


def test_edited_and_reloaded_text_is_not_escaped_twice(signed_in):
    signed_in.add_card('plain', 'text')
    signed_in.edit_card('<b>bold</b> & more', 'x > y')

    assert signed_in.state.current_card['question'] == '<b>bold</b> & more'

    signed_in.reload()
    assert signed_in.state.current_card['question'] == '<b>bold</b> & more'
    assert signed_in.state.current_card['answer'] == 'x > y'


def test_export_without_cards(signed_in, tmp_path):
    assert signed_in.export_to_file(str(tmp_path / 'export.json')) is None
    assert signed_in.state.status.message == 'No cards to export.'


# --- API client ---

def test_api_client_maps_auth_errors(live_server):
    api = FlashcardApiClient(live_server)

    with pytest.raises(SessionExpiredError) as missing:
        api.list_cards()
    api.token = 'garbage'
    with pytest.raises(SessionExpiredError) as invalid:
        api.list_cards()

    assert missing.value.status_code == 401
    assert invalid.value.code == 'INVALID_TOKEN'


def test_api_client_network_error():
    api = FlashcardApiClient('http://127.0.0.1:1', token='t', timeout=1)

    with pytest.raises(ApiError) as error:
        api.list_cards()

    assert error.value.status_code is None
    assert not isinstance(error.value, SessionExpiredError)


def test_token_store_ignores_corrupt_file(token_path):
    with open(token_path, 'w', encoding='utf-8') as f:
        f.write('{not json')

    assert TokenStore(token_path).load() is None
