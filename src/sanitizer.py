"""
Input cleaning for card text.

Card text is shown back to users by the browser client, so markup is
neutralised before it is stored: no tags or attributes are allowed and
bleach escapes whatever it finds (script tags, event handler attributes).
"""

import bleach

from errors import ValidationError

ALLOWED_TAGS = frozenset()
ALLOWED_ATTRIBUTES = {}


def sanitize_text(value):
    """Trims whitespace and escapes any markup in value."""
    return bleach.clean(
        value.strip(),
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        strip=False,
    )


def _is_filled(value):
    return isinstance(value, str) and value.strip() != ''


def sanitize_card(data, message='Question and answer are required.'):
    """
    Validate and clean one {question, answer} payload.

    Args:
        data: Parsed JSON body (anything; non-dicts are rejected)
        message: Error text used when validation fails

    Returns:
        tuple: (question, answer) ready for storage

    Raises:
        ValidationError: If data is not an object or either field is missing/empty
    """
    if not isinstance(data, dict):
        raise ValidationError(message)

    question = data.get('question')
    answer = data.get('answer')
    if not _is_filled(question) or not _is_filled(answer):
        raise ValidationError(message)

    return sanitize_text(question), sanitize_text(answer)


def sanitize_cards(items):
    """
    Validate and clean a bulk import payload. One bad entry rejects the batch.

    Returns:
        list: (question, answer) tuples
    """
    if not isinstance(items, list) or len(items) == 0:
        raise ValidationError('Request body must be a non-empty array of cards.')

    return [
        sanitize_card(item, 'Each card in the array must have question and answer.')
        for item in items
    ]
