"""
CardRepository - per-user flashcard storage

Every query that a regular user can reach is scoped by owner_id. Passing
owner_id=None is reserved for the admin routes, which act on any card.
"""

import logging

logger = logging.getLogger(__name__)


class CardLimitError(Exception):
    """Raised when inserting cards would push an owner past the ceiling."""

    def __init__(self, current, incoming, limit):
        self.current = current
        self.incoming = incoming
        self.limit = limit
        super().__init__(
            f"Import would exceed the card limit ({current} + {incoming} > {limit})"
        )


class CardRepository:
    """
    Repository for flashcards.

    Table Structure:
        cards(id, question, answer, owner_id, created_at)
    """

    def __init__(self, conn):
        self.conn = conn

    def list_cards(self, owner_id):
        """Returns all cards of an owner, oldest first."""
        rows = self.conn.execute("""
            SELECT id, question, answer, owner_id, created_at
            FROM cards
            WHERE owner_id = ?
            ORDER BY created_at ASC, id ASC
        """, (owner_id,)).fetchall()
        return [dict(row) for row in rows]

    def count_cards(self, owner_id):
        row = self.conn.execute(
            "SELECT COUNT(*) FROM cards WHERE owner_id = ?", (owner_id,)
        ).fetchone()
        return row[0]

    def get_card(self, card_id, owner_id=None):
        """
        Fetch a single card.

        Args:
            card_id (int): Card id
            owner_id (int, optional): Restrict the lookup to this owner

        Returns:
            dict: Card row, or None if absent (or owned by someone else)
        """
        if owner_id is None:
            row = self.conn.execute(
                "SELECT id, question, answer, owner_id, created_at FROM cards WHERE id = ?",
                (card_id,)
            ).fetchone()
        else:
            row = self.conn.execute(
                "SELECT id, question, answer, owner_id, created_at FROM cards WHERE id = ? AND owner_id = ?",
                (card_id, owner_id)
            ).fetchone()
        return dict(row) if row else None

    def create_card(self, owner_id, question, answer):
        """Inserts one card and returns it with its assigned id."""
        cursor = self.conn.execute(
            "INSERT INTO cards (question, answer, owner_id) VALUES (?, ?, ?)",
            (question, answer, owner_id)
        )
        self.conn.commit()
        return self.get_card(cursor.lastrowid)

    def update_card(self, card_id, owner_id, question, answer):
        """
        Replace question and answer of a card the owner holds.

        Returns:
            dict: Updated card, or None if no such card is owned by owner_id
        """
        cursor = self.conn.execute(
            "UPDATE cards SET question = ?, answer = ? WHERE id = ? AND owner_id = ?",
            (question, answer, card_id, owner_id)
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            return None
        return self.get_card(card_id, owner_id)

    def delete_card(self, card_id, owner_id=None):
        """
        Delete one card. owner_id=None deletes regardless of owner.

        Returns:
            bool: True if a row was deleted
        """
        if owner_id is None:
            cursor = self.conn.execute("DELETE FROM cards WHERE id = ?", (card_id,))
        else:
            cursor = self.conn.execute(
                "DELETE FROM cards WHERE id = ? AND owner_id = ?", (card_id, owner_id)
            )
        self.conn.commit()
        return cursor.rowcount > 0

    def delete_all_cards(self, owner_id):
        """Deletes every card of an owner. Returns how many were removed."""
        cursor = self.conn.execute("DELETE FROM cards WHERE owner_id = ?", (owner_id,))
        self.conn.commit()
        return cursor.rowcount

    def bulk_insert(self, owner_id, cards, limit):
        """
        Insert a batch of cards as one transaction.

        The owner's card count is re-read after taking the database write
        lock, so two concurrent imports cannot both pass the limit check.

        Args:
            owner_id (int): Owner of the new cards
            cards (list): (question, answer) tuples, already validated
            limit (int): Maximum cards the owner may hold afterwards

        Returns:
            int: Number of cards inserted

        Raises:
            CardLimitError: If current + incoming would exceed limit (nothing inserted)
        """
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            current = self.count_cards(owner_id)
            if current + len(cards) > limit:
                raise CardLimitError(current, len(cards), limit)

            imported_count = 0
            for question, answer in cards:
                self.conn.execute(
                    "INSERT INTO cards (question, answer, owner_id) VALUES (?, ?, ?)",
                    (question, answer, owner_id)
                )
                imported_count += 1

            self.conn.commit()
            return imported_count
        except Exception:
            self.conn.rollback()
            raise
