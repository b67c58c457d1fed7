from sqlalchemy import update
from sqlalchemy.orm.util import identity_key

from ..models import Book, db
from .exceptions import Unavailable


def reserve_copy(book_id):
    """Take one copy of a book out of inventory.

    A single conditional UPDATE does the check and the decrement, so two
    approvals racing for the last copy cannot both succeed. The caller owns
    the transaction and commits it together with the rest of the approval.

    Raises Unavailable when no copy is left or the book is flagged unavailable.
    """
    result = db.session.execute(
        update(Book)
        .where(
            Book.id == book_id,
            Book.quantity > 0,
            Book.available == True,  # noqa: E712
        )
        .values(quantity=Book.quantity - 1, available=(Book.quantity - 1) > 0)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise Unavailable("Book is not available for borrowing (no copies available)")
    _expire_cached_book(book_id)


def release_copy(book_id):
    """Put one copy back into inventory. Returns False if the book is gone."""
    result = db.session.execute(
        update(Book)
        .where(Book.id == book_id)
        .values(quantity=Book.quantity + 1, available=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    _expire_cached_book(book_id)
    return True


def _expire_cached_book(book_id):
    # The UPDATE bypassed the ORM; drop any stale copy held by the session.
    cached = db.session.identity_map.get(identity_key(Book, book_id))
    if cached is not None:
        db.session.expire(cached)
