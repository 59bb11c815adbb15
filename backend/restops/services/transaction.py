# Overview: Transaction boundary shared by the service layer.

from __future__ import annotations

from contextlib import contextmanager


@contextmanager
def atomic(session, notifications=None):
    """
    Run a block as one database transaction.

    - Commit on success, rollback on any exception (the exception propagates).
    - Events queued on the notification hub during the block are published only
      after a successful commit and discarded on rollback, so subscribers never
      observe state that was not persisted.

    No retry: persistence failures surface to the caller unchanged.
    """
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        if notifications is not None:
            notifications.discard_pending()
        raise

    if notifications is not None:
        notifications.publish_pending()
