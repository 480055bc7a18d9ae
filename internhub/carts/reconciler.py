"""
File de réconciliation des totaux de panier.

Quand le recalcul suivant une mutation échoue, la mutation reste validée
et le panier est mis en file ici. drain() rejoue le recalcul dans sa propre session.
"""
from typing import Callable, List, Optional
import logging
import threading

from sqlalchemy.orm import Session

from internhub.errors import NotFoundError
from internhub.infra.database import SessionLocal, transaction

from .repository import CartRepository

logger = logging.getLogger(__name__)


class CartTotalsReconciler:
    def __init__(self, session_factory: Optional[Callable[[], Session]] = None) -> None:
        self.session_factory = session_factory or SessionLocal
        self._pending: List[str] = []
        self._lock = threading.Lock()

    def enqueue(self, cart_id: str) -> None:
        with self._lock:
            if cart_id not in self._pending:
                self._pending.append(cart_id)
        logger.warning("carts.reconciler enqueued cart_id=%s", cart_id)

    def pending(self) -> List[str]:
        with self._lock:
            return list(self._pending)

    def drain(self) -> int:
        """Recalcule chaque panier en attente. Un échec laisse le panier dans la file."""
        with self._lock:
            batch, self._pending = self._pending, []

        repaired = 0
        failed: List[str] = []
        for cart_id in batch:
            session = self.session_factory()
            try:
                with transaction(session):
                    CartRepository(session).recompute_totals(cart_id)
                repaired += 1
            except NotFoundError:
                # panier supprimé entre-temps: rien à réparer
                logger.info("carts.reconciler skipped missing cart_id=%s", cart_id)
            except Exception:
                logger.exception("carts.reconciler failed cart_id=%s", cart_id)
                failed.append(cart_id)
            finally:
                session.close()

        if failed:
            with self._lock:
                for cart_id in failed:
                    if cart_id not in self._pending:
                        self._pending.append(cart_id)
        logger.info("carts.reconciler drained repaired=%s remaining=%s", repaired, len(self.pending()))
        return repaired


reconciler = CartTotalsReconciler()
