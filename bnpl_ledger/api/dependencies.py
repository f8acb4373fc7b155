"""Dependency injection for FastAPI endpoints"""

import uuid
from typing import Optional
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from bnpl_ledger.infrastructure.clients.notifier import NotificationClient
from bnpl_ledger.infrastructure.database.session import get_db
from bnpl_ledger.services.identity import ShopContext, resolve_shop_context


def get_notification_client() -> NotificationClient:
    """Provide customer notification webhook client instance"""
    return NotificationClient()


def get_shop_context(
    shop_id: uuid.UUID,
    x_actor_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> ShopContext:
    """Resolve the calling actor (X-Actor-ID header) against the shop in the path"""
    return resolve_shop_context(db, shop_id, x_actor_id)
