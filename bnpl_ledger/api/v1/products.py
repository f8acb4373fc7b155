"""Product endpoints - tiered prices and shop-scoped stock"""

import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bnpl_ledger.api.dependencies import get_shop_context
from bnpl_ledger.api.v1.schemas import ProductRequest, ProductResponse, ShopStockRequest, ShopStockResponse
from bnpl_ledger.infrastructure.database.session import get_db
from bnpl_ledger.services.catalog import save_product, set_shop_stock
from bnpl_ledger.services.identity import ShopContext

router = APIRouter()


@router.put("/shops/{shop_id}/products", response_model=ProductResponse)
def put_product(
    body: ProductRequest,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    """Create or update a product; prices must satisfy cash <= layaway <= credit"""
    product = save_product(
        db,
        ctx,
        name=body.name,
        cash_price_cents=body.cash_price_cents,
        layaway_price_cents=body.layaway_price_cents,
        credit_price_cents=body.credit_price_cents,
        stock_quantity=body.stock_quantity,
        sku=body.sku,
        product_id=body.product_id,
    )
    return ProductResponse(
        product_id=str(product.id),
        name=product.name,
        sku=product.sku,
        cash_price_cents=product.cash_price_cents,
        layaway_price_cents=product.layaway_price_cents,
        credit_price_cents=product.credit_price_cents,
        stock_quantity=product.stock_quantity,
    )


@router.put("/shops/{shop_id}/products/{product_id}/stock", response_model=ShopStockResponse)
def put_shop_stock(
    product_id: uuid.UUID,
    body: ShopStockRequest,
    ctx: ShopContext = Depends(get_shop_context),
    db: Session = Depends(get_db),
):
    shop_stock = set_shop_stock(db, ctx, product_id, body.quantity)
    return ShopStockResponse(
        product_id=str(shop_stock.product_id),
        shop_id=str(shop_stock.shop_id),
        stock_quantity=shop_stock.stock_quantity,
    )
