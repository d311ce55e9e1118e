import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pdv.core.config import settings
from pdv.core.roles import Capability
from pdv.core.security import create_access_token, verify_password
from pdv.db import store
from pdv.db.session import engine, get_db
from pdv.db.tables import metadata
from pdv.domain import errors
from pdv.domain.cart import Cart
from pdv.domain.catalog import is_low_stock, low_stock, search_products
from pdv.domain.models import Product, Sale, StoreSettings
from pdv.domain.receipt import receipt_filename, render_receipt
from pdv.domain.reports import revenue_by_payment_method, sales_to_csv, summarize_sales
from pdv.domain.totals import compute_totals
from pdv.domain.validation import collect_errors
from pdv.schemas.auth import LoginRequest, TokenResponse
from pdv.schemas.customers import CustomerInput, CustomerResponse
from pdv.schemas.inventory import ProductCreate, ProductResponse, ProductUpdate, StockAdjustRequest
from pdv.schemas.sales import (
    CartLineInput,
    CheckoutPreview,
    CheckoutRequest,
    DashboardSummary,
    SaleItemResponse,
    SaleResponse,
)
from pdv.schemas.settings import StoreSettingsResponse, StoreSettingsUpdate
from pdv.services.checkout import submit_sale
from pdv.services.deps import get_current_user, get_sale_store, get_store_settings, require

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    metadata.create_all(engine)
    yield


app = FastAPI(title="PDV API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    errors.LineNotFound: status.HTTP_404_NOT_FOUND,
    errors.StockExceeded: status.HTTP_409_CONFLICT,
    errors.InsufficientStock: status.HTTP_409_CONFLICT,
    errors.PersistenceFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
    errors.PartialCommitFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@app.exception_handler(errors.PosError)
async def pos_error_handler(request: Request, exc: errors.PosError):
    code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=code, content={"detail": exc.message, "error": exc.to_dict()})


def product_response(product: Product, threshold: int) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        name=product.name,
        price=float(product.price),
        stock=product.stock,
        category=product.category,
        barcode=product.barcode,
        min_stock=product.min_stock,
        low_stock=is_low_stock(product, threshold),
    )


def sale_response(sale: Sale) -> SaleResponse:
    return SaleResponse(
        id=sale.id,
        cashier_id=sale.cashier_id,
        customer_id=sale.customer_id,
        customer_name=sale.customer_name,
        total_amount=float(sale.total_amount),
        discount_amount=float(sale.discount_amount),
        tax_amount=float(sale.tax_amount),
        payment_method=sale.payment_method,
        notes=sale.notes,
        created_at=sale.created_at,
        items=[
            SaleItemResponse(
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=float(item.unit_price),
                discount_percentage=float(item.discount_percentage),
                total_price=float(item.total_price),
            )
            for item in sale.items
        ],
    )


def settings_response(store_settings: StoreSettings) -> StoreSettingsResponse:
    return StoreSettingsResponse(
        currency=store_settings.currency,
        currency_symbol=store_settings.currency_symbol,
        tax_rate=float(store_settings.tax_rate),
        company_name=store_settings.company_name,
        receipt_footer=store_settings.receipt_footer,
        low_stock_threshold=store_settings.low_stock_threshold,
    )


def build_cart(db: Session, lines: list[CartLineInput]) -> Cart:
    cart = Cart()
    for line in lines:
        product = store.get_product(db, line.product_id)
        if not product:
            raise HTTPException(status_code=404, detail=f"Product not found: {line.product_id}")
        cart.add_item(product, line.quantity)
        if line.discount_percent:
            cart.set_discount(product.id, line.discount_percent)
    return cart


def get_sale_or_404(db: Session, sale_id: str) -> Sale:
    sale = store.get_sale(db, sale_id)
    if not sale:
        raise HTTPException(status_code=404, detail="Sale not found")
    return sale


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/auth/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = store.get_user_by_username(db, payload.username)

    if not user or not user["is_active"]:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    if not verify_password(payload.password, user["password_hash"]):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    store.touch_last_login(db, user["id"])
    db.commit()

    token = create_access_token(subject=user["id"], role=user["role"])
    return TokenResponse(
        access_token=token,
        user_id=user["id"],
        username=user["username"],
        full_name=user["full_name"],
        role=user["role"],
    )


@app.get("/dashboard/summary", response_model=DashboardSummary)
def dashboard_summary(
    day: date | None = None,
    db: Session = Depends(get_db),
    _: dict = Depends(require(Capability.VIEW_REPORTS)),
):
    day = day or datetime.now(timezone.utc).date()
    sales = store.list_sales(db, start=day, end=day, limit=None)
    summary = summarize_sales(sales, day)
    return DashboardSummary(
        total_sales=summary.total_sales,
        total_revenue=float(summary.total_revenue),
        average_sale=float(summary.average_sale),
        revenue_by_payment_method={k: float(v) for k, v in revenue_by_payment_method(sales).items()},
    )


# Products and stock


@app.get("/products", response_model=list[ProductResponse])
def list_products(
    q: str | None = None,
    db: Session = Depends(get_db),
    store_settings: StoreSettings = Depends(get_store_settings),
    _: dict = Depends(get_current_user),
):
    products = search_products(store.list_products(db), q or "")
    return [product_response(p, store_settings.low_stock_threshold) for p in products]


@app.get("/products/by-barcode/{barcode}", response_model=ProductResponse)
def product_by_barcode(
    barcode: str,
    db: Session = Depends(get_db),
    store_settings: StoreSettings = Depends(get_store_settings),
    _: dict = Depends(get_current_user),
):
    product = store.get_product_by_barcode(db, barcode)
    if not product:
        raise HTTPException(status_code=404, detail="Code not found")
    return product_response(product, store_settings.low_stock_threshold)


@app.post("/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: ProductCreate,
    db: Session = Depends(get_db),
    store_settings: StoreSettings = Depends(get_store_settings),
    _: dict = Depends(require(Capability.MANAGE_PRODUCTS)),
):
    try:
        product = store.create_product(db, payload.model_dump())
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=f"Failed to create product: {exc.orig}")
    return product_response(product, store_settings.low_stock_threshold)


@app.patch("/products/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: str,
    payload: ProductUpdate,
    db: Session = Depends(get_db),
    store_settings: StoreSettings = Depends(get_store_settings),
    _: dict = Depends(require(Capability.MANAGE_PRODUCTS)),
):
    try:
        product = store.update_product(db, product_id, payload.model_dump(exclude_unset=True))
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=f"Failed to update product: {exc.orig}")
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product_response(product, store_settings.low_stock_threshold)


@app.post("/products/{product_id}/stock", response_model=ProductResponse)
def adjust_stock(
    product_id: str,
    payload: StockAdjustRequest,
    db: Session = Depends(get_db),
    store_settings: StoreSettings = Depends(get_store_settings),
    user: dict = Depends(require(Capability.MANAGE_PRODUCTS)),
):
    if not store.get_product(db, product_id):
        raise HTTPException(status_code=404, detail="Product not found")

    product = store.adjust_stock(db, product_id, payload.delta)
    if not product:
        db.rollback()
        raise HTTPException(status_code=409, detail="Stock cannot go below zero")

    db.commit()
    logger.info(
        "stock adjusted product=%s delta=%d by user=%s reason=%s",
        product_id,
        payload.delta,
        user["id"],
        payload.reason or "-",
    )
    return product_response(product, store_settings.low_stock_threshold)


@app.get("/inventory/alerts/low-stock", response_model=list[ProductResponse])
def low_stock_alerts(
    db: Session = Depends(get_db),
    store_settings: StoreSettings = Depends(get_store_settings),
    _: dict = Depends(get_current_user),
):
    threshold = store_settings.low_stock_threshold
    return [product_response(p, threshold) for p in low_stock(store.list_products(db), threshold)]


# Customers


@app.get("/customers", response_model=list[CustomerResponse])
def list_customers(
    db: Session = Depends(get_db),
    _: dict = Depends(require(Capability.PROCESS_SALES)),
):
    return [CustomerResponse(**row) for row in store.list_customers(db)]


@app.post("/customers", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
def create_customer(
    payload: CustomerInput,
    db: Session = Depends(get_db),
    _: dict = Depends(require(Capability.MANAGE_CUSTOMERS)),
):
    customer = store.create_customer(db, payload.model_dump())
    db.commit()
    return CustomerResponse(**customer)


@app.put("/customers/{customer_id}", response_model=CustomerResponse)
def update_customer(
    customer_id: str,
    payload: CustomerInput,
    db: Session = Depends(get_db),
    _: dict = Depends(require(Capability.MANAGE_CUSTOMERS)),
):
    if not store.get_customer(db, customer_id):
        raise HTTPException(status_code=404, detail="Customer not found")
    customer = store.update_customer(db, customer_id, payload.model_dump())
    db.commit()
    return CustomerResponse(**customer)


# Sales


@app.post("/sales/preview", response_model=CheckoutPreview)
def checkout_preview(
    payload: CheckoutRequest,
    db: Session = Depends(get_db),
    store_settings: StoreSettings = Depends(get_store_settings),
    _: dict = Depends(require(Capability.PROCESS_SALES)),
):
    cart = build_cart(db, payload.items)
    problems = collect_errors(cart, payload.payment_method, payload.discount_amount, store_settings.tax_rate)
    totals = compute_totals(cart, store_settings.tax_rate, max(payload.discount_amount, 0))
    return CheckoutPreview(
        subtotal=float(totals.subtotal),
        tax_amount=float(totals.tax_amount),
        discount_amount=float(totals.discount_amount),
        total=float(totals.grand_total),
        currency=store_settings.currency,
        item_count=cart.item_count,
        errors=[problem.to_dict() for problem in problems],
    )


@app.post("/sales/checkout", response_model=SaleResponse, status_code=status.HTTP_201_CREATED)
def checkout(
    payload: CheckoutRequest,
    db: Session = Depends(get_db),
    store_settings: StoreSettings = Depends(get_store_settings),
    sale_store: store.SqlSaleStore = Depends(get_sale_store),
    user: dict = Depends(require(Capability.PROCESS_SALES)),
):
    if payload.customer_id and not store.get_customer(db, payload.customer_id):
        raise HTTPException(status_code=404, detail=f"Customer not found: {payload.customer_id}")

    cart = build_cart(db, payload.items)
    sale = submit_sale(
        sale_store,
        cart,
        payload.payment_method,
        payload.discount_amount,
        store_settings.tax_rate,
        cashier_id=user["id"],
        customer_id=payload.customer_id,
        notes=payload.notes,
    )
    return sale_response(get_sale_or_404(db, sale.id))


@app.get("/sales", response_model=list[SaleResponse])
def sales_history(
    start: date | None = None,
    end: date | None = None,
    db: Session = Depends(get_db),
    _: dict = Depends(require(Capability.VIEW_REPORTS)),
):
    return [sale_response(sale) for sale in store.list_sales(db, start=start, end=end)]


@app.get("/sales/{sale_id}", response_model=SaleResponse)
def sale_detail(
    sale_id: str,
    db: Session = Depends(get_db),
    _: dict = Depends(get_current_user),
):
    return sale_response(get_sale_or_404(db, sale_id))


@app.get("/sales/{sale_id}/receipt", response_class=PlainTextResponse)
def sale_receipt(
    sale_id: str,
    db: Session = Depends(get_db),
    store_settings: StoreSettings = Depends(get_store_settings),
    _: dict = Depends(get_current_user),
):
    sale = get_sale_or_404(db, sale_id)
    return PlainTextResponse(
        render_receipt(sale, store_settings),
        headers={"Content-Disposition": f'attachment; filename="{receipt_filename(sale)}"'},
    )


@app.get("/reports/sales.csv")
def export_sales_csv(
    start: date | None = None,
    end: date | None = None,
    db: Session = Depends(get_db),
    _: dict = Depends(require(Capability.EXPORT_REPORTS)),
):
    content = sales_to_csv(store.list_sales(db, start=start, end=end, limit=None))
    filename = f"sales-report-{datetime.now(timezone.utc).date().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# Store settings


@app.get("/settings", response_model=StoreSettingsResponse)
def read_settings(
    store_settings: StoreSettings = Depends(get_store_settings),
    _: dict = Depends(get_current_user),
):
    return settings_response(store_settings)


@app.put("/settings", response_model=StoreSettingsResponse)
def update_settings(
    payload: StoreSettingsUpdate,
    db: Session = Depends(get_db),
    user: dict = Depends(require(Capability.MANAGE_SETTINGS)),
):
    for key, value in payload.model_dump(exclude_none=True).items():
        store.save_store_setting(db, key, value)
    db.commit()
    logger.info("store settings updated by user=%s", user["id"])
    return settings_response(store.load_store_settings(db))
