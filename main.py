import os
import time
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from bson import ObjectId

import orders
from database import get_db, serialize_document as serialize, to_object_id
from errors import BusinessRuleViolation, NotFound, Unauthorized, ValidationFailed, register_error_handlers
from i18n import Translator, get_translator
from logging_config import add_context, clear_context, configure_logging, get_logger
from repositories import ProductFilter, Repositories, get_repositories
from schemas import (
    Category,
    CategoryRequest,
    ChangeStatusRequest,
    CreateOrderRequest,
    LoginRequest,
    Product,
    ProductUpdateRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    Token,
    User,
)
from security import (
    API_PREFIX,
    admin_only,
    get_current_user,
    get_password_hash,
    generate_token,
    public_user,
    user_and_admin,
    user_only,
    verify_password,
)
from uploads import UPLOAD_URL_PATH, ensure_upload_dir, save_images
from validation import (
    DEFAULT_LIMIT,
    DEFAULT_PAGE,
    MAX_LIMIT,
    MAX_PAGE,
    parse_positive_int,
    validate_category_name,
    validate_login,
    validate_product_fields,
    validate_profile_update,
    validate_registration,
)

configure_logging()
logger = get_logger(__name__)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

app = FastAPI(title="Store API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "Accept-Language"],
)
register_error_handlers(app)
app.mount(UPLOAD_URL_PATH, StaticFiles(directory=ensure_upload_dir()), name="uploads")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    add_context(method=request.method, path=request.url.path)
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        logger.error(
            "request",
            method=request.method,
            path=request.url.path,
            status=500,
            duration_ms=round((time.perf_counter() - start) * 1000, 3),
        )
        raise
    finally:
        clear_context()
    logger.info(
        "request",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - start) * 1000, 3),
    )
    return response


router = APIRouter(prefix=API_PREFIX)


def _object_id(value: str, message_key: str, t: Translator) -> ObjectId:
    oid = to_object_id(value)
    if oid is None:
        raise ValidationFailed(t(message_key), invalidId=value)
    return oid


@app.get("/")
def read_root():
    return {"name": "Store API", "status": "ok"}


@app.get("/test")
def test_database():
    info = {"backend": "running", "database": "disconnected"}
    try:
        get_db().list_collection_names()
        info["database"] = "connected"
    except Exception as e:
        info["error"] = str(e)
    return info


@router.get("/health", response_class=PlainTextResponse)
def health(t: Translator = Depends(get_translator)):
    return t("healthy")


# ---------- Auth ----------


@router.post("/auth/register", status_code=201)
def register(
    body: RegisterRequest,
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    validate_registration(body, t).raise_for_errors()
    if repos.users.find_by_email(body.email):
        raise BusinessRuleViolation(t("emailAlreadyExists"))

    now = datetime.utcnow()
    user = User(
        email=body.email,
        password_hash=get_password_hash(body.password),
        role=body.role or "user",
        user_name=body.user_name.strip(),
        phone_number=body.phone_number,
        city=body.city.strip(),
        postal_code=body.postal_code.strip(),
        address_line1=body.address_line1.strip(),
        address_line2=body.address_line2,
        created_at=now,
        updated_at=now,
    )
    created = repos.users.create(user.model_dump())
    logger.info("user_registered", user_id=str(created["_id"]))
    return {
        "success": True,
        "message": t("userRegisteredSuccessfully"),
        "data": serialize(public_user(created)),
        "token": generate_token(created),
    }


@router.post("/auth/login")
def login(
    body: LoginRequest,
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    validate_login(body.email, body.password, t).raise_for_errors()
    user = repos.users.find_by_email(body.email)
    if not user:
        raise BusinessRuleViolation(t("emailDoesNotExist"))
    if not verify_password(body.password, user["password_hash"]):
        raise Unauthorized(t("incorrectPassword"))
    return {
        "success": True,
        "message": t("loginSuccessful"),
        "data": {"user": serialize(public_user(user)), "token": generate_token(user)},
    }


@router.post("/auth/token", response_model=Token)
def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    user = repos.users.find_by_email(form_data.username)
    if not user or not verify_password(form_data.password, user["password_hash"]):
        raise BusinessRuleViolation(t("invalidCredentials"))
    return {"access_token": generate_token(user), "token_type": "bearer"}


@router.get("/auth/profile")
def get_profile(
    current: dict = Depends(get_current_user),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    user = repos.users.find_by_id(ObjectId(current["id"]))
    if user is None:
        raise NotFound(t("userNotFound"))
    return {"success": True, "data": serialize(public_user(user))}


@router.put("/auth/profile")
def update_profile(
    body: ProfileUpdateRequest,
    current: dict = Depends(get_current_user),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    validate_profile_update(body, t).raise_for_errors()
    user_id = ObjectId(current["id"])

    fields = body.model_dump(exclude_none=True)
    if "email" in fields and repos.users.email_taken(fields["email"], exclude_id=user_id):
        raise BusinessRuleViolation(t("emailAlreadyExists"))
    if "password" in fields:
        fields["password_hash"] = get_password_hash(fields.pop("password"))

    user = repos.users.update(user_id, fields)
    if user is None:
        raise NotFound(t("userNotFound"))
    return {
        "success": True,
        "message": t("profileUpdatedSuccessfully"),
        "data": serialize(public_user(user)),
    }


# ---------- Categories ----------


@router.post("/categories", status_code=201)
def create_category(
    body: CategoryRequest,
    _: dict = Depends(admin_only),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    result = validate_category_name(body.name, t)
    if not result.ok:
        raise ValidationFailed(result.errors[0].message)
    category = repos.categories.create(Category(name=result.value).model_dump())
    return serialize(category)


@router.get("/categories")
def list_categories(
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    categories = repos.categories.find_all()
    if not categories:
        return {"message": t("noCategories")}
    return serialize(categories)


@router.get("/categories/{category_id}")
def get_category(
    category_id: str,
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    category = repos.categories.find_by_id(_object_id(category_id, "invalidCategoryId", t))
    if category is None:
        raise NotFound(t("categoryNotFound"))
    return serialize(category)


@router.delete("/categories/{category_id}")
def delete_category(
    category_id: str,
    _: dict = Depends(admin_only),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    category = repos.categories.delete(_object_id(category_id, "invalidCategoryId", t))
    if category is None:
        raise NotFound(t("categoryNotFound"))
    return {"success": True, "message": t("categoryDeletedSuccessfully")}


# ---------- Products ----------


def _require_category(repos: Repositories, fields: dict, t: Translator) -> None:
    if "category" in fields and repos.categories.find_by_id(fields["category"]) is None:
        raise NotFound(t("categoryNotFound"))


@router.post("/products", status_code=201)
def create_product(
    request: Request,
    title: Optional[str] = Form(None),
    price: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    count_in_stock: Optional[str] = Form(None, alias="countInStock"),
    description: Optional[str] = Form(None),
    images: Optional[List[UploadFile]] = File(None),
    _: dict = Depends(admin_only),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    fields = {
        "title": title,
        "price": price,
        "category": category,
        "count_in_stock": count_in_stock,
        "description": description,
    }
    result = validate_product_fields(fields, t)
    result.raise_for_errors()
    _require_category(repos, result.value, t)

    now = datetime.utcnow()
    product = Product(**result.value, images=save_images(images, request, t), created_at=now, updated_at=now)
    created = repos.products.create(product.model_dump())
    logger.info("product_created", product_id=str(created["_id"]))
    return {"success": True, "message": t("productCreatedSuccessfully"), "data": serialize(created)}


@router.get("/products")
def list_products(
    search: Optional[str] = None,
    category_id: Optional[str] = Query(None, alias="categoryID"),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    product_filter = ProductFilter(search=search or "")
    if category_id:
        product_filter.category_id = _object_id(category_id, "invalidCategoryId", t)

    products = repos.products.find_by_filter(product_filter)
    if not products:
        return {"message": t("noProducts")}
    return serialize(products)


@router.get("/products/{product_id}")
def get_product(
    product_id: str,
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    product = repos.products.increment_views(_object_id(product_id, "invalidProductId", t))
    if product is None:
        raise NotFound(t("productNotFound"))
    return serialize(product)


@router.put("/products/{product_id}")
def update_product(
    product_id: str,
    body: ProductUpdateRequest,
    _: dict = Depends(admin_only),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    oid = _object_id(product_id, "invalidProductId", t)
    result = validate_product_fields(body.model_dump(exclude_none=True), t, partial=True)
    result.raise_for_errors()
    _require_category(repos, result.value, t)

    product = repos.products.update(oid, result.value)
    if product is None:
        raise NotFound(t("productNotFound"))
    return {"success": True, "message": t("productUpdatedSuccessfully"), "data": serialize(product)}


@router.delete("/products/{product_id}")
def delete_product(
    product_id: str,
    _: dict = Depends(admin_only),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    product = repos.products.delete(_object_id(product_id, "invalidProductId", t))
    if product is None:
        raise NotFound(t("productNotFound"))
    return {"success": True, "message": t("productDeletedSuccessfully")}


# ---------- Orders ----------


@router.post("/orders", status_code=201)
def create_order(
    body: CreateOrderRequest,
    current: dict = Depends(user_and_admin),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    order = orders.create_order(repos, current, body.order_items, t)
    return {"success": True, "message": t("orderCreatedSuccessfully"), "data": serialize(order)}


@router.get("/orders")
def list_orders(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    search: Optional[str] = None,
    current: dict = Depends(get_current_user),
    repos: Repositories = Depends(get_repositories),
):
    result = orders.list_orders(
        repos,
        current,
        page=parse_positive_int(page, DEFAULT_PAGE, maximum=MAX_PAGE),
        limit=parse_positive_int(limit, DEFAULT_LIMIT, maximum=MAX_LIMIT),
        search=search or "",
    )
    return serialize(result)


@router.get("/orders/{order_id}")
def get_order(
    order_id: str,
    current: dict = Depends(user_and_admin),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    return serialize(orders.get_order(repos, current, order_id, t))


@router.delete("/orders/{order_id}")
def delete_order(
    order_id: str,
    _: dict = Depends(admin_only),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    orders.delete_order(repos, order_id, t)
    return {"success": True, "message": t("orderDeletedSuccessfully")}


@router.patch("/orders/{order_id}/change-status")
def change_order_status(
    order_id: str,
    body: ChangeStatusRequest,
    _: dict = Depends(admin_only),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    order = orders.change_status(repos, order_id, body.status, t)
    return {"success": True, "message": t("orderStatusUpdatedSuccessfully"), "data": serialize(order)}


@router.patch("/orders/{order_id}/cancel-order")
def cancel_order(
    order_id: str,
    current: dict = Depends(user_only),
    repos: Repositories = Depends(get_repositories),
    t: Translator = Depends(get_translator),
):
    order = orders.cancel_order(repos, current, order_id, t)
    return {"success": True, "message": t("orderCancelledSuccessfully"), "data": serialize(order)}


app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
