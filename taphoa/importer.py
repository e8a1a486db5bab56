"""
Bulk product import from Excel, plus the template and catalog exports.

Two spreadsheet layouts are accepted without a format flag:

  native template   Tên sản phẩm | Mô tả | Giá | Giá khuyến mãi | Danh mục |
                    Số lượng | Đơn vị | Link ảnh | Mã SKU
  POS export        Mã hàng | Tên hàng | Nhóm hàng(3 Cấp) | Giá bán | Tồn kho |
                    ĐVT | Hình ảnh (url1,url2...) | Mô tả

detect_format() picks one layout per upload from the header row, POS export
first. Reconciliation then:

  1. parses every row, collecting "Hàng N: ..." errors for rows missing a
     name or price (the batch continues);
  2. creates unseen category names in one batch (first letter capitalised);
  3. keeps the LAST row for an SKU repeated inside the upload, earlier ones
     count as skipped;
  4. matches rows to existing products by SKU only; rows without SKU are
     always inserted;
  5. updates a matched product only when name, price or (a supplied) image
     differ, otherwise counts it as skipped;
  6. inserts new rows in bulk, updates matches one by one, turning a failed
     update into a row error.
"""

import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from taphoa.errors import ValidationFailed
from taphoa.models import DEFAULT_UNIT, Category, Product, utcnow

logger = logging.getLogger("taphoa.importer")

EXCEL_EXTENSIONS = (".xlsx", ".xls")
EXCEL_CONTENT_TYPES = (
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
)
XLSX_CONTENT_TYPE = EXCEL_CONTENT_TYPES[0]
SHEET_NAME = "Sản phẩm"
TEMPLATE_FILENAME = "template_san_pham.xlsx"
EXPORT_FILENAME = "san_pham.xlsx"

Record = Dict[str, Any]


class RowError(ValueError):
    """A single spreadsheet row cannot be imported."""


@dataclass
class ImportRow:
    row_number: int
    name: str
    price: float
    sale_price: Optional[float] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    category_name: Optional[str] = None
    stock_quantity: int = 0
    unit: str = DEFAULT_UNIT
    sku: Optional[str] = None
    category_id: Optional[str] = None


@dataclass
class ImportResult:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    created_categories: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return f"Đã import {self.inserted} sản phẩm mới, cập nhật {self.updated} sản phẩm"


# ============================================================================
# Cell normalisation
# ============================================================================

def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float):
        if value != value:  # NaN
            return None
        if value.is_integer():
            value = int(value)
    text = str(value).strip()
    return text or None


def _number(value: Any) -> Optional[float]:
    """Parse a price cell; None when empty. Raises ValueError on garbage."""
    text = _text(value)
    if text is None:
        return None
    return float(text.replace(",", "").replace(" ", ""))


def _int(value: Any, default: int = 0) -> int:
    try:
        number = _number(value)
    except ValueError:
        return default
    return int(number) if number is not None else default


def _capitalize_first(name: str) -> str:
    name = name.strip()
    return name[:1].upper() + name[1:]


# ============================================================================
# Spreadsheet layouts
# ============================================================================

class ImportFormat:
    """A spreadsheet layout: which header identifies it and where each field lives."""

    name: str = ""
    signature: str = ""
    columns: Dict[str, str] = {}

    def matches(self, headers: Iterable[str]) -> bool:
        return self.signature in set(headers)

    @property
    def headers(self) -> List[str]:
        return list(self.columns.values())

    def cell(self, record: Record, field_name: str) -> Any:
        header = self.columns.get(field_name)
        return record.get(header) if header else None

    def category_name(self, record: Record) -> Optional[str]:
        return _text(self.cell(record, "category"))

    def image_url(self, record: Record) -> Optional[str]:
        return _text(self.cell(record, "image_url"))

    def parse(self, row_number: int, record: Record) -> ImportRow:
        name = _text(self.cell(record, "name"))
        raw_price = self.cell(record, "price")
        if not name or _text(raw_price) is None:
            raise RowError(f"Hàng {row_number}: Thiếu tên sản phẩm hoặc giá")
        try:
            price = _number(raw_price)
            sale_price = _number(self.cell(record, "sale_price"))
        except ValueError:
            raise RowError(f"Hàng {row_number}: Giá không hợp lệ")
        return ImportRow(
            row_number=row_number,
            name=name,
            price=price,
            sale_price=sale_price,
            description=_text(self.cell(record, "description")),
            image_url=self.image_url(record),
            category_name=self.category_name(record),
            stock_quantity=max(_int(self.cell(record, "stock_quantity")), 0),
            unit=_text(self.cell(record, "unit")) or DEFAULT_UNIT,
            sku=_text(self.cell(record, "sku")),
        )


class NativeTemplateFormat(ImportFormat):
    name = "native"
    signature = "Tên sản phẩm"
    columns = {
        "name": "Tên sản phẩm",
        "description": "Mô tả",
        "price": "Giá",
        "sale_price": "Giá khuyến mãi",
        "category": "Danh mục",
        "stock_quantity": "Số lượng",
        "unit": "Đơn vị",
        "image_url": "Link ảnh",
        "sku": "Mã SKU",
    }


class PosExportFormat(ImportFormat):
    """Point-of-sale product export: category paths "A>>B>>C", comma separated image URLs."""

    name = "pos"
    signature = "Mã hàng"
    columns = {
        "sku": "Mã hàng",
        "name": "Tên hàng",
        "category": "Nhóm hàng(3 Cấp)",
        "price": "Giá bán",
        "stock_quantity": "Tồn kho",
        "unit": "ĐVT",
        "image_url": "Hình ảnh (url1,url2...)",
        "description": "Mô tả",
    }

    def category_name(self, record: Record) -> Optional[str]:
        path = super().category_name(record)
        if not path:
            return None
        return _text(path.split(">>")[-1])

    def image_url(self, record: Record) -> Optional[str]:
        urls = super().image_url(record)
        if not urls:
            return None
        return _text(urls.split(",")[0])


NATIVE_TEMPLATE = NativeTemplateFormat()
POS_EXPORT = PosExportFormat()
FORMATS: Tuple[ImportFormat, ...] = (POS_EXPORT, NATIVE_TEMPLATE)


def detect_format(headers: Iterable[str]) -> ImportFormat:
    headers = [str(h).strip() for h in headers]
    for fmt in FORMATS:
        if fmt.matches(headers):
            return fmt
    raise ValidationFailed("Không nhận dạng được định dạng file")


# ============================================================================
# Workbook I/O
# ============================================================================

def validate_excel_upload(filename: Optional[str], content_type: Optional[str], size: int, max_bytes: int) -> None:
    name = (filename or "").lower()
    if not name.endswith(EXCEL_EXTENSIONS) and content_type not in EXCEL_CONTENT_TYPES:
        raise ValidationFailed("Chỉ chấp nhận file Excel (.xlsx, .xls)")
    if size > max_bytes:
        raise ValidationFailed(f"File quá lớn (tối đa {max_bytes // (1024 * 1024)}MB)")


def read_workbook(content: bytes) -> Tuple[List[str], List[Tuple[int, Record]]]:
    """First sheet as (headers, [(spreadsheet_row_number, record)]); blank rows dropped."""
    try:
        frame = pd.read_excel(io.BytesIO(content), sheet_name=0, dtype=object)
    except Exception as e:
        logger.info("importer: method=read_workbook result=error error=%s", e)
        raise ValidationFailed("Không đọc được file Excel") from e
    frame.columns = [str(c).strip() for c in frame.columns]
    frame = frame.dropna(how="all")
    frame = frame.astype(object).where(pd.notna(frame), None)
    records = frame.to_dict(orient="records")
    # header is spreadsheet row 1
    numbered = [(int(index) + 2, record) for index, record in zip(frame.index, records)]
    return list(frame.columns), numbered


def write_workbook(rows: List[Record], columns: List[str]) -> bytes:
    buffer = io.BytesIO()
    frame = pd.DataFrame(rows, columns=columns)
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        frame.to_excel(writer, index=False, sheet_name=SHEET_NAME)
    return buffer.getvalue()


TEMPLATE_ROW = {
    "Tên sản phẩm": "Mì tôm Hảo Hảo",
    "Mô tả": "Mì ăn liền vị tôm chua cay",
    "Giá": 5000,
    "Giá khuyến mãi": 4500,
    "Danh mục": "Thực phẩm khô",
    "Số lượng": 100,
    "Đơn vị": "gói",
    "Link ảnh": "https://example.com/image.jpg",
    "Mã SKU": "SP001",
}


def build_template() -> bytes:
    return write_workbook([TEMPLATE_ROW], NATIVE_TEMPLATE.headers)


def export_products(db: Session) -> bytes:
    """Whole catalog in the native template layout, re-importable as is."""
    columns = NATIVE_TEMPLATE.columns
    rows = []
    for product in db.query(Product).order_by(Product.name.asc()).all():
        rows.append({
            columns["name"]: product.name,
            columns["description"]: product.description,
            columns["price"]: float(product.price),
            columns["sale_price"]: float(product.sale_price) if product.sale_price is not None else None,
            columns["category"]: product.category.name if product.category else None,
            columns["stock_quantity"]: product.stock_quantity,
            columns["unit"]: product.unit,
            columns["image_url"]: product.image_url,
            columns["sku"]: product.sku,
        })
    return write_workbook(rows, NATIVE_TEMPLATE.headers)


# ============================================================================
# Reconciliation
# ============================================================================

def _differs(current: Product, row: ImportRow) -> bool:
    if current.name != row.name:
        return True
    if float(current.price) != row.price:
        return True
    return row.image_url is not None and row.image_url != current.image_url


def _new_product(row: ImportRow) -> Product:
    return Product(
        name=row.name,
        description=row.description,
        price=row.price,
        sale_price=row.sale_price,
        image_url=row.image_url,
        category_id=row.category_id,
        stock_quantity=row.stock_quantity,
        unit=row.unit,
        sku=row.sku,
    )


def _ensure_categories(db: Session, rows: List[ImportRow], result: ImportResult) -> None:
    """Resolve every row's category id, creating unseen names in one batch."""
    category_ids = {name.lower(): cid for cid, name in db.query(Category.id, Category.name).all()}
    missing: Dict[str, str] = {}
    for row in rows:
        if row.category_name:
            key = row.category_name.lower()
            if key not in category_ids and key not in missing:
                missing[key] = _capitalize_first(row.category_name)
    if missing:
        created = [Category(name=name) for name in missing.values()]
        db.add_all(created)
        db.flush()
        for category in created:
            category_ids[category.name.lower()] = category.id
        result.created_categories = [c.name for c in created]
    for row in rows:
        if row.category_name:
            row.category_id = category_ids.get(row.category_name.lower())


def reconcile(db: Session, fmt: ImportFormat, records: List[Tuple[int, Record]]) -> ImportResult:
    result = ImportResult()

    rows: List[ImportRow] = []
    for row_number, record in records:
        try:
            rows.append(fmt.parse(row_number, record))
        except RowError as e:
            result.errors.append(str(e))

    _ensure_categories(db, rows, result)

    latest_by_sku: Dict[str, ImportRow] = {}
    for row in rows:
        if row.sku:
            latest_by_sku[row.sku] = row
    candidates = []
    for row in rows:
        if row.sku and latest_by_sku[row.sku] is not row:
            result.skipped += 1
            continue
        candidates.append(row)

    existing: Dict[str, Product] = {}
    if latest_by_sku:
        matches = db.query(Product).filter(Product.sku.in_(list(latest_by_sku))).all()
        existing = {p.sku: p for p in matches}

    to_insert: List[ImportRow] = []
    to_update: List[Tuple[Product, ImportRow]] = []
    for row in candidates:
        current = existing.get(row.sku) if row.sku else None
        if current is None:
            to_insert.append(row)
        elif _differs(current, row):
            to_update.append((current, row))
        else:
            result.skipped += 1

    try:
        db.add_all([_new_product(row) for row in to_insert])
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    result.inserted = len(to_insert)

    for current, row in to_update:
        try:
            current.name = row.name
            current.price = row.price
            if row.image_url is not None:
                current.image_url = row.image_url
            if row.category_id:
                current.category_id = row.category_id
            current.updated_at = utcnow()
            db.commit()
            result.updated += 1
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("importer: method=update sku=%s result=error error=%s", row.sku, e)
            result.errors.append(f"Hàng {row.row_number}: Không thể cập nhật sản phẩm {row.sku}")

    logger.info(
        "importer: method=reconcile format=%s inserted=%s updated=%s skipped=%s errors=%s new_categories=%s",
        fmt.name, result.inserted, result.updated, result.skipped, len(result.errors), len(result.created_categories),
    )
    return result


def import_products(db: Session, content: bytes) -> ImportResult:
    headers, records = read_workbook(content)
    if not records:
        raise ValidationFailed("File Excel trống")
    fmt = detect_format(headers)
    return reconcile(db, fmt, records)
