"""
Tests for the Excel import, the import template and the catalog export.
"""

import io

import pandas as pd
import pytest

from taphoa import importer
from taphoa.errors import ValidationFailed
from taphoa.models import Category, Product

NATIVE_COLUMNS = importer.NATIVE_TEMPLATE.headers
POS_COLUMNS = importer.POS_EXPORT.headers


def workbook(rows, columns):
    buffer = io.BytesIO()
    pd.DataFrame(rows, columns=columns).to_excel(buffer, index=False)
    return buffer.getvalue()


def native_row(name, price, sku=None, **extra):
    row = {"Tên sản phẩm": name, "Giá": price, "Mã SKU": sku}
    row.update(extra)
    return row


class TestFormatDetection:
    def test_native(self):
        assert importer.detect_format(NATIVE_COLUMNS) is importer.NATIVE_TEMPLATE

    def test_pos(self):
        assert importer.detect_format(POS_COLUMNS) is importer.POS_EXPORT

    def test_pos_checked_first(self):
        assert importer.detect_format(["Tên sản phẩm", "Mã hàng"]) is importer.POS_EXPORT

    def test_unknown(self):
        with pytest.raises(ValidationFailed, match="Không nhận dạng được định dạng file"):
            importer.detect_format(["Cột A", "Cột B"])


class TestNativeImport:
    def test_inserts_with_defaults_and_new_categories(self, db):
        content = workbook([
            native_row("Mì Hảo Hảo", 5000, "MI01", **{"Danh mục": "thực phẩm khô", "Số lượng": 100, "Đơn vị": "gói"}),
            native_row("Nước mắm", 30000, "NM01", **{"Danh mục": "Gia vị"}),
            native_row("Muối", 4000),
        ], NATIVE_COLUMNS)

        result = importer.import_products(db, content)

        assert (result.inserted, result.updated, result.skipped, result.errors) == (3, 0, 0, [])
        assert sorted(result.created_categories) == ["Gia vị", "Thực phẩm khô"]
        noodles = db.query(Product).filter(Product.sku == "MI01").one()
        assert noodles.category.name == "Thực phẩm khô"
        assert noodles.stock_quantity == 100
        assert noodles.unit == "gói"
        salt = db.query(Product).filter(Product.name == "Muối").one()
        assert salt.unit == "cái"
        assert salt.stock_quantity == 0
        assert salt.sku is None

    def test_existing_category_matched_case_insensitively(self, db, category):
        content = workbook([native_row("Trà đá", 3000, **{"Danh mục": "ĐỒ UỐNG"})], NATIVE_COLUMNS)
        result = importer.import_products(db, content)
        assert result.created_categories == []
        assert db.query(Product).one().category_id == category.id

    def test_row_errors_use_spreadsheet_numbers(self, db):
        content = workbook([
            native_row("Hợp lệ", 1000),
            native_row("Thiếu giá", None),
            native_row(None, 2000),
            native_row("Giá chữ", "mười nghìn"),
        ], NATIVE_COLUMNS)

        result = importer.import_products(db, content)

        assert result.inserted == 1
        assert result.errors == [
            "Hàng 3: Thiếu tên sản phẩm hoặc giá",
            "Hàng 4: Thiếu tên sản phẩm hoặc giá",
            "Hàng 5: Giá không hợp lệ",
        ]

    def test_rows_without_sku_always_inserted(self, db):
        content = workbook([native_row("Kẹo", 500)], NATIVE_COLUMNS)
        importer.import_products(db, content)
        importer.import_products(db, content)
        assert db.query(Product).filter(Product.name == "Kẹo").count() == 2

    def test_duplicate_sku_last_row_wins(self, db):
        content = workbook([
            native_row("Bản cũ", 1000, "DUP"),
            native_row("Bản giữa", 1500, "DUP"),
            native_row("Bản mới", 2000, "DUP"),
        ], NATIVE_COLUMNS)
        result = importer.import_products(db, content)
        assert (result.inserted, result.skipped) == (1, 2)
        product = db.query(Product).filter(Product.sku == "DUP").one()
        assert product.name == "Bản mới"
        assert product.price == 2000

    def test_existing_sku_updated_only_when_changed(self, db, make_product, category):
        make_product(name="Sữa", price=10000, sku="SUA", image_url="http://img/old.jpg", stock_quantity=7)
        make_product(name="Bơ", price=50000, sku="BO", image_url="http://img/bo.jpg")
        make_product(name="Phô mai", price=60000, sku="PM")

        content = workbook([
            native_row("Sữa tươi", 12000, "SUA", **{"Danh mục": "Đồ uống"}),
            native_row("Bơ", 50000, "BO"),
            native_row("Phô mai", 60000, "PM", **{"Link ảnh": "http://img/pm.jpg"}),
        ], NATIVE_COLUMNS)

        result = importer.import_products(db, content)

        assert (result.inserted, result.updated, result.skipped) == (0, 2, 1)
        db.expire_all()
        milk = db.query(Product).filter(Product.sku == "SUA").one()
        assert (milk.name, milk.price, milk.image_url) == ("Sữa tươi", 12000, "http://img/old.jpg")
        assert milk.category_id == category.id
        assert milk.stock_quantity == 7
        cheese = db.query(Product).filter(Product.sku == "PM").one()
        assert cheese.image_url == "http://img/pm.jpg"
        assert db.query(Product).filter(Product.sku == "BO").one().image_url == "http://img/bo.jpg"

    def test_empty_workbook(self, db):
        with pytest.raises(ValidationFailed, match="File Excel trống"):
            importer.import_products(db, workbook([], NATIVE_COLUMNS))

    def test_unreadable_file(self, db):
        with pytest.raises(ValidationFailed, match="Không đọc được file Excel"):
            importer.import_products(db, b"not a spreadsheet")


class TestPosImport:
    def test_category_path_and_first_image(self, db):
        content = workbook([{
            "Mã hàng": "8934563138165",
            "Tên hàng": "Mì Omachi",
            "Nhóm hàng(3 Cấp)": "Thực phẩm>>Đồ khô>>mì gói",
            "Giá bán": 8000,
            "Tồn kho": 24,
            "ĐVT": "gói",
            "Hình ảnh (url1,url2...)": "http://img/a.jpg,http://img/b.jpg",
            "Mô tả": "Mì khoai tây",
        }], POS_COLUMNS)

        result = importer.import_products(db, content)

        assert result.inserted == 1
        assert result.created_categories == ["Mì gói"]
        product = db.query(Product).one()
        assert product.sku == "8934563138165"
        assert product.image_url == "http://img/a.jpg"
        assert product.stock_quantity == 24
        assert product.category.name == "Mì gói"
        assert db.query(Category).count() == 1


class TestTemplateAndExport:
    def test_template_has_one_example_row(self):
        frame = pd.read_excel(io.BytesIO(importer.build_template()))
        assert list(frame.columns) == NATIVE_COLUMNS
        assert len(frame) == 1

    def test_export_reimports_as_unchanged(self, db, make_product, category):
        make_product(name="Cà phê", price=25000, sale_price=20000, sku="CF", category_id=category.id)
        make_product(name="Trà", price=8000, sku="TRA")

        result = importer.import_products(db, importer.export_products(db))

        assert (result.inserted, result.updated, result.skipped) == (0, 0, 2)
        assert result.created_categories == []


class TestUploadValidation:
    def test_rejects_non_excel(self):
        with pytest.raises(ValidationFailed, match="Chỉ chấp nhận file Excel"):
            importer.validate_excel_upload("anh.png", "image/png", 10, 1024)

    def test_rejects_large(self):
        with pytest.raises(ValidationFailed, match="File quá lớn"):
            importer.validate_excel_upload("sp.xlsx", importer.XLSX_CONTENT_TYPE, 2048, 1024)

    def test_accepts_xls_by_extension(self):
        importer.validate_excel_upload("SP.XLS", "application/octet-stream", 10, 1024)


class TestImportEndpoints:
    def test_upload(self, client, admin_headers, cache):
        cache.set("/api/categories", [])
        cache.set("/api/products", {})
        content = workbook([native_row("Bánh quy", 12000, "BQ", **{"Danh mục": "Bánh kẹo"})], NATIVE_COLUMNS)
        response = client.post(
            "/api/admin/products/import",
            headers=admin_headers,
            files={"file": ("san_pham.xlsx", content, importer.XLSX_CONTENT_TYPE)},
        )
        assert response.status_code == 200
        data = response.json()
        assert (data["inserted"], data["updated"], data["skipped"], data["errors"]) == (1, 0, 0, [])
        assert data["message"] == "Đã import 1 sản phẩm mới, cập nhật 0 sản phẩm"
        assert len(cache) == 0

    def test_missing_file(self, client, admin_headers):
        response = client.post("/api/admin/products/import", headers=admin_headers)
        assert response.status_code == 400
        assert response.json() == {"error": "Vui lòng chọn file Excel"}

    def test_wrong_type(self, client, admin_headers):
        response = client.post(
            "/api/admin/products/import",
            headers=admin_headers,
            files={"file": ("ghi_chu.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Chỉ chấp nhận file Excel (.xlsx, .xls)"}

    def test_template_download(self, client, admin_headers):
        response = client.get("/api/admin/products/import-template", headers=admin_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith(importer.XLSX_CONTENT_TYPE)
        assert "template_san_pham.xlsx" in response.headers["content-disposition"]
        assert list(pd.read_excel(io.BytesIO(response.content)).columns) == NATIVE_COLUMNS

    def test_export_download(self, client, admin_headers, make_product):
        make_product(name="Gạo ST25", price=35000, sku="ST25")
        response = client.get("/api/admin/products/export", headers=admin_headers)
        assert response.status_code == 200
        frame = pd.read_excel(io.BytesIO(response.content))
        assert frame["Tên sản phẩm"].tolist() == ["Gạo ST25"]


class TestReconciliationScenarios:
    def test_row_without_sku_duplicates_on_reimport(self, db):
        content = workbook([native_row("Mì tôm", 5000)], NATIVE_COLUMNS)
        first = importer.import_products(db, content)
        second = importer.import_products(db, content)
        assert (first.inserted, second.inserted, second.updated) == (1, 1, 0)
        assert db.query(Product).filter(Product.name == "Mì tôm").count() == 2

    def test_identical_sku_skipped_then_price_change_updates(self, db, make_product):
        make_product(name="X", price=1000, sku="A1")

        same = importer.import_products(db, workbook([native_row("X", 1000, "A1")], NATIVE_COLUMNS))
        assert (same.inserted, same.updated, same.skipped) == (0, 0, 1)

        changed = importer.import_products(db, workbook([native_row("X", 1200, "A1")], NATIVE_COLUMNS))
        assert (changed.inserted, changed.updated) == (0, 1)
        db.expire_all()
        assert db.query(Product).filter(Product.sku == "A1").one().price == 1200
