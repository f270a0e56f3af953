"""Tests for the product service.

Runs against the in-memory database from conftest.
"""

import io
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from openpyxl import Workbook
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.catalog.exceptions import (
    EmptyInputError,
    InvalidArgumentError,
    InvalidReferenceError,
    NotFoundError,
    UnsupportedFormatError,
)
from app.catalog.importer import XLSX_MIMETYPE, FileUpload
from app.catalog.models import Attribute, Category, ProductAttribute, Restock, StockMovement
from app.catalog.service import AttributeAssignment, ProductService, normalize_product_data
from app.infrastructure.config import settings


def value_ids(attribute: Attribute) -> dict[str, str]:
    """Map value label to id."""
    return {v.value: v.id for v in attribute.values}


async def count_rows(session: AsyncSession, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


def csv_upload(text: str) -> FileUpload:
    return FileUpload(mimetype="text/csv", buffer=text.encode("utf-8"))


class TestNormalizeProductData:
    """Tests for field validation and coercion."""

    def test_coerces_loose_values(self) -> None:
        clean = normalize_product_data(
            {"name": " Mug ", "price": "9.99", "stock": "10.0", "isNew": "yes", "images": "a.jpg, b.jpg"}
        )
        assert clean == {
            "name": "Mug",
            "price": Decimal("9.99"),
            "stock": 10,
            "is_new": True,
            "images": ["a.jpg", "b.jpg"],
        }

    def test_zero_counts_as_present(self) -> None:
        """Zero stock is a value, not a missing field."""
        clean = normalize_product_data(
            {"name": "Mug", "price": "0", "stock": "0"}, required=("name", "price", "stock")
        )
        assert clean["stock"] == 0
        assert clean["price"] == Decimal("0")

    def test_missing_required(self) -> None:
        with pytest.raises(InvalidArgumentError) as exc_info:
            normalize_product_data({"name": "Mug", "price": ""}, required=("name", "price"))
        assert exc_info.value.details == {"missing": ["price"]}

    def test_unknown_field(self) -> None:
        with pytest.raises(InvalidArgumentError, match="Unknown field 'colour'"):
            normalize_product_data({"name": "Mug", "colour": "red"})

    def test_unknown_field_ignored_when_asked(self) -> None:
        clean = normalize_product_data({"name": "Mug", "colour": "red"}, ignore_unknown=True)
        assert clean == {"name": "Mug"}

    def test_upper_case_keys(self) -> None:
        assert normalize_product_data({"SKU": "MUG-1"}) == {"sku": "MUG-1"}

    def test_numeric_images_value(self) -> None:
        assert normalize_product_data({"images": 5}) == {"images": ["5"]}

    @pytest.mark.parametrize(
        "data",
        [
            {"price": "-1"},
            {"stock": "-5"},
            {"discount": "150"},
            {"stock": "2.5"},
            {"price": "abc"},
            {"isFeatured": "perhaps"},
        ],
    )
    def test_invalid_values(self, data) -> None:
        with pytest.raises(InvalidArgumentError):
            normalize_product_data(data)


class TestCreateProduct:
    """Tests for product creation."""

    @pytest.mark.asyncio
    async def test_create_with_attributes(
        self, service: ProductService, color: Attribute, size: Attribute
    ) -> None:
        """One association is stored per value, none given stores one bare."""
        ids = value_ids(color)
        product = await service.create_product(
            {"name": "Blue Mug", "price": "9.99", "stock": 10},
            attributes=[
                AttributeAssignment(attribute_id=color.id, value_ids=[ids["Red"], ids["Blue"]]),
                AttributeAssignment(attribute_id=size.id, custom_value="12oz"),
            ],
        )

        assert product.slug == "blue-mug"
        assert product.price == Decimal("9.99")
        assert product.stock == 10
        assert len(product.attributes) == 3

        color_values = {a.value_id for a in product.attributes if a.attribute_id == color.id}
        assert color_values == {ids["Red"], ids["Blue"]}

        [size_assignment] = [a for a in product.attributes if a.attribute_id == size.id]
        assert size_assignment.value_id is None
        assert size_assignment.custom_value == "12oz"

    @pytest.mark.asyncio
    async def test_create_logs_no_movement(self, service: ProductService) -> None:
        product = await service.create_product({"name": "Mug", "price": "5", "stock": 10})
        assert await service.get_stock_movements(product.id) == []

    @pytest.mark.asyncio
    async def test_slug_collisions_get_suffix(self, service: ProductService) -> None:
        first = await service.create_product({"name": "Blue Mug", "price": "1"})
        second = await service.create_product({"name": "Blue Mug", "price": "1"})
        third = await service.create_product({"name": "Blue  Mug!!", "price": "1"})

        assert [first.slug, second.slug, third.slug] == ["blue-mug", "blue-mug-2", "blue-mug-3"]

    @pytest.mark.asyncio
    async def test_name_without_alphanumerics(self, service: ProductService) -> None:
        product = await service.create_product({"name": "???", "price": "1"})
        assert product.slug == "product"

    @pytest.mark.asyncio
    async def test_unknown_attribute_writes_nothing(
        self, service: ProductService, session: AsyncSession
    ) -> None:
        with pytest.raises(InvalidReferenceError) as exc_info:
            await service.create_product(
                {"name": "Mug", "price": "1"},
                attributes=[AttributeAssignment(attribute_id="missing-attribute")],
            )

        assert exc_info.value.details["missing_ids"] == ["missing-attribute"]
        assert await count_rows(session, ProductAttribute) == 0
        assert await service.products.count_products() == 0

    @pytest.mark.asyncio
    async def test_unknown_value_rejected(
        self, service: ProductService, color: Attribute
    ) -> None:
        with pytest.raises(InvalidReferenceError):
            await service.create_product(
                {"name": "Mug", "price": "1"},
                attributes=[AttributeAssignment(attribute_id=color.id, value_id="nope")],
            )
        assert await service.products.count_products() == 0

    @pytest.mark.asyncio
    async def test_value_of_other_attribute_rejected(
        self, service: ProductService, color: Attribute, size: Attribute
    ) -> None:
        with pytest.raises(InvalidArgumentError, match="does not belong"):
            await service.create_product(
                {"name": "Mug", "price": "1"},
                attributes=[
                    AttributeAssignment(attribute_id=color.id, value_id=value_ids(size)["S"])
                ],
            )
        assert await service.products.count_products() == 0

    @pytest.mark.asyncio
    async def test_unknown_category_rejected(self, service: ProductService) -> None:
        with pytest.raises(InvalidReferenceError) as exc_info:
            await service.create_product({"name": "Mug", "price": "1", "categoryId": "nope"})
        assert exc_info.value.details["entity_type"] == "category"

    @pytest.mark.asyncio
    async def test_category_assigned(self, service: ProductService, category: Category) -> None:
        product = await service.create_product(
            {"name": "Mug", "price": "1", "category_id": category.id}
        )
        assert product.category_id == category.id

    @pytest.mark.asyncio
    async def test_price_required(self, service: ProductService) -> None:
        with pytest.raises(InvalidArgumentError):
            await service.create_product({"name": "Mug"})


class TestUpdateProduct:
    """Tests for product updates."""

    @pytest.mark.asyncio
    async def test_attributes_replaced(
        self, service: ProductService, color: Attribute
    ) -> None:
        ids = value_ids(color)
        product = await service.create_product(
            {"name": "Mug", "price": "1"},
            attributes=[AttributeAssignment(attribute_id=color.id, value_ids=[ids["Red"], ids["Blue"]])],
        )

        updated = await service.update_product(
            product.id,
            {},
            attributes=[AttributeAssignment(attribute_id=color.id, value_id=ids["Blue"])],
        )

        assert [a.value_id for a in updated.attributes] == [ids["Blue"]]

    @pytest.mark.asyncio
    async def test_attributes_left_alone_when_not_given(
        self, service: ProductService, color: Attribute
    ) -> None:
        product = await service.create_product(
            {"name": "Mug", "price": "1"},
            attributes=[AttributeAssignment(attribute_id=color.id)],
        )

        updated = await service.update_product(product.id, {"description": "Ceramic"})

        assert updated.description == "Ceramic"
        assert len(updated.attributes) == 1

    @pytest.mark.asyncio
    async def test_empty_list_clears_attributes(
        self, service: ProductService, color: Attribute
    ) -> None:
        product = await service.create_product(
            {"name": "Mug", "price": "1"},
            attributes=[AttributeAssignment(attribute_id=color.id)],
        )

        updated = await service.update_product(product.id, {}, attributes=[])

        assert updated.attributes == []

    @pytest.mark.asyncio
    async def test_slug_kept_on_rename(self, service: ProductService) -> None:
        product = await service.create_product({"name": "Blue Mug", "price": "1"})
        updated = await service.update_product(product.id, {"name": "Green Mug"})
        assert updated.name == "Green Mug"
        assert updated.slug == "blue-mug"

    @pytest.mark.asyncio
    async def test_stock_change_logged_as_adjustment(self, service: ProductService) -> None:
        product = await service.create_product({"name": "Mug", "price": "1", "stock": 10})

        await service.update_product(product.id, {"stock": 7})

        [movement] = await service.get_stock_movements(product.id)
        assert movement.quantity == -3
        assert movement.reason == "adjustment"

    @pytest.mark.asyncio
    async def test_stock_read_locks_row(self, service: ProductService) -> None:
        """The stock the adjustment is computed from is read under a row lock."""
        product = await service.create_product({"name": "Mug", "price": "1", "stock": 10})
        find = AsyncMock(wraps=service.products.find_product_by_id)
        service.products.find_product_by_id = find

        await service.update_product(product.id, {"stock": 12})

        find.assert_any_await(product.id, for_update=True)

    @pytest.mark.asyncio
    async def test_bad_reference_keeps_product_unchanged(
        self, service: ProductService, color: Attribute
    ) -> None:
        product = await service.create_product(
            {"name": "Mug", "price": "1"},
            attributes=[AttributeAssignment(attribute_id=color.id)],
        )
        product_id = product.id

        with pytest.raises(InvalidReferenceError):
            await service.update_product(
                product_id,
                {"price": "2"},
                attributes=[AttributeAssignment(attribute_id="missing")],
            )

        unchanged = await service.get_product_by_id(product_id)
        assert unchanged.price == Decimal("1")
        assert len(unchanged.attributes) == 1

    @pytest.mark.asyncio
    async def test_update_missing_product(self, service: ProductService) -> None:
        with pytest.raises(NotFoundError):
            await service.update_product("missing", {"price": "2"})


class TestRestockProduct:
    """Tests for restocking."""

    @pytest.mark.asyncio
    async def test_restock(self, service: ProductService, session: AsyncSession) -> None:
        product = await service.create_product({"name": "Mug", "price": "1", "stock": 10})

        restock = await service.restock_product(product.id, 5, notes="weekly", user_id="u1")

        assert restock.quantity == 5
        assert restock.notes == "weekly"
        assert (await service.get_product_by_id(product.id)).stock == 15

        [movement] = await service.get_stock_movements(product.id)
        assert movement.quantity == 5
        assert movement.reason == "restock"
        assert movement.user_id == "u1"
        assert await count_rows(session, Restock) == 1

    @pytest.mark.asyncio
    async def test_restock_is_atomic(
        self, service: ProductService, session: AsyncSession
    ) -> None:
        """A failure while logging the movement undoes the restock and the stock change."""
        product = await service.create_product({"name": "Mug", "price": "1", "stock": 10})
        product_id = product.id
        service.products.create_stock_movement = AsyncMock(side_effect=RuntimeError("log failed"))

        with pytest.raises(RuntimeError, match="log failed"):
            await service.restock_product(product_id, 5)

        assert (await service.get_product_by_id(product_id)).stock == 10
        assert await count_rows(session, Restock) == 0
        assert await count_rows(session, StockMovement) == 0

    @pytest.mark.parametrize("quantity", [0, -3])
    @pytest.mark.asyncio
    async def test_non_positive_quantity(self, service: ProductService, quantity: int) -> None:
        product = await service.create_product({"name": "Mug", "price": "1", "stock": 10})

        with pytest.raises(InvalidArgumentError, match="Quantity must be positive"):
            await service.restock_product(product.id, quantity)

        assert (await service.get_product_by_id(product.id)).stock == 10

    @pytest.mark.asyncio
    async def test_restock_missing_product(
        self, service: ProductService, session: AsyncSession
    ) -> None:
        with pytest.raises(NotFoundError):
            await service.restock_product("missing", 5)
        assert await count_rows(session, Restock) == 0


class TestBulkCreateProducts:
    """Tests for bulk import."""

    @pytest.mark.asyncio
    async def test_imports_all_rows(self, service: ProductService) -> None:
        result = await service.bulk_create_products(
            csv_upload("name,price,stock,isNew\nBlue Mug,9.99,10,true\nRed Mug,8,0,\nPlate,4.5,3,no\n")
        )

        assert result.count == 3
        assert await service.products.count_products() == 3
        mug = await service.get_product_by_slug("blue-mug")
        assert mug.is_new is True
        assert mug.price == Decimal("9.99")

    @pytest.mark.asyncio
    async def test_one_invalid_row_rejects_file(self, service: ProductService) -> None:
        upload = csv_upload("name,price,stock\nA,1,1\nB,2,2\nC,3,3\nD,,4\n")

        with pytest.raises(InvalidArgumentError) as exc_info:
            await service.bulk_create_products(upload)

        assert "row 4" in exc_info.value.message
        assert exc_info.value.details == {"missing": ["price"]}
        assert await service.products.count_products() == 0

    @pytest.mark.asyncio
    async def test_duplicate_names_get_distinct_slugs(self, service: ProductService) -> None:
        await service.create_product({"name": "Mug", "price": "1"})

        result = await service.bulk_create_products(
            csv_upload("name,price,stock\nMug,1,1\nMug,2,2\n")
        )

        assert result.slugs == ["mug-2", "mug-3"]

    @pytest.mark.asyncio
    async def test_unknown_category_rejects_file(
        self, service: ProductService, category: Category
    ) -> None:
        upload = csv_upload(
            f"name,price,stock,category_id\nA,1,1,{category.id}\nB,1,1,missing\n"
        )

        with pytest.raises(InvalidReferenceError) as exc_info:
            await service.bulk_create_products(upload)

        assert exc_info.value.details["missing_ids"] == ["missing"]
        assert await service.products.count_products() == 0

    @pytest.mark.asyncio
    async def test_extra_columns_ignored(self, service: ProductService) -> None:
        """Columns that are not product fields are skipped, upper-case headers map."""
        result = await service.bulk_create_products(
            csv_upload("Unnamed: 0,name,price,stock,SKU,notes\n0,Mug,1,1,MUG-1,hello\n")
        )

        assert result.count == 1
        mug = await service.get_product_by_slug("mug")
        assert mug.sku == "MUG-1"

    @pytest.mark.asyncio
    async def test_xlsx_numeric_images_cell(self, service: ProductService) -> None:
        """A bare number in the images column is read as one image name."""
        workbook = Workbook()
        sheet = workbook.active
        sheet.append(["name", "price", "stock", "images"])
        sheet.append(["Mug", 1, 1, 5])
        buffer = io.BytesIO()
        workbook.save(buffer)

        result = await service.bulk_create_products(
            FileUpload(mimetype=XLSX_MIMETYPE, buffer=buffer.getvalue())
        )

        assert result.count == 1
        assert (await service.get_product_by_slug("mug")).images == ["5"]

    @pytest.mark.asyncio
    async def test_no_upload(self, service: ProductService) -> None:
        with pytest.raises(EmptyInputError):
            await service.bulk_create_products(None)

    @pytest.mark.asyncio
    async def test_header_only(self, service: ProductService) -> None:
        with pytest.raises(EmptyInputError):
            await service.bulk_create_products(csv_upload("name,price,stock\n"))

    @pytest.mark.asyncio
    async def test_unsupported_format(self, service: ProductService) -> None:
        with pytest.raises(UnsupportedFormatError):
            await service.bulk_create_products(
                FileUpload(mimetype="application/json", buffer=b"[]")
            )

    @pytest.mark.asyncio
    async def test_file_too_large(
        self, service: ProductService, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "max_upload_bytes", 10)
        with pytest.raises(InvalidArgumentError, match="too large"):
            await service.bulk_create_products(csv_upload("name,price,stock\nMug,1,1\n"))


class TestReadsAndDelete:
    """Tests for listing, lookup and deletion."""

    @pytest.fixture
    async def catalog(self, service: ProductService) -> None:
        for name, price, stock, featured in [
            ("Blue Mug", "9.99", 10, True),
            ("Red Mug", "12.50", 0, False),
            ("Dinner Plate", "4.00", 25, True),
        ]:
            await service.create_product(
                {"name": name, "price": price, "stock": stock, "is_featured": featured}
            )

    @pytest.mark.asyncio
    async def test_filter_and_sort(self, service: ProductService, catalog) -> None:
        page = await service.get_all_products({"price[gte]": "5", "sort": "-price"})

        assert [p.name for p in page.products] == ["Red Mug", "Blue Mug"]
        assert page.total_results == 2
        assert page.total_pages == 1
        assert page.has_next is False

    @pytest.mark.asyncio
    async def test_boolean_filter(self, service: ProductService, catalog) -> None:
        page = await service.get_all_products({"isFeatured": "true", "sort": "name"})
        assert [p.name for p in page.products] == ["Blue Mug", "Dinner Plate"]

    @pytest.mark.asyncio
    async def test_search(self, service: ProductService, catalog) -> None:
        page = await service.get_all_products({"search": "mug", "sort": "name"})
        assert [p.name for p in page.products] == ["Blue Mug", "Red Mug"]

    @pytest.mark.asyncio
    async def test_pagination(self, service: ProductService, catalog) -> None:
        page = await service.get_all_products({"sort": "name", "page": "2", "limit": "2"})

        assert [p.name for p in page.products] == ["Red Mug"]
        assert page.total_results == 3
        assert page.total_pages == 2
        assert page.current_page == 2
        assert page.results_per_page == 2

    @pytest.mark.asyncio
    async def test_projection(self, service: ProductService, catalog) -> None:
        page = await service.get_all_products({"fields": "name,price", "sort": "price"})

        assert page.select == ["id", "name", "price"]
        first = page.products[0].to_dict(fields=page.select)
        assert set(first) == {"id", "name", "price"}
        assert first["name"] == "Dinner Plate"
        assert first["price"] == 4.0

    @pytest.mark.asyncio
    async def test_empty_listing(self, service: ProductService) -> None:
        page = await service.get_all_products({})
        assert page.products == []
        assert page.total_results == 0
        assert page.total_pages == 0

    @pytest.mark.asyncio
    async def test_lookup_by_slug(self, service: ProductService, catalog) -> None:
        product = await service.get_product_by_slug("dinner-plate")
        assert product.name == "Dinner Plate"

        with pytest.raises(NotFoundError) as exc_info:
            await service.get_product_by_slug("teapot")
        assert exc_info.value.details == {"entity_type": "Product", "slug": "teapot"}

    @pytest.mark.asyncio
    async def test_delete_removes_history(
        self, service: ProductService, session: AsyncSession, color: Attribute
    ) -> None:
        product = await service.create_product(
            {"name": "Mug", "price": "1", "stock": 1},
            attributes=[AttributeAssignment(attribute_id=color.id)],
        )
        await service.restock_product(product.id, 4)

        await service.delete_product(product.id)

        with pytest.raises(NotFoundError):
            await service.get_product_by_id(product.id)
        assert await count_rows(session, ProductAttribute) == 0
        assert await count_rows(session, Restock) == 0
        assert await count_rows(session, StockMovement) == 0

    @pytest.mark.asyncio
    async def test_delete_missing(self, service: ProductService) -> None:
        with pytest.raises(NotFoundError):
            await service.delete_product("missing")
