"""
Catalog writes, per-size measurements and the allow_custom_measurements column.
"""

import io
import json
import os

import pytest
from PIL import Image
from sqlalchemy import text
from werkzeug.datastructures import FileStorage

from opsdesk.extensions import db
from opsdesk.models import ProductSize
from opsdesk.services import media_service, product_service
from opsdesk.validation import ConflictError, ValidationError


def new_product(**overrides):
    payload = {"name": "Oxford Shirt", "sku": "OX-1", "weight_grams": "250.4", "category": "Shirts, Cotton"}
    payload.update(overrides)
    return product_service.create_product(product_service.prepare_patch(payload, partial=False))


@pytest.fixture
def without_optional_column(db_session):
    """Simulate a database that has not run the allow_custom_measurements migration."""
    db_session.execute(text("ALTER TABLE products DROP COLUMN allow_custom_measurements"))
    db_session.commit()
    yield
    db_session.rollback()
    db_session.execute(text("ALTER TABLE products ADD COLUMN allow_custom_measurements BOOLEAN"))
    db_session.commit()


# =============================================================================
# PRODUCTS
# =============================================================================


class TestCreateProduct:

    def test_normalizes_payload(self, db_session):
        product = new_product()
        assert product.weight_grams == 250
        assert product.category == ["Shirts", "Cotton"]
        assert product.is_archived is False

    def test_required_fields(self, db_session):
        with pytest.raises(ValidationError, match="Missing required fields: sku"):
            product_service.prepare_patch({"name": "x", "weight_grams": 1}, partial=False)

    def test_unknown_fields_rejected(self, db_session):
        with pytest.raises(ValidationError, match="Unknown or read-only"):
            product_service.prepare_patch({"is_archived": True}, partial=True)

    def test_unknown_clothing_type(self, db_session):
        with pytest.raises(ValidationError, match="clothing_type"):
            product_service.prepare_patch({"clothing_type": "capes"}, partial=True)

    def test_duplicate_sku(self, db_session):
        new_product()
        with pytest.raises(ConflictError):
            new_product(name="Other")

    def test_with_sizes_and_flag(self, db_session):
        product = new_product(
            sizes=[{"size_name": "S", "chest_cm": 90}, "M"],
            allow_custom_measurements=True,
        )
        data = product_service.serialize_product(product)
        assert data["sizes"] == ["S", "M"]
        assert data["allow_custom_measurements"] is True
        assert data["size_schema"]["category"] == "shirts"
        assert len(data["size_schema"]["fields"]) == 15

    def test_update_sku_conflict(self, db_session):
        new_product()
        other = new_product(sku="OX-2")
        with pytest.raises(ConflictError):
            product_service.update_product(other.id, {"sku": "OX-1"})

    def test_toggle_archive(self, db_session):
        product = new_product()
        assert product_service.toggle_archive(product.id).is_archived is True
        assert product_service.toggle_archive(product.id).is_archived is False


# =============================================================================
# SIZES
# =============================================================================


class TestSizes:

    def test_round_trip_keeps_only_given_values(self, db_session):
        product = new_product()
        saved = product_service.save_sizes(product.id, [
            {"size_name": "S", "chest_cm": 88, "sleeve_length_cm": 0},
            {"size_name": "M", "chest_cm": "94.5", "waist_cm": None},
        ])
        assert saved == [
            {"size_name": "S", "chest_cm": 88.0, "sleeve_length_cm": 0.0},
            {"size_name": "M", "chest_cm": 94.5},
        ]
        assert product_service.get_product(product.id).sizes == ["S", "M"]

    def test_replace_drops_old_rows(self, db_session):
        product = new_product()
        product_service.save_sizes(product.id, ["S", "M", "L"])
        product_service.save_sizes(product.id, [{"size_name": "M", "chest_cm": 96}])
        rows = db_session.query(ProductSize).filter_by(product_id=product.id).all()
        assert [row.size_name for row in rows] == ["M"]

    def test_values_outside_category_are_kept(self, db_session):
        product = new_product(category="Sneakers")
        saved = product_service.save_sizes(product.id, [{"size_name": "42", "chest_cm": 50, "size_eu": 42}])
        assert saved[0]["chest_cm"] == 50.0

    @pytest.mark.parametrize(
        "sizes,message",
        [
            ("S,M", "must be a list"),
            ([{"size_name": " "}], "blank"),
            (["M", "m"], "Duplicate"),
            ([{"size_name": "M", "neck_cm": 40}], "Unknown measurement"),
            ([{"size_name": "M", "chest_cm": -1}], "negative"),
            ([{"size_name": "M", "chest_cm": "wide"}], "must be a number"),
        ],
    )
    def test_invalid_sizes_leave_existing(self, db_session, sizes, message):
        product = new_product()
        product_service.save_sizes(product.id, ["S"])
        with pytest.raises(ValidationError, match=message):
            product_service.save_sizes(product.id, sizes)
        assert product_service.load_sizes(product.id) == [{"size_name": "S"}]


# =============================================================================
# OPTIONAL COLUMN
# =============================================================================


class TestMissingOptionalColumn:

    def test_save_goes_through_without_flag(self, without_optional_column, caplog):
        product = new_product(allow_custom_measurements=True, sizes=["S"])
        data = product_service.serialize_product(product)
        assert data["name"] == "Oxford Shirt"
        assert data["sizes"] == ["S"]
        assert data["allow_custom_measurements"] is False
        assert "allow_custom_measurements column missing" in caplog.text

    def test_update_goes_through(self, without_optional_column):
        product = new_product()
        product_service.update_product(product.id, {"name": "Poplin Shirt", "allow_custom_measurements": True})
        db.session.expire_all()
        assert product_service.get_product(product.id).name == "Poplin Shirt"

    def test_health_reports_degraded(self, without_optional_column, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "degraded"
        assert "allow_custom_measurements" in resp.json["checks"]["database"]["warning"]


# =============================================================================
# API
# =============================================================================


def png_bytes(size=(8, 8)):
    buf = io.BytesIO()
    Image.new("RGB", size, (200, 30, 30)).save(buf, format="PNG")
    buf.seek(0)
    return buf


def stored_products(app):
    folder = os.path.join(app.config["UPLOAD_FOLDER"], "products")
    return set(os.listdir(folder)) if os.path.isdir(folder) else set()


def multipart(body, image):
    return {"data": json.dumps(body), "image": (image, "photo.png")}


class TestProductsApi:

    def test_create_requires_catalog_capability(self, client, manager_headers):
        resp = client.post("/api/products", headers=manager_headers,
                           json={"name": "x", "sku": "x", "weight_grams": 1})
        assert resp.status_code == 403

    def test_create_and_fetch(self, client, admin_headers):
        resp = client.post("/api/products", headers=admin_headers, json={
            "name": "Trail Sneaker", "sku": "TS-1", "weight_grams": 800, "category": ["Sneakers"],
        })
        assert resp.status_code == 201
        product_id = resp.json["id"]
        assert resp.json["size_schema"]["category"] == "shoes"

        resp = client.get(f"/api/products/{product_id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["sku"] == "TS-1"

    def test_duplicate_sku_conflict(self, client, admin_headers):
        body = {"name": "A", "sku": "DUP", "weight_grams": 1}
        assert client.post("/api/products", headers=admin_headers, json=body).status_code == 201
        assert client.post("/api/products", headers=admin_headers, json=body).status_code == 409

    def test_multipart_with_image(self, client, admin_headers):
        resp = client.post(
            "/api/products",
            headers=admin_headers,
            data={
                "data": json.dumps({"name": "Silk Scarf", "sku": "SC-1", "weight_grams": 60}),
                "image": (png_bytes(), "scarf.png"),
            },
            content_type="multipart/form-data",
        )
        assert resp.status_code == 201
        image_url = resp.json["image_url"]
        assert image_url.startswith("/media/products/")
        assert client.get(image_url).status_code == 200

    def test_multipart_rejects_non_image(self, client, admin_headers):
        resp = client.post(
            "/api/products",
            headers=admin_headers,
            data={
                "data": json.dumps({"name": "Scarf", "sku": "SC-2", "weight_grams": 60}),
                "image": (io.BytesIO(b"not an image"), "scarf.png"),
            },
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400

    def test_sizes_endpoints(self, client, admin_headers, make_product):
        product = make_product(category=["Leather Belt"])
        resp = client.put(f"/api/products/{product.id}/sizes", headers=admin_headers,
                          json={"sizes": [{"size_name": "90", "belt_length_cm": 90}]})
        assert resp.status_code == 200

        resp = client.get(f"/api/products/{product.id}/sizes", headers=admin_headers)
        assert resp.json["sizes"] == [{"size_name": "90", "belt_length_cm": 90.0}]
        assert resp.json["schema"]["category"] == "belts"

    def test_archive_filter(self, client, admin_headers, make_product):
        live = make_product(name="Live")
        make_product(name="Old", is_archived=True)
        resp = client.get("/api/products?archived=false", headers=admin_headers)
        assert [p["id"] for p in resp.json["items"]] == [live.id]

    def test_size_schema_lookup(self, client, driver_headers):
        resp = client.get("/api/products/size-schema?category=Denim%20Jeans", headers=driver_headers)
        assert resp.json["category"] == "pants"
        resp = client.get("/api/products/size-schema?category=Jeans&clothing_type=belts",
                          headers=driver_headers)
        assert resp.json["category"] == "belts"

    def test_conflicting_upload_leaves_no_file(self, app, client, admin_headers):
        body = {"name": "Wool Hat", "sku": "HAT-1", "weight_grams": 90}
        assert client.post("/api/products", headers=admin_headers, json=body).status_code == 201
        before = stored_products(app)

        resp = client.post("/api/products", headers=admin_headers,
                           data=multipart(body, png_bytes()), content_type="multipart/form-data")
        assert resp.status_code == 409
        assert stored_products(app) == before

    def test_invalid_body_upload_leaves_no_file(self, app, client, admin_headers):
        before = stored_products(app)
        resp = client.post("/api/products", headers=admin_headers,
                           data=multipart({"name": "Wool Hat"}, png_bytes()),
                           content_type="multipart/form-data")
        assert resp.status_code == 400
        assert stored_products(app) == before

    def test_update_with_image(self, app, client, admin_headers, make_product):
        product = make_product()
        resp = client.put(f"/api/products/{product.id}", headers=admin_headers,
                          data=multipart({"name": "Renamed"}, png_bytes()),
                          content_type="multipart/form-data")
        assert resp.status_code == 200
        assert resp.json["name"] == "Renamed"
        assert client.get(resp.json["image_url"]).status_code == 200

    def test_update_unknown_product_leaves_no_file(self, app, client, admin_headers):
        before = stored_products(app)
        resp = client.put("/api/products/missing", headers=admin_headers,
                          data=multipart({"name": "Renamed"}, png_bytes()),
                          content_type="multipart/form-data")
        assert resp.status_code == 404
        assert stored_products(app) == before


# =============================================================================
# MEDIA
# =============================================================================


class TestMedia:

    @pytest.mark.parametrize("path", [
        "/media/unknown/photo.png",
        "/media/products/missing.png",
        "/media/products/..%2Fsecret.png",
    ])
    def test_not_found(self, client, path):
        resp = client.get(path)
        assert resp.status_code == 404

    def test_resolve_path_rejects_other_folders(self, app):
        assert media_service.resolve_path("products", "../secret.png") is None
        assert media_service.resolve_path("exports", "photo.png") is None

    def test_discard_removes_stored_file(self, app):
        url = media_service.store_upload(FileStorage(png_bytes(), "photo.png"), "products")
        filename = url.rsplit("/", 1)[-1]
        assert media_service.resolve_path("products", filename) is not None

        assert media_service.discard(url) is True
        assert media_service.resolve_path("products", filename) is None
        assert media_service.discard(url) is False

    def test_staged_upload_cleans_up_on_error(self, app):
        before = stored_products(app)
        with pytest.raises(ConflictError):
            with media_service.staged_upload(FileStorage(png_bytes(), "photo.png")) as url:
                assert url.startswith("/media/products/")
                raise ConflictError("SKU already exists")
        assert stored_products(app) == before

    def test_staged_upload_without_file(self, app):
        with media_service.staged_upload(None) as url:
            assert url is None
