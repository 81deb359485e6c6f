"""
API tests for the inventory upload and lot routes.

The database is the in-memory mock patched into the route modules.
"""

from decimal import Decimal
import pytest

ORG = "org-1"
BASE = "/api/inventory-upload"


@pytest.fixture
def client(test_client_with_mock_db):
    return test_client_with_mock_db


def decode(client, content: bytes, file_name: str = "productos.csv"):
    return client.post(f"{BASE}/decode", files={"file": (file_name, content, "text/csv")})


def upload_body(decoded: dict, **overrides) -> dict:
    body = {
        "org_id": ORG,
        "actor": "user-1",
        "file_name": decoded["file_name"],
        "headers": decoded["headers"],
        "rows": decoded["rows"],
        "mappings": decoded["mappings"],
    }
    body.update(overrides)
    return body


# ===================
# WIZARD STAGES
# ===================

class TestDecode:
    """Tests for POST /decode."""

    def test_decode_csv(self, client, sample_csv):
        response = decode(client, sample_csv)

        assert response.status_code == 200
        body = response.json()
        assert body["headers"] == ["sku", "nombre", "marca", "precio", "costo", "stock"]
        assert [r["row_number"] for r in body["rows"]] == [1, 2, 3]
        assert all(m["target_field"] is not None for m in body["mappings"])

    def test_unsupported_extension(self, client):
        response = decode(client, b"%PDF-1.4", file_name="catalogo.pdf")

        assert response.status_code == 422
        assert "error" in response.json()

    def test_empty_file(self, client):
        response = decode(client, b"")

        assert response.status_code == 422


class TestMapping:
    """Tests for POST /mapping and /mapping/assign."""

    def test_suggest_mapping_by_content(self, client):
        rows = [
            {"row_number": i, "data": {"Articulo": f"Filtro {i}", "Importe": "10.50", "Cant. disponible": str(i)}}
            for i in range(1, 4)
        ]

        response = client.post(f"{BASE}/mapping", json={
            "headers": ["Articulo", "Importe", "Cant. disponible"],
            "sample_rows": rows,
        })

        assert response.status_code == 200
        fields = {m["file_header"]: m["target_field"] for m in response.json()["mappings"]}
        assert fields["Cant. disponible"] == "stock"
        assert response.json()["used_external"] is False

    def test_assign_moves_field(self, client):
        mappings = [
            {"file_header": "precio", "target_field": "price", "auto_detected": True},
            {"file_header": "pvp", "target_field": None, "auto_detected": False},
        ]

        response = client.post(f"{BASE}/mapping/assign", json={
            "mappings": mappings,
            "file_header": "pvp",
            "target_field": "price",
        })

        assert response.status_code == 200
        assert response.json() == [
            {"file_header": "precio", "target_field": None, "auto_detected": False},
            {"file_header": "pvp", "target_field": "price", "auto_detected": False},
        ]

    def test_assign_unknown_column(self, client):
        response = client.post(f"{BASE}/mapping/assign", json={
            "mappings": [{"file_header": "precio", "target_field": "price"}],
            "file_header": "missing",
            "target_field": "price",
        })

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "UNKNOWN_COLUMN"


class TestValidate:
    """Tests for POST /validate."""

    def test_validate_rows(self, client, sample_csv):
        decoded = decode(client, sample_csv).json()

        response = client.post(f"{BASE}/validate", json={
            "rows": decoded["rows"],
            "mappings": decoded["mappings"],
        })

        assert response.status_code == 200
        body = response.json()
        assert body["total_rows"] == 3
        assert len(body["valid_records"]) == 3
        assert body["errors"] == []

    def test_conflicting_mapping_rejected(self, client):
        response = client.post(f"{BASE}/validate", json={
            "rows": [{"row_number": 1, "data": {"a": "1", "b": "2"}}],
            "mappings": [
                {"file_header": "a", "target_field": "price"},
                {"file_header": "b", "target_field": "price"},
            ],
        })

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_MAPPING"


# ===================
# UPLOAD & HISTORY
# ===================

class TestUpload:
    """Tests for POST /upload and GET /history."""

    def test_upload_creates_lot_and_log(self, client, mock_db, sample_csv):
        decoded = decode(client, sample_csv).json()

        response = client.post(f"{BASE}/upload", json=upload_body(decoded))

        assert response.status_code == 200
        body = response.json()
        assert body["progress"]["success_count"] == 3
        assert body["lot"]["total_products"] == 3
        assert Decimal(body["lot"]["total_retail_value"]) == Decimal("4948.00")
        assert body["audit_logged"] is True
        assert len(mock_db.rows("products")) == 3
        assert len(mock_db.rows("bulk_uploads")) == 1

    def test_upload_with_no_valid_rows(self, client, mock_db):
        decoded = decode(client, b"nombre,precio,stock\nFiltro,,5\n").json()

        response = client.post(f"{BASE}/upload", json=upload_body(decoded))

        assert response.status_code == 422
        assert response.json()["error"]["details"]["error_rows"] == 1
        assert mock_db.rows("products") == []

    def test_upload_requires_org(self, client, sample_csv):
        decoded = decode(client, sample_csv).json()

        response = client.post(f"{BASE}/upload", json=upload_body(decoded, org_id=""))

        assert response.status_code == 422

    def test_history(self, client, sample_csv):
        decoded = decode(client, sample_csv).json()
        client.post(f"{BASE}/upload", json=upload_body(decoded))

        response = client.get(f"{BASE}/history", params={"org_id": ORG})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["data"][0]["file_name"] == "productos.csv"
        assert body["data"][0]["lot_number"].startswith("LOT-")


# ===================
# LOTS
# ===================

class TestLots:
    """Tests for /api/lots."""

    def upload(self, client, content: bytes) -> dict:
        decoded = decode(client, content).json()
        return client.post(f"{BASE}/upload", json=upload_body(decoded)).json()["lot"]

    def test_list_and_get(self, client, sample_csv):
        lot = self.upload(client, sample_csv)

        listing = client.get("/api/lots/", params={"org_id": ORG}).json()
        fetched = client.get(f"/api/lots/{lot['id']}").json()

        assert listing["total"] == 1
        assert fetched["lot_number"] == lot["lot_number"]

    def test_get_unknown_lot(self, client):
        response = client.get("/api/lots/missing")

        assert response.status_code == 404

    def test_delete_lot(self, client, mock_db, sample_csv):
        lot = self.upload(client, sample_csv)

        response = client.delete(f"/api/lots/{lot['id']}")

        assert response.status_code == 200
        assert response.json()["deleted_products"] == 3
        assert mock_db.rows("products") == []
        assert mock_db.rows("bulk_uploads")[0]["lot_id"] is None

    def test_delete_referenced_lot(self, client, mock_db, sample_csv):
        lot = self.upload(client, sample_csv)
        product_id = mock_db.rows("products")[0]["id"]
        mock_db.set_table_data("order_items", [{"id": "oi1", "order_id": "o1", "product_id": product_id}])

        response = client.delete(f"/api/lots/{lot['id']}")

        assert response.status_code == 409
        assert len(mock_db.rows("products")) == 3


# ===================
# APP
# ===================

class TestApp:
    """Tests for the app-level endpoints and middleware."""

    def test_root_lists_routers(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["endpoints"] == {
            "inventory_upload": "/api/inventory-upload",
            "lots": "/api/lots",
        }

    def test_cors_allows_configured_origin(self, client):
        response = client.options("/api/lots/", headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
        })

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
