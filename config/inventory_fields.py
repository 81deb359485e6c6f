"""
Inventory upload field configuration.

Canonical product fields, the bilingual header alias table, and the
constants shared by the upload pipeline stages.
"""

from models.bulk_upload import CanonicalField, ProductStatus

# =============================================================================
# CANONICAL FIELDS
# =============================================================================

# Display labels, in the order the mapping screen lists them
FIELD_LABELS: dict[CanonicalField, str] = {
    CanonicalField.NAME: "Nombre",
    CanonicalField.SKU: "SKU",
    CanonicalField.DESCRIPTION: "Descripcion",
    CanonicalField.BRAND: "Marca",
    CanonicalField.EXTERNAL_REF: "Numero OEM",
    CanonicalField.PRICE: "Precio",
    CanonicalField.COST: "Costo",
    CanonicalField.STOCK: "Stock",
    CanonicalField.MIN_STOCK: "Stock Minimo",
    CanonicalField.STATUS: "Estado",
}

REQUIRED_FIELDS: frozenset[CanonicalField] = frozenset({
    CanonicalField.NAME,
    CanonicalField.PRICE,
    CanonicalField.STOCK,
})

# Store column for each canonical field (external_ref is stored as oem_number)
FIELD_COLUMNS: dict[CanonicalField, str] = {
    field: ("oem_number" if field == CanonicalField.EXTERNAL_REF else field.value)
    for field in CanonicalField
}

VALID_STATUSES: frozenset[str] = frozenset(s.value for s in ProductStatus)


# =============================================================================
# HEADER ALIASES
# =============================================================================
# Keys are normalized headers: lowercase, accents removed, whitespace -> "_".
# English and Spanish spellings are both supported.

HEADER_ALIASES: dict[str, CanonicalField] = {
    # name (required)
    "name": CanonicalField.NAME,
    "nombre": CanonicalField.NAME,
    "product_name": CanonicalField.NAME,
    "nombre_producto": CanonicalField.NAME,
    "producto": CanonicalField.NAME,

    # sku
    "sku": CanonicalField.SKU,
    "codigo": CanonicalField.SKU,
    "code": CanonicalField.SKU,
    "part_number": CanonicalField.SKU,
    "numero_parte": CanonicalField.SKU,

    # description
    "description": CanonicalField.DESCRIPTION,
    "descripcion": CanonicalField.DESCRIPTION,
    "desc": CanonicalField.DESCRIPTION,

    # brand
    "brand": CanonicalField.BRAND,
    "marca": CanonicalField.BRAND,

    # external reference (OEM number)
    "oem": CanonicalField.EXTERNAL_REF,
    "oem_number": CanonicalField.EXTERNAL_REF,
    "numero_oem": CanonicalField.EXTERNAL_REF,
    "oem_numero": CanonicalField.EXTERNAL_REF,
    "external_ref": CanonicalField.EXTERNAL_REF,

    # price (required)
    "price": CanonicalField.PRICE,
    "precio": CanonicalField.PRICE,
    "precio_venta": CanonicalField.PRICE,
    "sell_price": CanonicalField.PRICE,

    # cost
    "cost": CanonicalField.COST,
    "costo": CanonicalField.COST,
    "precio_compra": CanonicalField.COST,

    # stock (required)
    "stock": CanonicalField.STOCK,
    "cantidad": CanonicalField.STOCK,
    "quantity": CanonicalField.STOCK,
    "qty": CanonicalField.STOCK,
    "inventario": CanonicalField.STOCK,

    # min_stock
    "min_stock": CanonicalField.MIN_STOCK,
    "stock_minimo": CanonicalField.MIN_STOCK,
    "min_quantity": CanonicalField.MIN_STOCK,
    "minimo": CanonicalField.MIN_STOCK,

    # status
    "status": CanonicalField.STATUS,
    "estado": CanonicalField.STATUS,
}


# =============================================================================
# PIPELINE CONSTANTS
# =============================================================================

SUPPORTED_EXTENSIONS = ("csv", "tsv", "txt", "xls", "xlsx", "ods")

# Rows sent to the external classifier / inspected by content heuristics
CLASSIFIER_SAMPLE_ROWS = 3
HEURISTIC_SAMPLE_ROWS = 10

# Workbooks: the header is the first of these rows with >= 2 non-empty cells
HEADER_SCAN_ROWS = 10

# Lot numbers: LOT-<year>-<seq>, sequence zero-padded to 4 digits
LOT_NUMBER_PREFIX = "LOT"
LOT_SEQUENCE_DIGITS = 4
LOT_NUMBER_MAX_ATTEMPTS = 5

# Lot entries and lot deletions are written in batches of this size
LOT_WRITE_BATCH_SIZE = 100

# Upload log keeps at most this many row errors
MAX_LOGGED_ERRORS = 500
