import gzip
import hmac
import json
import logging
import os
import zlib
from typing import Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Query, UploadFile
from pydantic import ValidationError
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .db import get_db, init_db
from .importer import InvalidFeedError, NvdImporter

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

if os.environ.get("CREATE_TABLES", "true").lower() == "true":
    init_db()

app = FastAPI(title="Security Advisory API", version="0.1.0")

GZIP_MAGIC = b"\x1f\x8b"


def get_importer() -> NvdImporter:
    return NvdImporter()


def require_import_key(x_api_key: Optional[str] = Header(default=None)) -> None:
    expected = os.environ.get("IMPORT_API_KEY")
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Invalid API key")


def _load_feed(raw: bytes) -> schemas.NvdFeed:
    if raw.startswith(GZIP_MAGIC):
        try:
            raw = gzip.decompress(raw)
        except (OSError, EOFError, zlib.error) as exc:
            raise HTTPException(status_code=400, detail=f"Invalid gzip payload: {exc}") from exc
    try:
        document = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise HTTPException(status_code=400, detail="Feed must be a JSON object")
    try:
        return schemas.NvdFeed.model_validate(document)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/nvd/import", response_model=schemas.ImportSummary)
def import_nvd_feed(
    file: UploadFile = File(...),
    _: None = Depends(require_import_key),
    importer: NvdImporter = Depends(get_importer),
) -> schemas.ImportSummary:
    feed = _load_feed(file.file.read())
    logger.info("Importing NVD feed %s", file.filename)
    try:
        summary = importer.import_feed(feed)
    except InvalidFeedError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info(
        "Imported %s: %d advisories, %d skipped", file.filename, summary.processed, summary.skipped
    )
    return summary


@app.get("/advisories", response_model=list[schemas.AdvisoryOut])
def list_advisories(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> list[schemas.AdvisoryOut]:
    records = crud.list_advisories(db, limit=limit, offset=offset)
    return [schemas.AdvisoryOut.model_validate(record) for record in records]


@app.get("/advisories/{cve_id}", response_model=schemas.AdvisoryDetailOut)
def get_advisory(cve_id: str, db: Session = Depends(get_db)) -> schemas.AdvisoryDetailOut:
    advisory = crud.get_latest_advisory(db, cve_id)
    if not advisory:
        raise HTTPException(status_code=404, detail="Advisory not found")
    return schemas.AdvisoryDetailOut.model_validate(advisory)


@app.get("/vendors", response_model=list[schemas.VendorOut])
def list_vendors(db: Session = Depends(get_db)) -> list[schemas.VendorOut]:
    return [schemas.VendorOut.model_validate(vendor) for vendor in crud.list_vendors(db)]


@app.get("/vendors/{vendor_id}/products", response_model=list[schemas.ProductOut])
def list_vendor_products(vendor_id: int, db: Session = Depends(get_db)) -> list[schemas.ProductOut]:
    if not db.get(models.Vendor, vendor_id):
        raise HTTPException(status_code=404, detail="Vendor not found")
    return [schemas.ProductOut.model_validate(product) for product in crud.list_vendor_products(db, vendor_id)]


@app.get("/products", response_model=list[schemas.ProductOut])
def list_products(
    name: Optional[str] = Query(default=None),
    version: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
) -> list[schemas.ProductOut]:
    products = crud.find_products(db, name=name, version=version)
    return [schemas.ProductOut.model_validate(product) for product in products]
