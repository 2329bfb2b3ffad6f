from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException
from starlette.responses import StreamingResponse

from database import get_db
from services.export_services import ExportService, EXPORT_KINDS, CSV_MEDIA_TYPE, XLSX_MEDIA_TYPE

router = APIRouter()


@router.get("/{site_id}/export/{kind}")
def export_site_data(
        site_id: int,
        kind: str,
        format: str = Query("csv", pattern="^(csv|xlsx)$"),
        db: Session = Depends(get_db),
):
    """Download the site's inventory, movements or loans as CSV or XLSX"""
    if kind not in EXPORT_KINDS:
        raise HTTPException(status_code=404, detail=f"Unknown export '{kind}'. Use one of {', '.join(EXPORT_KINDS)}")

    service = ExportService(db)
    df = service.build(kind, site_id)

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    if format == "xlsx":
        output = service.to_xlsx_bytes(df, sheet_name=kind.capitalize())
        media_type = XLSX_MEDIA_TYPE
    else:
        output = service.to_csv_bytes(df)
        media_type = CSV_MEDIA_TYPE

    filename = f"{kind}_obra_{site_id}_{timestamp}.{format}"
    return StreamingResponse(
        output,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )
